"""Version bookkeeping for assistant messages.

Every successful assistant response keeps its generation attempts as an
ordered list of versions plus a cursor (``currentVersion``) on the one being
displayed. Regenerating adds images to the current version; editing the
prompt opens a new, empty version so the old ones stay reachable.

Chats saved by older clients store a ``generations`` list or a flat
``images`` field instead. ``normalize`` adapts such a message in place the
first time it is touched, and every helper here calls it before reading.
"""

import copy
from typing import Any

from app.schemas.chat import MessageRole

Message = dict[str, Any]


def is_user_message(message: Message) -> bool:
    return message.get("role") == MessageRole.USER


def is_assistant_message(message: Message) -> bool:
    return message.get("role") == MessageRole.ASSISTANT


def is_successful_response(message: Message) -> bool:
    """An assistant message that carries generated output rather than an error."""
    return is_assistant_message(message) and not message.get("error")


def normalize(message: Message) -> Message:
    """Bring an assistant message into the ``versions``/``currentVersion`` shape.

    Idempotent. User messages and failed responses are returned untouched.
    A cursor outside the version list is pulled back to the last version.
    """
    if not is_successful_response(message):
        return message

    if message.get("generations") is not None and message.get("versions") is None:
        message["versions"] = message.pop("generations")

    if not message.get("versions"):
        message["versions"] = [{"images": list(message.get("images") or [])}]

    for version in message["versions"]:
        if version.get("images") is None:
            version["images"] = []

    current = message.get("currentVersion")
    if current is None or current < 0:
        message["currentVersion"] = 0
    elif current >= len(message["versions"]):
        message["currentVersion"] = len(message["versions"]) - 1

    return message


def normalized_view(message: Message) -> Message:
    """Return a normalized copy, leaving the stored message as it is."""
    return normalize(copy.deepcopy(message))


def current_images(message: Message) -> list[str]:
    normalize(message)
    return list(message["versions"][message["currentVersion"]]["images"])


def all_version_images(message: Message) -> list[str]:
    """Images of every version, in version order. Repeats are kept."""
    normalize(message)
    images: list[str] = []
    for version in message["versions"]:
        images.extend(version["images"])
    return images


def _require_response(message: Message) -> None:
    if not is_assistant_message(message):
        raise ValueError("Versions exist only on assistant messages")
    if message.get("error"):
        raise ValueError("A failed response has no versions")


def append_images_to_current_version(message: Message, new_images: list[str]) -> list[str]:
    """Add images to the displayed version and return its full image list."""
    _require_response(message)
    normalize(message)
    version = message["versions"][message["currentVersion"]]
    version["images"] = [*version["images"], *new_images]
    return version["images"]


def start_new_version(message: Message) -> int:
    """Open an empty version, point the cursor at it and return its index."""
    _require_response(message)
    normalize(message)
    message["versions"].append({"images": []})
    message["currentVersion"] = len(message["versions"]) - 1
    return message["currentVersion"]


def select_version(message: Message, delta: int) -> bool:
    """Move the cursor by ``delta``. Out of range is a no-op; returns whether it moved."""
    _require_response(message)
    normalize(message)
    target = message["currentVersion"] + delta
    if target < 0 or target >= len(message["versions"]) or target == message["currentVersion"]:
        return False
    message["currentVersion"] = target
    return True


def new_response(images: list[str], timestamp: str) -> Message:
    return {
        "role": MessageRole.ASSISTANT.value,
        "versions": [{"images": list(images)}],
        "currentVersion": 0,
        "timestamp": timestamp,
    }


def error_response(error: str, timestamp: str) -> Message:
    return {"role": MessageRole.ASSISTANT.value, "error": error, "timestamp": timestamp}
