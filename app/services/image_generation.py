"""Client for the AI/ML API image generation endpoint."""

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.exceptions.generation import (
    RETRYABLE_GENERATION_ERRORS,
    GenerationConfigurationError,
    GenerationError,
    GenerationParsingError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    map_status_error,
)
from app.shared.image_refs import ImageRefKind, classify

from .image_store import ImageStore

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {response.status_code}"


def extract_images(body: Any) -> list[str]:
    """Pull image references out of a generation response.

    Accepts ``{"images": [...]}`` (strings or ``{"url": ...}`` objects) and the
    OpenAI style ``{"data": [{"url"} | {"b64_json"}]}``.
    """
    if not isinstance(body, dict):
        raise GenerationParsingError("Generation response is not a JSON object")

    images: list[str] = []
    if isinstance(body.get("images"), list):
        for item in body["images"]:
            if isinstance(item, str):
                images.append(item)
            elif isinstance(item, dict) and item.get("url"):
                images.append(item["url"])
    elif isinstance(body.get("data"), list):
        for item in body["data"]:
            if not isinstance(item, dict):
                continue
            if item.get("url"):
                images.append(item["url"])
            elif item.get("b64_json"):
                images.append(f"data:image/png;base64,{item['b64_json']}")
    else:
        raise GenerationParsingError(
            "Generation response contains no images", details={"keys": sorted(body.keys())}
        )
    return images


class ImageGenerationClient:
    """Sends prompts and context images to the generation API.

    Every failure surfaces as a ``GenerationError`` subclass; callers decide
    whether that becomes an HTTP error or an error message in the chat.
    """

    def __init__(
        self,
        image_store: ImageStore | None = None,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_wait: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.image_store = image_store or ImageStore()
        self.api_key = api_key if api_key is not None else settings.aiml_api_key
        self.api_url = str(api_url or settings.aiml_api_url)
        self.timeout = timeout or settings.generation_timeout
        self.max_attempts = max_attempts or settings.generation_max_retries
        self.retry_wait = retry_wait
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def resolve_references(self, refs: list[str]) -> list[str]:
        """Make every reference readable by the API.

        Inline data and external URLs pass through; server paths are read from
        the image store and inlined. Anything else is dropped with a warning.
        """
        resolved = []
        for ref in refs:
            kind = classify(ref)
            if kind in (ImageRefKind.INLINE, ImageRefKind.EXTERNAL):
                resolved.append(ref)
            elif kind is ImageRefKind.STORED:
                inline = await self.image_store.read_reference(ref)
                if inline is not None:
                    resolved.append(inline)
            else:
                logger.warning(f"Skipping unsupported image reference: {ref[:60]}")
        return resolved

    async def request(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` as-is and return the decoded JSON body, with retries."""
        if not self.configured:
            raise GenerationConfigurationError()

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_GENERATION_ERRORS),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, min=0, max=30 * self.retry_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post(payload)
        raise GenerationError()  # pragma: no cover

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Generation request timed out after {self.timeout}s")
            raise GenerationTimeoutError() from e
        except httpx.TransportError as e:
            logger.error(f"Generation request failed: {str(e)}")
            raise GenerationUnavailableError(f"Could not reach image generation service: {str(e)}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"Generation API returned {response.status_code}: {message}")
            raise map_status_error(response.status_code, message, {"status": response.status_code})

        try:
            return response.json()
        except ValueError as e:
            raise GenerationParsingError("Generation response is not valid JSON") from e

    async def generate(
        self,
        prompt: str,
        images: list[str] | None = None,
        model: str | None = None,
        num_images: int | None = None,
    ) -> list[str]:
        """Generate images and return at most ``num_images`` references."""
        model = model or settings.default_model
        num_images = num_images or settings.default_num_images
        image_urls = await self.resolve_references(images or [])

        payload: dict[str, Any] = {"model": model, "prompt": prompt, "num_images": num_images}
        if image_urls:
            payload["image_urls"] = image_urls

        logger.info(f"Generating {num_images} image(s) with {model} from {len(image_urls)} context image(s)")
        body = await self.request(payload)
        produced = extract_images(body)[:num_images]
        logger.info(f"Generation returned {len(produced)} image(s)")
        return produced
