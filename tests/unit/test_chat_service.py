"""
Unit tests for ChatService.

The generation client is an ``AsyncMock`` (see ``conftest.generator``); the
database is an in-memory SQLite session.
"""

import pytest

from app.exceptions.base import NotFoundError
from app.exceptions.chat import (
    ChatNotFoundError,
    ContextLimitExceededError,
    EmptyPromptError,
    InvalidEditStateError,
    InvalidMessageOperationError,
    MessageNotFoundError,
)
from app.exceptions.generation import GenerationUnavailableError
from app.schemas.chat import (
    ChatDocument,
    ContextCountRequest,
    ContextOptions,
    EditMessageRequest,
    RegenerateRequest,
    SendMessageRequest,
)
from app.domains.chat.service import title_from_prompt
from app.shared.image_refs import encode_data_uri
from tests.factories import FailedResponseFactory, UserMessageFactory, response


def test_title_from_prompt():
    assert title_from_prompt("short") == "short"
    assert title_from_prompt("x" * 60) == "x" * 50 + "..."
    assert title_from_prompt("y" * 50) == "y" * 50


class TestChats:
    async def test_create_and_get(self, chat_service):
        created = await chat_service.create_chat()

        fetched = await chat_service.get_chat(created["id"])

        assert fetched["title"] == "New Chat"
        assert fetched["messages"] == []
        assert created["id"].isdigit()

    async def test_get_missing_chat(self, chat_service):
        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat("missing")

    async def test_replace_keeps_document_verbatim(self, chat_service, empty_chat):
        legacy = [UserMessageFactory(prompt="p"), {"role": "assistant", "generations": [{"images": ["g"]}]}]

        saved = await chat_service.replace_chat(
            empty_chat.id, ChatDocument(id=empty_chat.id, title="t", messages=legacy)
        )

        assert saved["messages"] == legacy

    async def test_replace_rejects_mismatched_id(self, chat_service, empty_chat):
        with pytest.raises(InvalidMessageOperationError):
            await chat_service.replace_chat(empty_chat.id, ChatDocument(id="other"))

    async def test_delete_removes_images(self, chat_service, image_store, empty_chat):
        await image_store.put("input", f"{empty_chat.id}_0_0.png", b"x")

        await chat_service.delete_chat(empty_chat.id)

        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat(empty_chat.id)
        assert not (image_store.root / "input" / f"{empty_chat.id}_0_0.png").exists()


class TestSendMessage:
    async def test_send_appends_prompt_and_response(self, chat_service, generator, empty_chat):
        chat = await chat_service.send_message(
            empty_chat.id, SendMessageRequest(prompt="  draw a cat ", input_images=["https://cdn/x.png"])
        )

        user, assistant = chat["messages"]
        assert user["prompt"] == "draw a cat"
        assert user["inputImages"] == ["https://cdn/x.png"]
        assert user["model"] == "google/nano-banana-pro-edit"
        assert user["numImages"] == 1
        assert user["imageContextOptions"]["includeLastGenerated"] is True
        assert assistant["versions"] == [{"images": ["gen-1", "gen-2"]}]
        assert assistant["currentVersion"] == 0
        assert chat["title"] == "draw a cat"
        generator.generate.assert_awaited_once_with(
            "draw a cat", ["https://cdn/x.png"], model="google/nano-banana-pro-edit", num_images=1
        )

    async def test_second_prompt_sends_turns_and_last_images(self, chat_service, generator, answered_chat):
        await chat_service.send_message(answered_chat.id, SendMessageRequest(prompt="add a hat", num_images=2))

        prompt, images = generator.generate.await_args.args
        assert prompt == "[Turn 1]: draw a cat\n\n[Turn 2]: add a hat"
        assert images == ["c"]
        assert generator.generate.await_args.kwargs["num_images"] == 2

    async def test_title_only_set_by_first_prompt(self, chat_service, answered_chat):
        chat = await chat_service.send_message(answered_chat.id, SendMessageRequest(prompt="something else"))

        assert chat["title"] == "draw a cat"

    async def test_inline_inputs_are_uploaded(self, chat_service, image_store, empty_chat):
        inline = encode_data_uri(b"\x89PNG", "image/png")

        chat = await chat_service.send_message(empty_chat.id, SendMessageRequest(prompt="p", input_images=[inline]))

        ref = chat["messages"][0]["inputImages"][0]
        assert ref.startswith(f"/api/images/input/{empty_chat.id}_0_0.png?t=")
        assert await image_store.get("input", f"{empty_chat.id}_0_0.png") == b"\x89PNG"

    async def test_inline_generated_images_are_stored(self, chat_service, generator, image_store, empty_chat):
        generator.generate.return_value = [encode_data_uri(b"out")]

        chat = await chat_service.send_message(empty_chat.id, SendMessageRequest(prompt="p"))

        ref = chat["messages"][1]["versions"][0]["images"][0]
        assert ref.startswith(f"/api/images/generated/{empty_chat.id}_msg1_v0_0.png?t=")
        assert await image_store.get("generated", f"{empty_chat.id}_msg1_v0_0.png") == b"out"

    async def test_generation_failure_becomes_error_message(self, chat_service, generator, empty_chat):
        generator.generate.side_effect = GenerationUnavailableError("service down")

        chat = await chat_service.send_message(empty_chat.id, SendMessageRequest(prompt="p"))

        failed = chat["messages"][1]
        assert failed["role"] == "assistant"
        assert failed["error"] == "service down"
        assert "versions" not in failed

    async def test_stores_options_as_chosen(self, chat_service, generator, answered_chat):
        options = ContextOptions(include_last_generated=False, include_last_generated_all_versions=True)

        chat = await chat_service.send_message(
            answered_chat.id, SendMessageRequest(prompt="again", image_context_options=options)
        )

        stored = chat["messages"][2]["imageContextOptions"]
        assert stored["includeLastGenerated"] is False
        assert stored["includeLastGeneratedAllVersions"] is True
        assert generator.generate.await_args.args[1] == []

    async def test_blank_prompt_rejected(self, chat_service, generator, empty_chat):
        with pytest.raises(EmptyPromptError):
            await chat_service.send_message(empty_chat.id, SendMessageRequest(prompt="   "))

        generator.generate.assert_not_awaited()

    async def test_too_many_images_rejected_before_generation(self, chat_service, generator, repository):
        chat = await repository.create(
            messages=[UserMessageFactory(), response(["g1", "g2", "g3", "g4", "g5"])]
        )

        with pytest.raises(ContextLimitExceededError):
            await chat_service.send_message(
                chat.id, SendMessageRequest(prompt="p", input_images=[f"https://x/{n}.png" for n in range(10)])
            )

        generator.generate.assert_not_awaited()
        assert len((await chat_service.get_chat(chat.id))["messages"]) == 2


class TestRegenerate:
    async def test_adds_to_current_version(self, chat_service, generator, answered_chat):
        chat = await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest())

        assistant = chat["messages"][1]
        assert assistant["versions"] == [{"images": ["a", "b"]}, {"images": ["c", "gen-1", "gen-2"]}]
        assert assistant["currentVersion"] == 1
        assert generator.generate.await_args.args == ("draw a cat", ["/api/images/input/u0.png"])

    async def test_uses_stored_settings_unless_overridden(self, chat_service, generator, answered_chat):
        await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest(num_images=3))

        kwargs = generator.generate.await_args.kwargs
        assert kwargs == {"model": "google/nano-banana-pro-edit", "num_images": 3}

    async def test_failure_keeps_versions_and_records_error(self, chat_service, generator, answered_chat):
        generator.generate.side_effect = GenerationUnavailableError("busy")

        first = await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest())
        second = await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest())

        assert first["messages"][1]["versions"] == [{"images": ["a", "b"]}, {"images": ["c"]}]
        assert len(second["messages"]) == 3
        assert second["messages"][2]["error"] == "busy"

    async def test_success_clears_earlier_failure(self, chat_service, generator, answered_chat):
        generator.generate.side_effect = GenerationUnavailableError("busy")
        await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest())
        generator.generate.side_effect = None

        chat = await chat_service.regenerate(answered_chat.id, 1, RegenerateRequest())

        assert len(chat["messages"]) == 2
        assert chat["messages"][1]["versions"][1] == {"images": ["c", "gen-1", "gen-2"]}

    async def test_failure_on_earlier_response_is_appended(self, chat_service, generator, repository):
        chat = await repository.create(
            messages=[UserMessageFactory(), response(["a"]), UserMessageFactory(), response(["b"])]
        )
        generator.generate.side_effect = GenerationUnavailableError("busy")

        result = await chat_service.regenerate(chat.id, 1, RegenerateRequest())

        messages = result["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant", "assistant"]
        assert "error" not in messages[2] and "error" not in messages[3]
        assert messages[4]["error"] == "busy"

    @pytest.mark.parametrize("index", [0, 5])
    async def test_rejects_bad_target(self, chat_service, answered_chat, index):
        with pytest.raises((InvalidMessageOperationError, MessageNotFoundError)):
            await chat_service.regenerate(answered_chat.id, index, RegenerateRequest())


class TestVersions:
    async def test_change_version(self, chat_service, answered_chat):
        result = await chat_service.change_version(answered_chat.id, 1, -1)

        assert result.moved is True
        assert result.current_version == 0
        assert result.total_versions == 2
        assert result.images == ["a", "b"]

    async def test_out_of_range_is_noop(self, chat_service, answered_chat):
        result = await chat_service.change_version(answered_chat.id, 1, 1)

        assert result.moved is False
        assert result.current_version == 1

    async def test_failed_response_has_no_versions(self, chat_service, repository):
        chat = await repository.create(messages=[UserMessageFactory(), FailedResponseFactory()])

        with pytest.raises(InvalidMessageOperationError):
            await chat_service.change_version(chat.id, 1, -1)


class TestEditing:
    async def test_edit_branches_response(self, chat_service, generator, repository):
        chat = await repository.create(messages=[UserMessageFactory(prompt="draw a cat"), response(["a", "b"])])
        generator.generate.return_value = ["c"]

        await chat_service.begin_edit(chat.id, 0)
        saved = await chat_service.save_edit(chat.id, 0, EditMessageRequest(prompt="draw a dog"))

        user, assistant = saved["messages"]
        assert user["prompt"] == "draw a dog"
        assert user["isEditing"] is False
        assert assistant["versions"] == [{"images": ["a", "b"]}, {"images": ["c"]}]
        assert assistant["currentVersion"] == 1
        assert generator.generate.await_args.args[0] == "draw a dog"

        back = await chat_service.change_version(chat.id, 1, -1)
        assert back.images == ["a", "b"]

    async def test_save_without_begin_is_rejected(self, chat_service, generator, answered_chat):
        with pytest.raises(InvalidEditStateError):
            await chat_service.save_edit(answered_chat.id, 0, EditMessageRequest(prompt="x"))

        generator.generate.assert_not_awaited()

    async def test_cancel_restores_viewing(self, chat_service, answered_chat):
        buffer = await chat_service.begin_edit(answered_chat.id, 0)
        chat = await chat_service.cancel_edit(answered_chat.id, 0)

        assert buffer["prompt"] == "draw a cat"
        assert chat["messages"][0]["isEditing"] is False
        assert chat["messages"][0]["prompt"] == "draw a cat"
        assert chat["messages"][1]["versions"] == [{"images": ["a", "b"]}, {"images": ["c"]}]

    async def test_failed_follower_replaced_on_success(self, chat_service, repository):
        chat = await repository.create(messages=[UserMessageFactory(), FailedResponseFactory()])

        await chat_service.begin_edit(chat.id, 0)
        saved = await chat_service.save_edit(chat.id, 0, EditMessageRequest(prompt="again"))

        assert len(saved["messages"]) == 2
        assert saved["messages"][1]["versions"] == [{"images": ["gen-1", "gen-2"]}]
        assert "error" not in saved["messages"][1]

    async def test_failed_follower_updated_on_failure(self, chat_service, generator, repository):
        chat = await repository.create(messages=[UserMessageFactory(), FailedResponseFactory(error="old")])
        generator.generate.side_effect = GenerationUnavailableError("new")

        await chat_service.begin_edit(chat.id, 0)
        saved = await chat_service.save_edit(chat.id, 0, EditMessageRequest(prompt="again"))

        assert len(saved["messages"]) == 2
        assert saved["messages"][1]["error"] == "new"

    async def test_no_follower_inserts_response(self, chat_service, repository):
        chat = await repository.create(
            messages=[UserMessageFactory(prompt="one"), UserMessageFactory(prompt="two")]
        )

        await chat_service.begin_edit(chat.id, 0)
        saved = await chat_service.save_edit(chat.id, 0, EditMessageRequest(prompt="uno"))

        assert [m["role"] for m in saved["messages"]] == ["user", "assistant", "user"]

    async def test_branch_failure_keeps_empty_branch(self, chat_service, generator, answered_chat):
        generator.generate.side_effect = GenerationUnavailableError("down")

        await chat_service.begin_edit(answered_chat.id, 0)
        saved = await chat_service.save_edit(answered_chat.id, 0, EditMessageRequest(prompt="draw a dog"))

        assistant = saved["messages"][1]
        assert assistant["versions"][-1] == {"images": []}
        assert assistant["currentVersion"] == 2
        assert saved["messages"][2]["error"] == "down"

    async def test_successful_edit_clears_earlier_failure(self, chat_service, generator, answered_chat):
        generator.generate.side_effect = GenerationUnavailableError("down")
        await chat_service.begin_edit(answered_chat.id, 0)
        await chat_service.save_edit(answered_chat.id, 0, EditMessageRequest(prompt="draw a dog"))
        generator.generate.side_effect = None

        await chat_service.begin_edit(answered_chat.id, 0)
        saved = await chat_service.save_edit(answered_chat.id, 0, EditMessageRequest(prompt="draw a fox"))

        assert len(saved["messages"]) == 2
        assistant = saved["messages"][1]
        assert "error" not in assistant
        assert assistant["versions"][-1] == {"images": ["gen-1", "gen-2"]}

    async def test_branch_failure_mid_chat_is_appended(self, chat_service, generator, repository):
        chat = await repository.create(
            messages=[UserMessageFactory(prompt="one"), response(["a"]), UserMessageFactory(), response(["b"])]
        )
        generator.generate.side_effect = GenerationUnavailableError("down")

        await chat_service.begin_edit(chat.id, 0)
        saved = await chat_service.save_edit(chat.id, 0, EditMessageRequest(prompt="uno"))

        messages = saved["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant", "assistant"]
        assert messages[1]["versions"] == [{"images": ["a"]}, {"images": []}]
        assert messages[4]["error"] == "down"


class TestInputImages:
    async def test_add_and_remove(self, chat_service, answered_chat):
        added = await chat_service.add_input_image(answered_chat.id, 0, "https://cdn/new.png")
        assert added["messages"][0]["inputImages"] == ["/api/images/input/u0.png", "https://cdn/new.png"]

        removed = await chat_service.remove_input_image(answered_chat.id, 0, 0)
        assert removed["messages"][0]["inputImages"] == ["https://cdn/new.png"]

    async def test_remove_missing_image(self, chat_service, answered_chat):
        with pytest.raises(NotFoundError):
            await chat_service.remove_input_image(answered_chat.id, 0, 7)

    async def test_only_user_messages(self, chat_service, answered_chat):
        with pytest.raises(InvalidMessageOperationError):
            await chat_service.add_input_image(answered_chat.id, 1, "https://cdn/new.png")


class TestContextCount:
    async def test_compose_box_count(self, chat_service, answered_chat):
        result = await chat_service.count_context(answered_chat.id, ContextCountRequest(staged_count=2))

        assert result.own == 0
        assert result.last_generated == 1
        assert result.last_generated_all_versions == 3
        assert result.total == 3
        assert result.over_limit is False

    async def test_edit_reference_count(self, chat_service, answered_chat):
        result = await chat_service.count_context(answered_chat.id, ContextCountRequest(reference_index=0))

        assert result.own == 1
        assert result.total == 1

    async def test_reference_must_be_user_message(self, chat_service, answered_chat):
        with pytest.raises(InvalidMessageOperationError):
            await chat_service.count_context(answered_chat.id, ContextCountRequest(reference_index=1))


async def test_copy_to_new_chat(chat_service, answered_chat):
    result = await chat_service.copy_to_new_chat(answered_chat.id, 0)

    assert result["chat"]["id"] != answered_chat.id
    assert result["chat"]["messages"] == []
    assert result["draft"] == {
        "prompt": "draw a cat",
        "model": "google/nano-banana-pro-edit",
        "numImages": 1,
        "inputImages": ["/api/images/input/u0.png"],
    }
