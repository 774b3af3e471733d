"""Unit tests for ChatController.

The agents backend is an httpx MockTransport answering with canned wire
lines; the history client is a mock.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.helpers.streams import AGENTS_URL, make_mock_client, streaming_response


def make_agents(handler):
    from arbor.agents import AgentsClient, AgentsClientConfig

    return AgentsClient(AgentsClientConfig(base_url=AGENTS_URL), http_client=make_mock_client(handler))


def reply(*chunks: str, done: bool = True, **kwargs):
    lines = [f"0:{json.dumps(chunk)}" for chunk in chunks]
    if done:
        lines.append('e:{"finishReason":"stop"}')
    return lambda request: streaming_response(lines, **kwargs)


@pytest.fixture
def history():
    from arbor.models import Chat

    client = MagicMock()
    client.create_chat = AsyncMock(return_value=Chat(id="chat-new"))
    client.add_message = AsyncMock(return_value=None)
    client.get_messages = AsyncMock(return_value=[])
    return client


class TestSendMessage:
    """One full turn."""

    @pytest.mark.asyncio
    async def test_user_and_ai_messages(self, history):
        from arbor.controller import ChatController
        from arbor.models import MessageKind
        from arbor.streaming.session import OutcomeStatus

        controller = ChatController("chat-1", agents=make_agents(reply("Hello", " there")), history=history)

        outcome = await controller.send_message("Hi")
        await controller.aclose()

        assert outcome.status == OutcomeStatus.COMPLETED
        assert [(m.kind, m.content) for m in controller.messages] == [
            (MessageKind.USER, "Hi"),
            (MessageKind.AI, "Hello there"),
        ]
        stored = [call.args for call in history.add_message.await_args_list]
        assert [(m.content, chat_id) for m, chat_id in stored] == [
            ("Hi", "chat-1"),
            ("Hello there", "chat-1"),
        ]

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self, history):
        from arbor.controller import ChatController

        handler = MagicMock()
        controller = ChatController("chat-1", agents=make_agents(handler), history=history)

        assert await controller.send_message("   ") is None
        assert controller.messages == []
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_carries_thread_id(self, history):
        from arbor.controller import ChatController

        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return reply("ok")(request)

        controller = ChatController("chat-1", agents=make_agents(handler), history=history)
        await controller.send_message("Hi")

        assert bodies[0]["threadId"] == "chat-1"
        assert bodies[0]["resourceId"] == "chat-1"
        assert bodies[0]["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_echoed_ids_are_used_next_turn(self, history):
        from arbor.controller import ChatController

        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return streaming_response(
                ['data: {"chunk": "ok", "threadId": "t-2", "resourceId": "r-2"}', "e:{}"]
            )

        controller = ChatController("chat-1", agents=make_agents(handler), history=history)
        await controller.send_message("first")
        await controller.send_message("second")

        assert controller.correlation.thread_id == "t-2"
        assert bodies[1]["threadId"] == "t-2"
        assert bodies[1]["resourceId"] == "r-2"

    @pytest.mark.asyncio
    async def test_mode_is_applied_to_ai_messages(self, history):
        from arbor.controller import ChatController
        from arbor.models import AgentMode

        controller = ChatController(
            "chat-1", agents=make_agents(reply("hmm")), history=history, mode=AgentMode.SPIN
        )
        await controller.send_message("Hi")

        assert controller.messages[-1].mode == AgentMode.SPIN

    @pytest.mark.asyncio
    async def test_http_error_becomes_error_message(self, history):
        import httpx

        from arbor.controller import ChatController
        from arbor.models import MessageKind

        agents = make_agents(lambda request: httpx.Response(401))
        controller = ChatController("chat-1", agents=agents, history=history)

        outcome = await controller.send_message("Hi")

        assert outcome.ok is False
        assert controller.messages[-1].kind == MessageKind.ERROR
        assert controller.messages[-1].content == "Unauthorized"
        assert controller.is_streaming is False


class TestNewChat:
    @pytest.mark.asyncio
    async def test_first_message_creates_chat(self, history):
        from arbor.controller import ChatController

        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return reply("Welcome")(request)

        controller = ChatController(agents=make_agents(handler), history=history)
        await controller.send_message("Hello")
        await controller.aclose()

        history.create_chat.assert_awaited_once_with(initial_message="Hello", project_id=None)
        assert controller.chat_id == "chat-new"
        assert bodies[0]["threadId"] == "chat-new"
        # The prompt was stored by create_chat; only the reply is added
        stored = [call.args[0].content for call in history.add_message.await_args_list]
        assert stored == ["Welcome"]

    @pytest.mark.asyncio
    async def test_load_messages(self, history):
        from arbor.controller import ChatController
        from arbor.models import Message

        history.get_messages = AsyncMock(return_value=[Message.create_user("old")])
        controller = ChatController("chat-1", agents=make_agents(reply("x")), history=history)

        loaded = await controller.load_messages()

        assert [m.content for m in loaded] == ["old"]
        assert controller.messages == loaded
        history.get_messages.assert_awaited_once_with("chat-1")


class TestPrivateMode:
    @pytest.mark.asyncio
    async def test_nothing_is_stored(self, history):
        from arbor.controller import ChatController

        controller = ChatController(agents=make_agents(reply("secret")), history=history, private=True)

        await controller.send_message("Hi")
        await controller.aclose()

        assert [m.content for m in controller.messages] == ["Hi", "secret"]
        history.create_chat.assert_not_called()
        history.add_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_private_chat_with_id_is_not_stored(self, history):
        from arbor.controller import ChatController

        controller = ChatController(
            "chat-1", agents=make_agents(reply("secret")), history=history, private=True
        )

        await controller.send_message("Hi")
        await controller.aclose()

        history.add_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_private_new_chat_omits_prompt(self, history):
        from arbor.controller import ChatController

        controller = ChatController(agents=make_agents(reply("x")), history=history, private=True)

        await controller.start_new_chat("Hi")

        history.create_chat.assert_awaited_once_with(initial_message=None, project_id=None)


class TestCancellation:
    """cancel_stream() and superseding generations."""

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_message(self, history):
        from arbor.controller import ChatController
        from arbor.streaming.events import UpdateAction
        from arbor.streaming.session import OutcomeStatus

        first_chunk = asyncio.Event()

        def listener(update):
            if update.action == UpdateAction.CREATED and update.message.kind == "ai":
                first_chunk.set()

        controller = ChatController(
            "chat-1",
            agents=make_agents(reply("partial", done=False, hang=True)),
            history=history,
            listener=listener,
        )

        turn = asyncio.create_task(controller.send_message("Hi"))
        await asyncio.wait_for(first_chunk.wait(), timeout=1)
        assert controller.is_streaming

        cancelled = await controller.cancel_stream()
        outcome = await turn
        await controller.aclose()

        assert cancelled.status == OutcomeStatus.CANCELLED
        assert outcome is cancelled
        assert controller.messages[-1].content == "partial"
        assert controller.is_streaming is False
        stored = [call.args[0].content for call in history.add_message.await_args_list]
        assert stored == ["Hi", "partial"]

    @pytest.mark.asyncio
    async def test_cancel_without_stream(self, history):
        from arbor.controller import ChatController

        controller = ChatController("chat-1", agents=make_agents(reply("x")), history=history)

        assert await controller.cancel_stream() is None

    @pytest.mark.asyncio
    async def test_new_turn_supersedes_running_stream(self, history):
        import httpx

        from arbor.controller import ChatController
        from arbor.streaming.events import UpdateAction
        from arbor.streaming.session import OutcomeStatus

        first_chunk = asyncio.Event()
        responses = iter(
            [
                reply("slow", done=False, hang=True),
                reply("fast"),
            ]
        )

        def handler(request: httpx.Request):
            return next(responses)(request)

        def listener(update):
            if update.action == UpdateAction.CREATED and update.message.content == "slow":
                first_chunk.set()

        controller = ChatController(
            "chat-1", agents=make_agents(handler), history=history, listener=listener
        )

        first_turn = asyncio.create_task(controller.send_message("one"))
        await asyncio.wait_for(first_chunk.wait(), timeout=1)

        second = await controller.send_message("two")
        first = await first_turn

        assert first.status == OutcomeStatus.CANCELLED
        assert second.status == OutcomeStatus.COMPLETED
        assert controller.generation == 2
        assert [m.content for m in controller.messages] == ["one", "slow", "two", "fast"]
        assert controller.session.generation == 2

    @pytest.mark.asyncio
    async def test_concurrent_turns_leave_one_stream_running(self, history):
        import httpx

        from arbor.controller import ChatController
        from arbor.streaming.events import UpdateAction
        from arbor.streaming.session import OutcomeStatus

        started = {prompt: asyncio.Event() for prompt in ("one", "two", "three")}

        def handler(request: httpx.Request):
            prompt = json.loads(request.content)["messages"][-1]["content"]
            return streaming_response([f"0:{json.dumps(prompt)}"], hang=True)

        def listener(update):
            if update.action == UpdateAction.CREATED and update.message.content in started:
                started[update.message.content].set()

        controller = ChatController(
            "chat-1", agents=make_agents(handler), history=history, listener=listener
        )

        first_turn = asyncio.create_task(controller.stream_response("one"))
        await asyncio.wait_for(started["one"].wait(), timeout=1)

        second_turn = asyncio.create_task(controller.stream_response("two"))
        third_turn = asyncio.create_task(controller.stream_response("three"))
        await asyncio.wait_for(started["three"].wait(), timeout=1)

        live = sorted(
            task.get_name()
            for task in asyncio.all_tasks()
            if task.get_name().startswith("stream-") and not task.done()
        )
        assert live == ["stream-3"]
        assert controller.generation == 3
        assert (await first_turn).status == OutcomeStatus.CANCELLED
        assert (await second_turn).status == OutcomeStatus.CANCELLED

        await controller.cancel_stream()
        assert (await third_turn).status == OutcomeStatus.CANCELLED
        assert controller.is_streaming is False

    @pytest.mark.asyncio
    async def test_aclose_drains_outbox(self, history):
        from arbor.controller import ChatController

        release = asyncio.Event()

        async def slow_add(message, chat_id):
            await release.wait()

        history.add_message = AsyncMock(side_effect=slow_add)
        controller = ChatController("chat-1", agents=make_agents(reply("x")), history=history)
        await controller.send_message("Hi")

        closing = asyncio.create_task(controller.aclose())
        await asyncio.sleep(0)
        assert not closing.done()

        release.set()
        await closing
        assert history.add_message.await_count == 2
