"""Unit tests for CLI commands."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from arbor.cli.main import app
from tests.helpers.streams import async_iter


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("arbor.cli.main.configure_logging"):
        yield


def make_agents_mock(lines):
    agents = MagicMock()
    source = MagicMock()
    source.lines = lambda cancel=None: async_iter(lines)
    agents.open_stream.return_value = source
    agents.close = AsyncMock()
    agents.config.base_url = "http://agents.test/api/agents"
    return agents


def make_history_mock():
    from arbor.models import Chat

    history = MagicMock()
    history.create_chat = AsyncMock(return_value=Chat(id="chat-new"))
    history.add_message = AsyncMock(return_value=None)
    history.get_messages = AsyncMock(return_value=[])
    history.close = AsyncMock()
    return history


class TestChat:
    """Test chat command."""

    def test_single_message_streams_reply(self, runner):
        agents = make_agents_mock(['0:"Hello"', '0:" world"', "e:{}"])
        history = make_history_mock()

        with (
            patch("arbor.agents.AgentsClient", return_value=agents),
            patch("arbor.history.HistoryClient", return_value=history),
        ):
            result = runner.invoke(app, ["chat", "Hi"])

        assert result.exit_code == 0, result.output
        assert "Hello world" in result.output
        assert "chat-new" in result.output
        history.create_chat.assert_awaited_once()
        agents.close.assert_awaited_once()
        history.close.assert_awaited_once()

    def test_private_chat_stores_nothing(self, runner):
        agents = make_agents_mock(['0:"secret"', "e:{}"])
        history = make_history_mock()

        with (
            patch("arbor.agents.AgentsClient", return_value=agents),
            patch("arbor.history.HistoryClient", return_value=history),
        ):
            result = runner.invoke(app, ["chat", "--private", "Hi"])

        assert result.exit_code == 0, result.output
        assert "secret" in result.output
        history.create_chat.assert_not_called()
        history.add_message.assert_not_called()

    def test_tool_calls_are_shown(self, runner):
        agents = make_agents_mock(
            [
                '9:{"toolCallId":"c1","toolName":"search","args":{"q":"rain"}}',
                'a:{"toolCallId":"c1","result":{"content":[{"t":1},{"t":2}]}}',
                '0:"Done"',
                "e:{}",
            ]
        )

        with (
            patch("arbor.agents.AgentsClient", return_value=agents),
            patch("arbor.history.HistoryClient", return_value=make_history_mock()),
        ):
            result = runner.invoke(app, ["chat", "--private", "Weather?"])

        assert "Tool Call: search(q=rain)" in result.output
        assert "Found information from 2 sources" in result.output
        assert "Done" in result.output

    def test_continue_thread_shows_history(self, runner):
        from arbor.models import Message

        agents = make_agents_mock(['0:"Again"', "e:{}"])
        history = make_history_mock()
        history.get_messages = AsyncMock(return_value=[Message.create_user("Earlier question")])

        with (
            patch("arbor.agents.AgentsClient", return_value=agents),
            patch("arbor.history.HistoryClient", return_value=history),
        ):
            result = runner.invoke(app, ["chat", "--thread", "chat-1", "Hi"])

        assert result.exit_code == 0, result.output
        assert "Earlier question" in result.output
        assert "Again" in result.output
        history.get_messages.assert_awaited_once_with("chat-1")
        history.create_chat.assert_not_called()

    def test_interactive_exit(self, runner):
        agents = make_agents_mock([])

        with (
            patch("arbor.agents.AgentsClient", return_value=agents),
            patch("arbor.history.HistoryClient", return_value=make_history_mock()),
        ):
            result = runner.invoke(app, ["chat", "--private"], input="exit\n")

        assert result.exit_code == 0, result.output
        agents.open_stream.assert_not_called()

    def test_history_failure_exits_with_error(self, runner):
        from arbor.exceptions import HistoryStoreError

        history = make_history_mock()
        history.create_chat = AsyncMock(side_effect=HistoryStoreError("Connection failed"))

        with (
            patch("arbor.agents.AgentsClient", return_value=make_agents_mock([])),
            patch("arbor.history.HistoryClient", return_value=history),
        ):
            result = runner.invoke(app, ["chat", "Hi"])

        assert result.exit_code == 1
        assert "Connection failed" in result.output


class TestChats:
    """Test chats command."""

    def test_lists_chats(self, runner):
        from arbor.models import Chat

        history = make_history_mock()
        history.list_chats = AsyncMock(return_value=[Chat(id="c1", title="Trip plans")])

        with patch("arbor.history.HistoryClient", return_value=history):
            result = runner.invoke(app, ["chats"])

        assert result.exit_code == 0, result.output
        assert "Trip plans" in result.output

    def test_untitled_chat_shows_first_prompt(self, runner):
        from arbor.models import Chat, Message

        history = make_history_mock()
        chat = Chat(id="c2", messages=[Message.create_user("Plan a weekend")])
        history.list_chats = AsyncMock(return_value=[chat])

        with patch("arbor.history.HistoryClient", return_value=history):
            result = runner.invoke(app, ["chats"])

        assert result.exit_code == 0, result.output
        assert "Plan a weekend" in result.output

    def test_no_chats(self, runner):
        history = make_history_mock()
        history.list_chats = AsyncMock(return_value=[])

        with patch("arbor.history.HistoryClient", return_value=history):
            result = runner.invoke(app, ["chats"])

        assert result.exit_code == 0
        assert "No chats found" in result.output

    def test_history_unavailable(self, runner):
        from arbor.exceptions import HistoryStoreError

        history = make_history_mock()
        history.list_chats = AsyncMock(side_effect=HistoryStoreError("Connection failed"))

        with patch("arbor.history.HistoryClient", return_value=history):
            result = runner.invoke(app, ["chats"])

        assert result.exit_code == 1
        assert "Could not list chats" in result.output


class TestAgentInfo:
    """Test agent-info command."""

    def test_shows_metadata(self, runner):
        agents = make_agents_mock([])
        agents.get_agent_info = AsyncMock(return_value={"name": "assistant"})

        with patch("arbor.agents.AgentsClient", return_value=agents):
            result = runner.invoke(app, ["agent-info"])

        assert result.exit_code == 0, result.output
        assert "assistant" in result.output

    def test_unauthorized(self, runner):
        from arbor.exceptions import UnauthorizedError

        agents = make_agents_mock([])
        agents.get_agent_info = AsyncMock(side_effect=UnauthorizedError("Unauthorized", status_code=401))

        with patch("arbor.agents.AgentsClient", return_value=agents):
            result = runner.invoke(app, ["agent-info"])

        assert result.exit_code == 1
        assert "Unauthorized" in result.output


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output
