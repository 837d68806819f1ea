"""Tests for the command line surface."""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import io
from unittest.mock import Mock
import cli
from factory import Services
from models.completion import FinishReason, ModelResponse
from models.errors import HistoryUnavailable
from models.tenant import TenantContext
from services.agent_loop import AgentLoop, AgentResult, Outcome
from services.conversation_store import InMemoryConversationStore
from services.health_monitor import HealthMonitor
from services.llm_client import ModelClient


def make_services(store_ok=True, model_ok=True, reply="hi there"):
    store = InMemoryConversationStore()
    store.health_check = Mock(return_value=store_ok)
    model_client = Mock(spec=ModelClient)
    model_client.health_check.return_value = model_ok
    model_client.complete.return_value = ModelResponse(
        text=reply, finish_reason=FinishReason.COMPLETE, latency_ms=5
    )
    return Services(
        store=store,
        model_client=model_client,
        agent=AgentLoop(store, model_client, system_prompt=None, count=len),
        health_monitor=HealthMonitor(store, model_client, timeout=1.0)
    )


def scripted_input(lines):
    """Return an input() replacement that raises EOFError when exhausted."""
    remaining = list(lines)

    def read(prompt=""):
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return read


class TestHealthCommand:
    """Test suite for the health mode."""

    def test_exit_zero_when_all_pass(self, capsys):
        """Test exit code 0 when every component is healthy."""
        services = make_services()

        code = cli.main(["health"], services_factory=lambda: services)

        assert code == cli.EXIT_OK
        output = capsys.readouterr().out
        assert "store: ok" in output
        assert "model: ok" in output
        assert "overall: ok" in output

    def test_exit_non_zero_when_model_fails(self, capsys):
        """Test store reachable, model unreachable."""
        services = make_services(model_ok=False)

        code = cli.main(["health"], services_factory=lambda: services)

        assert code == cli.EXIT_UNHEALTHY
        output = capsys.readouterr().out
        assert "store: ok" in output
        assert "model: fail" in output
        assert "overall: fail" in output

    def test_services_closed_after_run(self):
        """Test that connections are released when the command ends."""
        services = make_services()
        services.close = Mock()

        cli.main(["health"], services_factory=lambda: services)

        services.close.assert_called_once()

    def test_configuration_error(self, capsys):
        """Test that missing configuration fails the health check."""
        def broken():
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        assert cli.main(["health"], services_factory=broken) == cli.EXIT_UNHEALTHY
        assert "Configuration error" in capsys.readouterr().err


class TestChatCommand:
    """Test suite for the interactive mode."""

    def test_chat_loop(self):
        """Test that each message gets a reply and history accumulates."""
        services = make_services()
        out = io.StringIO()

        code = cli.run_chat(
            services,
            TenantContext("t1"),
            read=scripted_input(["hello", "", "how are you?", "exit"]),
            out=out
        )

        assert code == cli.EXIT_OK
        assert out.getvalue().count("agent> hi there") == 2
        turns = services.store.fetch_recent_turns(TenantContext("t1"), limit=10)
        assert [t.content for t in turns] == ["hello", "hi there", "how are you?", "hi there"]

    def test_chat_stops_on_eof(self):
        """Test that EOF ends the loop cleanly."""
        services = make_services()
        code = cli.run_chat(services, TenantContext("t1"), read=scripted_input([]), out=io.StringIO())
        assert code == cli.EXIT_OK

    def test_invalid_tenant(self, capsys):
        """Test that an invalid tenant exits with a usage error before building services."""
        factory = Mock()

        code = cli.main(["chat", "--tenant", "bad tenant"], services_factory=factory)

        assert code == cli.EXIT_USAGE
        factory.assert_not_called()
        assert "Invalid tenant" in capsys.readouterr().err


class TestFormatResult:
    """Test suite for terminal rendering of agent results."""

    def test_reply(self):
        assert cli.format_result(AgentResult(outcome=Outcome.REPLIED, text="hi")) == "hi"

    def test_refusal(self):
        result = AgentResult(outcome=Outcome.REFUSED, text="I can't help with that.")
        assert cli.format_result(result) == "[refused] I can't help with that."

    def test_reply_not_persisted(self):
        result = AgentResult(outcome=Outcome.ERROR, text="hi", warnings=["history_not_persisted"])
        rendered = cli.format_result(result)
        assert rendered.startswith("hi\n")
        assert "not saved" in rendered

    def test_error_hides_internal_detail(self):
        result = AgentResult(
            outcome=Outcome.ERROR,
            error=HistoryUnavailable("connection to db.internal:5432 refused")
        )
        rendered = cli.format_result(result)
        assert rendered.startswith("[error]")
        assert "5432" not in rendered
