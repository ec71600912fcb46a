"""
Tests for Langfuse tracing integration with SDK v3.

Tests cover:
- Client disabled states (credentials, failed auth check)
- Context manager no-ops when disabled
- Full trace lifecycle with mocked Langfuse
- Agent runs with and without tracing
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from vanillaflow import Agent
from vanillaflow.models import AgentOptions, LangfuseConfig, Message, TokenUsage
from vanillaflow.providers import ProviderGroup
from vanillaflow.tracing import (
    TracingClient,
    TracingContext,
    get_tracing_client,
    init_tracing_client,
    shutdown_tracing,
)


def _observation_cm(span_id: str) -> MagicMock:
    handle = MagicMock()
    handle.id = span_id
    handle.trace_id = "trace-1"
    cm = MagicMock()
    cm.__enter__.return_value = handle
    return cm


@pytest.fixture
def mock_langfuse():
    """Patch the Langfuse class; every observation gets a fresh handle."""
    with patch("vanillaflow.tracing.client.Langfuse") as mock_cls:
        instance = mock_cls.return_value
        instance.auth_check.return_value = True
        counter = iter(range(1, 1000))
        instance.start_as_current_observation.side_effect = lambda **kw: _observation_cm(f"span-{next(counter)}")
        yield instance


@pytest.fixture(autouse=True)
def reset_global_client():
    shutdown_tracing()
    yield
    shutdown_tracing()


class TestTracingClient:
    """Tests for TracingClient."""

    def test_client_disabled_without_credentials(self):
        """Test client is disabled when credentials not provided."""
        client = TracingClient(public_key="", secret_key="")

        assert client.enabled is False
        assert "credentials not configured" in client.error.lower()

    def test_client_disabled_with_partial_credentials(self):
        """Test client is disabled with only public key."""
        assert TracingClient(public_key="pk-test", secret_key="").enabled is False

    def test_disabled_operations_are_no_ops(self):
        """flush, shutdown and start_observation do nothing when disabled."""
        client = TracingClient()

        client.flush()
        client.shutdown()
        assert client.start_observation(name="x") is None

    def test_enabled_with_credentials(self, mock_langfuse):
        """Valid credentials and a passing auth check enable tracing."""
        client = TracingClient(public_key="pk", secret_key="sk", host="http://localhost:3000")

        assert client.enabled is True
        assert client.error is None
        mock_langfuse.auth_check.assert_called_once()

    def test_failed_auth_check_disables(self, mock_langfuse):
        """A failing auth check disables tracing."""
        mock_langfuse.auth_check.return_value = False

        client = TracingClient(public_key="pk", secret_key="sk")

        assert client.enabled is False
        assert "auth_check" in client.error

    def test_unreachable_host_disables(self, mock_langfuse):
        """A connectivity error during the auth check disables tracing."""
        mock_langfuse.auth_check.side_effect = ConnectionError("refused")

        client = TracingClient(public_key="pk", secret_key="sk")

        assert client.enabled is False
        assert "refused" in client.error

    def test_from_config_requires_both_keys(self, mock_langfuse):
        """from_config only enables with both keys."""
        assert TracingClient.from_config(LangfuseConfig(public_key="pk")).enabled is False
        assert TracingClient.from_config(LangfuseConfig(public_key="pk", secret_key="sk")).enabled is True

    def test_shutdown(self, mock_langfuse):
        """shutdown stops the client."""
        client = TracingClient(public_key="pk", secret_key="sk")

        client.shutdown()

        mock_langfuse.shutdown.assert_called_once()
        assert client.enabled is False

    def test_global_client(self, mock_langfuse):
        """init/get/shutdown manage the process-wide client."""
        client = init_tracing_client(public_key="pk", secret_key="sk")

        assert get_tracing_client() is client
        shutdown_tracing()
        assert get_tracing_client() is None


class TestTracingContextDisabled:
    """TracingContext without a working client."""

    def test_no_ops(self):
        """Every operation is safe with tracing disabled."""
        ctx = TracingContext(run_id="r1", client=TracingClient())

        ctx.start_trace(query="hi")
        with ctx.span("step") as span:
            span.set_output("x")
            with span.generation("call", model="m") as gen:
                gen.set_usage(TokenUsage(1, 2, 3))
        ctx.end_trace(output="done")

        assert ctx.enabled is False
        assert ctx.get_trace_context() is None
        assert span.active is False


class TestTracingLifecycle:
    """Full lifecycle against a mocked Langfuse client."""

    def test_root_and_children(self, mock_langfuse):
        """Children are parented under the root span of the trace."""
        client = TracingClient(public_key="pk", secret_key="sk")
        ctx = TracingContext(run_id="r1", session_id="s1", user_id="u1", client=client)

        ctx.start_trace(query="What is 2+2?", metadata={"max_steps": 3})
        with ctx.span("step_1") as span:
            with span.generation("provider_call", model="m") as gen:
                gen.set_output("4")
                gen.set_usage(TokenUsage(10, 2, 12))
        ctx.end_trace(output="4")

        calls = mock_langfuse.start_as_current_observation.call_args_list
        assert [c.kwargs["name"] for c in calls] == ["agent_run", "step_1", "provider_call"]
        assert calls[0].kwargs["metadata"] == {"run_id": "r1", "max_steps": 3}
        assert calls[1].kwargs["trace_context"] == {"trace_id": "trace-1", "parent_span_id": "span-1"}
        assert calls[2].kwargs["trace_context"] == {"trace_id": "trace-1", "parent_span_id": "span-2"}
        assert calls[2].kwargs["as_type"] == "generation"

    def test_error_status_on_exception(self, mock_langfuse):
        """An exception inside a span marks it as an error and propagates."""
        client = TracingClient(public_key="pk", secret_key="sk")
        ctx = TracingContext(run_id="r1", client=client)
        ctx.start_trace()

        with pytest.raises(RuntimeError):
            with ctx.span("step_1") as span:
                handle = span._handle
                raise RuntimeError("boom")

        assert handle.update.call_args.kwargs["metadata"]["status"] == "error"
        assert span.active is False

    def test_agent_run_is_traced(self, mock_langfuse, make_provider, math_registry):
        """An agent run produces run, step, provider and tool observations."""
        client = TracingClient(public_key="pk", secret_key="sk")
        provider = make_provider(
            "scripted",
            replies=["TOOL_CALL: " + json.dumps({"name": "add", "arguments": {"a": 2, "b": 2}}), "4"],
        )
        agent = Agent(math_registry, ProviderGroup(primary=[provider]), options=AgentOptions())

        result = agent.run(
            [Message.user("Add 2 and 2")], tracing_context=TracingContext(run_id="r1", client=client)
        )

        assert result.ok
        names = [c.kwargs["name"] for c in mock_langfuse.start_as_current_observation.call_args_list]
        assert names[0] == "agent_run"
        assert "step_1" in names
        assert "provider_call" in names
        assert "tool:add" in names

    def test_agent_run_without_tracing(self, make_provider, math_registry):
        """Runs work when no tracing client exists."""
        provider = make_provider("scripted", replies=["4"])
        agent = Agent(math_registry, ProviderGroup(primary=[provider]), options=AgentOptions())

        result = agent.run([Message.user("Add 2 and 2")], tracing_context=TracingContext(run_id="r1"))

        assert result.final_answer == "4"
