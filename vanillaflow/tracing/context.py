"""
Run-scoped tracing context using Langfuse SDK v3.

One TracingContext covers one agent run: a root span for the run, a span per
step, a generation per provider call and a span per tool execution. Parent
links are passed explicitly as ``trace_context`` so nesting does not depend
on OTEL context state. Everything degrades to a no-op when tracing is off.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from ..models import TokenUsage
from .client import TracingClient, get_tracing_client

logger = logging.getLogger(__name__)


@dataclass
class Observation:
    """A single Langfuse span or generation."""

    name: str
    as_type: str = "span"
    client: Optional[TracingClient] = None
    parent: Optional[TraceContext] = None
    attributes: dict = field(default_factory=dict)
    _context_manager: Any = field(default=None, repr=False)
    _handle: Any = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)
    _status: str = field(default="success", repr=False)
    _update: dict = field(default_factory=dict, repr=False)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self.client is None or not self.client.enabled:
            return
        try:
            self._start_time = time.time()
            self._context_manager = self.client.start_observation(
                trace_context=self.parent,
                as_type=self.as_type,
                name=self.name,
                **self.attributes,
            )
            if self._context_manager is not None:
                self._handle = self._context_manager.__enter__()
        except Exception as e:
            logger.warning(f"Failed to start {self.as_type} '{self.name}': {e}")
            self._handle = None

    def end(self) -> None:
        if not self.active:
            return
        try:
            update = dict(self._update)
            update["metadata"] = {
                **update.get("metadata", {}),
                "status": self._status,
                "duration_ms": round((time.time() - self._start_time) * 1000, 2),
            }
            self._handle.update(**update)
            self._context_manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"Failed to end {self.as_type} '{self.name}': {e}")
        self._handle = None

    def set_output(self, output: Any) -> None:
        self._update["output"] = output

    def set_status(self, status: str) -> None:
        self._status = status

    def set_usage(self, usage: Optional[TokenUsage]) -> None:
        """Attach token usage (generations only)."""
        if usage is None:
            return
        self._update["usage_details"] = {
            "input": usage.prompt_tokens,
            "output": usage.completion_tokens,
            "total": usage.total_tokens,
        }

    def child_context(self) -> Optional[TraceContext]:
        """Trace context that makes this observation the parent."""
        span_id = getattr(self._handle, "id", None)
        if not self.parent or not span_id:
            return self.parent
        return TraceContext(trace_id=self.parent["trace_id"], parent_span_id=span_id)

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Generator["Observation", None, None]:
        with _observe(self.client, self.child_context(), name, "span", attributes) as obs:
            yield obs

    @contextmanager
    def generation(self, name: str, model: str, **attributes: Any) -> Generator["Observation", None, None]:
        attributes["model"] = model
        with _observe(self.client, self.child_context(), name, "generation", attributes) as obs:
            yield obs


@contextmanager
def _observe(
    client: Optional[TracingClient],
    parent: Optional[TraceContext],
    name: str,
    as_type: str,
    attributes: dict,
) -> Generator[Observation, None, None]:
    obs = Observation(name=name, as_type=as_type, client=client, parent=parent, attributes=attributes)
    obs.start()
    try:
        yield obs
    except BaseException:
        obs.set_status("error")
        raise
    finally:
        obs.end()


@dataclass
class TracingContext:
    """
    Tracing for one agent run.

    ``client`` defaults to the process-wide client from
    :func:`init_tracing_client`.
    """

    run_id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    client: Optional[TracingClient] = None
    _root: Optional[Observation] = field(default=None, repr=False)
    _trace_id: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if self.client is None:
            self.client = get_tracing_client()

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.client.enabled

    def start_trace(
        self,
        name: str = "agent_run",
        query: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Open the root span for this run."""
        if not self.enabled:
            logger.debug(f"[{self.run_id}] start_trace skipped: tracing disabled")
            return

        trace_metadata = {"run_id": self.run_id, **(metadata or {})}
        self._root = Observation(
            name=name,
            client=self.client,
            attributes={
                "input": {"query": query} if query else None,
                "metadata": trace_metadata,
            },
        )
        self._root.start()
        if not self._root.active:
            self._root = None
            return
        self._trace_id = getattr(self._root._handle, "trace_id", None)
        try:
            self._root._handle.update_trace(user_id=self.user_id, session_id=self.session_id)
        except Exception as e:
            logger.warning(f"[{self.run_id}] Failed to set trace attributes: {e}")

    def get_trace_context(self) -> Optional[TraceContext]:
        """Trace context that parents children under the root span."""
        root_id = getattr(self._root._handle, "id", None) if self._root else None
        if not self._trace_id or not root_id:
            return None
        return TraceContext(trace_id=self._trace_id, parent_span_id=root_id)

    def end_trace(
        self,
        output: Optional[str] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        """Close the root span with the run outcome."""
        if self._root is None:
            return
        self._root.set_status(status)
        self._root.set_output(output)
        if metadata:
            self._root._update["metadata"] = metadata
        self._root.end()
        self._root = None

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Generator[Observation, None, None]:
        with _observe(self.client, self.get_trace_context(), name, "span", attributes) as obs:
            yield obs

    @contextmanager
    def generation(self, name: str, model: str, **attributes: Any) -> Generator[Observation, None, None]:
        attributes["model"] = model
        with _observe(self.client, self.get_trace_context(), name, "generation", attributes) as obs:
            yield obs
