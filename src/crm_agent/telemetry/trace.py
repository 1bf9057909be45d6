"""Trace context for correlating the log lines of one run."""

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TraceContext:
    """Immutable correlation identifiers for a run.

    Attributes:
        trace_id: Identifier shared by every event of one user request,
            including its continuations.
        parent_span_id: Span of the enclosing operation, if any.
    """

    trace_id: str
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls) -> "TraceContext":
        """Start a new trace with a random trace_id."""
        return cls(trace_id=str(uuid.uuid4()))

    @classmethod
    def from_id(cls, trace_id: str | None) -> "TraceContext":
        """Reuse a caller-supplied trace id, or start a new trace.

        Args:
            trace_id: Existing trace id (e.g. from an approval payload).

        Returns:
            TraceContext bound to that id.
        """
        if trace_id:
            return cls(trace_id=trace_id)
        return cls.new_trace()

    def new_span(self) -> tuple["TraceContext", str]:
        """Create a child span within this trace.

        Returns:
            (child context whose parent is the new span, new span id).
        """
        span_id = uuid.uuid4().hex[:16]
        return TraceContext(trace_id=self.trace_id, parent_span_id=span_id), span_id
