"""Turn tracing, usage accounting, and latency measurement."""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from reco_agent.types import ModelCallTrace, ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TurnTrace:
    trace_id: str
    timestamp_utc: str
    conversation_id: str
    intent: str
    model_calls: list[ModelCallTrace]
    tool_traces: list[ToolTrace]
    total_usage: int
    estimated_cost_usd: float
    latency_ms: float
    succeeded: bool


@dataclass(slots=True)
class CostModel:
    """Simple usage pricing model (USD per 1K tokens)."""

    per_1k: float = 0.0006

    def estimate_cost(self, usage: int) -> float:
        return (usage / 1000.0) * self.per_1k


class TraceStore:
    """In-memory trace storage for per-turn observability."""

    def __init__(self, *, cost_model: CostModel | None = None) -> None:
        self._records: dict[str, TurnTrace] = {}
        self._cost_model = cost_model or CostModel()

    def create_record(
        self,
        *,
        conversation_id: str,
        intent: str,
        model_calls: list[ModelCallTrace],
        tool_traces: list[ToolTrace],
        latency_ms: float,
        succeeded: bool = True,
    ) -> TurnTrace:
        trace_id = str(uuid.uuid4())
        total_usage = sum(call.usage for call in model_calls)
        record = TurnTrace(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            conversation_id=conversation_id,
            intent=intent,
            model_calls=model_calls,
            tool_traces=tool_traces,
            total_usage=total_usage,
            estimated_cost_usd=self._cost_model.estimate_cost(total_usage),
            latency_ms=latency_ms,
            succeeded=succeeded,
        )
        self._records[trace_id] = record
        return record

    def get(self, trace_id: str) -> TurnTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TurnTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_turns": 0,
                "failed_turns": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_usage": 0,
                "total_tool_calls": 0,
                "total_estimated_cost_usd": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_turns": total,
            "failed_turns": sum(1 for record in records if not record.succeeded),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_usage": sum(record.total_usage for record in records),
            "total_tool_calls": sum(len(record.tool_traces) for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Simple context timer used around turns and model calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
