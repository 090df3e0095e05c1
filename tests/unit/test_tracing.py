import pytest

from reco_agent.agent.fallback import DeterministicBackend
from reco_agent.llm import OutputSchema, PromptContext
from reco_agent.obs.tracing import CostModel, TraceStore, estimate_token_count
from reco_agent.types import ModelCallTrace, ToolTrace


def test_trace_store_summary_accounts_usage_and_failures() -> None:
    store = TraceStore(cost_model=CostModel(per_1k=1.0))
    store.create_record(
        conversation_id="c1",
        intent="other",
        model_calls=[ModelCallTrace("initial", "a", 600, 10.0), ModelCallTrace("retry", "b", 400, 5.0)],
        tool_traces=[ToolTrace("catalog", {}, "[]", 1.0)],
        latency_ms=100.0,
    )
    failed = store.create_record(
        conversation_id="c1",
        intent="other",
        model_calls=[],
        tool_traces=[],
        latency_ms=300.0,
        succeeded=False,
    )

    summary = store.summary()

    assert summary["total_turns"] == 2
    assert summary["failed_turns"] == 1
    assert summary["total_usage"] == 1000
    assert summary["total_tool_calls"] == 1
    assert summary["total_estimated_cost_usd"] == pytest.approx(1.0)
    assert summary["avg_latency_ms"] == pytest.approx(200.0)
    assert store.get(failed.trace_id).succeeded is False
    assert TraceStore().summary()["total_turns"] == 0


def test_estimate_token_count_counts_words_and_punctuation() -> None:
    assert estimate_token_count("Sleep better, please!") == 5


@pytest.mark.asyncio
async def test_deterministic_backend_asks_next_intake_question() -> None:
    context = PromptContext(
        system="Conversation mode: assessment\nNext intake question to ask: How do you sleep?"
    )

    response = await DeterministicBackend().complete(context, OutputSchema("R", {}))

    assert response.payload == {"response": "How do you sleep?"}
    assert response.tool_call_requests == []
    assert response.usage > 0
