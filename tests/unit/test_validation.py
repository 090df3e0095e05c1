from fakes import make_hit

from reco_agent.agent.validation import ResponseValidator
from reco_agent.state import AssessmentUniverse, ConversationState
from reco_agent.types import EntityKind, RankedEntity


def _state() -> ConversationState:
    state = ConversationState(conversation_id="c1", user_id="u1")
    state.cache.remember([RankedEntity.from_hit(make_hit("p1", kind=EntityKind.PRACTICE))])
    return state


def test_valid_payload_has_no_reasons() -> None:
    payload = {
        "response": "Try this practice.",
        "quickReplies": [
            {"type": "practice", "text": "Tell me more", "practiceId": "p1"},
            {"type": "activity", "text": "Book it", "activityId": "a9"},
            {"type": "text", "text": "Something else"},
        ],
    }

    assert ResponseValidator().validate(payload, _state(), extra_ids={"a9"}) == []


def test_structural_failures_are_reported() -> None:
    payload = {
        "response": "  ",
        "quickReplies": [
            {"type": "practice", "text": "Missing id"},
            {"type": "activity", "text": "Unknown", "activityId": "ghost"},
            {"type": "video", "text": "Bad type"},
        ],
    }

    reasons = ResponseValidator().validate(payload, _state())

    assert len(reasons) == 4
    assert any("non-empty" in reason for reason in reasons)
    assert any("practiceId" in reason for reason in reasons)
    assert any("ghost" in reason for reason in reasons)


def test_universe_ids_are_known() -> None:
    state = _state()
    state.universe = AssessmentUniverse(
        activities=[RankedEntity.from_hit(make_hit("a5", kind=EntityKind.ACTIVITY))]
    )
    payload = {"response": "ok", "quickReplies": [{"type": "activity", "text": "Go", "activityId": "a5"}]}

    assert ResponseValidator().validate(payload, state) == []
    assert ResponseValidator().validate(None, state) == ["the answer is not a JSON object"]
