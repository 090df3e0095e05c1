import pytest
from fakes import ScriptedBackend

from reco_agent.agent.fallback import KeywordIntentClassifier
from reco_agent.errors import BackendTimeout
from reco_agent.intents import IntentKind, ModelIntentClassifier
from reco_agent.llm import ModelResponse
from reco_agent.state import ConversationState


def _state() -> ConversationState:
    return ConversationState(conversation_id="c1", user_id="u1")


@pytest.mark.asyncio
async def test_model_payload_becomes_intent_with_usage() -> None:
    backend = ScriptedBackend(
        [
            ModelResponse(
                payload={"kind": "activity_reference", "designation": "Pottery", "entity_kind": None},
                usage=12,
                call_id="i-1",
            )
        ]
    )

    classification = await ModelIntentClassifier(backend).classify(_state(), "the pottery class")

    assert classification.intent.kind is IntentKind.ACTIVITY_REFERENCE
    assert classification.intent.designation == "Pottery"
    assert classification.usage == 12
    assert backend.calls[0][1].name == "TurnIntent"


@pytest.mark.asyncio
async def test_invalid_payload_uses_fallback_but_keeps_usage() -> None:
    backend = ScriptedBackend([ModelResponse(payload={"kind": "dance"}, usage=4, call_id="i-2")])
    classifier = ModelIntentClassifier(backend, fallback=KeywordIntentClassifier())

    classification = await classifier.classify(_state(), "Can you recommend a calm activity?")

    assert classification.intent.kind is IntentKind.RECOMMENDATION_REQUEST
    assert classification.usage == 4


@pytest.mark.asyncio
async def test_missing_payload_without_fallback_is_other() -> None:
    backend = ScriptedBackend([ModelResponse(payload=None, usage=1, call_id="i-3")])

    classification = await ModelIntentClassifier(backend).classify(_state(), "???")

    assert classification.intent.kind is IntentKind.OTHER
    assert classification.intent.entity_kind is None


@pytest.mark.asyncio
async def test_slow_classification_raises_backend_timeout() -> None:
    backend = ScriptedBackend(
        [ModelResponse(payload={"kind": "other"}, usage=1, call_id="i-4")], delays=[0.5]
    )
    classifier = ModelIntentClassifier(
        backend, fallback=KeywordIntentClassifier(), timeout_seconds=0.05
    )

    with pytest.raises(BackendTimeout):
        await classifier.classify(_state(), "hello")
