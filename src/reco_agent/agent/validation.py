"""Structural validation of terminal model responses."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from reco_agent.llm import OutputSchema
from reco_agent.state import ConversationState

QUICK_REPLY_TYPES = ("text", "practice", "activity")

RESPONSE_SCHEMA = OutputSchema(
    name="AssistantResponse",
    schema={
        "type": "object",
        "properties": {
            "response": {"type": "string"},
            "quickReplies": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string", "enum": list(QUICK_REPLY_TYPES)},
                        "text": {"type": "string"},
                        "practiceId": {"type": ["string", "null"]},
                        "activityId": {"type": ["string", "null"]},
                    },
                    "required": ["type", "text"],
                },
            },
        },
        "required": ["response"],
    },
)


class ResponseValidator:
    """Checks a terminal payload; an empty list of reasons means valid.

    Quick-reply ids must be known to the conversation: present in the cache,
    in the assessment universe, or among ids extracted during the turn.
    """

    def validate(
        self,
        payload: dict[str, Any] | None,
        state: ConversationState,
        extra_ids: Iterable[str] = (),
    ) -> list[str]:
        if payload is None:
            return ["the answer is not a JSON object"]

        reasons: list[str] = []
        response = payload.get("response")
        if not isinstance(response, str) or not response.strip():
            reasons.append("`response` must be a non-empty string")

        quick_replies = payload.get("quickReplies")
        if quick_replies is None:
            return reasons
        if not isinstance(quick_replies, list):
            reasons.append("`quickReplies` must be a list")
            return reasons

        known = state.cache.known_ids() | set(extra_ids)
        if state.universe is not None:
            known |= state.universe.known_ids()

        for index, reply in enumerate(quick_replies):
            if not isinstance(reply, dict):
                reasons.append(f"quickReplies[{index}] must be an object")
                continue
            reply_type = reply.get("type")
            if reply_type not in QUICK_REPLY_TYPES:
                reasons.append(f"quickReplies[{index}].type must be one of {QUICK_REPLY_TYPES}")
                continue
            if not isinstance(reply.get("text"), str) or not reply["text"].strip():
                reasons.append(f"quickReplies[{index}].text must be a non-empty string")
            if reply_type == "text":
                continue
            id_field = "practiceId" if reply_type == "practice" else "activityId"
            entity_id = reply.get(id_field)
            if not entity_id:
                reasons.append(f"quickReplies[{index}] of type {reply_type} needs `{id_field}`")
            elif str(entity_id) not in known:
                reasons.append(f"quickReplies[{index}] references unknown {reply_type} {entity_id}")
        return reasons
