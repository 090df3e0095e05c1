"""Conversational recommendation agent package."""

from .config import AssessmentConfig, EngineConfig, OrchestratorConfig, SearchConfig
from .engine import ConversationEngine, TurnResult, build_engine

__all__ = [
    "AssessmentConfig",
    "ConversationEngine",
    "EngineConfig",
    "OrchestratorConfig",
    "SearchConfig",
    "TurnResult",
    "build_engine",
]
