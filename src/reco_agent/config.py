"""Configuration models for the recommendation agent."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SearchConfig(BaseModel):
    """Configures entity resolution and fan-out search limits."""

    resolution_min_score: float = Field(default=0.3, ge=0.0, le=1.0)
    subject_top_k: int = Field(default=3, ge=1)
    recommendation_top_k: int = Field(default=10, ge=1)
    universe_min_score: float = Field(default=0.35, ge=0.0, le=1.0)
    search_timeout_seconds: float = Field(default=5.0, gt=0.0)


DEFAULT_INTAKE_QUESTIONS: tuple[str, ...] = (
    "How would you describe how you feel these days?",
    "What is weighing on you the most right now?",
    "How are your sleep and energy levels?",
    "What would you like to improve first?",
    "Which kinds of activities have helped you in the past?",
)


class AssessmentConfig(BaseModel):
    """Configures the fixed intake flow and family ranking output."""

    questions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INTAKE_QUESTIONS), min_length=1
    )
    top_per_family: int = Field(default=4, ge=1)


class OrchestratorConfig(BaseModel):
    """Configures the tool-calling loop, deadlines, and retry budget."""

    max_tool_rounds: int = Field(default=3, ge=1)
    max_validation_retries: int = Field(default=1, ge=0, le=1)
    model_timeout_seconds: float = Field(default=60.0, gt=0.0)
    tool_timeout_seconds: float = Field(default=20.0, gt=0.0)
    history_window: int = Field(default=12, ge=0)


class EngineConfig(BaseModel):
    """Bundles every component config for one engine instance."""

    search: SearchConfig = Field(default_factory=SearchConfig)
    assessment: AssessmentConfig = Field(default_factory=AssessmentConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
