"""
Simulation Schema — Pydantic models for every Republic of Bean session entity.

These models are the canonical data structures of a negotiation session.
They govern the shape of data flowing between the engine, the discussion
driver, the feedback service and the HTTP API.

Session lifecycle:
    INTRODUCTION (0) → ALLOCATION (1) → DISCUSSION (2) → REFLECTION (3)

Per-category lifecycle during DISCUSSION:
    not_started → stakeholders_opining → awaiting_user_vote → tallying → resolved
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

USER_VOTER_ID = "user"
MODERATOR_ID = "moderator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class SimulationPhase(enum.IntEnum):
    """Ordinal session phases. Progression is strictly forward."""

    INTRODUCTION = 0
    ALLOCATION = 1
    DISCUSSION = 2
    REFLECTION = 3


class CategoryStage(str, enum.Enum):
    """Voting stage of a single policy category during DISCUSSION."""

    NOT_STARTED = "not_started"
    STAKEHOLDERS_OPINING = "stakeholders_opining"
    AWAITING_USER_VOTE = "awaiting_user_vote"
    TALLYING = "tallying"
    RESOLVED = "resolved"


# ════════════════════════════════════════════════════════════════
# Policy Catalog Models
# ════════════════════════════════════════════════════════════════


class PolicyOption(BaseModel):
    """One selectable choice within a category, carrying a budget cost."""

    id: int
    title: str
    description: str = ""
    cost: int = Field(ge=0)


class PolicyCategory(BaseModel):
    """A policy domain requiring exactly one chosen option."""

    id: str
    name: str
    description: str = ""
    options: list[PolicyOption] = Field(min_length=3, max_length=3)
    selected_option: int | None = None

    @field_validator("options")
    @classmethod
    def _unique_option_ids(cls, options: list[PolicyOption]) -> list[PolicyOption]:
        ids = [o.id for o in options]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Option ids must be unique within a category: {ids}")
        return options

    @model_validator(mode="after")
    def _selection_references_option(self) -> PolicyCategory:
        if self.selected_option is not None and self.get_option(self.selected_option) is None:
            raise ValueError(
                f"selected_option {self.selected_option} is not an option of '{self.id}'"
            )
        return self

    @property
    def option_ids(self) -> list[int]:
        return [o.id for o in self.options]

    def get_option(self, option_id: int | None) -> PolicyOption | None:
        if option_id is None:
            return None
        return next((o for o in self.options if o.id == option_id), None)

    @property
    def selected(self) -> PolicyOption | None:
        return self.get_option(self.selected_option)


class Budget(BaseModel):
    """Shared spendable budget. 0 <= remaining <= total at all times."""

    total: int = Field(ge=0)
    remaining: int

    @model_validator(mode="after")
    def _within_bounds(self) -> Budget:
        if not 0 <= self.remaining <= self.total:
            raise ValueError(
                f"Budget remaining {self.remaining} outside [0, {self.total}]"
            )
        return self

    @computed_field
    @property
    def spent(self) -> int:
        return self.total - self.remaining


# ════════════════════════════════════════════════════════════════
# Participants
# ════════════════════════════════════════════════════════════════


class ParticipantProfile(BaseModel):
    """The human participant, as entered on the introduction screen."""

    name: str = ""
    age: str = ""
    nationality: str = ""
    education_level: str = ""
    occupation: str = ""


class StakeholderProfile(BaseModel):
    """
    A synthetic persona with fixed category preferences.

    Preferences are generated once per session and never re-derived:
    a stakeholder's vote in a category is always its preference.
    """

    model_config = {"frozen": True}

    id: str
    name: str
    age: int
    education: str
    occupation: str
    socioeconomic_status: str
    political_ideology: str
    preferences: dict[str, int] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _not_reserved(cls, value: str) -> str:
        if value in (USER_VOTER_ID, MODERATOR_ID):
            raise ValueError(f"'{value}' is reserved for the participant and the moderator")
        return value


# ════════════════════════════════════════════════════════════════
# Voting & Transcript
# ════════════════════════════════════════════════════════════════


class VoteTally(BaseModel):
    """Ballots for one category: voter id → option id, one per voter."""

    category_id: str
    ballots: dict[str, int] = Field(default_factory=dict)


class TabulationResult(BaseModel):
    """Outcome of counting one category's ballots."""

    category_id: str
    counts: dict[int, int]
    max_count: int
    leaders: list[int]
    winner: int
    tie_broken: bool = False


class TranscriptEntry(BaseModel):
    """One chronological line of the discussion.

    ``speaker`` is the display name; ``speaker_id`` is the stakeholder id,
    ``user`` or ``moderator``, since stakeholder names may repeat.
    """

    speaker: str
    speaker_id: str = MODERATOR_ID
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)
    category_id: str | None = None


class ResolvedPolicy(BaseModel):
    """A category paired with the option the session settled on."""

    category_id: str
    category_name: str
    option_id: int
    title: str
    cost: int


# ════════════════════════════════════════════════════════════════
# Session
# ════════════════════════════════════════════════════════════════


class SessionState(BaseModel):
    """
    Everything one participant's run of the simulation owns.

    Created fresh per session with every category unselected and no votes.
    Only the engine mutates it.
    """

    id: UUID = Field(default_factory=uuid4)
    phase: SimulationPhase = SimulationPhase.INTRODUCTION
    participant: ParticipantProfile = Field(default_factory=ParticipantProfile)
    budget: Budget
    categories: list[PolicyCategory]
    stakeholders: list[StakeholderProfile] = Field(default_factory=list)
    votes: dict[str, VoteTally] = Field(default_factory=dict)
    stages: dict[str, CategoryStage] = Field(default_factory=dict)
    finished: list[str] = Field(default_factory=list)
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    transcript_frozen: bool = False
    individual_package: dict[str, int] = Field(default_factory=dict)
    reflection_answers: dict[str, str] = Field(default_factory=dict)
    feedback: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _unique_category_ids(self) -> SessionState:
        ids = [c.id for c in self.categories]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Category ids must be unique within a session: {ids}")
        return self

    def get_category(self, category_id: str) -> PolicyCategory | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def get_stakeholder(self, stakeholder_id: str) -> StakeholderProfile | None:
        return next((s for s in self.stakeholders if s.id == stakeholder_id), None)

    def stage_of(self, category_id: str) -> CategoryStage:
        return self.stages.get(category_id, CategoryStage.NOT_STARTED)

    @property
    def active_category(self) -> PolicyCategory | None:
        """The category currently being discussed, if any."""
        for category in self.categories:
            stage = self.stage_of(category.id)
            if stage not in (CategoryStage.NOT_STARTED, CategoryStage.RESOLVED):
                return category
        return None


class SessionExport(BaseModel):
    """Read-only view handed to the reflection and report collaborators."""

    session_id: UUID
    participant: ParticipantProfile
    budget: Budget
    individual_package: dict[str, int]
    package: list[ResolvedPolicy]
    stakeholders: list[StakeholderProfile]
    transcript: list[TranscriptEntry]
    reflection_answers: dict[str, str]
    feedback: str | None
