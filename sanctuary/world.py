"""Static world configuration: companions, landmarks, relationships, tuning.

Everything here is loaded once at startup and never mutated. Pydantic models
are frozen and validated on load, so a missing or mistyped field fails fast
instead of surfacing later as a half-populated companion.

The default world lives in presets/world.json next to this module:

    {
      "name": ..., "start_landmark": "sanctuary_heart",
      "landmarks":     [ {id, name, description, features, themes, activities}, ... ],
      "companions":    [ {id, name, title, role, personality, expertise, triggers, ...}, ... ],
      "relationships": [ {companions: [a, b], interaction_style, ...}, ... ],
      "discussion_patterns": {...},
      "tuning": {...}
    }

Companion order in the file is the configured default order: it breaks ties
wherever two companions are otherwise indistinguishable.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

PRESETS_DIR = Path(__file__).parent / "presets"
DEFAULT_WORLD_FILE = PRESETS_DIR / "world.json"

Role = Literal["guide", "support", "analytical"]
DiscussionMode = Literal[
    "agreement_building",
    "gentle_disagreement",
    "clarification",
    "synthesis",
]


class UnknownCompanionError(KeyError):
    """Raised when a companion id is not part of the loaded world."""


class UnknownLandmarkError(KeyError):
    """Raised when a landmark id is not part of the loaded world."""


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Companions
# ---------------------------------------------------------------------------

class Personality(_Frozen):
    core: str
    traits: list[str]
    communication: str
    approach: str


class Expertise(_Frozen):
    domains: list[str]  # human-readable, used in prompts
    primary: list[str]  # expertise tags, matched against analysis
    secondary: list[str] = Field(default_factory=list)
    knowledge: list[str] = Field(default_factory=list)


class Triggers(_Frozen):
    keywords: list[str]
    topics: list[str] = Field(default_factory=list)
    expertise_match: list[str] = Field(default_factory=list)


class Companion(_Frozen):
    id: str
    name: str
    title: str
    color: str
    role: Role
    personality: Personality
    expertise: Expertise
    triggers: Triggers
    landmark_affinities: dict[str, float]
    intent_affinities: list[str] = Field(default_factory=list)
    info_needs: list[str] = Field(default_factory=list)
    fallback: str

    @model_validator(mode="after")
    def _check_affinities(self) -> "Companion":
        for landmark_id, weight in self.landmark_affinities.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(
                    f"{self.id}: affinity for {landmark_id} must be in [0, 1], got {weight}"
                )
        return self

    def affinity(self, landmark_id: str) -> float:
        """Affinity weight for a landmark; 0.5 when the landmark is unrated."""
        return self.landmark_affinities.get(landmark_id, 0.5)


# ---------------------------------------------------------------------------
# Landmarks and relationships
# ---------------------------------------------------------------------------

class Landmark(_Frozen):
    id: str
    name: str
    description: str
    features: list[str]
    themes: list[str]
    activities: list[str]
    aliases: list[str] = Field(default_factory=list)


class RelationshipDynamic(_Frozen):
    companions: tuple[str, str]
    relationship: str
    interaction_style: str
    common_ground: list[str] = Field(default_factory=list)
    discussion_triggers: list[str] = Field(default_factory=list)


class DiscussionPatterns(_Frozen):
    agreement_building: float = 0.4
    gentle_disagreement: float = 0.3
    clarification: float = 0.2
    synthesis: float = 0.1

    def weights(self) -> dict[str, float]:
        return self.model_dump()


# ---------------------------------------------------------------------------
# Tuning constants
# ---------------------------------------------------------------------------

class Thresholds(_Frozen):
    must_respond: int = 12
    should_respond: int = 8
    may_respond: int = 4


class MemoryLimits(_Frozen):
    recent_messages: int = Field(default=10, ge=1)
    context_window: int = Field(default=5, ge=0)
    max_themes: int = Field(default=5, ge=1)


class WordLimits(_Frozen):
    max_words: int = 30
    ideal_words: int = 20
    min_words: int = 8
    discussion_max_words: int = 15


class DiscussionTuning(_Frozen):
    base_probability: float = 0.4
    factor_increment: float = 0.1
    max_probability: float = 0.8
    reply_probability: float = 0.4


class ResponderCaps(_Frozen):
    focused: int = 1
    normal: int = 2
    expansive: int = 3


class Tuning(_Frozen):
    thresholds: Thresholds = Thresholds()
    memory: MemoryLimits = MemoryLimits()
    words: WordLimits = WordLimits()
    discussion: DiscussionTuning = DiscussionTuning()
    max_responders: ResponderCaps = ResponderCaps()
    introduction_turns: int = 2


# ---------------------------------------------------------------------------
# World
# ---------------------------------------------------------------------------

class World(_Frozen):
    name: str
    description: str
    atmosphere: str = ""
    ambient_features: list[str] = Field(default_factory=list)
    start_landmark: str
    landmarks: list[Landmark]
    companions: list[Companion]
    relationships: list[RelationshipDynamic] = Field(default_factory=list)
    discussion_patterns: DiscussionPatterns = DiscussionPatterns()
    tuning: Tuning = Tuning()

    @model_validator(mode="after")
    def _check_references(self) -> "World":
        if not self.companions:
            raise ValueError("World must define at least one companion")
        landmark_ids = {lm.id for lm in self.landmarks}
        companion_ids = {c.id for c in self.companions}
        if len(landmark_ids) != len(self.landmarks):
            raise ValueError("Duplicate landmark id")
        if len(companion_ids) != len(self.companions):
            raise ValueError("Duplicate companion id")
        if self.start_landmark not in landmark_ids:
            raise ValueError(f"start_landmark {self.start_landmark!r} is not a landmark")
        for rel in self.relationships:
            for cid in rel.companions:
                if cid not in companion_ids:
                    raise ValueError(f"Relationship references unknown companion {cid!r}")
        return self

    @property
    def companion_ids(self) -> list[str]:
        """Companion ids in configured default order."""
        return [c.id for c in self.companions]

    @property
    def landmark_ids(self) -> list[str]:
        return [lm.id for lm in self.landmarks]

    def companion(self, companion_id: str) -> Companion:
        for c in self.companions:
            if c.id == companion_id:
                return c
        raise UnknownCompanionError(companion_id)

    def landmark(self, landmark_id: str) -> Landmark:
        for lm in self.landmarks:
            if lm.id == landmark_id:
                return lm
        raise UnknownLandmarkError(landmark_id)

    def companions_with_role(self, role: Role) -> list[Companion]:
        return [c for c in self.companions if c.role == role]

    def support_companion(self) -> Companion:
        """The designated emotional-support companion (first with role=support)."""
        support = self.companions_with_role("support")
        if not support:
            raise UnknownCompanionError("no companion has role 'support'")
        return support[0]

    def relationship(self, a: str, b: str) -> RelationshipDynamic | None:
        """Look up the dynamic for an unordered companion pair.

        Both ids are validated first; an unknown id is a data error, not a
        missing relationship.
        """
        self.companion(a)
        self.companion(b)
        for rel in self.relationships:
            if rel.companions == (a, b):
                return rel
        for rel in self.relationships:
            if rel.companions == (b, a):
                return rel
        return None


def load_world(path: Path | None = None) -> World:
    """Read and validate a world file. Raises pydantic.ValidationError on bad data."""
    path = path or DEFAULT_WORLD_FILE
    world = World.model_validate_json(path.read_text(encoding="utf-8"))
    logger.debug(
        "loaded world %r from %s: %d companions, %d landmarks",
        world.name, path, len(world.companions), len(world.landmarks),
    )
    return world


@lru_cache(maxsize=1)
def default_world() -> World:
    """The packaged Crystal Sanctuary world, loaded once per process."""
    return load_world(DEFAULT_WORLD_FILE)
