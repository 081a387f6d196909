"""Core domain models.

The analyzer, scorer and coordinator all operate on these types. Pydantic is
used for validation and serialisation at every data boundary: the session
state round-trips through JSON for journey persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

EmotionalTone = Literal["neutral", "positive", "negative", "confused", "anxious", "curious"]
ConversationStyle = Literal["neutral", "formal", "casual", "technical", "emotional"]
Urgency = Literal["low", "normal", "high", "urgent"]
Complexity = Literal["simple", "moderate", "complex"]
ConversationPhase = Literal["introduction", "exploration", "deep_discussion", "conclusion"]
EngagementLevel = Literal["low", "medium", "high"]
TurnKind = Literal["primary", "discussion"]

CRISIS_FLAG = "crisis_situation"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PlayerMessageAnalysis(BaseModel):
    """Structured reading of one player message. Built fresh every turn."""

    original: str
    intents: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    mentioned_companions: list[str] = Field(default_factory=list)
    mentioned_landmarks: list[str] = Field(default_factory=list)
    emotional_tone: EmotionalTone = "neutral"
    emotional_intensity: int = 5  # 0–10
    sentiment: float = 0.0  # -1..1
    is_question: bool = False
    info_needs: list[str] = Field(default_factory=list)
    expertise_needed: list[str] = Field(default_factory=list)
    conversation_style: ConversationStyle = "neutral"
    urgency: Urgency = "normal"
    complexity: Complexity = "simple"
    word_count: int = 0
    edge_cases: list[str] = Field(default_factory=list)

    @property
    def is_crisis(self) -> bool:
        return CRISIS_FLAG in self.edge_cases

    def has_intent(self, intent: str) -> bool:
        return intent in self.intents


class CompanionState(BaseModel):
    """Per-companion session bookkeeping."""

    last_spoke: int | None = None  # message counter at last utterance
    recent_topics: list[str] = Field(default_factory=list)
    mood: str = "neutral"
    engagement: int = 0


class MemoryEntry(BaseModel):
    """One remembered utterance."""

    sender: str  # "player" | <companion_id>
    content: str
    timestamp: str = Field(default_factory=_now)
    tone: EmotionalTone | None = None  # set on player entries only


class UserProfile(BaseModel):
    communication_style: ConversationStyle = "neutral"
    engagement_level: EngagementLevel = "medium"
    preferred_companion: str | None = None


class ConversationMemory(BaseModel):
    recent_messages: list[MemoryEntry] = Field(default_factory=list)
    current_themes: list[str] = Field(default_factory=list)
    emotional_tone: EmotionalTone = "neutral"
    player_interests: list[str] = Field(default_factory=list)
    phase: ConversationPhase = "introduction"
    previous_intents: list[str] = Field(default_factory=list)
    user_profile: UserProfile = Field(default_factory=UserProfile)


class SessionState(BaseModel):
    """Everything that changes during one player's journey.

    One instance per session. Mutated only through sanctuary.session and the
    coordinator; read by the scorer.
    """

    journey_id: str
    current_landmark: str
    message_counter: int = 0
    companions: dict[str, CompanionState]
    memory: ConversationMemory = Field(default_factory=ConversationMemory)
    tokens_used: int = 0


class TurnRequest(BaseModel):
    """One generation request planned by the coordinator."""

    companion: str
    kind: TurnKind = "primary"
    partner: str | None = None
    topic: str | None = None
    interaction_style: str | None = None
    mode: str | None = None


class Utterance(BaseModel):
    """A companion line produced during a turn."""

    companion: str
    kind: TurnKind
    text: str
    tokens_used: int = 0
    partner: str | None = None
    fallback: bool = False


class TurnResult(BaseModel):
    """What one player turn produced."""

    message_counter: int
    analysis: PlayerMessageAnalysis
    responders: list[str]
    discussion: bool
    landmark: str
    utterances: list[Utterance]


class JourneySnapshot(BaseModel):
    """Serializable journey record handed to the persistence collaborator."""

    state: SessionState
    saved_at: str = Field(default_factory=_now)
    is_active: bool = True

    @property
    def journey_id(self) -> str:
        return self.state.journey_id
