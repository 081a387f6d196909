"""Session state lifecycle and memory folding.

Every function here takes the SessionState it works on explicitly; nothing is
kept at module level, so any number of sessions can live in one process.

    state = new_session(world)
    analysis = analyze(text, world)
    record_player_message(state, text, world, analysis.emotional_tone)  # counter += 1
    fold_analysis(state, analysis, world)           # themes, interests, phase
    ...coordinator picks responders...
    record_companion_message(state, "elara", reply, world)
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter

from sanctuary.coordinator import next_phase
from sanctuary.models import (
    CompanionState,
    ConversationMemory,
    JourneySnapshot,
    MemoryEntry,
    PlayerMessageAnalysis,
    SessionState,
)
from sanctuary.world import World

logger = logging.getLogger(__name__)

PLAYER = "player"
HIGH_AFFINITY = 0.7
LOW_AFFINITY = 0.4


def new_session(world: World, journey_id: str | None = None) -> SessionState:
    """Fresh state at the world's starting landmark."""
    return SessionState(
        journey_id=journey_id or uuid.uuid4().hex,
        current_landmark=world.start_landmark,
        companions={cid: CompanionState() for cid in world.companion_ids},
    )


def reset_session(state: SessionState, world: World) -> SessionState:
    """Initial values again, keeping the journey id."""
    return new_session(world, journey_id=state.journey_id)


def _remember(state: SessionState, entry: MemoryEntry, world: World) -> None:
    queue = state.memory.recent_messages
    queue.append(entry)
    overflow = len(queue) - world.tuning.memory.recent_messages
    if overflow > 0:
        del queue[:overflow]


def record_player_message(
    state: SessionState, text: str, world: World, tone: str | None = None
) -> int:
    """Start a player turn: bump the counter and remember the message.

    Returns the new message counter.
    """
    state.message_counter += 1
    _remember(state, MemoryEntry(sender=PLAYER, content=text, tone=tone), world)
    return state.message_counter


def record_companion_message(
    state: SessionState, companion_id: str, text: str, world: World, tokens_used: int = 0
) -> None:
    world.companion(companion_id)
    _remember(state, MemoryEntry(sender=companion_id, content=text), world)
    state.tokens_used += tokens_used


def recent_context(state: SessionState, world: World) -> list[MemoryEntry]:
    """The window of memory handed to the generation gateway."""
    window = world.tuning.memory.context_window
    if window == 0:
        return []
    return state.memory.recent_messages[-window:]


def dominant_tone(memory: ConversationMemory) -> str:
    """Most common tone among remembered player messages (earliest wins ties)."""
    tones = [m.tone for m in memory.recent_messages if m.sender == PLAYER and m.tone]
    if not tones:
        return "neutral"
    return Counter(tones).most_common(1)[0][0]


def _engagement_level(analysis: PlayerMessageAnalysis) -> str:
    if analysis.word_count > 20 or analysis.complexity == "complex":
        return "high"
    if analysis.word_count < 4:
        return "low"
    return "medium"


def fold_analysis(state: SessionState, analysis: PlayerMessageAnalysis, world: World) -> None:
    """Fold one analysis into conversation memory.

    Call after record_player_message for the same text, so the phase sees
    the new counter.
    """
    memory = state.memory
    limits = world.tuning.memory

    for topic in analysis.topics:
        if topic in memory.current_themes:
            memory.current_themes.remove(topic)
        memory.current_themes.append(topic)
    overflow = len(memory.current_themes) - limits.max_themes
    if overflow > 0:
        del memory.current_themes[:overflow]

    for interest in [*analysis.topics, *analysis.expertise_needed]:
        if interest not in memory.player_interests:
            memory.player_interests.append(interest)

    memory.emotional_tone = dominant_tone(memory)
    memory.previous_intents = list(analysis.intents)

    profile = memory.user_profile
    if analysis.conversation_style != "neutral":
        profile.communication_style = analysis.conversation_style
    profile.engagement_level = _engagement_level(analysis)
    if analysis.mentioned_companions:
        profile.preferred_companion = analysis.mentioned_companions[0]

    phase = next_phase(analysis, state, world)
    if phase != memory.phase:
        logger.debug("phase %s -> %s", memory.phase, phase)
        memory.phase = phase


def move_to_landmark(state: SessionState, landmark_id: str, world: World) -> bool:
    """Make landmark_id current. Returns False if already there.

    Raises UnknownLandmarkError for an id the world does not define.
    """
    landmark = world.landmark(landmark_id)
    if state.current_landmark == landmark.id:
        return False

    state.current_landmark = landmark.id
    for companion in world.companions:
        affinity = companion.affinity(landmark.id)
        if affinity > HIGH_AFFINITY:
            mood = "inspired"
        elif affinity < LOW_AFFINITY:
            mood = "reserved"
        else:
            mood = "neutral"
        state.companions[companion.id].mood = mood
    logger.info("journey %s moved to %s", state.journey_id, landmark.id)
    return True


def snapshot(state: SessionState, is_active: bool = True) -> JourneySnapshot:
    return JourneySnapshot(state=state.model_copy(deep=True), is_active=is_active)


def restore(snap: JourneySnapshot, world: World) -> SessionState:
    """SessionState from a snapshot, validated against the current world.

    Companions added to the world since the snapshot start with fresh state;
    companions no longer in the world are dropped.
    """
    state = snap.state.model_copy(deep=True)
    world.landmark(state.current_landmark)
    state.companions = {
        cid: state.companions.get(cid, CompanionState()) for cid in world.companion_ids
    }
    return state
