"""Tests for sanctuary.session: lifecycle, bounded memory, folding, moves, snapshots."""

import pytest

from sanctuary.analyzer import analyze
from sanctuary.session import (
    dominant_tone,
    fold_analysis,
    move_to_landmark,
    new_session,
    recent_context,
    record_companion_message,
    record_player_message,
    reset_session,
    restore,
    snapshot,
)
from sanctuary.world import UnknownCompanionError, UnknownLandmarkError


def test_new_session_defaults(world):
    state = new_session(world)
    assert state.message_counter == 0
    assert state.current_landmark == world.start_landmark
    assert set(state.companions) == set(world.companion_ids)
    assert all(cs.last_spoke is None for cs in state.companions.values())
    assert state.memory.phase == "introduction"
    assert len(state.journey_id) == 32


def test_sessions_are_independent(world):
    a = new_session(world)
    b = new_session(world)
    record_player_message(a, "hello", world)
    assert b.message_counter == 0
    assert b.memory.recent_messages == []
    assert a.journey_id != b.journey_id


def test_counter_increments_once_per_player_message(world, state):
    assert record_player_message(state, "one", world) == 1
    record_companion_message(state, "elara", "reply", world)
    assert record_player_message(state, "two", world) == 2


def test_memory_queue_is_bounded(world, state):
    capacity = world.tuning.memory.recent_messages
    for i in range(capacity):
        record_player_message(state, f"message {i}", world)
    assert len(state.memory.recent_messages) == capacity
    record_player_message(state, "overflow", world)
    assert len(state.memory.recent_messages) == capacity
    assert state.memory.recent_messages[0].content == "message 1"
    assert state.memory.recent_messages[-1].content == "overflow"


def test_companion_message_unknown_id_raises(world, state):
    with pytest.raises(UnknownCompanionError):
        record_companion_message(state, "ghost", "boo", world)


def test_companion_tokens_accumulate(world, state):
    record_companion_message(state, "elara", "a", world, tokens_used=10)
    record_companion_message(state, "kael", "b", world, tokens_used=5)
    assert state.tokens_used == 15


def test_recent_context_window(world, state):
    for i in range(8):
        record_player_message(state, f"m{i}", world)
    window = recent_context(state, world)
    assert [e.content for e in window] == ["m3", "m4", "m5", "m6", "m7"]


# ── Folding ──────────────────────────────────────────────


def _fold(state, world, text):
    analysis = analyze(text, world)
    record_player_message(state, analysis.original, world, analysis.emotional_tone)
    fold_analysis(state, analysis, world)
    return analysis


def test_themes_capped_fifo(world, state):
    _fold(state, world, "I want to explore and create art")          # exploration, creativity
    _fold(state, world, "remember my friend and the meaning of it")  # memories, relationships, philosophy
    _fold(state, world, "help me solve this, I want to meditate")    # problem_solving, meditation, ...
    themes = state.memory.current_themes
    assert len(themes) <= world.tuning.memory.max_themes
    assert "exploration" not in themes
    assert themes[-1] in ("meditation", "emotional_support", "problem_solving")


def test_interests_deduplicated(world, state):
    _fold(state, world, "the meaning of truth")
    _fold(state, world, "the meaning of truth again")
    interests = state.memory.player_interests
    assert interests.count("philosophy") == 1
    assert "philosophical" in interests


def test_dominant_tone_is_mode_of_player_tones(world, state):
    _fold(state, world, "I am so sad")
    _fold(state, world, "this is amazing")
    _fold(state, world, "I feel lonely and sad")
    assert state.memory.emotional_tone == "negative"
    assert dominant_tone(state.memory) == "negative"


def test_user_profile_tracks_mentions_and_style(world, state):
    _fold(state, world, "hey Kael, wanna chat lol")
    profile = state.memory.user_profile
    assert profile.preferred_companion == "kael"
    assert profile.communication_style == "casual"
    assert profile.engagement_level == "medium"


def test_preferred_companion_is_first_mentioned(world, state):
    _fold(state, world, "Elara and Kael, hello")
    assert state.memory.user_profile.preferred_companion == "elara"


def test_previous_intents_replaced(world, state):
    _fold(state, world, "hello")
    assert state.memory.previous_intents == ["greeting"]
    _fold(state, world, "goodbye")
    assert state.memory.previous_intents == ["farewell"]


def test_phase_follows_conversation(world, state):
    _fold(state, world, "hello")
    assert state.memory.phase == "introduction"
    _fold(state, world, "the path")
    _fold(state, world, "the stones")
    assert state.memory.phase == "exploration"
    _fold(state, world, "farewell")
    assert state.memory.phase == "conclusion"


# ── Landmarks ────────────────────────────────────────────


def test_move_to_landmark(world, state):
    assert move_to_landmark(state, "wisdom_library", world)
    assert state.current_landmark == "wisdom_library"
    assert state.companions["kael"].mood == "inspired"
    assert state.companions["bramble"].mood == "neutral"


def test_move_to_current_landmark_is_noop(world, state):
    assert not move_to_landmark(state, world.start_landmark, world)


def test_move_to_unknown_landmark_raises(world, state):
    with pytest.raises(UnknownLandmarkError):
        move_to_landmark(state, "atlantis", world)
    assert state.current_landmark == world.start_landmark


# ── Reset and snapshots ──────────────────────────────────


def test_reset_keeps_journey_id(world, state):
    _fold(state, world, "hello")
    move_to_landmark(state, "mirror_lake", world)
    fresh = reset_session(state, world)
    assert fresh.journey_id == state.journey_id
    assert fresh.message_counter == 0
    assert fresh.current_landmark == world.start_landmark
    assert fresh.memory.recent_messages == []


def test_snapshot_round_trip(world, state):
    _fold(state, world, "hello Elara")
    state.companions["elara"].last_spoke = 1
    state.companions["elara"].engagement = 1
    move_to_landmark(state, "crystal_grove", world)

    snap = snapshot(state)
    restored = restore(snap.model_validate_json(snap.model_dump_json()), world)
    assert restored == state
    assert restored is not state


def test_snapshot_is_a_copy(world, state):
    snap = snapshot(state)
    record_player_message(state, "later", world)
    assert snap.state.message_counter == 0


def test_restore_rejects_unknown_landmark(world, state):
    snap = snapshot(state)
    snap.state.current_landmark = "atlantis"
    with pytest.raises(UnknownLandmarkError):
        restore(snap, world)


def test_restore_adds_missing_companions(world, state):
    snap = snapshot(state)
    del snap.state.companions["kael"]
    restored = restore(snap, world)
    assert set(restored.companions) == set(world.companion_ids)
