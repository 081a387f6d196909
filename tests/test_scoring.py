"""Tests for sanctuary.scoring: rank-order rules, recency, floors and clamping."""

import pytest

from sanctuary.analyzer import analyze
from sanctuary.models import CRISIS_FLAG, PlayerMessageAnalysis
from sanctuary.scoring import EDGE_CASE_FLOOR, raw_score, score, score_all, turns_since_spoke
from sanctuary.world import UnknownCompanionError


def _scores(analysis, state, world) -> dict[str, int]:
    return dict(score_all(analysis, state, world))


# ── Contractual rank order ───────────────────────────────


@pytest.mark.parametrize("name", ["Elara", "Bramble", "Kael"])
def test_mentioned_companion_outranks_the_rest(world, state, name):
    state.message_counter = 1
    scores = _scores(analyze(f"{name}, are you there?", world), state, world)
    mentioned = name.lower()
    for cid, value in scores.items():
        if cid != mentioned:
            assert scores[mentioned] > value


def test_mention_outweighs_other_bonuses(world, state):
    state.message_counter = 1
    # heavy emotional load favours bramble, but kael is named
    text = "Kael, I feel so anxious and overwhelmed, please help me cope with this anxiety"
    scores = _scores(analyze(text, world), state, world)
    assert scores["kael"] > scores["bramble"] > scores["elara"]


def test_crisis_support_outranks_everyone(world, state):
    state.message_counter = 1
    ranked = score_all(analyze("Elara, Kael, I want to kill myself", world), state, world)
    assert ranked[0][0] == "bramble"


def test_emotional_message_favours_support(world, state):
    state.message_counter = 1
    ranked = score_all(analyze("I feel really anxious and don't know what to do", world), state, world)
    assert ranked[0][0] == "bramble"


def test_philosophical_message_favours_analytical(world, state):
    state.message_counter = 3
    ranked = score_all(analyze("What is the meaning of existence?", world), state, world)
    assert ranked[0][0] == "kael"


def test_primary_expertise_beats_secondary(world, state):
    state.message_counter = 3
    analysis = PlayerMessageAnalysis(original="", expertise_needed=["guidance"])
    # guidance is secondary for elara and bramble, so they tie on it; kael has none
    base = PlayerMessageAnalysis(original="")
    bonus = {
        cid: score(cid, analysis, state, world) - score(cid, base, state, world)
        for cid in world.companion_ids
    }
    assert bonus["elara"] == bonus["bramble"] > bonus["kael"]

    primary = PlayerMessageAnalysis(original="", expertise_needed=["trauma_healing"])
    assert score("bramble", primary, state, world) - score("bramble", base, state, world) > bonus["bramble"]


# ── Recency ──────────────────────────────────────────────


def test_turns_since_spoke(state):
    state.message_counter = 7
    assert turns_since_spoke("elara", state) is None
    state.companions["elara"].last_spoke = 4
    assert turns_since_spoke("elara", state) == 3


def test_recent_speaker_penalised(world, state):
    state.message_counter = 5
    analysis = analyze("tell me more", world)
    before = raw_score("elara", analysis, state, world)
    state.companions["elara"].last_spoke = 4
    assert raw_score("elara", analysis, state, world) < before


def test_long_silence_bonus(world, state):
    state.message_counter = 20
    analysis = analyze("tell me more", world)
    state.companions["elara"].last_spoke = 15
    mid = raw_score("elara", analysis, state, world)
    state.companions["elara"].last_spoke = 5
    assert raw_score("elara", analysis, state, world) > mid


def test_greeting_bonus_prefers_quiet_companions(world, state):
    state.message_counter = 10
    analysis = analyze("hello", world)
    state.companions["elara"].last_spoke = 9
    plain = analyze("the path", world)
    elara_bonus = raw_score("elara", analysis, state, world) - raw_score("elara", plain, state, world)
    kael_bonus = raw_score("kael", analysis, state, world) - raw_score("kael", plain, state, world)
    assert kael_bonus > elara_bonus > 0


def test_farewell_prefers_engaged_companion(world, state):
    state.message_counter = 30
    analysis = analyze("goodbye", world)
    plain = analyze("the path", world)
    state.companions["kael"].engagement = 8
    kael_bonus = raw_score("kael", analysis, state, world) - raw_score("kael", plain, state, world)
    elara_bonus = raw_score("elara", analysis, state, world) - raw_score("elara", plain, state, world)
    assert kael_bonus > elara_bonus


# ── Landmark affinity ────────────────────────────────────


def test_landmark_affinity(world, state):
    state.message_counter = 3
    analysis = PlayerMessageAnalysis(original="")
    state.current_landmark = "wisdom_library"
    in_library = score("kael", analysis, state, world)
    state.current_landmark = "healing_springs"
    assert score("kael", analysis, state, world) < in_library


# ── Floor, clamp, purity ─────────────────────────────────


def test_edge_case_floor(world, state):
    state.message_counter = 3
    for cid in world.companion_ids:
        state.companions[cid].last_spoke = 3
    analysis = PlayerMessageAnalysis(original="!!", edge_cases=["symbols_only"])
    for cid in world.companion_ids:
        assert score(cid, analysis, state, world) >= EDGE_CASE_FLOOR


def test_published_score_never_negative(world, state):
    state.message_counter = 3
    state.current_landmark = "healing_springs"
    state.companions["kael"].last_spoke = 3
    analysis = PlayerMessageAnalysis(original="", emotional_tone="positive", emotional_intensity=6)
    assert raw_score("kael", analysis, state, world) < 0
    assert score("kael", analysis, state, world) == 0


def test_scoring_does_not_mutate_state(world, state):
    state.message_counter = 2
    before = state.model_dump()
    score_all(analyze("Kael, why are we here?", world), state, world)
    assert state.model_dump() == before


def test_ties_keep_configured_order(world, state):
    analysis = PlayerMessageAnalysis(original="", edge_cases=[CRISIS_FLAG])
    state.current_landmark = "crystal_grove"
    ranked = [cid for cid, _ in score_all(analysis, state, world)]
    assert ranked[0] == "bramble"
    tied = PlayerMessageAnalysis(original="", edge_cases=["symbols_only"])
    for cid in world.companion_ids:
        state.companions[cid].last_spoke = state.message_counter
    ranked = [cid for cid, _ in score_all(tied, state, world)]
    assert ranked == ["elara", "bramble", "kael"]


def test_unknown_companion_raises(world, state):
    with pytest.raises(UnknownCompanionError):
        score("nobody", PlayerMessageAnalysis(original=""), state, world)


# ── Conversation leanings ────────────────────────────────


def _gain(cid, before, after, state, world):
    return raw_score(cid, after, state, world) - raw_score(cid, before, state, world)


def test_deep_discussion_phase_favours_analytical(world, state):
    state.message_counter = 3
    analysis = PlayerMessageAnalysis(original="")
    state.memory.phase = "exploration"
    exploring = {cid: raw_score(cid, analysis, state, world) for cid in world.companion_ids}
    state.memory.phase = "deep_discussion"
    deep = {cid: raw_score(cid, analysis, state, world) for cid in world.companion_ids}
    assert deep["kael"] - exploring["kael"] > deep["elara"] - exploring["elara"]
    assert deep["bramble"] > exploring["bramble"]


def test_introduction_phase_favours_guide(world, state):
    state.message_counter = 3
    analysis = PlayerMessageAnalysis(original="")
    state.memory.phase = "conclusion"
    ending = {cid: raw_score(cid, analysis, state, world) for cid in world.companion_ids}
    state.memory.phase = "introduction"
    intro = {cid: raw_score(cid, analysis, state, world) for cid in world.companion_ids}
    assert intro["elara"] - ending["elara"] > intro["kael"] - ending["kael"]


@pytest.mark.parametrize("style, favoured, other", [
    ("formal", "kael", "bramble"),
    ("casual", "bramble", "kael"),
    ("technical", "elara", "bramble"),
    ("emotional", "bramble", "elara"),
])
def test_communication_style_matching(world, state, style, favoured, other):
    state.message_counter = 3
    neutral = PlayerMessageAnalysis(original="")
    styled = PlayerMessageAnalysis(original="", conversation_style=style)
    assert _gain(favoured, neutral, styled, state, world) > _gain(other, neutral, styled, state, world)


@pytest.mark.parametrize("flag, favoured", [
    ("minimal_input", "elara"),
    ("potential_sarcasm", "bramble"),
])
def test_edge_case_leanings(world, state, flag, favoured):
    state.message_counter = 3
    plain = PlayerMessageAnalysis(original="")
    flagged = PlayerMessageAnalysis(original="", edge_cases=[flag])
    for cid in world.companion_ids:
        expected = 0 if cid != favoured else _gain(favoured, plain, flagged, state, world)
        assert _gain(cid, plain, flagged, state, world) == expected
    assert _gain(favoured, plain, flagged, state, world) > 0


def test_simple_message_leans_to_support(world, state):
    state.message_counter = 3
    moderate = PlayerMessageAnalysis(original="", complexity="moderate")
    simple = PlayerMessageAnalysis(original="", complexity="simple")
    assert _gain("bramble", moderate, simple, state, world) > 0
    assert _gain("kael", moderate, simple, state, world) == 0
