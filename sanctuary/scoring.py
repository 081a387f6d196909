"""Companion relevance scoring.

score() is an additive point system over one analysis and the current
session state. Point values are tunable; what matters is the ordering they
produce:

  - a direct mention outweighs every other ordinary bonus combined
  - the crisis bonus outweighs everything, mention included
  - a companion who just spoke is pushed down, a long-silent one nudged up
  - any edge case lifts a low score to EDGE_CASE_FLOOR so odd input is
    never ignored purely on points

The published score is never negative. The function reads state and never
writes it.
"""

from __future__ import annotations

import logging
import math

from sanctuary.analyzer import has_phrase
from sanctuary.models import PlayerMessageAnalysis, SessionState
from sanctuary.world import Companion, World

logger = logging.getLogger(__name__)

MENTION_BONUS = 60
KEYWORD_BONUS = 2
TOPIC_BONUS = 3
PRIMARY_EXPERTISE_BONUS = 5
SECONDARY_EXPERTISE_BONUS = 3
INTENT_AFFINITY_BONUS = 3
INFO_NEED_BONUS = 3
LANDMARK_AFFINITY_SCALE = 2

GREETING_BONUS = 2
GREETING_SILENCE_BONUS = 2
GREETING_SILENCE_TURNS = 5

FAREWELL_ENGAGED_BONUS = 5
FAREWELL_BONUS = 2
ENGAGED_THRESHOLD = 5
ENGAGEMENT_BONUS = 1
PREFERRED_COMPANION_BONUS = 2

RECENT_PENALTY = 3  # spoke within RECENT_TURNS
RECENT_TURNS = 2
NEARBY_PENALTY = 1  # spoke within NEARBY_TURNS
NEARBY_TURNS = 4
SILENCE_BONUS = 1  # silent for more than SILENCE_TURNS
SILENCE_TURNS = 10

CRISIS_BONUS = 200
EDGE_CASE_FLOOR = 3

# role -> points, per conversation phase; only the spread between roles matters
PHASE_AFFINITY: dict[str, dict[str, int]] = {
    "introduction": {"guide": 2, "support": 1},
    "exploration": {"guide": 1},
    "deep_discussion": {"analytical": 2, "support": 1},
    "conclusion": {"support": 1},
}

STYLE_AFFINITY: dict[str, dict[str, int]] = {
    "formal": {"analytical": 2, "guide": 1},
    "casual": {"support": 2, "guide": 1},
    "technical": {"guide": 2, "analytical": 2},
    "emotional": {"support": 3, "analytical": 1, "guide": 1},
}

# edge case -> (role, points)
EDGE_CASE_AFFINITY: dict[str, tuple[str, int]] = {
    "minimal_input": ("guide", 2),
    "potential_sarcasm": ("support", 2),
}

SIMPLE_SUPPORT_BONUS = 1


def turns_since_spoke(companion_id: str, state: SessionState) -> int | None:
    """Player turns since the companion last spoke; None if it never has."""
    last = state.companions[companion_id].last_spoke
    if last is None:
        return None
    return state.message_counter - last


def emotional_affinity(companion: Companion, analysis: PlayerMessageAnalysis) -> int:
    tone = analysis.emotional_tone
    intensity = analysis.emotional_intensity

    if companion.role == "support":
        if tone in ("negative", "anxious"):
            return 4 + intensity // 2
        if tone == "confused":
            return 4
        if tone == "positive":
            return 1
        return 0

    if companion.role == "analytical":
        if tone in ("confused", "curious"):
            return 4
        if intensity >= 8:
            return 2
        return 0

    # guide
    if tone in ("curious", "confused"):
        return 3
    if tone == "neutral" and intensity <= 5:
        return 1
    return 0


def _context_affinity(companion: Companion, analysis: PlayerMessageAnalysis) -> int:
    points = 0
    if analysis.complexity == "complex":
        points += {"analytical": 3, "guide": 1}.get(companion.role, 0)
    elif analysis.complexity == "simple" and companion.role == "support":
        points += SIMPLE_SUPPORT_BONUS
    if analysis.urgency in ("high", "urgent"):
        points += {"support": 3, "guide": 1}.get(companion.role, 0)
    return points


def _expertise_points(companion: Companion, analysis: PlayerMessageAnalysis) -> int:
    points = 0
    for tag in analysis.expertise_needed:
        if tag in companion.expertise.primary:
            points += PRIMARY_EXPERTISE_BONUS
        elif tag in companion.expertise.secondary:
            points += SECONDARY_EXPERTISE_BONUS
    return points


def _recency_points(companion_id: str, state: SessionState) -> int:
    since = turns_since_spoke(companion_id, state)
    if since is None:
        return SILENCE_BONUS if state.message_counter > SILENCE_TURNS else 0
    if since <= RECENT_TURNS:
        return -RECENT_PENALTY
    if since <= NEARBY_TURNS:
        return -NEARBY_PENALTY
    if since > SILENCE_TURNS:
        return SILENCE_BONUS
    return 0


def _conversation_points(
    companion: Companion, analysis: PlayerMessageAnalysis, state: SessionState
) -> int:
    """Phase, communication style and edge-case leanings by role."""
    role = companion.role
    points = PHASE_AFFINITY.get(state.memory.phase, {}).get(role, 0)
    points += STYLE_AFFINITY.get(analysis.conversation_style, {}).get(role, 0)
    for flag in analysis.edge_cases:
        target, bonus = EDGE_CASE_AFFINITY.get(flag, ("", 0))
        if target == role:
            points += bonus
    return points


def _greeting_points(companion_id: str, state: SessionState) -> int:
    since = turns_since_spoke(companion_id, state)
    if since is None or since > GREETING_SILENCE_TURNS:
        return GREETING_BONUS + GREETING_SILENCE_BONUS
    return GREETING_BONUS


def raw_score(
    companion_id: str,
    analysis: PlayerMessageAnalysis,
    state: SessionState,
    world: World,
) -> int:
    """Unclamped score. Raises UnknownCompanionError for an unknown id."""
    companion = world.companion(companion_id)
    companion_state = state.companions[companion_id]
    lower = analysis.original.lower()
    score = 0

    if companion_id in analysis.mentioned_companions:
        score += MENTION_BONUS

    score += KEYWORD_BONUS * sum(
        1 for kw in set(companion.triggers.keywords) if has_phrase(lower, kw)
    )
    score += TOPIC_BONUS * sum(1 for t in analysis.topics if t in companion.triggers.topics)
    score += _expertise_points(companion, analysis)
    score += INTENT_AFFINITY_BONUS * sum(
        1 for i in analysis.intents if i in companion.intent_affinities
    )
    score += emotional_affinity(companion, analysis)
    score += _context_affinity(companion, analysis)
    score += _conversation_points(companion, analysis, state)
    score += math.floor(companion.affinity(state.current_landmark) * LANDMARK_AFFINITY_SCALE)
    score += _recency_points(companion_id, state)

    if analysis.has_intent("greeting"):
        score += _greeting_points(companion_id, state)

    if analysis.has_intent("farewell"):
        if companion_state.engagement > ENGAGED_THRESHOLD:
            score += FAREWELL_ENGAGED_BONUS
        else:
            score += FAREWELL_BONUS

    score += INFO_NEED_BONUS * sum(1 for n in analysis.info_needs if n in companion.info_needs)

    if state.memory.user_profile.preferred_companion == companion_id:
        score += PREFERRED_COMPANION_BONUS
    if companion_state.engagement > ENGAGED_THRESHOLD:
        score += ENGAGEMENT_BONUS

    if analysis.is_crisis and companion.role == "support":
        score += CRISIS_BONUS

    return score


def score(
    companion_id: str,
    analysis: PlayerMessageAnalysis,
    state: SessionState,
    world: World,
) -> int:
    """Published relevance score: edge-case floor applied, never negative."""
    value = raw_score(companion_id, analysis, state, world)
    if analysis.edge_cases and value < EDGE_CASE_FLOOR:
        value = EDGE_CASE_FLOOR
    return max(0, value)


def score_all(
    analysis: PlayerMessageAnalysis, state: SessionState, world: World
) -> list[tuple[str, int]]:
    """(companion_id, score) pairs, highest first; ties keep configured order."""
    scored = [(cid, score(cid, analysis, state, world)) for cid in world.companion_ids]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    logger.debug("relevance scores: %s", scored)
    return scored
