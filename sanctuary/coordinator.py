"""Response coordination: who answers, whether they discuss, in what order.

Selection (determine_responders):
  1. Score every companion, highest first (ties keep configured order).
  2. Derive must / should / may thresholds for this message.
  3. Walk the ranking: >= must always joins; >= should joins while fewer
     than two have joined.
  4. Nobody yet and the player greeted: the least-recent speaker answers
     alone, even when the top scorer clears "may", so greetings rotate
     through the party. Nobody yet otherwise: the top scorer if it clears
     "may".
  5. Still nobody: the top scorer anyway.
  6. Crisis language puts the support companion first, whatever the ranking.
  7. Truncate to the context-dependent cap (1, 2 or 3).
  8. Each selected companion's state is updated (last_spoke, engagement,
     recent_topics).

Discussion (should_discuss) is a weighted coin: each true factor raises the
base probability by a fixed increment, up to a configured maximum.

Turn sequencing (plan_turns): primaries in rank order, then, if a discussion
was drawn, the top two exchange one line each (the second reply is itself
a draw).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from sanctuary.models import PlayerMessageAnalysis, SessionState, TurnRequest
from sanctuary.scoring import score_all
from sanctuary.world import World

logger = logging.getLogger(__name__)

PERSPECTIVE_TOPICS = {"philosophy", "meaning", "purpose", "truth", "reality"}


@dataclass(frozen=True)
class ResponseThresholds:
    must_respond: int
    should_respond: int
    may_respond: int


def calculate_thresholds(
    analysis: PlayerMessageAnalysis, state: SessionState, world: World
) -> ResponseThresholds:
    base = world.tuning.thresholds
    must, should, may = base.must_respond, base.should_respond, base.may_respond

    if analysis.urgency in ("high", "urgent") or analysis.emotional_intensity > 7:
        must -= 2
        should -= 2
        may -= 1
    if analysis.complexity == "complex":
        must -= 1
        should -= 1
    if analysis.is_question:
        may -= 1
    if state.memory.phase == "introduction":
        may -= 2

    return ResponseThresholds(max(1, must), max(1, should), max(1, may))


def max_responders(analysis: PlayerMessageAnalysis, world: World) -> int:
    caps = world.tuning.max_responders
    if (
        analysis.complexity == "complex"
        or "philosophy" in analysis.topics
        or analysis.has_intent("philosophical")
    ):
        return caps.expansive
    if analysis.emotional_tone == "negative" or analysis.emotional_intensity > 7:
        return caps.focused
    return caps.normal


def least_recent_speaker(state: SessionState, world: World) -> str:
    """Companion who spoke longest ago; never-spoken first, ties in configured order."""
    def _key(cid: str) -> int:
        last = state.companions[cid].last_spoke
        return -1 if last is None else last

    return min(world.companion_ids, key=_key)


def determine_responders(
    analysis: PlayerMessageAnalysis, state: SessionState, world: World
) -> list[str]:
    """Ordered responder ids for this turn. Never empty.

    Side effect: updates CompanionState for every selected companion.
    """
    ranked = score_all(analysis, state, world)
    thresholds = calculate_thresholds(analysis, state, world)
    logger.debug("thresholds: %s", thresholds)

    responding: list[str] = []
    for cid, value in ranked:
        if value >= thresholds.must_respond:
            responding.append(cid)
        elif value >= thresholds.should_respond and len(responding) < 2:
            responding.append(cid)

    if not responding:
        if analysis.has_intent("greeting"):
            responding.append(least_recent_speaker(state, world))
        elif ranked[0][1] >= thresholds.may_respond:
            responding.append(ranked[0][0])

    if not responding:
        responding.append(ranked[0][0])

    if analysis.is_crisis:
        support = world.support_companion().id
        if support in responding:
            responding.remove(support)
        responding.insert(0, support)

    cap = max_responders(analysis, world)
    final = responding[:cap]

    for cid in final:
        companion_state = state.companions[cid]
        companion_state.last_spoke = state.message_counter
        companion_state.engagement += 1
        companion_state.recent_topics = list(analysis.topics)

    logger.debug("responders: %s (cap %d)", final, cap)
    return final


# ---------------------------------------------------------------------------
# Discussion
# ---------------------------------------------------------------------------

def has_conflicting_perspectives(
    responders: list[str], analysis: PlayerMessageAnalysis, world: World
) -> bool:
    """Philosophical ground plus responders whose lead expertise differs."""
    if not PERSPECTIVE_TOPICS.intersection(analysis.topics):
        return False
    leads = [tuple(world.companion(cid).expertise.primary[:1]) for cid in responders]
    return len(set(leads)) == len(leads)


def discussion_factors(
    analysis: PlayerMessageAnalysis,
    responders: list[str],
    state: SessionState,
    world: World,
) -> dict[str, bool]:
    return {
        "complex_topic": analysis.complexity == "complex",
        "philosophical_nature": "philosophy" in analysis.topics,
        "multiple_expertise": len(analysis.expertise_needed) > 1,
        "emotional_complexity": analysis.emotional_intensity > 6 and len(analysis.topics) > 1,
        "conflicting_perspectives": has_conflicting_perspectives(responders, analysis, world),
        "user_confusion": (
            analysis.emotional_tone == "confused" or analysis.has_intent("clarification")
        ),
        "deep_discussion": state.memory.phase == "deep_discussion",
    }


def discussion_probability(
    analysis: PlayerMessageAnalysis,
    responders: list[str],
    state: SessionState,
    world: World,
) -> float:
    """Probability that the responders hold a discussion; 0.0 with fewer than two."""
    if len(responders) < 2:
        return 0.0
    tuning = world.tuning.discussion
    count = sum(discussion_factors(analysis, responders, state, world).values())
    return min(tuning.base_probability + count * tuning.factor_increment, tuning.max_probability)


def should_discuss(
    analysis: PlayerMessageAnalysis,
    responders: list[str],
    state: SessionState,
    world: World,
    rng: random.Random | None = None,
) -> bool:
    probability = discussion_probability(analysis, responders, state, world)
    if probability <= 0.0:
        return False
    return (rng or random).random() < probability


def pick_discussion_mode(world: World, rng: random.Random | None = None) -> str:
    weights = world.discussion_patterns.weights()
    return (rng or random).choices(list(weights), weights=list(weights.values()), k=1)[0]


# ---------------------------------------------------------------------------
# Conversation phase
# ---------------------------------------------------------------------------

def next_phase(analysis: PlayerMessageAnalysis, state: SessionState, world: World) -> str:
    """Phase after this message. Farewell wins from any phase."""
    if analysis.has_intent("farewell"):
        return "conclusion"
    if analysis.has_intent("greeting") or state.message_counter <= world.tuning.introduction_turns:
        return "introduction"
    if analysis.complexity == "complex" or "philosophy" in analysis.topics:
        return "deep_discussion"
    return "exploration"


# ---------------------------------------------------------------------------
# Turn sequencing
# ---------------------------------------------------------------------------

def plan_discussion(
    analysis: PlayerMessageAnalysis,
    responders: list[str],
    world: World,
    rng: random.Random | None = None,
) -> list[TurnRequest]:
    """Discussion turns between the top two responders."""
    first, second = responders[0], responders[1]
    topic = analysis.topics[0] if analysis.topics else analysis.original
    rel = world.relationship(first, second)
    style = rel.interaction_style if rel else None

    turns = [
        TurnRequest(
            companion=first, kind="discussion", partner=second,
            topic=topic, interaction_style=style,
            mode=pick_discussion_mode(world, rng),
        )
    ]
    if (rng or random).random() < world.tuning.discussion.reply_probability:
        turns.append(
            TurnRequest(
                companion=second, kind="discussion", partner=first,
                topic=topic, interaction_style=style,
                mode=pick_discussion_mode(world, rng),
            )
        )
    return turns


def plan_turns(
    analysis: PlayerMessageAnalysis,
    responders: list[str],
    discuss: bool,
    world: World,
    rng: random.Random | None = None,
) -> list[TurnRequest]:
    turns = [TurnRequest(companion=cid) for cid in responders]
    if discuss and len(responders) >= 2:
        turns.extend(plan_discussion(analysis, responders, world, rng))
    return turns
