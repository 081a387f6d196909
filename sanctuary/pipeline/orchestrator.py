"""Conversation orchestrator: runs one player turn end-to-end.

Turn flow:
  1. Analyse the player message (pure).
  2. Record it in memory (counter += 1) and fold the analysis into the
     session: themes, interests, dominant tone, profile, phase.
  3. Navigational messages naming a landmark move the party there.
  4. Coordinator picks responders and draws whether they discuss.
  5. Generate each planned turn in order. Every reply is written to memory
     before the next context is built. Failures become the companion's
     fallback line.
  6. Log the decision to the message log and persist the journey. Neither
     may break the turn.

One Conversation per session. Its lock keeps turns from overlapping: a
second send() waits until the first has finished.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

from sanctuary.analyzer import analyze
from sanctuary.coordinator import determine_responders, plan_turns, should_discuss
from sanctuary.llm import Gateway, GenerationError, truncate_words
from sanctuary.models import (
    JourneySnapshot,
    PlayerMessageAnalysis,
    SessionState,
    TurnRequest,
    TurnResult,
    Utterance,
)
from sanctuary.prompts import PromptError, build_prompt_context
from sanctuary.session import (
    PLAYER,
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
from sanctuary.storage import JourneyStore, MessageLog
from sanctuary.world import World

logger = logging.getLogger(__name__)


def fallback_line(companion_id: str, state: SessionState, world: World) -> str:
    """Static per-companion line, filled in with the current landmark."""
    companion = world.companion(companion_id)
    landmark = world.landmark(state.current_landmark)
    feature = landmark.features[0] if landmark.features else landmark.name
    return companion.fallback.format(landmark=landmark.name, feature=feature)


class Conversation:
    """A single player's journey: session state plus its collaborators.

    Args:
        world:       Loaded world configuration.
        gateway:     Dialogue generation gateway.
        state:       Existing session state; a fresh one is created if omitted.
        message_log: Optional audit log. Failures are logged and ignored.
        journeys:    Optional journey store. Saved after every change.
        rng:         Random source for discussion draws. Seed it in tests.
        timeout:     Per-generation time limit in seconds; None for no limit.
        is_active:   False once the journey has been ended; kept on every save.
    """

    def __init__(
        self,
        world: World,
        gateway: Gateway,
        *,
        state: SessionState | None = None,
        message_log: MessageLog | None = None,
        journeys: JourneyStore | None = None,
        rng: random.Random | None = None,
        timeout: float | None = None,
        is_active: bool = True,
    ) -> None:
        self.world = world
        self.gateway = gateway
        self.state = state or new_session(world)
        self.message_log = message_log
        self.journeys = journeys
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.is_active = is_active
        self._lock = asyncio.Lock()

    @classmethod
    def from_snapshot(
        cls, snap: JourneySnapshot, world: World, gateway: Gateway, **kwargs: Any
    ) -> "Conversation":
        kwargs.setdefault("is_active", snap.is_active)
        return cls(world, gateway, state=restore(snap, world), **kwargs)

    @property
    def journey_id(self) -> str:
        return self.state.journey_id

    @property
    def busy(self) -> bool:
        """True while a turn is in flight."""
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def send(self, text: str) -> TurnResult:
        """Run one player turn and return what the companions said."""
        async with self._lock:
            return await self._run_turn(text)

    async def move_to(self, landmark_id: str) -> bool:
        """Explicit landmark change. Raises UnknownLandmarkError for a bad id."""
        async with self._lock:
            moved = move_to_landmark(self.state, landmark_id, self.world)
            if moved:
                self._log({"type": "move", "landmark": landmark_id})
                self._persist()
            return moved

    async def reset(self) -> SessionState:
        """Back to initial values, same journey id."""
        async with self._lock:
            self.state = reset_session(self.state, self.world)
            self._log({"type": "reset"})
            self._persist()
            return self.state

    def snapshot(self) -> JourneySnapshot:
        return snapshot(self.state, is_active=self.is_active)

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str) -> TurnResult:
        analysis = analyze(text, self.world)
        counter = record_player_message(
            self.state, analysis.original, self.world, analysis.emotional_tone
        )
        self._log({"type": "player", "sender": PLAYER, "content": analysis.original})
        fold_analysis(self.state, analysis, self.world)

        if analysis.mentioned_landmarks and analysis.has_intent("navigational"):
            target = analysis.mentioned_landmarks[0]
            if move_to_landmark(self.state, target, self.world):
                self._log({"type": "move", "landmark": target})

        responders = determine_responders(analysis, self.state, self.world)
        discuss = should_discuss(analysis, responders, self.state, self.world, self.rng)
        turns = plan_turns(analysis, responders, discuss, self.world, self.rng)
        if discuss:
            logger.info("discussion between %s and %s", responders[0], responders[1])

        utterances = []
        for request in turns:
            utterance = await self._generate(request, analysis)
            record_companion_message(
                self.state, utterance.companion, utterance.text, self.world,
                tokens_used=utterance.tokens_used,
            )
            self._log({
                "type": "companion",
                "sender": utterance.companion,
                "kind": utterance.kind,
                "content": utterance.text,
                "fallback": utterance.fallback,
            })
            utterances.append(utterance)

        self._log({
            "type": "decision",
            "message_counter": counter,
            "responders": responders,
            "discussion": discuss,
            "crisis": analysis.is_crisis,
            "intents": analysis.intents,
            "phase": self.state.memory.phase,
        })
        self._persist()

        return TurnResult(
            message_counter=counter,
            analysis=analysis,
            responders=responders,
            discussion=discuss,
            landmark=self.state.current_landmark,
            utterances=utterances,
        )

    async def _generate(self, request: TurnRequest, analysis: PlayerMessageAnalysis) -> Utterance:
        words = self.world.tuning.words
        limit = words.discussion_max_words if request.kind == "discussion" else words.max_words

        try:
            context = build_prompt_context(
                request, self.state, self.world,
                message=analysis.original,
                memory=recent_context(self.state, self.world),
                crisis=analysis.is_crisis,
            )
            call = self.gateway.generate(request.companion, context)
            if self.timeout is not None:
                generation = await asyncio.wait_for(call, self.timeout)
            else:
                generation = await call
        except (GenerationError, PromptError, asyncio.TimeoutError) as e:
            logger.warning("generation failed for %s, using fallback: %s", request.companion, e)
            return self._fallback(request)
        except Exception:
            # a gateway outside sanctuary.llm may raise anything
            logger.exception("unexpected gateway error for %s, using fallback", request.companion)
            return self._fallback(request)

        text = truncate_words(generation.text, limit)
        if not text:
            logger.warning("empty generation for %s, using fallback", request.companion)
            return self._fallback(request, tokens_used=generation.tokens_used)
        return Utterance(
            companion=request.companion,
            kind=request.kind,
            text=text,
            tokens_used=generation.tokens_used,
            partner=request.partner,
        )

    def _fallback(self, request: TurnRequest, tokens_used: int = 0) -> Utterance:
        return Utterance(
            companion=request.companion,
            kind=request.kind,
            text=fallback_line(request.companion, self.state, self.world),
            tokens_used=tokens_used,
            partner=request.partner,
            fallback=True,
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _log(self, entry: dict[str, Any]) -> None:
        if self.message_log is None:
            return
        try:
            self.message_log.append(self.journey_id, entry)
        except Exception as e:
            logger.warning(f"Message log append failed: {e}")

    def _persist(self) -> None:
        if self.journeys is None:
            return
        try:
            self.journeys.save(self.snapshot())
        except Exception as e:
            logger.warning(f"Journey save failed: {e}")
