"""Per-process registry of live conversations, keyed by journey id."""

from __future__ import annotations

import logging
import random

from sanctuary.llm import Gateway
from sanctuary.pipeline import Conversation
from sanctuary.storage import JourneyStore, MessageLog
from sanctuary.world import World

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns one Conversation per journey; reloads from the journey store on demand."""

    def __init__(
        self,
        world: World,
        gateway: Gateway,
        journeys: JourneyStore,
        message_log: MessageLog,
        timeout: float | None = None,
    ) -> None:
        self.world = world
        self.gateway = gateway
        self.journeys = journeys
        self.message_log = message_log
        self.timeout = timeout
        self._live: dict[str, Conversation] = {}

    def _kwargs(self) -> dict:
        return {
            "message_log": self.message_log,
            "journeys": self.journeys,
            "rng": random.Random(),
            "timeout": self.timeout,
        }

    def start(self) -> Conversation:
        """New journey. Every other active journey is ended first."""
        for snap in self.journeys.list_journeys():
            if snap.is_active:
                self.journeys.end_journey(snap.journey_id)
        for conversation in self._live.values():
            conversation.is_active = False
        conversation = Conversation(self.world, self.gateway, **self._kwargs())
        self._live[conversation.journey_id] = conversation
        self.journeys.save(conversation.snapshot())
        logger.info("started journey %s", conversation.journey_id)
        return conversation

    def resume(self) -> Conversation | None:
        """The latest active journey, or None if there is none."""
        snap = self.journeys.latest_active()
        if snap is None:
            return None
        return self.get(snap.journey_id)

    def get(self, journey_id: str) -> Conversation | None:
        conversation = self._live.get(journey_id)
        if conversation is not None:
            return conversation
        snap = self.journeys.load(journey_id)
        if snap is None:
            return None
        conversation = Conversation.from_snapshot(snap, self.world, self.gateway, **self._kwargs())
        self._live[journey_id] = conversation
        return conversation

    def delete(self, journey_id: str) -> bool:
        self._live.pop(journey_id, None)
        self.message_log.delete(journey_id)
        return self.journeys.delete(journey_id)
