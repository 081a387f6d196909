"""Handlebars prompt rendering for companion turns."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from sanctuary.models import MemoryEntry, SessionState, TurnRequest
from sanctuary.world import World

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_join(this, items, separator=", "):
    """{{join list}}: comma-joined list."""
    return separator.join(str(i) for i in items or [])


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


# ── Templates ────────────────────────────────────────────

COMPANION_TEMPLATE = """\
You are {{{char.name}}}, {{{char.title}}}. {{{char.core}}}

Your traits: {{{join char.traits}}}.
Communication style: {{{char.communication}}}
Approach: {{{char.approach}}}

Primary expertise: {{{join char.expertise}}}.
You have deep knowledge of: {{{join char.knowledge}}}.

Current location: {{{landmark.name}}}. {{{landmark.description}}}
Available here: {{{join landmark.activities}}}.
{{#if memory}}

Recent conversation:
{{#each memory}}
{{{sender}}}: {{{content}}}
{{/each}}
{{/if}}

IMPORTANT INSTRUCTIONS:
- Respond in {{words.ideal}}-{{words.max}} words maximum
- Blend your expertise with the mystical environment naturally
- Reference specific features of the current location when relevant
- Be concise but meaningful
{{#if discussion}}
- You're discussing with {{{discussion.partner}}} about: {{{discussion.topic}}}.
{{#if discussion.style}}
- {{{discussion.style}}}
{{/if}}
{{#if discussion.common_ground}}
- Common ground: {{{join discussion.common_ground}}}
{{/if}}
- Mode: {{{discussion.mode}}}. Offer your perspective in {{words.max}} words.
{{/if}}
{{#if crisis}}
- The player may be in danger. Respond with care, take them seriously and
  gently encourage reaching out to someone they trust or a crisis line.
{{/if}}

Player: {{{message}}}
{{{char.name}}}:"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def _memory_view(entries: list[MemoryEntry], world: World) -> list[dict[str, Any]]:
    names = {c.id: c.name for c in world.companions}
    return [
        {
            "sender": names.get(e.sender, "Player" if e.sender == "player" else e.sender),
            "content": e.content,
            "is_player": e.sender == "player",
        }
        for e in entries
    ]


def build_prompt_context(
    request: TurnRequest,
    state: SessionState,
    world: World,
    message: str,
    memory: list[MemoryEntry],
    crisis: bool = False,
) -> dict[str, Any]:
    """Assemble template variables for one generation request.

    Returns a dict suitable for passing to render_prompt(); the same dict is
    what gateways receive as their prompt context.
    """
    companion = world.companion(request.companion)
    landmark = world.landmark(state.current_landmark)
    words = world.tuning.words

    ctx: dict[str, Any] = {
        "companion_id": companion.id,
        "kind": request.kind,
        "message": message,
        "crisis": crisis,
        "char": {
            "name": companion.name,
            "title": companion.title,
            "core": companion.personality.core,
            "traits": companion.personality.traits,
            "communication": companion.personality.communication,
            "approach": companion.personality.approach,
            "expertise": companion.expertise.domains,
            "knowledge": companion.expertise.knowledge,
            "mood": state.companions[companion.id].mood,
        },
        "landmark": {
            "id": landmark.id,
            "name": landmark.name,
            "description": landmark.description,
            "features": landmark.features,
            "activities": landmark.activities,
        },
        "memory": _memory_view(memory, world),
        "words": {
            "ideal": words.ideal_words,
            "max": words.discussion_max_words if request.kind == "discussion" else words.max_words,
        },
    }

    if request.kind == "discussion" and request.partner:
        partner = world.companion(request.partner)
        rel = world.relationship(companion.id, partner.id)
        ctx["discussion"] = {
            "partner": partner.name,
            "partner_id": partner.id,
            "topic": request.topic or message,
            "mode": (request.mode or "agreement_building").replace("_", " "),
            "style": request.interaction_style or (rel.interaction_style if rel else ""),
            "common_ground": list(rel.common_ground) if rel else [],
        }

    return ctx


def render_companion_prompt(context: dict[str, Any]) -> str:
    return render_prompt(COMPANION_TEMPLATE, context)
