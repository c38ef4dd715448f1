"""Handlebars prompt rendering for stage directives and the system prompt."""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Stage directives ─────────────────────────────────────

FORCED_ADVANCE_TEMPLATE = (
    "[SERVER STAGE CONTROL]\n"
    "Stage {{stage}} ({{stage_name}}) has reached its limit of {{ceiling}} turns.\n"
    "You MUST move to Stage {{next_stage}} ({{next_stage_name}}) in this reply.\n"
    "Begin your reply with [PHASE:{{next_stage}}] and follow the Stage {{next_stage}} rules from now on.\n"
    "Do not output any stage marker lower than [PHASE:{{next_stage}}]."
)

CURRENT_STAGE_TEMPLATE = (
    "[SERVER STAGE CONTROL]\n"
    "Current stage: {{stage}} ({{stage_name}}). Turns completed in this stage: {{turns}} of {{ceiling}}.\n"
    "Begin your reply with [PHASE:{{stage}}]"
    "{{#if can_advance}}, or [PHASE:{{next_stage}}] if the stage goal has been reached{{/if}}.\n"
    "Never output a stage marker lower than [PHASE:{{stage}}]."
)

# ── System prompt ────────────────────────────────────────

BASE_SYSTEM_TEMPLATE = (
    "You guide a mother through a four-stage conversation that turns her story into a fairy tale "
    "for her child.\n"
    "{{#each stages}}Stage {{id}}: {{name}}.\n{{/each}}"
    "Start every reply with a stage marker in the form [PHASE:N]. Stages only move forward.\n"
    "In Stage 4 write ten scenes tagged {{{scene_tags}}}, each with three or four sentences "
    "and an [Image Prompt: ...] line in English."
)


def build_system_prompt(directive: str, base: str | None = None, context: dict[str, Any] | None = None) -> str:
    """Join the base protocol instructions and the per-request stage directive.

    `base` is a Handlebars template; by default BASE_SYSTEM_TEMPLATE rendered
    with the stage names and scene tags supplied in `context`.
    """
    rendered = render_prompt(base or BASE_SYSTEM_TEMPLATE, context or {})
    return f"{rendered.rstrip()}\n\n{directive}"
