"""One chat turn: stage directive -> model call -> reconcile -> scene extraction."""

import logging
from typing import Any

from mamastale.llm import LLM
from mamastale.models import ChatResult, ConversationTurn
from mamastale.prompts import build_system_prompt

from .scenes import SECTION_TO_SCENE, combine_stage4_text, parse_story_scenes
from .stages import STAGE_NAMES, StageState, compute_directive, reconcile_stage
from .tags import detect_stage, is_story_complete, strip_stage_tags

logger = logging.getLogger(__name__)


def _system_context() -> dict[str, Any]:
    return {
        "stages": [{"id": str(sid), "name": name} for sid, name in STAGE_NAMES.items()],
        "scene_tags": ", ".join(f"[{tag}]" for tag in SECTION_TO_SCENE),
    }


async def run_chat_turn(
    transcript: list[ConversationTurn],
    llm: LLM,
    client_stage: Any = None,
    client_turns_in_stage: Any = None,
    system_template: str | None = None,
) -> ChatResult:
    """Run the model for one participant turn and reconcile its reply.

    `transcript` must already hold the participant's newest message. The
    client-reported stage and turn count are untrusted and clamped here.
    Returns the cleaned reply, the effective stage and, once the story is
    complete, its scenes.
    """
    state = StageState.from_client(client_stage, client_turns_in_stage)
    directive = compute_directive(state.stage, state.turns_in_stage)
    system = build_system_prompt(directive, base=system_template, context=_system_context())

    messages = [{"role": t.role, "content": t.text} for t in transcript]
    raw_reply = await llm(system, messages)

    if not raw_reply or not raw_reply.strip():
        logger.warning("Empty model reply at stage %d; skipping reconciliation", state.stage)
        return ChatResult(content="", stage=state.stage, turns_in_stage=state.turns_in_stage)

    reported = detect_stage(raw_reply)
    content = strip_stage_tags(raw_reply)
    effective = reconcile_stage(reported, state.floor)
    next_state = state.advance(effective)
    if effective != state.stage:
        logger.info("Stage %d -> %d", state.stage, effective)

    complete = is_story_complete(content, effective, client_stage=state.stage)

    scenes = []
    if complete:
        scenes = parse_story_scenes(combine_stage4_text(transcript, content))
        logger.info("Story complete with %d scenes", len(scenes))

    return ChatResult(
        content=content,
        stage=effective,
        turns_in_stage=next_state.turns_in_stage,
        is_story_complete=complete,
        scenes=scenes,
    )
