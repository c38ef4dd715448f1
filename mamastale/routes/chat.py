"""Chat turn and scene extraction endpoints."""

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException

from mamastale.config import get_config, system_template
from mamastale.guest import guest_budget_exceeded
from mamastale.identity import Identity
from mamastale.llm import LLM, LLMError
from mamastale.models import normalize_transcript
from mamastale.pipeline import parse_story_scenes, run_chat_turn
from mamastale.prompts import PromptError

from .deps import llm_factory, rate_limited
from .models import ChatBody, ScenesBody, chat_json, scene_json

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(
    body: ChatBody,
    identity: Identity = Depends(rate_limited("chat")),
    make_llm: Callable[[], LLM] = Depends(llm_factory),
):
    """Run one guided-conversation turn and return the reconciled reply."""
    transcript = normalize_transcript(body.messages)
    if not any(turn.role == "user" for turn in transcript):
        raise HTTPException(400, "Transcript has no user message")

    if guest_budget_exceeded(transcript, identity.is_authenticated):
        raise HTTPException(403, {
            "code": "guest_limit_reached",
            "guestBudgetExceeded": True,
            "message": "Sign up to continue your story.",
        })

    try:
        llm = make_llm()
    except LLMError as e:
        logger.error(f"Model client unavailable: {e}")
        raise HTTPException(503, str(e))

    try:
        result = await run_chat_turn(
            transcript,
            llm,
            client_stage=body.stage,
            client_turns_in_stage=body.turns_in_stage,
            system_template=system_template(get_config()),
        )
    except PromptError as e:
        logger.error(f"System prompt template failed: {e}")
        raise HTTPException(500, "Prompt template error")
    except LLMError as e:
        logger.error(f"Model call failed: {e}")
        if e.status == 429:
            raise HTTPException(429, {
                "code": "upstream_busy",
                "message": "Too many requests. Please try again shortly.",
            })
        raise HTTPException(502, "The storyteller is unavailable right now")

    return chat_json(result)


@router.post("/scenes")
async def extract_scenes(body: ScenesBody):
    """Parse scenes from already-combined stage-4 text."""
    return {"scenes": [scene_json(s) for s in parse_story_scenes(body.text)]}
