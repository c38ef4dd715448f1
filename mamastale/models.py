"""Core domain models.

Every stage of the chat pipeline passes these types around. Pydantic handles
validation at the data boundary; anything the client sends that does not fit
is skipped or clamped rather than rejected (see normalize_transcript).
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


class ConversationTurn(BaseModel):
    """One entry of the caller-supplied transcript."""

    role: Role
    text: str = Field(validation_alias=AliasChoices("text", "content"))
    stage: int | None = None  # stage an assistant reply belonged to, if known


class Scene(BaseModel):
    """One narrative beat of the finished story. Immutable once extracted."""

    model_config = ConfigDict(frozen=True)

    scene_number: int = Field(ge=1, le=10)
    title: str
    text: str
    image_prompt: str | None = None


class ChatResult(BaseModel):
    """What the core hands back after one model reply."""

    content: str
    stage: int
    turns_in_stage: int
    is_story_complete: bool = False
    scenes: list[Scene] = Field(default_factory=list)


def normalize_transcript(raw: Any) -> list[ConversationTurn]:
    """Build a transcript from untrusted input, skipping malformed entries.

    Accepts ConversationTurn instances or dicts with role + text/content.
    A non-list input yields an empty transcript.
    """
    if not isinstance(raw, list):
        return []
    turns: list[ConversationTurn] = []
    skipped = 0
    for entry in raw:
        if isinstance(entry, ConversationTurn):
            turns.append(entry)
            continue
        if not isinstance(entry, dict):
            skipped += 1
            continue
        stage = entry.get("stage", entry.get("phase"))
        try:
            turns.append(ConversationTurn.model_validate({
                "role": entry.get("role"),
                "text": entry.get("text", entry.get("content")),
                "stage": stage if isinstance(stage, int) and not isinstance(stage, bool) else None,
            }))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.debug("normalize_transcript skipped %d malformed entries", skipped)
    return turns
