"""Pydantic request models and response helpers for API endpoints.

Stage and turn fields are typed loosely on purpose: bad values are clamped by
the stage machine instead of failing validation.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mamastale.models import ChatResult, Scene


class ChatBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[Any] = Field(default_factory=list)
    stage: Any = None
    turns_in_stage: Any = Field(default=None, alias="turnsInStage")


class ScenesBody(BaseModel):
    text: str


def scene_json(scene: Scene) -> dict[str, Any]:
    data: dict[str, Any] = {
        "sceneNumber": scene.scene_number,
        "title": scene.title,
        "text": scene.text,
    }
    if scene.image_prompt:
        data["imagePrompt"] = scene.image_prompt
    return data


def chat_json(result: ChatResult) -> dict[str, Any]:
    return {
        "content": result.content,
        "stage": result.stage,
        "turnsInStage": result.turns_in_stage,
        "isStoryComplete": result.is_story_complete,
        "scenes": [scene_json(s) for s in result.scenes],
    }
