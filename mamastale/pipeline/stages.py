"""Server-side stage state machine.

The client reports which stage it believes the conversation is in and how
many turns it has spent there. Both values are untrusted: they are clamped
into range, turned into a directive for the next model call, and after the
model replies the stage it declares is reconciled against a forward-only
floor. Whatever the model outputs, the stage seen by the client never drops.
"""

import logging
from dataclasses import dataclass
from typing import Any

from mamastale.prompts import (
    CURRENT_STAGE_TEMPLATE,
    FORCED_ADVANCE_TEMPLATE,
    render_prompt,
)

from .tags import TERMINAL_STAGE

logger = logging.getLogger(__name__)

FIRST_STAGE = 1
STAGE_TURN_CEILING = 10

STAGE_NAMES: dict[int, str] = {
    1: "Empathic Intake",
    2: "Socratic Reframe",
    3: "Metaphor Construction",
    4: "Narrative Synthesis",
}


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def clamp_stage(value: Any) -> int:
    """Coerce a client-reported stage into 1..4, defaulting to 1."""
    stage = _as_int(value)
    if stage is None or not FIRST_STAGE <= stage <= TERMINAL_STAGE:
        return FIRST_STAGE
    return stage


def clamp_turns(value: Any) -> int:
    """Coerce a client-reported turn count into >= 0, defaulting to 0."""
    turns = _as_int(value)
    if turns is None or turns < 0:
        return 0
    return turns


@dataclass(frozen=True)
class StageState:
    stage: int = FIRST_STAGE
    turns_in_stage: int = 0

    @classmethod
    def from_client(cls, stage: Any = None, turns_in_stage: Any = None) -> "StageState":
        return cls(stage=clamp_stage(stage), turns_in_stage=clamp_turns(turns_in_stage))

    @property
    def forced_advance(self) -> bool:
        """The stage has used up its turns and must move on this reply."""
        return self.turns_in_stage >= STAGE_TURN_CEILING and self.stage < TERMINAL_STAGE

    @property
    def floor(self) -> int:
        """Lowest stage the next reply may be reported as."""
        return self.stage + 1 if self.forced_advance else self.stage

    def advance(self, effective_stage: int) -> "StageState":
        """State the client should report on its next call."""
        if effective_stage == self.stage:
            return StageState(self.stage, self.turns_in_stage + 1)
        return StageState(effective_stage, 0)


def compute_directive(client_stage: Any = None, client_turns_in_stage: Any = None) -> str:
    """Build the stage-control text appended to the model's instructions."""
    state = StageState.from_client(client_stage, client_turns_in_stage)
    ctx = {
        "stage": str(state.stage),
        "stage_name": STAGE_NAMES[state.stage],
        "turns": str(state.turns_in_stage),
        "ceiling": str(STAGE_TURN_CEILING),
        "can_advance": state.stage < TERMINAL_STAGE,
        "next_stage": str(min(state.stage + 1, TERMINAL_STAGE)),
        "next_stage_name": STAGE_NAMES[min(state.stage + 1, TERMINAL_STAGE)],
    }
    if state.forced_advance:
        logger.info(
            "Forcing advance from stage %d to %d after %d turns",
            state.stage, state.stage + 1, state.turns_in_stage,
        )
        return render_prompt(FORCED_ADVANCE_TEMPLATE, ctx)
    return render_prompt(CURRENT_STAGE_TEMPLATE, ctx)


def reconcile_stage(reported_stage: int | None, floor_stage: int) -> int:
    """Apply the forward-only rule to the stage the model declared.

    Missing, out-of-range, and regressing reports all collapse to the floor.
    """
    if reported_stage is None or not FIRST_STAGE <= reported_stage <= TERMINAL_STAGE:
        return floor_stage
    if reported_stage < floor_stage:
        logger.warning(
            "Model declared stage %d below floor %d; keeping %d",
            reported_stage, floor_stage, floor_stage,
        )
        return floor_stage
    return reported_stage
