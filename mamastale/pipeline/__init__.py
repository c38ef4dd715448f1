"""Stage-controlled chat pipeline.

Executes one participant turn:
  1. Clamp the client-reported stage and turn count (StageState.from_client).
  2. Build the stage directive — forced advance once a stage has used its
     10 turns, otherwise "stay at or above the current stage".
  3. Call the model with the protocol prompt + directive.
  4. Detect the [PHASE:N] marker in the reply and strip every marker.
  5. Reconcile the declared stage against the forward-only floor.
  6. If the reply is terminal-stage output with a completion marker, parse
     the combined stage-4 text into scenes.

Stages:
  1 Empathic Intake        — listen and reflect, no judgement
  2 Socratic Reframe       — question the evidence, look for exceptions
  3 Metaphor Construction  — turn the pain into fairy-tale characters
  4 Narrative Synthesis    — write ten scenes [INTRO 1] ... [WISDOM 2]

Result format: ChatResult(content, stage, turns_in_stage, is_story_complete, scenes)
  Scenes: Scene(scene_number, title, text, image_prompt?)
"""

from .core import run_chat_turn  # noqa: F401
from .scenes import (  # noqa: F401
    STRATEGIES,
    clean_scene_text,
    combine_stage4_text,
    parse_numbered_list,
    parse_scene_ordinals,
    parse_section_tags,
    parse_story_scenes,
)
from .stages import (  # noqa: F401
    STAGE_TURN_CEILING,
    StageState,
    clamp_stage,
    clamp_turns,
    compute_directive,
    reconcile_stage,
)
from .tags import (  # noqa: F401
    TERMINAL_STAGE,
    detect_stage,
    is_story_complete,
    strip_stage_tags,
)
