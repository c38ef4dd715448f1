"""Stage-4 story parsing into up to ten ordered scenes.

Parsing strategies are plain functions text -> list[Scene], tried in order;
the first one that returns anything wins:

  1. Section tags from the system prompt: [INTRO 1] ... [WISDOM 2].
  2. Scene ordinals: [Scene 3], **Scene 3**, Scene 3:, [장면 3], 장면 3: ...
  3. A bare numbered list: "3." or "3)" at the start of a line.

Every strategy shares the same block rules: a block runs from just after its
marker to just before the next marker (or end of text), ordinals outside 1-10
are dropped, the first occurrence of an ordinal wins, empty blocks are
dropped, and the final block is discarded when the text was visibly cut off
mid-scene. An [Image Prompt: ...] line inside a block becomes image_prompt.
"""

import logging
import re
from collections.abc import Callable, Iterable

from mamastale.models import ConversationTurn, Scene

from .tags import TERMINAL_STAGE, strip_stage_tags

logger = logging.getLogger(__name__)

MAX_SCENES = 10

SECTION_TO_SCENE: dict[str, int] = {
    "INTRO 1": 1,
    "INTRO 2": 2,
    "CONFLICT 1": 3,
    "CONFLICT 2": 4,
    "ATTEMPT 1": 5,
    "ATTEMPT 2": 6,
    "RESOLUTION 1": 7,
    "RESOLUTION 2": 8,
    "WISDOM 1": 9,
    "WISDOM 2": 10,
}

SCENE_TITLES: dict[int, str] = {
    1: "도입 1",
    2: "도입 2",
    3: "갈등 1",
    4: "갈등 2",
    5: "시도 1",
    6: "시도 2",
    7: "해결 1",
    8: "해결 2",
    9: "교훈 1",
    10: "교훈 2",
}

_SECTION_TAG = re.compile(r"\[\s*(INTRO|CONFLICT|ATTEMPT|RESOLUTION|WISDOM)\s*(\d{1,2})\s*\]", re.IGNORECASE)
_SCENE_TAG = re.compile(
    r"\[\s*(?:scene|장면)\s*(\d{1,2})\s*\]"
    r"|^[ \t]*(?:#{1,6}[ \t]*)?\*{0,2}(?:scene|장면)[ \t]*(\d{1,2})[ \t]*[:.]?[ \t]*\*{0,2}[ \t]*[:.]?",
    re.IGNORECASE | re.MULTILINE,
)
_NUMBERED_ITEM = re.compile(r"^[ \t]*(\d{1,2})[ \t]*[.)](?!\d)[ \t]*", re.MULTILINE)

_GLOSS_LINE = re.compile(r"\A[—–-]{1,3}[^\n]*(?:\n|\Z)")
_GLOSS_MAX_CHARS = 60
_IMAGE_PROMPT = re.compile(r"\[\s*image prompt\s*:\s*([^\]]*)\]", re.IGNORECASE)
_OPEN_IMAGE_PROMPT = re.compile(r"\[\s*image prompt\s*:[^\]]*\Z", re.IGNORECASE)
_CUT_OFF_ENDING = re.compile(r"[\w,(\[{—–-]\Z")
_SENTENCE_END = re.compile(r"[.!?…。！？~\"'”’」』)\]}>\u2600-\u27BF\uFE0F\U0001F300-\U0001FAFF]\Z")
_KOREAN_FINAL = re.compile(r"[다요어야지죠네까]\Z")
_CLOSING_LINE_MAX = 12

# ── Text sanitation ──────────────────────────────────────

_ENTITIES: list[tuple[str, str]] = [
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&#039;", "'"),
    ("&#x27;", "'"),
    ("&amp;", "&"),
]

_MARKDOWN_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"^[ \t]*([-*_])(?:[ \t]*\1){2,}[ \t]*$", re.MULTILINE), ""),  # horizontal rule
    (re.compile(r"^[ \t]*```[^\n]*$", re.MULTILINE), ""),  # code fence
    (re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*"), r"\1"),
    (re.compile(r"(?<!\w)__(?=\S)(.+?)(?<=\S)__(?!\w)"), r"\1"),
    (re.compile(r"(?<![*\w])\*(?=[^\s*])([^*\n]*?)(?<=[^\s*])\*(?![*\w])"), r"\1"),
    (re.compile(r"(?<![_\w])_(?=[^\s_])([^_\n]*?)(?<=[^\s_])_(?![_\w])"), r"\1"),
    (re.compile(r"~~(?=\S)(.+?)(?<=\S)~~"), r"\1"),
    (re.compile(r"^[ \t]*#{1,6}[ \t]+", re.MULTILINE), ""),
    (re.compile(r"`([^`\n]+)`"), r"\1"),
    (re.compile(r"\n(?:[ \t]*\n){2,}"), "\n\n"),
]


def _clean_once(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    for pattern, repl in _MARKDOWN_RULES:
        text = pattern.sub(repl, text)
    return text.strip()


def clean_scene_text(text: str) -> str:
    """Remove markdown noise and decode basic HTML entities from scene prose.

    Applied until the text stops changing, so cleaning is idempotent.
    """
    previous = None
    cleaned = text
    while cleaned != previous:
        previous = cleaned
        cleaned = _clean_once(cleaned)
    return cleaned


# ── Block handling ───────────────────────────────────────


def _looks_cut_off(block: str) -> bool:
    """True when a trailing block ends mid-sentence or mid-sidecar.

    Only the last line is judged. It counts as finished when it ends in
    sentence punctuation, a closing quote or bracket, an emoji or a Korean
    sentence-final syllable, or when it is a short closing line ("The End",
    "끝") set off by a blank line.
    """
    tail = block.rstrip()
    if not tail:
        return False
    if _OPEN_IMAGE_PROMPT.search(tail):
        return True
    head, _, last_line = tail.rpartition("\n")
    last_line = last_line.strip()
    if _SENTENCE_END.search(last_line) or _KOREAN_FINAL.search(last_line):
        return False
    if head.rstrip(" \t").endswith("\n") and len(last_line) <= _CLOSING_LINE_MAX:
        return False
    return bool(_CUT_OFF_ENDING.search(last_line))


def _build_scene(number: int, block: str, strip_gloss: bool = False) -> Scene | None:
    block = block.strip()
    if strip_gloss:
        gloss = _GLOSS_LINE.match(block)
        if gloss and len(gloss.group(0).strip()) <= _GLOSS_MAX_CHARS:
            block = block[gloss.end():].strip()

    image_prompt: str | None = None
    img = _IMAGE_PROMPT.search(block)
    if img:
        image_prompt = img.group(1).strip() or None
        block = (block[:img.start()] + block[img.end():]).strip()

    text = clean_scene_text(block)
    if not text:
        return None
    return Scene(
        scene_number=number,
        title=SCENE_TITLES.get(number, f"장면 {number}"),
        text=text,
        image_prompt=image_prompt,
    )


def _collect(
    text: str,
    matches: list[re.Match],
    ordinal: Callable[[re.Match], int | None],
    strip_gloss: bool = False,
    drop_truncated: bool = True,
) -> list[Scene]:
    scenes: list[Scene] = []
    seen: set[int] = set()
    for i, match in enumerate(matches):
        number = ordinal(match)
        if number is None or not 1 <= number <= MAX_SCENES or number in seen:
            continue
        is_last = i == len(matches) - 1
        end = len(text) if is_last else matches[i + 1].start()
        block = text[match.end():end]
        if is_last and drop_truncated and _looks_cut_off(block):
            logger.debug("Dropping truncated trailing scene %d", number)
            continue
        scene = _build_scene(number, block, strip_gloss=strip_gloss)
        if scene is None:
            continue
        scenes.append(scene)
        seen.add(number)
    return scenes


# ── Strategies ───────────────────────────────────────────


def _section_ordinal(match: re.Match) -> int | None:
    return SECTION_TO_SCENE.get(f"{match.group(1).upper()} {int(match.group(2))}")


def parse_section_tags(text: str) -> list[Scene]:
    """Strategy 1: [INTRO 1] ... [WISDOM 2] tags with optional dash glosses."""
    return _collect(text, list(_SECTION_TAG.finditer(text)), _section_ordinal, strip_gloss=True)


def parse_scene_ordinals(text: str) -> list[Scene]:
    """Strategy 2: "Scene N" / "장면 N" markers, bracketed, bold or bare."""
    def ordinal(match: re.Match) -> int | None:
        return int(match.group(1) or match.group(2))
    return _collect(text, list(_SCENE_TAG.finditer(text)), ordinal)


def parse_numbered_list(text: str) -> list[Scene]:
    """Strategy 3: a plain "1." / "1)" numbered list.

    List items are one-liners that often lack closing punctuation, so the
    last item is never treated as truncated.
    """
    return _collect(
        text, list(_NUMBERED_ITEM.finditer(text)), lambda m: int(m.group(1)), drop_truncated=False,
    )


STRATEGIES: list[Callable[[str], list[Scene]]] = [
    parse_section_tags,
    parse_scene_ordinals,
    parse_numbered_list,
]


def parse_story_scenes(text: str | None) -> list[Scene]:
    """Extract the ordered scene list from combined stage-4 text.

    Returns an empty list when no strategy finds anything; callers treat
    that as "story not ready yet".
    """
    if not text or not text.strip():
        return []
    for strategy in STRATEGIES:
        scenes = strategy(text)
        if scenes:
            logger.debug("%s extracted %d scenes", strategy.__name__, len(scenes))
            return sorted(scenes, key=lambda s: s.scene_number)
    logger.debug("No scene markers found in %d chars of stage-4 text", len(text))
    return []


def combine_stage4_text(transcript: Iterable[ConversationTurn], latest_reply: str = "") -> str:
    """Join the terminal-stage assistant replies, oldest first, plus the latest one.

    Transcripts whose turns carry no stage tags at all fall back to every
    assistant reply.
    """
    turns = list(transcript)
    tagged = any(t.stage is not None for t in turns)
    parts = [
        strip_stage_tags(t.text)
        for t in turns
        if t.role == "assistant" and (not tagged or t.stage == TERMINAL_STAGE)
    ]
    if latest_reply:
        parts.append(latest_reply)
    return "\n\n".join(p for p in parts if p)
