"""Stage marker parsing: [PHASE:N] tags embedded in model output."""

import re

# Detection patterns, tried in order. Each yields the stage digit in group 1.
_DETECT_PATTERNS: list[re.Pattern] = [
    re.compile(r"\[\s*phase\s*[:：]\s*(\d)\s*\]", re.IGNORECASE),  # [PHASE:2], [phase: 2]
    re.compile(r"\[\s*phase\s+(\d)\s*\]", re.IGNORECASE),          # [PHASE 2]
    re.compile(r"\[\s*phase(\d)\s*\]", re.IGNORECASE),             # [PHASE2]
]

# Removal patterns, applied in order. The last one catches leftovers such as
# [PHASE], [PHASE:x] or an unclosed "[PHASE:" at end of line.
_STRIP_PATTERNS: list[re.Pattern] = [
    re.compile(r"\[\s*phase\s*[:：]?\s*\d\s*\][ \t]*", re.IGNORECASE),
    re.compile(r"^[ \t]*phase[ \t]*[:：]?[ \t]*\d[ \t]*(?:\n|\Z)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\[\s*phase(?![a-z])[^\]\n]*(?:\]|$)[ \t]*", re.IGNORECASE | re.MULTILINE),
]

_BLANK_RUNS = re.compile(r"\n{3,}")

TERMINAL_STAGE = 4

COMPLETION_MARKERS: tuple[str, ...] = (
    "WISDOM 1",
    "WISDOM 2",
    "Scene 9",
    "Scene 10",
    "장면 9",
    "장면 10",
)


def detect_stage(text: str | None) -> int | None:
    """Return the stage digit of the first marker in text, or None.

    Digits outside 1-4 are returned as-is; range checks belong to the caller.
    """
    if not text:
        return None
    earliest: re.Match | None = None
    for pattern in _DETECT_PATTERNS:
        match = pattern.search(text)
        if match and (earliest is None or match.start() < earliest.start()):
            earliest = match
    return int(earliest.group(1)) if earliest else None


def _strip_once(text: str) -> str:
    for pattern in _STRIP_PATTERNS:
        text = pattern.sub("", text)
    return _BLANK_RUNS.sub("\n\n", text).strip()


def strip_stage_tags(text: str | None) -> str:
    """Remove every stage marker so none leaks into participant-visible text.

    Repeats until nothing changes, so strip_stage_tags is idempotent even when
    removing one marker splices another together.
    """
    if not text:
        return ""
    previous = None
    cleaned = text
    while cleaned != previous:
        previous = cleaned
        cleaned = _strip_once(cleaned)
    return cleaned


def is_story_complete(text: str, stage: int | None, client_stage: int | None = None) -> bool:
    """True when the reply is terminal-stage output carrying a completion marker.

    The model sometimes omits the marker on its last, longest reply, so a
    missing stage falls back to the stage the client claims.
    """
    effective = stage if stage is not None else client_stage
    if effective != TERMINAL_STAGE or not text:
        return False
    return any(marker in text for marker in COMPLETION_MARKERS)
