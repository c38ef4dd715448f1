"""Tests for stage clamping, directives and forward-only reconciliation."""

import random

import pytest

from mamastale.pipeline import (
    STAGE_TURN_CEILING,
    StageState,
    clamp_stage,
    clamp_turns,
    compute_directive,
    reconcile_stage,
)


# ── clamping ───────────────────────────────────────────────


@pytest.mark.parametrize("value,expected", [
    (1, 1), (4, 4), ("3", 3), (2.0, 2),
    (None, 1), (0, 1), (5, 1), (-2, 1), ("abc", 1), (True, 1), ([2], 1), (2.5, 1),
])
def test_clamp_stage(value, expected):
    assert clamp_stage(value) == expected


@pytest.mark.parametrize("value,expected", [
    (0, 0), (9, 9), ("10", 10), (None, 0), (-1, 0), ("-4", 0), ("x", 0), (False, 0),
])
def test_clamp_turns(value, expected):
    assert clamp_turns(value) == expected


def test_state_from_garbage_degrades_to_start():
    state = StageState.from_client({"stage": 3}, "lots")
    assert state == StageState(1, 0)


# ── StageState ─────────────────────────────────────────────


def test_forced_advance_at_ceiling():
    assert StageState(2, STAGE_TURN_CEILING).forced_advance is True
    assert StageState(2, STAGE_TURN_CEILING).floor == 3


def test_no_forced_advance_below_ceiling():
    assert StageState(2, 9).forced_advance is False
    assert StageState(2, 9).floor == 2


def test_terminal_stage_never_forced():
    assert StageState(4, 25).forced_advance is False
    assert StageState(4, 25).floor == 4


def test_advance_same_stage_counts_turn():
    assert StageState(2, 9).advance(2) == StageState(2, 10)


def test_advance_new_stage_resets_turns():
    assert StageState(2, 10).advance(3) == StageState(3, 0)


# ── compute_directive ──────────────────────────────────────


def test_directive_forces_next_stage():
    directive = compute_directive(2, 10)
    assert "MUST move to Stage 3" in directive
    assert "[PHASE:3]" in directive


def test_directive_terminal_stage_no_force():
    directive = compute_directive(4, 10)
    assert "MUST move" not in directive
    assert "Current stage: 4" in directive
    assert "[PHASE:5]" not in directive


def test_directive_regular_forbids_lower_stage():
    directive = compute_directive(3, 4)
    assert "Current stage: 3" in directive
    assert "4 of 10" in directive
    assert "Never output a stage marker lower than [PHASE:3]" in directive


def test_directive_clamps_bad_input():
    directive = compute_directive("nonsense", -3)
    assert "Current stage: 1" in directive
    assert "0 of 10" in directive


def test_directive_keeps_forcing_past_ceiling():
    assert "MUST move to Stage 2" in compute_directive(1, 17)


# ── reconcile_stage ────────────────────────────────────────


def test_reconcile_accepts_forward_report():
    assert reconcile_stage(3, 2) == 3


def test_reconcile_accepts_same_stage():
    assert reconcile_stage(2, 2) == 2


def test_reconcile_blocks_regression():
    assert reconcile_stage(1, 3) == 3


def test_reconcile_missing_report_keeps_floor():
    assert reconcile_stage(None, 2) == 2


def test_reconcile_out_of_range_report_keeps_floor():
    assert reconcile_stage(7, 2) == 2
    assert reconcile_stage(0, 2) == 2


def test_reconcile_sequence_is_monotonic():
    rng = random.Random(7)
    floor = 1
    observed = []
    for _ in range(200):
        reported = rng.choice([None, 0, 1, 2, 3, 4, 5, 9])
        floor = reconcile_stage(reported, floor)
        observed.append(floor)
    assert observed == sorted(observed)
