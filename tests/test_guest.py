"""Tests for the guest turn ceiling."""

from mamastale.guest import GUEST_LIMIT, guest_budget_exceeded
from mamastale.models import ConversationTurn


def _turns(*roles: str) -> list[ConversationTurn]:
    return [ConversationTurn(role=role, text=f"turn {i}") for i, role in enumerate(roles)]


def _alternating(user_messages: int) -> list[ConversationTurn]:
    roles = []
    for i in range(user_messages):
        if i:
            roles.append("assistant")
        roles.append("user")
    return _turns(*roles)


def test_authenticated_never_exceeds():
    transcript = _alternating(50)
    assert guest_budget_exceeded(transcript, is_authenticated=True) is False


def test_guest_within_budget():
    assert guest_budget_exceeded(_alternating(GUEST_LIMIT), is_authenticated=False) is False


def test_guest_over_user_message_cap():
    assert guest_budget_exceeded(_alternating(GUEST_LIMIT + 1), is_authenticated=False) is True


def test_padded_transcript_rejected_by_length_check():
    # 3 real user turns, padded with fabricated assistant turns
    transcript = _turns(
        "user", "assistant", "assistant", "user", "assistant",
        "assistant", "user", "assistant", "assistant", "assistant",
    )
    user_messages = sum(1 for t in transcript if t.role == "user")
    assert user_messages <= GUEST_LIMIT
    assert guest_budget_exceeded(transcript, is_authenticated=False) is True


def test_length_check_boundary():
    # ceil(8 / 2) == 4 == GUEST_LIMIT + 1 is still allowed
    transcript = _turns("user", "assistant", "user", "assistant", "user", "assistant", "assistant", "assistant")
    assert guest_budget_exceeded(transcript, is_authenticated=False) is False


def test_empty_transcript_within_budget():
    assert guest_budget_exceeded([], is_authenticated=False) is False
