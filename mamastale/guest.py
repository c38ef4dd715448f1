"""Turn ceiling for unauthenticated participants.

The ceiling is a server constant and is computed from the transcript itself;
nothing the client reports about its own progress is consulted.
"""

import logging
import math
from collections.abc import Sequence

from mamastale.models import ConversationTurn

logger = logging.getLogger(__name__)

GUEST_LIMIT = 3


def guest_budget_exceeded(
    transcript: Sequence[ConversationTurn],
    is_authenticated: bool,
    limit: int = GUEST_LIMIT,
) -> bool:
    """True when a guest has used up their exchanges.

    Two counts must both stay in budget: the user messages, and the
    conversation length in exchanges (ceil(len / 2)). The second catches a
    transcript padded with fabricated assistant turns.
    """
    if is_authenticated:
        return False
    user_messages = sum(1 for turn in transcript if turn.role == "user")
    total_turns = math.ceil(len(transcript) / 2)
    exceeded = user_messages > limit or total_turns > limit + 1
    if exceeded:
        logger.info(
            "Guest budget exceeded: user_messages=%d total_turns=%d limit=%d",
            user_messages, total_turns, limit,
        )
    return exceeded
