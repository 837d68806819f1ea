"""Bounded prompt assembly from a conversation window."""
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, Tuple

import tiktoken

from models.completion import PromptMessage
from models.conversation import ConversationWindow


TokenCounter = Callable[[str], int]


@lru_cache(maxsize=1)
def _encoder():
    return tiktoken.get_encoding("o200k_base")


def count_tokens(text: str) -> int:
    """Count tokens with tiktoken's o200k_base encoding."""
    return len(_encoder().encode(text))


@dataclass(frozen=True)
class AssembledPrompt:
    """
    Result of prompt assembly.

    Attributes:
        messages: System message (if any), kept history oldest first, new message last
        included_turns: Number of history turns kept
        dropped_turns: Number of oldest history turns dropped to meet the budget
        token_count: Tokens used by all messages
        over_budget: True only when the system prompt and new message alone exceed the budget
    """
    messages: Tuple[PromptMessage, ...]
    included_turns: int
    dropped_turns: int
    token_count: int
    over_budget: bool = False


def build_prompt(
    window: ConversationWindow,
    new_message: str,
    token_budget: int,
    system_prompt: Optional[str] = None,
    count: TokenCounter = count_tokens
) -> AssembledPrompt:
    """
    Assemble the prompt for one request.

    History is ordered oldest first and the new user message goes last.
    While the total exceeds ``token_budget``, the oldest history turn is
    dropped. The system prompt and the new message are never dropped.
    The result depends only on the arguments.

    Args:
        window: Recent turns of the tenant
        new_message: The user's new message
        token_budget: Maximum tokens for the whole prompt
        system_prompt: Optional leading instruction
        count: Token counter

    Returns:
        AssembledPrompt
    """
    history = sorted(window.turns, key=lambda turn: (turn.sequence, turn.created_at))
    history_costs = [count(turn.content) for turn in history]

    fixed_cost = count(new_message) + (count(system_prompt) if system_prompt else 0)
    total = fixed_cost + sum(history_costs)

    start = 0
    while start < len(history) and total > token_budget:
        total -= history_costs[start]
        start += 1

    messages = []
    if system_prompt:
        messages.append(PromptMessage(role="system", content=system_prompt))
    messages.extend(
        PromptMessage(role=turn.role.value, content=turn.content)
        for turn in history[start:]
    )
    messages.append(PromptMessage(role="user", content=new_message))

    return AssembledPrompt(
        messages=tuple(messages),
        included_turns=len(history) - start,
        dropped_turns=start,
        token_count=total,
        over_budget=total > token_budget
    )
