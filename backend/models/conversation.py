"""Conversation data models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Tuple


class Role(str, Enum):
    """Author of a stored turn."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """Represents a single role-tagged message in a tenant's history."""
    tenant_id: str
    role: Role
    content: str
    created_at: datetime
    sequence: int  # monotonically increasing per tenant


@dataclass(frozen=True)
class ConversationWindow:
    """Most recent turns for one tenant, oldest first. Built per request, never stored."""
    tenant_id: str
    turns: Tuple[Turn, ...] = ()

    @classmethod
    def from_turns(cls, tenant_id: str, turns: Iterable[Turn]) -> "ConversationWindow":
        ordered = sorted(turns, key=lambda turn: (turn.sequence, turn.created_at))
        return cls(tenant_id=tenant_id, turns=tuple(ordered))

    def __len__(self) -> int:
        return len(self.turns)
