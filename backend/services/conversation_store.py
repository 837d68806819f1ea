"""Conversation store contract and the in-memory backend."""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from models.conversation import Role, Turn
from models.errors import DeadlineExceeded, PersistenceError
from models.tenant import TenantContext
from services.deadline import Deadline

logger = logging.getLogger(__name__)


class ConversationStore(ABC):
    """
    Persistence of conversation turns, scoped per tenant.

    Implementations must enforce tenant isolation in the data-access path
    itself: a fetch for one tenant can never observe another tenant's rows.
    Transient failures are raised as PersistenceError and never retried here.
    """

    @abstractmethod
    def fetch_recent_turns(
        self,
        tenant: TenantContext,
        limit: int,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        """
        Return up to ``limit`` most recent turns for ``tenant``, oldest first.

        Raises:
            PersistenceError: If the store cannot be read
        """

    @abstractmethod
    def append_exchange(
        self,
        tenant: TenantContext,
        user_text: str,
        assistant_text: str,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        """
        Atomically record a user turn followed by an assistant turn.

        Returns:
            The two stored turns in order

        Raises:
            PersistenceError: If nothing was recorded
        """

    @abstractmethod
    def health_check(self) -> bool:
        """Run a read-only probe."""

    def close(self) -> None:
        """Release held resources."""

    @staticmethod
    def _check_deadline(deadline: Optional[Deadline], operation: str) -> None:
        if deadline is None:
            return
        try:
            deadline.check(operation)
        except DeadlineExceeded as e:
            raise PersistenceError(str(e)) from e


class InMemoryConversationStore(ConversationStore):
    """
    Process-local store for development and tests.

    Turns live in one partition per tenant; reads index the partition by the
    caller's tenant id, so there is no query path that spans tenants.
    Appends stage both turns and publish them under a single lock.
    """

    def __init__(self):
        self._partitions: Dict[str, List[Turn]] = {}
        self._lock = threading.Lock()
        logger.info("InMemoryConversationStore initialized")

    def fetch_recent_turns(
        self,
        tenant: TenantContext,
        limit: int,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        self._check_deadline(deadline, "fetch_recent_turns")
        if limit <= 0:
            return []

        with self._lock:
            partition = list(self._partitions.get(tenant.tenant_id, ()))

        recent = partition[-limit:]
        logger.debug(
            f"Fetched {len(recent)} turns",
            extra={"tenant_id": tenant.tenant_id}
        )
        return recent

    def append_exchange(
        self,
        tenant: TenantContext,
        user_text: str,
        assistant_text: str,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        self._check_deadline(deadline, "append_exchange")

        with self._lock:
            partition = self._partitions.get(tenant.tenant_id, [])
            next_sequence = partition[-1].sequence + 1 if partition else 1
            staged: List[Turn] = []
            try:
                for offset, (role, content) in enumerate(
                    ((Role.USER, user_text), (Role.ASSISTANT, assistant_text))
                ):
                    staged.append(self._build_turn(tenant, role, content, next_sequence + offset))
            except Exception as e:
                logger.error(
                    f"Append aborted after staging {len(staged)} of 2 turns: {e}",
                    extra={"tenant_id": tenant.tenant_id}
                )
                raise PersistenceError("Failed to append exchange") from e

            # publish
            self._partitions[tenant.tenant_id] = partition + staged

        logger.info(
            f"Appended exchange at sequence {staged[0].sequence}",
            extra={"tenant_id": tenant.tenant_id}
        )
        return staged

    def health_check(self) -> bool:
        return True

    def _build_turn(self, tenant: TenantContext, role: Role, content: str, sequence: int) -> Turn:
        return Turn(
            tenant_id=tenant.tenant_id,
            role=role,
            content=content,
            created_at=datetime.now(timezone.utc),
            sequence=sequence
        )
