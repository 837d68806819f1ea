"""Conversation store backed by Supabase PostgreSQL with row-level security."""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from postgrest import APIError
from supabase import Client, ClientOptions, create_client

from config import SUPABASE_URL, SUPABASE_KEY, SUPABASE_TIMEOUT
from models.conversation import Role, Turn
from models.errors import PersistenceError
from models.tenant import TenantContext
from services.conversation_store import ConversationStore
from services.deadline import Deadline

logger = logging.getLogger(__name__)


class SupabaseConversationStore(ConversationStore):
    """
    Stores turns in the ``turns`` table (see migrations/001_create_turns.sql).

    Reads and writes go through the ``fetch_recent_turns`` and
    ``append_exchange`` Postgres functions. Both scope the transaction to the
    tenant via ``app.tenant_id``, which the table's row-level policy checks,
    so isolation holds even if a caller passes the wrong filter. Rows coming
    back are checked against the requested tenant once more before use.
    """

    FETCH_FUNCTION = "fetch_recent_turns"
    APPEND_FUNCTION = "append_exchange"

    def __init__(
        self,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        timeout: float = SUPABASE_TIMEOUT,
        table_name: str = "turns"
    ):
        """
        Initialize the store with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key (must not be a role that bypasses RLS)
            timeout: PostgREST request timeout in seconds
            table_name: Name of the turns table, used by the health probe

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.table_name = table_name
        self.timeout = timeout
        # RPCs run here so a caller can stop waiting when its deadline passes
        self._executor = ThreadPoolExecutor(thread_name_prefix="supabase")
        self.client: Client = create_client(
            supabase_url,
            supabase_key,
            options=ClientOptions(postgrest_client_timeout=timeout)
        )
        logger.info(f"SupabaseConversationStore initialized with table: {table_name}")

    def fetch_recent_turns(
        self,
        tenant: TenantContext,
        limit: int,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        self._check_deadline(deadline, "fetch_recent_turns")
        if limit <= 0:
            return []

        try:
            result = self._execute(
                self.client.rpc(
                    self.FETCH_FUNCTION,
                    {"p_tenant_id": tenant.tenant_id, "p_limit": limit}
                ),
                deadline,
                "fetch_recent_turns"
            )
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                f"Error fetching turns: {type(e).__name__}",
                extra={"tenant_id": tenant.tenant_id}
            )
            raise PersistenceError("Conversation store is unavailable") from e

        turns = [self._row_to_turn(row) for row in (result.data or [])]
        self._assert_isolated(tenant, turns)

        turns.sort(key=lambda turn: turn.sequence)
        logger.debug(
            f"Fetched {len(turns)} turns",
            extra={"tenant_id": tenant.tenant_id}
        )
        return turns[-limit:]

    def append_exchange(
        self,
        tenant: TenantContext,
        user_text: str,
        assistant_text: str,
        deadline: Optional[Deadline] = None
    ) -> List[Turn]:
        self._check_deadline(deadline, "append_exchange")

        # One RPC, one transaction: both rows commit together or not at all.
        try:
            result = self._execute(
                self.client.rpc(
                    self.APPEND_FUNCTION,
                    {
                        "p_tenant_id": tenant.tenant_id,
                        "p_user_text": user_text,
                        "p_assistant_text": assistant_text,
                    }
                ),
                deadline,
                "append_exchange"
            )
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                f"Error appending exchange: {type(e).__name__}",
                extra={"tenant_id": tenant.tenant_id}
            )
            raise PersistenceError("Failed to append exchange") from e

        turns = sorted(
            (self._row_to_turn(row) for row in (result.data or [])),
            key=lambda turn: turn.sequence
        )
        if len(turns) != 2:
            raise PersistenceError(f"append_exchange returned {len(turns)} rows, expected 2")
        self._assert_isolated(tenant, turns)

        logger.info(
            f"Appended exchange at sequence {turns[0].sequence}",
            extra={"tenant_id": tenant.tenant_id}
        )
        return turns

    def health_check(self) -> bool:
        try:
            self.client.table(self.table_name).select("sequence").limit(1).execute()
            return True
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"Store health probe failed: {type(e).__name__}", extra={"component": "store"})
            return False

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.client.postgrest.session.close()
        logger.info("SupabaseConversationStore closed")

    def _execute(self, query, deadline: Optional[Deadline], operation: str):
        """
        Run a PostgREST request, waiting no longer than the caller has left.

        The HTTP call itself is bounded by the client timeout; when the
        deadline passes first the result is abandoned. An abandoned append
        may still commit, but it commits both rows or neither.

        Raises:
            PersistenceError: If the deadline passes while the request is in flight
        """
        if deadline is None:
            return query.execute()

        future = self._executor.submit(query.execute)
        try:
            return future.result(timeout=deadline.bound(self.timeout))
        except FutureTimeoutError:
            future.cancel()
            logger.error(
                f"Deadline exceeded during {operation}",
                extra={"stage": operation}
            )
            raise PersistenceError(f"Request deadline exceeded during {operation}") from None

    def _assert_isolated(self, tenant: TenantContext, turns: List[Turn]) -> None:
        foreign = sum(1 for turn in turns if turn.tenant_id != tenant.tenant_id)
        if foreign:
            logger.critical(
                f"Tenant isolation violation: {foreign} foreign row(s) returned",
                extra={"tenant_id": tenant.tenant_id}
            )
            raise PersistenceError("Store returned rows outside the requested tenant")

    def _row_to_turn(self, row: Dict[str, Any]) -> Turn:
        try:
            return Turn(
                tenant_id=row["tenant_id"],
                role=Role(row["role"]),
                content=row["content"],
                created_at=self._parse_timestamp(row["created_at"]),
                sequence=int(row["sequence"])
            )
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError("Malformed turn row returned by store") from e

    def _parse_timestamp(self, timestamp_str: str) -> datetime:
        """
        Parse timestamp string from Supabase, handling various formats.

        Supabase can return timestamps with varying microsecond precision,
        which Python's fromisoformat() can't always handle. This method
        normalizes the timestamp format.

        Args:
            timestamp_str: Timestamp string from Supabase

        Returns:
            datetime object
        """
        timestamp_str = timestamp_str.replace("Z", "+00:00")

        # Format: 2026-02-21T02:08:26.18976+00:00
        if "." in timestamp_str:
            head, fraction = timestamp_str.split(".", 1)
            for sign in ("+", "-"):
                if sign in fraction:
                    digits, tz = fraction.split(sign, 1)
                    digits = digits[:6].ljust(6, "0")
                    timestamp_str = f"{head}.{digits}{sign}{tz}"
                    break
            else:
                timestamp_str = f"{head}.{fraction[:6].ljust(6, '0')}"

        return datetime.fromisoformat(timestamp_str)
