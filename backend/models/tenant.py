"""Tenant context value object."""
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Union

from config import TENANT_ID_PATTERN
from models.errors import InvalidTenant

_DEFAULT_PATTERN = re.compile(TENANT_ID_PATTERN)


@dataclass(frozen=True)
class TenantContext:
    """
    Identifier of the tenant a request belongs to.

    Every store and model call takes one explicitly; there is no
    process-wide "current tenant".
    """
    tenant_id: str

    def __post_init__(self):
        _validate(self.tenant_id, _DEFAULT_PATTERN)

    @classmethod
    def parse(
        cls,
        raw: Optional[str],
        pattern: Optional[Union[str, Pattern[str]]] = None
    ) -> "TenantContext":
        """
        Build a context from untrusted input such as a header or env value.

        Args:
            raw: Candidate tenant identifier (surrounding whitespace is ignored)
            pattern: Optional extra format check; the configured pattern still
                applies, so this can only narrow what is accepted

        Raises:
            InvalidTenant: If the identifier is empty or fails the format check
        """
        candidate = (raw or "").strip()
        if pattern is not None:
            compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
            _validate(candidate, compiled)
        return cls(candidate)

    def __str__(self) -> str:
        return self.tenant_id


def _validate(tenant_id: str, pattern: Pattern[str]) -> None:
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise InvalidTenant("Tenant identifier must be a non-empty string")
    if not pattern.fullmatch(tenant_id):
        raise InvalidTenant(f"Tenant identifier {tenant_id[:64]!r} has an invalid format")
