"""
Caller identity types (``travel_kernel.domain.identity``).

Responsibility
--------------
Value types describing *who is calling* and *which approval they mean*:

* ``CallerProof`` -- tagged union ``SessionProof | PhoneProof``.  Each
  variant is dispatched to its own verification strategy; the two are
  equally valid but distinct proofs for the same approver account.
* ``RoleProof`` -- actor id plus current role, used by role-resolved
  chains (bailouts) where the role, not the identity, gates the action.
* ``ApprovalRef`` -- internal id or human-readable business key.
* ``AuthorizationCheck`` -- the common interface behind which the
  fixed-approver and role-membership strategies sit.

Architecture position
---------------------
**Kernel domain layer** -- pure, ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union
from uuid import UUID

from travel_kernel.domain.roles import Role

# Separators people type inside phone numbers
_PHONE_SEPARATORS = str.maketrans("", "", " \t\r\n-.()")


def normalize_phone(number: str | None) -> str:
    """Strip whitespace, common separators and a leading ``+``.

    ``"+62 811-2222"`` and ``"6281122 22"`` both normalize to ``"628112222"``.
    """
    if not number:
        return ""
    cleaned = number.translate(_PHONE_SEPARATORS)
    return cleaned.lstrip("+")


@dataclass(frozen=True)
class SessionProof:
    """Caller authenticated by an interactive session."""

    user_id: UUID

    @property
    def channel(self) -> str:
        return "session"


@dataclass(frozen=True)
class PhoneProof:
    """External caller proving ownership of the approver's phone number."""

    phone_number: str

    @property
    def channel(self) -> str:
        return "phone"

    @property
    def normalized(self) -> str:
        return normalize_phone(self.phone_number)


CallerProof = Union[SessionProof, PhoneProof]


@dataclass(frozen=True)
class RoleProof:
    """Actor acting by virtue of their current role."""

    user_id: UUID
    role: Role


@dataclass(frozen=True)
class ApprovalRef:
    """Reference to an approval by internal id or by business key."""

    approval_id: UUID | None = None
    approval_number: str | None = None

    @classmethod
    def by_id(cls, approval_id: UUID) -> ApprovalRef:
        return cls(approval_id=approval_id)

    @classmethod
    def by_number(cls, approval_number: str) -> ApprovalRef:
        return cls(approval_number=approval_number)

    @property
    def is_empty(self) -> bool:
        return self.approval_id is None and not self.approval_number

    def __str__(self) -> str:
        if self.approval_id is not None:
            return str(self.approval_id)
        return self.approval_number or "<empty>"


@dataclass(frozen=True)
class ResolvedApprover:
    """Outcome of a successful verification."""

    user_id: UUID
    channel: str
    admin_override: bool = False


class AuthorizationCheck(Protocol):
    """Decides whether a proof may act on a subject; raises ForbiddenError."""

    def authorize(self, subject, proof) -> ResolvedApprover: ...
