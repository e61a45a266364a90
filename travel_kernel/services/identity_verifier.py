"""
IdentityVerifier -- who is calling, and may they act on this approval?

Responsibility:
    Resolves an approval by internal id or business key, and verifies a
    ``CallerProof`` against the approver fixed on that approval.  Also
    provides the role-membership check used by role-resolved chains.

Architecture position:
    Kernel > Services.  Called by ApprovalService and BailoutService.

Invariants enforced:
    - Session path: the caller's user id must equal ``approval.approver_id``.
    - Phone path: the normalized phone must equal the approver's normalized
      on-record phone.  No session check happens on this path; the phone
      proof alone is sufficient and necessary.
    - Each proof variant has exactly one strategy; there is no fallback
      from one to the other.

Failure modes:
    - MissingIdentifierError: neither id nor business key supplied.
    - ApprovalNotFoundError: identifier resolves to nothing.
    - ApproverMismatchError / PhoneNotOnRecordError / PhoneMismatchError /
      RoleNotPermittedError: all Forbidden.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from travel_kernel.domain.identity import (
    ApprovalRef,
    CallerProof,
    PhoneProof,
    ResolvedApprover,
    RoleProof,
    SessionProof,
    normalize_phone,
)
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    ApprovalNotFoundError,
    ApproverMismatchError,
    MissingIdentifierError,
    PhoneMismatchError,
    PhoneNotOnRecordError,
    RoleNotPermittedError,
)
from travel_kernel.logging_config import get_logger
from travel_kernel.models.approval import Approval

logger = get_logger("services.identity_verifier")


def _verify_session(approval: Approval, proof: SessionProof) -> ResolvedApprover:
    if proof.user_id != approval.approver_id:
        logger.warning(
            "approver_mismatch",
            extra={
                "approval_id": str(approval.id),
                "caller_id": str(proof.user_id),
            },
        )
        raise ApproverMismatchError(str(approval.id), str(proof.user_id))
    return ResolvedApprover(user_id=approval.approver_id, channel=proof.channel)


def _verify_phone(approval: Approval, proof: PhoneProof) -> ResolvedApprover:
    on_record = normalize_phone(approval.approver.phone_number)
    if not on_record:
        logger.warning(
            "phone_not_on_record",
            extra={"approval_id": str(approval.id)},
        )
        raise PhoneNotOnRecordError(str(approval.id))
    if proof.normalized != on_record:
        # Never log either number
        logger.warning("phone_mismatch", extra={"approval_id": str(approval.id)})
        raise PhoneMismatchError(str(approval.id))
    return ResolvedApprover(user_id=approval.approver_id, channel=proof.channel)


_STRATEGIES: dict[type, Callable[[Approval, CallerProof], ResolvedApprover]] = {
    SessionProof: _verify_session,
    PhoneProof: _verify_phone,
}


class FixedApproverCheck:
    """AuthorizationCheck keyed by the approver stored on the approval."""

    def authorize(self, subject: Approval, proof: CallerProof) -> ResolvedApprover:
        strategy = _STRATEGIES.get(type(proof))
        if strategy is None:
            raise TypeError(f"Unsupported caller proof: {type(proof).__name__}")
        return strategy(subject, proof)


class RoleMembershipCheck:
    """AuthorizationCheck keyed by the caller's current role."""

    def __init__(self, allowed_roles: frozenset[Role], action: str):
        self._allowed_roles = allowed_roles
        self._action = action

    def authorize(self, subject, proof: RoleProof) -> ResolvedApprover:
        if proof.role not in self._allowed_roles:
            logger.warning(
                "role_not_permitted",
                extra={
                    "role": proof.role.value,
                    "action": self._action,
                    "actor_id": str(proof.user_id),
                },
            )
            raise RoleNotPermittedError(
                proof.role.value,
                self._action,
                tuple(sorted(r.value for r in self._allowed_roles)),
            )
        return ResolvedApprover(user_id=proof.user_id, channel="role")


class IdentityVerifier:
    """Resolves approval references and verifies caller proofs."""

    def __init__(self, session: Session):
        self._session = session
        self._approver_check = FixedApproverCheck()

    def resolve(self, ref: ApprovalRef) -> Approval:
        """Load an approval by id or business key.

        Raises:
            MissingIdentifierError: if ``ref`` carries neither.
            ApprovalNotFoundError: if no row matches.
        """
        if ref.is_empty:
            raise MissingIdentifierError()

        if ref.approval_id is not None:
            stmt = select(Approval).where(Approval.id == ref.approval_id)
        else:
            stmt = select(Approval).where(Approval.approval_number == ref.approval_number)

        approval = self._session.execute(stmt).unique().scalar_one_or_none()
        if approval is None:
            raise ApprovalNotFoundError(str(ref))
        return approval

    def verify(self, approval: Approval, proof: CallerProof) -> ResolvedApprover:
        """Verify ``proof`` against the approver fixed on ``approval``."""
        resolved = self._approver_check.authorize(approval, proof)
        logger.debug(
            "caller_verified",
            extra={
                "approval_id": str(approval.id),
                "channel": resolved.channel,
            },
        )
        return resolved

    def resolve_and_verify(
        self, ref: ApprovalRef, proof: CallerProof,
    ) -> tuple[Approval, ResolvedApprover]:
        approval = self.resolve(ref)
        return approval, self.verify(approval, proof)
