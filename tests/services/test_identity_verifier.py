"""
Tests for IdentityVerifier and the two authorization strategies.

The fixed-approver check (session or phone proof) and the role-membership
check sit behind one ``authorize(subject, proof)`` interface.
"""

import pytest

from travel_kernel.domain.identity import (
    ApprovalRef,
    PhoneProof,
    ResolvedApprover,
    RoleProof,
    SessionProof,
)
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    ApproverMismatchError,
    ForbiddenError,
    RoleNotPermittedError,
)
from travel_kernel.services.identity_verifier import (
    FixedApproverCheck,
    IdentityVerifier,
    RoleMembershipCheck,
)


@pytest.fixture
def verifier(session):
    return IdentityVerifier(session)


class TestFixedApproverCheck:
    def test_session_match(self, verifier, submitted_request, org):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[1].approval_id))
        resolved = FixedApproverCheck().authorize(approval, SessionProof(org.manager))
        assert resolved == ResolvedApprover(user_id=org.manager, channel="session")

    def test_session_mismatch(self, verifier, submitted_request, org):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[1].approval_id))
        with pytest.raises(ApproverMismatchError):
            FixedApproverCheck().authorize(approval, SessionProof(org.supervisor))

    @pytest.mark.parametrize("number", ["+62 812-3333", "62812 3333", "(62) 812.3333"])
    def test_phone_variants(self, verifier, submitted_request, org, number):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[1].approval_id))
        resolved = verifier.verify(approval, PhoneProof(number))
        assert resolved.user_id == org.manager
        assert resolved.channel == "phone"

    def test_phone_of_another_approver(self, verifier, submitted_request):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[1].approval_id))
        with pytest.raises(ForbiddenError):
            verifier.verify(approval, PhoneProof("+62 811-2222"))

    def test_mismatch_never_logs_numbers(self, verifier, submitted_request, captured_logs):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[1].approval_id))
        with pytest.raises(ForbiddenError):
            verifier.verify(approval, PhoneProof("+62 899-0000"))
        assert all("8990000" not in str(r) and "899-0000" not in str(r) for r in captured_logs())

    def test_unsupported_proof(self, verifier, submitted_request, org):
        approval = verifier.resolve(ApprovalRef.by_id(submitted_request.approvals[0].approval_id))
        with pytest.raises(TypeError):
            FixedApproverCheck().authorize(approval, RoleProof(org.admin, Role.ADMIN))


class TestRoleMembershipCheck:
    def test_member(self, org):
        check = RoleMembershipCheck(frozenset({Role.FINANCE}), "disburse")
        resolved = check.authorize(None, RoleProof(org.finance, Role.FINANCE))
        assert resolved.user_id == org.finance
        assert resolved.channel == "role"

    def test_non_member(self, org):
        check = RoleMembershipCheck(frozenset({Role.FINANCE}), "disburse")
        with pytest.raises(RoleNotPermittedError) as exc_info:
            check.authorize(None, RoleProof(org.chief, Role.SALES_CHIEF))
        assert exc_info.value.allowed_roles == ("finance",)
