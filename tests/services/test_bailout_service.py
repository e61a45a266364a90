"""
Tests for BailoutService -- the role-resolved cash-advance chain.

Covers:
- create(): validation of category, amount, description
- submit(): requester only, DRAFT -> SUBMITTED
- Stage actions gated by role group, not by a fixed approver
- Actions from the wrong status fail without changing the bailout
- reject(): chief roles, minimum reason, only before director approval
- Audit trail per stage
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from travel_kernel.domain.bailout import BailoutAction, BailoutCategory, BailoutStatus
from travel_kernel.domain.identity import RoleProof
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    BailoutNotFoundError,
    EntityNotFoundError,
    InvalidBailoutInputError,
    InvalidBailoutTransitionError,
    NotEntityOwnerError,
    ReasonTooShortError,
    RoleNotPermittedError,
    UnsupportedActionError,
)
from travel_kernel.models.audit_record import AuditAction


@pytest.fixture
def draft_bailout(bailout_service, make_travel_request, org):
    request = make_travel_request()
    return bailout_service.create(
        request.entity_id, org.employee, BailoutCategory.HOTEL, "Hotel deposit for three nights", "1500000",
    )


@pytest.fixture
def submitted_bailout(bailout_service, draft_bailout, org):
    return bailout_service.submit(draft_bailout.bailout_id, org.employee)


class TestCreate:
    def test_creates_draft(self, draft_bailout, org):
        assert draft_bailout.status == BailoutStatus.DRAFT
        assert draft_bailout.bailout_number == "BLT-2026-00001"
        assert draft_bailout.amount == Decimal("1500000")
        assert draft_bailout.category == BailoutCategory.HOTEL
        assert draft_bailout.requester_id == org.employee

    @pytest.mark.parametrize(
        "category, description, amount, field",
        [
            ("yacht", "Hotel deposit for three nights", "100", "category"),
            ("hotel", "Hotel deposit for three nights", "0", "amount"),
            ("hotel", "Hotel deposit for three nights", "-5", "amount"),
            ("hotel", "Hotel deposit for three nights", "lots", "amount"),
            ("hotel", "  short   ", "100", "description"),
        ],
    )
    def test_invalid_input(
        self, bailout_service, make_travel_request, org, category, description, amount, field,
    ):
        request = make_travel_request()
        with pytest.raises(InvalidBailoutInputError) as exc_info:
            bailout_service.create(request.entity_id, org.employee, category, description, amount)
        assert exc_info.value.field_name == field

    def test_unknown_travel_request(self, bailout_service, org):
        with pytest.raises(EntityNotFoundError):
            bailout_service.create(uuid4(), org.employee, "meal", "Team dinner with distributor", "250000")

    def test_create_is_audited(self, draft_bailout, auditor_service):
        trace = auditor_service.get_trace("Bailout", draft_bailout.bailout_id)
        assert trace.actions == (AuditAction.CREATE,)
        assert trace.entries[0].payload["from_status"] is None
        assert trace.entries[0].payload["to_status"] == "draft"


class TestSubmit:
    def test_submit(self, submitted_bailout):
        assert submitted_bailout.status == BailoutStatus.SUBMITTED
        assert submitted_bailout.submitted_at is not None

    def test_only_requester(self, bailout_service, draft_bailout, org):
        with pytest.raises(NotEntityOwnerError):
            bailout_service.submit(draft_bailout.bailout_id, org.chief)

    def test_cannot_submit_twice(self, bailout_service, submitted_bailout, org):
        with pytest.raises(InvalidBailoutTransitionError):
            bailout_service.submit(submitted_bailout.bailout_id, org.employee)

    def test_unknown_bailout(self, bailout_service, org):
        with pytest.raises(BailoutNotFoundError):
            bailout_service.submit(uuid4(), org.employee)


class TestStages:
    def test_full_chain(self, bailout_service, submitted_bailout, org, auditor_service):
        bailout_id = submitted_bailout.bailout_id

        chief = bailout_service.act(bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "approve_chief", "ok")
        director = bailout_service.act(bailout_id, RoleProof(org.director, Role.DIRECTOR), "approve_director")
        disbursed = bailout_service.act(
            bailout_id, RoleProof(org.finance, Role.FINANCE), BailoutAction.DISBURSE, "TRX-7781",
        )

        assert chief.status == BailoutStatus.APPROVED_CHIEF
        assert chief.chief_approver_id == org.chief
        assert chief.chief_notes == "ok"
        assert director.status == BailoutStatus.APPROVED_DIRECTOR
        assert director.director_approver_id == org.director
        assert disbursed.status == BailoutStatus.DISBURSED
        assert disbursed.disbursed_by_id == org.finance
        assert disbursed.disbursement_ref == "TRX-7781"

        trace = auditor_service.get_trace("Bailout", bailout_id)
        assert trace.actions == (
            AuditAction.CREATE,
            AuditAction.SUBMIT,
            AuditAction.APPROVE,
            AuditAction.APPROVE,
            AuditAction.DISBURSE,
        )

    def test_any_chief_role_holder_may_act(self, bailout_service, submitted_bailout, org):
        view = bailout_service.act(
            submitted_bailout.bailout_id, RoleProof(org.manager, Role.MANAGER), "approve_chief",
        )
        assert view.chief_approver_id == org.manager

    def test_director_approval_while_submitted_fails(self, bailout_service, submitted_bailout, org):
        with pytest.raises(InvalidBailoutTransitionError) as exc_info:
            bailout_service.act(
                submitted_bailout.bailout_id, RoleProof(org.director, Role.DIRECTOR), "approve_director",
            )
        assert exc_info.value.current_status == BailoutStatus.SUBMITTED.value

    def test_role_outside_group(self, bailout_service, submitted_bailout, org):
        with pytest.raises(RoleNotPermittedError):
            bailout_service.act(
                submitted_bailout.bailout_id, RoleProof(org.finance, Role.FINANCE), "approve_chief",
            )

    def test_submit_action_delegates_to_submit(self, bailout_service, draft_bailout, org):
        view = bailout_service.act(
            draft_bailout.bailout_id, RoleProof(org.employee, Role.SALES_EMPLOYEE), "submit",
        )
        assert view.status == BailoutStatus.SUBMITTED

    def test_unknown_action(self, bailout_service, submitted_bailout, org):
        with pytest.raises(UnsupportedActionError):
            bailout_service.act(submitted_bailout.bailout_id, RoleProof(org.admin, Role.ADMIN), "refund")


class TestReject:
    def test_reject_from_submitted(self, bailout_service, submitted_bailout, org):
        view = bailout_service.act(
            submitted_bailout.bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "reject", "no budget",
        )
        assert view.status == BailoutStatus.REJECTED
        assert view.rejected_by_id == org.chief
        assert view.rejection_reason == "no budget"

    def test_reject_from_approved_chief(self, bailout_service, submitted_bailout, org):
        bailout_id = submitted_bailout.bailout_id
        bailout_service.act(bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "approve_chief")

        view = bailout_service.act(bailout_id, RoleProof(org.director, Role.DIRECTOR), "reject", "too early")

        assert view.status == BailoutStatus.REJECTED

    def test_reject_after_director_approval_fails(self, bailout_service, submitted_bailout, org):
        bailout_id = submitted_bailout.bailout_id
        bailout_service.act(bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "approve_chief")
        bailout_service.act(bailout_id, RoleProof(org.director, Role.DIRECTOR), "approve_director")

        with pytest.raises(InvalidBailoutTransitionError):
            bailout_service.act(bailout_id, RoleProof(org.admin, Role.ADMIN), "reject", "changed my mind")

    def test_short_reason(self, bailout_service, submitted_bailout, org):
        with pytest.raises(ReasonTooShortError):
            bailout_service.act(
                submitted_bailout.bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "reject", "no",
            )

    def test_unknown_bailout_reported_before_reason(self, bailout_service, org):
        with pytest.raises(BailoutNotFoundError):
            bailout_service.act(uuid4(), RoleProof(org.chief, Role.SALES_CHIEF), "reject", "no")

    def test_rejected_is_terminal(self, bailout_service, submitted_bailout, org):
        bailout_id = submitted_bailout.bailout_id
        bailout_service.act(bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "reject", "no budget")

        with pytest.raises(InvalidBailoutTransitionError):
            bailout_service.act(bailout_id, RoleProof(org.chief, Role.SALES_CHIEF), "approve_chief")
