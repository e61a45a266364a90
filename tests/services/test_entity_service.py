"""
Tests for EntityLifecycleService -- entity creation and the finance lifecycle.

Covers:
- create_travel_request(): DRAFT with TR- key, CREATE audit
- create_claim(): positive amount, parent must be APPROVED or LOCKED
- lock / close travel request: finance roles, state guards, open claims
- mark_claim_paid(): APPROVED -> PAID with payment reference
- update_travel_request / update_claim: requester only, DRAFT or REVISION only
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from travel_kernel.domain.approval import ClaimStatus, EntityType, TravelStatus
from travel_kernel.domain.identity import ApprovalRef, RoleProof, SessionProof
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    EntityNotFoundError,
    InvalidClaimInputError,
    InvalidEntityStateError,
    InvalidTravelRequestInputError,
    NotEntityOwnerError,
    RoleNotPermittedError,
    UserNotFoundError,
)
from travel_kernel.models.audit_record import AuditAction
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest


@pytest.fixture
def finance_actor(org):
    return RoleProof(org.finance, Role.FINANCE)


@pytest.fixture
def approved_request(session, make_travel_request):
    request = make_travel_request()
    session.get(TravelRequest, request.entity_id).status = TravelStatus.APPROVED.value
    session.flush()
    return request


def force_claim_status(session, claim_id, status: ClaimStatus):
    session.get(Claim, claim_id).status = status.value
    session.flush()


class TestCreate:
    def test_travel_request_draft(self, make_travel_request, auditor_service, org):
        request = make_travel_request()

        assert request.status == TravelStatus.DRAFT.value
        assert request.business_key == "TR-2026-00001"
        assert request.requester_id == org.employee
        assert request.amount == Decimal("3500000")
        trace = auditor_service.get_trace("TravelRequest", request.entity_id)
        assert trace.actions == (AuditAction.CREATE,)

    def test_unknown_requester(self, lifecycle_service, org):
        with pytest.raises(UserNotFoundError):
            lifecycle_service.create_travel_request(uuid4(), "Visit", "Bali")

    def test_claim_against_approved_request(self, lifecycle_service, approved_request, org):
        claim = lifecycle_service.create_claim(
            approved_request.entity_id, org.employee, "450000.50", "Taxi receipts",
        )
        assert claim.status == ClaimStatus.DRAFT.value
        assert claim.business_key == "CLM-2026-00001"
        assert claim.amount == Decimal("450000.50")

    def test_claim_against_unapproved_request(self, lifecycle_service, make_travel_request, org):
        draft = make_travel_request()
        with pytest.raises(InvalidEntityStateError) as exc_info:
            lifecycle_service.create_claim(draft.entity_id, org.employee, "1000", "Taxi receipts")
        assert exc_info.value.operation == "create_claim"

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_claim_amount_must_be_positive(self, lifecycle_service, approved_request, org, amount):
        with pytest.raises(InvalidClaimInputError):
            lifecycle_service.create_claim(approved_request.entity_id, org.employee, amount, "Taxi")

    def test_claim_against_unknown_request(self, lifecycle_service, org):
        with pytest.raises(EntityNotFoundError):
            lifecycle_service.create_claim(uuid4(), org.employee, "1000", "Taxi receipts")


class TestLockAndClose:
    def test_lock(self, lifecycle_service, approved_request, finance_actor, auditor_service):
        locked = lifecycle_service.lock_travel_request(approved_request.entity_id, finance_actor)

        assert locked.status == TravelStatus.LOCKED.value
        trace = auditor_service.get_trace("TravelRequest", approved_request.entity_id)
        assert trace.last_action == AuditAction.LOCK
        assert trace.entries[-1].payload["from_status"] == TravelStatus.APPROVED.value

    def test_lock_requires_finance_role(self, lifecycle_service, approved_request, org):
        with pytest.raises(RoleNotPermittedError):
            lifecycle_service.lock_travel_request(
                approved_request.entity_id, RoleProof(org.manager, Role.MANAGER),
            )

    def test_lock_requires_approved(self, lifecycle_service, make_travel_request, finance_actor):
        draft = make_travel_request()
        with pytest.raises(InvalidEntityStateError):
            lifecycle_service.lock_travel_request(draft.entity_id, finance_actor)

    def test_close_with_settled_claims(
        self, session, lifecycle_service, approved_request, finance_actor, org,
    ):
        paid = lifecycle_service.create_claim(approved_request.entity_id, org.employee, "1000", "Taxi")
        rejected = lifecycle_service.create_claim(approved_request.entity_id, org.employee, "2000", "Meals")
        force_claim_status(session, paid.entity_id, ClaimStatus.PAID)
        force_claim_status(session, rejected.entity_id, ClaimStatus.REJECTED)
        lifecycle_service.lock_travel_request(approved_request.entity_id, finance_actor)

        closed = lifecycle_service.close_travel_request(approved_request.entity_id, finance_actor)

        assert closed.status == TravelStatus.CLOSED.value

    def test_close_blocked_by_open_claim(
        self, lifecycle_service, approved_request, finance_actor, org, captured_logs,
    ):
        lifecycle_service.create_claim(approved_request.entity_id, org.employee, "1000", "Taxi")
        lifecycle_service.lock_travel_request(approved_request.entity_id, finance_actor)

        with pytest.raises(InvalidEntityStateError) as exc_info:
            lifecycle_service.close_travel_request(approved_request.entity_id, finance_actor)
        assert exc_info.value.operation == "close with open claims"
        assert any(r["message"] == "close_blocked_by_open_claims" for r in captured_logs())

    def test_close_requires_locked(self, lifecycle_service, approved_request, finance_actor):
        with pytest.raises(InvalidEntityStateError):
            lifecycle_service.close_travel_request(approved_request.entity_id, finance_actor)


class TestMarkClaimPaid:
    def test_paid(self, session, lifecycle_service, approved_request, finance_actor, auditor_service, org):
        claim = lifecycle_service.create_claim(approved_request.entity_id, org.employee, "1000", "Taxi")
        force_claim_status(session, claim.entity_id, ClaimStatus.APPROVED)

        paid = lifecycle_service.mark_claim_paid(claim.entity_id, finance_actor, "PAY-0042")

        assert paid.status == ClaimStatus.PAID.value
        entry = auditor_service.get_trace("Claim", claim.entity_id).entries[-1]
        assert entry.action == AuditAction.PAY
        assert entry.payload["payment_reference"] == "PAY-0042"

    def test_paid_requires_approved(self, lifecycle_service, approved_request, finance_actor, org):
        claim = lifecycle_service.create_claim(approved_request.entity_id, org.employee, "1000", "Taxi")
        with pytest.raises(InvalidEntityStateError):
            lifecycle_service.mark_claim_paid(claim.entity_id, finance_actor)

    def test_snapshot_of_unknown_entity(self, lifecycle_service):
        with pytest.raises(EntityNotFoundError):
            lifecycle_service.get_snapshot(EntityType.CLAIM, uuid4())


class TestRequesterEdits:
    def test_draft_edit_is_audited(self, session, lifecycle_service, make_travel_request, auditor_service, org):
        request = make_travel_request()

        lifecycle_service.update_travel_request(
            request.entity_id, org.employee,
            destination="Surabaya", estimated_budget=Decimal("4200000"),
        )

        row = session.get(TravelRequest, request.entity_id)
        assert row.destination == "Surabaya"
        assert row.purpose == "Visit distributor in Bandung"
        entry = auditor_service.get_trace("TravelRequest", request.entity_id).entries[-1]
        assert entry.action == AuditAction.UPDATE
        assert sorted(entry.payload["changes"]) == ["destination", "estimated_budget"]

    def test_unchanged_values_write_nothing(self, lifecycle_service, make_travel_request, auditor_service, org):
        request = make_travel_request()

        lifecycle_service.update_travel_request(request.entity_id, org.employee, destination="Bandung")

        trace = auditor_service.get_trace("TravelRequest", request.entity_id)
        assert trace.actions == (AuditAction.CREATE,)

    def test_revision_edit_then_resubmit(
        self, session, lifecycle_service, submitted_request, approval_service, chain_builder, org,
    ):
        approval_service.request_revision(
            ApprovalRef.by_id(submitted_request.approvals[0].approval_id),
            SessionProof(org.supervisor), "please narrow the trip dates",
        )

        lifecycle_service.update_travel_request(
            submitted_request.entity_id, org.employee,
            start_date=date(2026, 4, 6), end_date=date(2026, 4, 8),
        )
        resubmitted = chain_builder.submit(
            EntityType.TRAVEL_REQUEST, submitted_request.entity_id, org.employee,
        )

        assert resubmitted.status == TravelStatus.SUBMITTED.value
        assert session.get(TravelRequest, submitted_request.entity_id).end_date == date(2026, 4, 8)

    def test_submitted_request_refused(self, lifecycle_service, submitted_request, org):
        with pytest.raises(InvalidEntityStateError) as exc_info:
            lifecycle_service.update_travel_request(
                submitted_request.entity_id, org.employee, destination="Jakarta",
            )
        assert exc_info.value.operation == "update"
        assert exc_info.value.status == TravelStatus.SUBMITTED.value

    def test_only_requester_edits(self, lifecycle_service, make_travel_request, org):
        request = make_travel_request()
        with pytest.raises(NotEntityOwnerError):
            lifecycle_service.update_travel_request(
                request.entity_id, org.supervisor, destination="Jakarta",
            )

    def test_dates_must_be_ordered(self, lifecycle_service, make_travel_request, org):
        request = make_travel_request()
        with pytest.raises(InvalidTravelRequestInputError) as exc_info:
            lifecycle_service.update_travel_request(
                request.entity_id, org.employee,
                start_date=date(2026, 4, 8), end_date=date(2026, 4, 6),
            )
        assert exc_info.value.field_name == "end_date"

    def test_blank_destination_refused(self, lifecycle_service, make_travel_request, org):
        request = make_travel_request()
        with pytest.raises(InvalidTravelRequestInputError):
            lifecycle_service.update_travel_request(request.entity_id, org.employee, destination="  ")

    def test_claim_edit_and_guard(self, session, lifecycle_service, approved_request, chain_builder, org):
        claim = lifecycle_service.create_claim(
            approved_request.entity_id, org.employee, Decimal("120000"), "Airport taxi",
        )

        lifecycle_service.update_claim(claim.entity_id, org.employee, amount=Decimal("135000"))
        assert session.get(Claim, claim.entity_id).amount == Decimal("135000")

        with pytest.raises(InvalidClaimInputError):
            lifecycle_service.update_claim(claim.entity_id, org.employee, amount=Decimal("0"))

        chain_builder.submit(EntityType.CLAIM, claim.entity_id, org.employee)
        with pytest.raises(InvalidEntityStateError):
            lifecycle_service.update_claim(claim.entity_id, org.employee, description="Taxi and toll")
