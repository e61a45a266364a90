"""
Tests for ChainBuilder -- chain construction and submission.

Covers:
- Default travel chain L1 supervisor, L2 manager, L3 director
- Director fallback to the earliest-created director-role user
- Unresolvable levels are skipped; L4 / L5 when configured
- Empty chain: HOLD keeps SUBMITTED, AUTO_APPROVE approves
- Claim chain: finance review only above the threshold
- Ownership and state guards on submit
- Resubmission after revision reuses the reset approvals
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from travel_kernel.domain.approval import (
    ApprovalAction,
    ApprovalLevel,
    ApprovalStatus,
    ClaimStatus,
    EntityType,
    TravelStatus,
)
from travel_kernel.domain.identity import ApprovalRef, SessionProof
from travel_kernel.domain.policy import DEFAULT_POLICY, EmptyChainPolicy
from travel_kernel.exceptions import InvalidEntityStateError, NotEntityOwnerError
from travel_kernel.models.audit_record import AuditAction
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.models.user import Department, User
from travel_kernel.services.chain_builder import ChainBuilder


def builder_with(session, auditor_service, deterministic_clock, **overrides) -> ChainBuilder:
    return ChainBuilder(
        session, auditor_service, deterministic_clock, replace(DEFAULT_POLICY, **overrides),
    )


def approve_travel_request(session, travel_request_id):
    session.get(TravelRequest, travel_request_id).status = TravelStatus.APPROVED.value
    session.flush()


class TestTravelChain:
    def test_default_chain(self, submitted_request, org):
        assert submitted_request.status == TravelStatus.SUBMITTED.value
        assert submitted_request.levels == (
            ApprovalLevel.L1_SUPERVISOR,
            ApprovalLevel.L2_MANAGER,
            ApprovalLevel.L3_DIRECTOR,
        )
        assert [a.approver_id for a in submitted_request.approvals] == [
            org.supervisor, org.manager, org.director,
        ]
        assert all(a.status == ApprovalStatus.PENDING for a in submitted_request.approvals)

    def test_business_keys_are_sequential(self, submitted_request):
        assert submitted_request.business_key == "TR-2026-00001"
        assert [a.approval_number for a in submitted_request.approvals] == [
            "APR-2026-00001", "APR-2026-00002", "APR-2026-00003",
        ]

    def test_submitted_at_from_clock(self, submitted_request, deterministic_clock):
        assert submitted_request.submitted_at == deterministic_clock.now()

    def test_submit_is_audited(self, submitted_request, auditor_service):
        trace = auditor_service.get_trace("TravelRequest", submitted_request.entity_id)
        assert trace.actions == (AuditAction.CREATE, AuditAction.SUBMIT)
        payload = trace.entries[-1].payload
        assert payload["levels"] == ["l1_supervisor", "l2_manager", "l3_director"]
        assert payload["empty_chain"] is False
        assert payload["resubmission"] is False

    def test_director_fallback(self, session, org, make_travel_request, chain_builder, captured_logs):
        session.get(Department, org.sales).director_id = None
        session.flush()

        draft = make_travel_request()
        snapshot = chain_builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.employee)

        # ceo is the earliest-created user holding a director-fallback role
        assert snapshot.approvals[-1].level == ApprovalLevel.L3_DIRECTOR
        assert snapshot.approvals[-1].approver_id == org.ceo
        assert any(r["message"] == "director_fallback_resolved" for r in captured_logs())

    def test_director_fallback_excludes_requester(
        self, session, org, lifecycle_service, chain_builder,
    ):
        # The ceo files a request in a department without a director
        session.get(User, org.ceo).department_id = org.sales
        session.get(Department, org.sales).director_id = None
        session.flush()

        draft = lifecycle_service.create_travel_request(org.ceo, "Board visit", "Jakarta")
        snapshot = chain_builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.ceo)

        l3 = [a for a in snapshot.approvals if a.level == ApprovalLevel.L3_DIRECTOR]
        assert l3[0].approver_id == org.regional_director

    def test_deleted_supervisor_is_skipped(self, session, org, make_travel_request, chain_builder):
        session.get(User, org.supervisor).deleted_at = datetime(2025, 6, 1, tzinfo=timezone.utc)
        session.flush()

        draft = make_travel_request()
        snapshot = chain_builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.employee)

        assert snapshot.levels == (ApprovalLevel.L2_MANAGER, ApprovalLevel.L3_DIRECTOR)

    def test_senior_levels_when_configured(
        self, session, org, make_travel_request, auditor_service, deterministic_clock,
    ):
        builder = builder_with(
            session, auditor_service, deterministic_clock,
            travel_chain_levels=tuple(ApprovalLevel),
        )
        draft = make_travel_request()
        snapshot = builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.employee)

        assert snapshot.levels == tuple(ApprovalLevel)
        assert snapshot.approvals[3].approver_id == org.regional_director
        assert snapshot.approvals[4].approver_id == org.ceo

    def test_levels_sorted_by_rank_regardless_of_configuration_order(
        self, session, org, make_travel_request, auditor_service, deterministic_clock,
    ):
        builder = builder_with(
            session, auditor_service, deterministic_clock,
            travel_chain_levels=(ApprovalLevel.L3_DIRECTOR, ApprovalLevel.L1_SUPERVISOR),
        )
        draft = make_travel_request()
        snapshot = builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.employee)

        assert snapshot.levels == (ApprovalLevel.L1_SUPERVISOR, ApprovalLevel.L3_DIRECTOR)


class TestEmptyChain:
    """The outsider has no supervisor and HQ has no manager."""

    def _outsider_request(self, lifecycle_service, org):
        return lifecycle_service.create_travel_request(org.outsider, "Trade fair", "Medan")

    def test_hold_keeps_submitted(
        self, session, org, lifecycle_service, auditor_service, deterministic_clock, captured_logs,
    ):
        builder = builder_with(
            session, auditor_service, deterministic_clock,
            travel_chain_levels=(ApprovalLevel.L1_SUPERVISOR, ApprovalLevel.L2_MANAGER),
        )
        draft = self._outsider_request(lifecycle_service, org)
        snapshot = builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.outsider)

        assert snapshot.approvals == ()
        assert snapshot.status == TravelStatus.SUBMITTED.value
        trace = auditor_service.get_trace("TravelRequest", draft.entity_id)
        assert trace.entries[-1].payload["empty_chain"] is True
        assert any(r["message"] == "empty_approval_chain" for r in captured_logs())

    def test_auto_approve(self, session, org, lifecycle_service, auditor_service, deterministic_clock):
        builder = builder_with(
            session, auditor_service, deterministic_clock,
            travel_chain_levels=(ApprovalLevel.L1_SUPERVISOR, ApprovalLevel.L2_MANAGER),
            empty_chain_policy=EmptyChainPolicy.AUTO_APPROVE,
        )
        draft = self._outsider_request(lifecycle_service, org)
        snapshot = builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.outsider)

        assert snapshot.status == TravelStatus.APPROVED.value


class TestClaimChain:
    def _claim(self, session, org, make_travel_request, lifecycle_service, amount):
        request = make_travel_request()
        approve_travel_request(session, request.entity_id)
        return lifecycle_service.create_claim(request.entity_id, org.employee, amount, "Hotel and taxi")

    def test_small_claim_needs_supervisor_only(
        self, session, org, make_travel_request, lifecycle_service, chain_builder,
    ):
        claim = self._claim(session, org, make_travel_request, lifecycle_service, Decimal("750000"))
        snapshot = chain_builder.submit(EntityType.CLAIM, claim.entity_id, org.employee)

        assert snapshot.status == ClaimStatus.SUBMITTED.value
        assert snapshot.levels == (ApprovalLevel.L1_SUPERVISOR,)
        assert snapshot.approvals[0].approver_id == org.supervisor

    def test_threshold_is_exclusive(
        self, session, org, make_travel_request, lifecycle_service, chain_builder,
    ):
        claim = self._claim(session, org, make_travel_request, lifecycle_service, Decimal("5000000"))
        snapshot = chain_builder.submit(EntityType.CLAIM, claim.entity_id, org.employee)

        assert snapshot.levels == (ApprovalLevel.L1_SUPERVISOR,)

    def test_large_claim_adds_finance_review(
        self, session, org, make_travel_request, lifecycle_service, chain_builder,
    ):
        claim = self._claim(session, org, make_travel_request, lifecycle_service, Decimal("5000001"))
        snapshot = chain_builder.submit(EntityType.CLAIM, claim.entity_id, org.employee)

        assert snapshot.levels == (ApprovalLevel.L1_SUPERVISOR, ApprovalLevel.L2_MANAGER)
        assert snapshot.approvals[1].approver_id == org.finance


class TestSubmitGuards:
    def test_only_requester_may_submit(self, org, make_travel_request, chain_builder):
        draft = make_travel_request()
        with pytest.raises(NotEntityOwnerError):
            chain_builder.submit(EntityType.TRAVEL_REQUEST, draft.entity_id, org.supervisor)

    def test_cannot_submit_twice(self, submitted_request, chain_builder, org):
        with pytest.raises(InvalidEntityStateError) as exc_info:
            chain_builder.submit(EntityType.TRAVEL_REQUEST, submitted_request.entity_id, org.employee)
        assert exc_info.value.status == TravelStatus.SUBMITTED.value


class TestResubmission:
    def test_resubmission_reuses_reset_approvals(
        self, submitted_request, approval_service, chain_builder, auditor_service, org,
    ):
        l1 = submitted_request.approvals[0]
        approval_service.act(
            ApprovalRef.by_id(l1.approval_id),
            SessionProof(org.supervisor),
            ApprovalAction.REQUEST_REVISION,
            "need more detail",
        )

        again = chain_builder.submit(
            EntityType.TRAVEL_REQUEST, submitted_request.entity_id, org.employee,
        )

        assert again.status == TravelStatus.SUBMITTED.value
        assert [a.approval_id for a in again.approvals] == [
            a.approval_id for a in submitted_request.approvals
        ]
        assert all(a.status == ApprovalStatus.PENDING for a in again.approvals)
        trace = auditor_service.get_trace("TravelRequest", submitted_request.entity_id)
        assert trace.entries[-1].payload["resubmission"] is True
