"""
Race tests for exactly-once approval decisions.

Two callers act on the same pending approval at the same moment; exactly
one decision lands, the other gets ApprovalAlreadyProcessedError, and the
stored status matches the winner.  Business keys allocated by parallel
transactions never collide.

Run with: pytest tests/concurrency -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from travel_kernel.domain.approval import ApprovalStatus, EntityType, TravelStatus
from travel_kernel.domain.identity import SessionProof
from travel_kernel.exceptions import ApprovalAlreadyProcessedError

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def engine_request(workflow_engine, committed_org):
    draft = workflow_engine.create_travel_request(
        committed_org.employee, "Quarterly review in Surabaya", "Surabaya",
    )
    return workflow_engine.build_and_submit(
        EntityType.TRAVEL_REQUEST, draft.entity_id, committed_org.employee,
    )


def _race(calls):
    """Start every call at the same instant; collect (label, result or error)."""
    barrier = Barrier(len(calls))

    def run(label, fn):
        barrier.wait()
        try:
            return label, fn()
        except ApprovalAlreadyProcessedError as exc:
            return label, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(run, label, fn) for label, fn in calls]
        return [f.result(timeout=60) for f in futures]


class TestApproveRejectRace:
    def test_exactly_one_decision(self, workflow_engine, engine_request, committed_org):
        l1 = engine_request.approvals[0]
        proof = SessionProof(committed_org.supervisor)

        outcomes = _race([
            ("approve", lambda: workflow_engine.act_on_approval(
                l1.approval_id, proof, "approve",
            )),
            ("reject", lambda: workflow_engine.act_on_approval(
                l1.approval_id, proof, "reject", "Dates clash with the audit",
            )),
        ])

        winners = [label for label, r in outcomes if not isinstance(r, Exception)]
        losers = [r for _, r in outcomes if isinstance(r, ApprovalAlreadyProcessedError)]
        assert len(winners) == 1
        assert len(losers) == 1

        snapshot = workflow_engine.get_entity(EntityType.TRAVEL_REQUEST, engine_request.entity_id)
        stored = snapshot.approvals[0].status
        if winners[0] == "approve":
            assert stored == ApprovalStatus.APPROVED
            assert snapshot.status == TravelStatus.APPROVED_L1.value
            assert losers[0].current_status == ApprovalStatus.APPROVED.value
        else:
            assert stored == ApprovalStatus.REJECTED
            assert snapshot.status == TravelStatus.REJECTED.value

    def test_double_approve_records_one_audit_entry(
        self, workflow_engine, engine_request, committed_org,
    ):
        l1 = engine_request.approvals[0]
        proof = SessionProof(committed_org.supervisor)

        outcomes = _race([
            (f"approve-{i}", lambda: workflow_engine.act_on_approval(l1.approval_id, proof, "approve"))
            for i in range(4)
        ])

        successes = [r for _, r in outcomes if not isinstance(r, Exception)]
        assert len(successes) == 1

        trace = workflow_engine.audit_trace("TravelRequest", engine_request.entity_id)
        assert [a.value for a in trace.actions].count("approve") == 1
        assert workflow_engine.validate_audit_chain() is True


class TestBusinessKeyRace:
    def test_parallel_creates_get_distinct_keys(self, workflow_engine, committed_org):
        barrier = Barrier(6)

        def create(i):
            barrier.wait()
            return workflow_engine.create_travel_request(
                committed_org.employee, f"Branch visit number {i}", "Medan",
            )

        with ThreadPoolExecutor(max_workers=6) as pool:
            snapshots = list(pool.map(create, range(6)))

        keys = sorted(s.business_key for s in snapshots)
        assert keys == [f"TR-2026-{n:05d}" for n in range(1, 7)]
