#!/usr/bin/env python3
"""
Seed a small demo organisation and submit one travel request.

Creates a head-office and a sales department, the people that fill the
supervisor / manager / director / finance / chief seats, and a travel
request that is submitted through the WorkflowEngine so its approval
chain is built exactly as in production.

Usage:
  python3 scripts/seed_demo.py [--db-url URL] [--config PATH]
"""

import argparse
import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///travel_workflow.db")

# (key, name, email, role, department, supervisor key, phone)
DEMO_USERS = [
    ("ceo", "Ratna Wijaya", "ratna@example.com", "director", "HQ", None, "+62 811-0000-001"),
    ("director", "Budi Santoso", "budi@example.com", "director", "SALES", "ceo", "+62 811-0000-002"),
    ("manager", "Sari Lestari", "sari@example.com", "manager", "SALES", "director", "+62 811-0000-003"),
    ("supervisor", "Andi Pratama", "andi@example.com", "supervisor", "SALES", "manager", "+62 811-0000-004"),
    ("employee", "Dewi Kusuma", "dewi@example.com", "sales_employee", "SALES", "supervisor", "+62 811-0000-005"),
    ("chief", "Hadi Nugroho", "hadi@example.com", "sales_chief", "SALES", "director", None),
    ("finance", "Maya Putri", "maya@example.com", "finance", "HQ", "ceo", None),
    ("admin", "System Admin", "admin@example.com", "admin", "HQ", None, None),
]


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed a demo organisation")
    p.add_argument("--db-url", default=DEFAULT_DB_URL, help="Database URL")
    p.add_argument("--config", default=None, help="Engine configuration YAML")
    return p.parse_args()


def _seed_organisation(session) -> dict:
    from travel_kernel.models.user import Department, User

    hq = Department(code="HQ", name="Head Office")
    sales = Department(code="SALES", name="Sales", parent=hq)
    session.add_all([hq, sales])
    session.flush()
    departments = {"HQ": hq, "SALES": sales}

    users: dict[str, User] = {}
    for key, name, email, role, dept, supervisor, phone in DEMO_USERS:
        user = User(
            name=name,
            email=email,
            role=role,
            department_id=departments[dept].id,
            supervisor_id=users[supervisor].id if supervisor else None,
            phone_number=phone,
        )
        session.add(user)
        session.flush()
        users[key] = user

    hq.director_id = users["ceo"].id
    sales.manager_id = users["manager"].id
    sales.director_id = users["director"].id
    session.flush()
    return {key: user.id for key, user in users.items()}


def main() -> int:
    args = _parse_args()

    from travel_config import get_active_config
    from travel_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from travel_services import WorkflowEngine

    print()
    print(f"  [1/4] Connecting to {args.db_url} ...")
    try:
        init_engine_from_url(args.db_url)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    create_tables()

    print("  [2/4] Seeding organisation...")
    with session_scope(get_session_factory()) as session:
        user_ids = _seed_organisation(session)
    for key in user_ids:
        print(f"        {key:<12} {user_ids[key]}")

    engine = WorkflowEngine.from_config(config=get_active_config(args.config))

    print("  [3/4] Creating travel request...")
    start = date.today() + timedelta(days=14)
    request = engine.create_travel_request(
        requester_id=user_ids["employee"],
        purpose="Quarterly distributor review",
        destination="Surabaya",
        start_date=start,
        end_date=start + timedelta(days=3),
        estimated_budget=Decimal("7500000"),
    )
    print(f"        {request.business_key} ({request.status})")

    print("  [4/4] Submitting for approval...")
    submitted = engine.build_and_submit(
        request.entity_type, request.entity_id, user_ids["employee"],
    )
    print(f"        {submitted.business_key} -> {submitted.status}")
    for approval in submitted.approvals:
        print(
            f"        {approval.approval_number}  {approval.level.value:<20}"
            f" approver={approval.approver_id}  {approval.status.value}"
        )

    print()
    print("  Done.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
