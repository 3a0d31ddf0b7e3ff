#!/usr/bin/env python3
"""
Data audit runner for Doorstep.

Read-only checks against the configured database (DATABASE_URL).
Run:
    python health.py --suite all

Suites:
    integrity   every delivery satisfies the proof/reason/completed_at rules
    coverage    no PENDING delivery sits on an agent that no longer covers it
"""

from __future__ import annotations

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

from doorstep import create_app
from doorstep.extensions import db
from doorstep.models import Agent, Delivery
from doorstep.services.assignment_service import CoverageSnapshot
from doorstep.services.coverage_service import validate_agent_area_assignment
from doorstep.services.lifecycle_service import STATUS_PENDING, check_delivery_integrity


def _print(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def run_integrity_audit() -> bool:
    _print("INTEGRITY: proof / reason / completed_at invariants")

    checked = 0
    failures = []
    for delivery in db.session.query(Delivery).order_by(Delivery.id.asc()).yield_per(500):
        checked += 1
        report = check_delivery_integrity(delivery)
        if not report["is_valid"]:
            failures.append(report)

    for report in failures[:50]:
        print(
            f"FAIL delivery={report['delivery_id']} status={report['status']} "
            f"proof_ok={report['proof_ok']} reason_ok={report['reason_ok']} "
            f"timestamp_ok={report['timestamp_ok']}"
        )
    if len(failures) > 50:
        print(f"... and {len(failures) - 50} more")

    print(f"Checked {checked} deliveries, {len(failures)} violations")
    return not failures


def run_coverage_audit() -> bool:
    _print("COVERAGE: agent areas and pending assignments")

    ok = True
    for agent in db.session.query(Agent).order_by(Agent.id.asc()).all():
        if not validate_agent_area_assignment(agent.id):
            print(f"FAIL agent={agent.id} references missing area {agent.area_id}")
            ok = False

    snapshot = CoverageSnapshot.capture()
    pending = (
        db.session.query(Delivery)
        .filter(Delivery.status == STATUS_PENDING, Delivery.agent_id.isnot(None))
        .order_by(Delivery.id.asc())
        .all()
    )
    stranded = 0
    for delivery in pending:
        agent = delivery.agent
        if not agent.is_active or not snapshot.area_covers(agent.area_id, delivery.postal_code):
            stranded += 1
            print(
                f"FAIL delivery={delivery.id} postal_code={delivery.postal_code} "
                f"agent={agent.id} active={agent.is_active} area={agent.area_id}"
            )

    unassigned = (
        db.session.query(Delivery)
        .filter(Delivery.status == STATUS_PENDING, Delivery.agent_id.is_(None))
        .count()
    )
    print(f"Checked {len(pending)} assigned PENDING deliveries, {stranded} stranded")
    print(f"INFO {unassigned} PENDING deliveries are unassigned (coverage gaps)")
    return ok and stranded == 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run Doorstep data audit suites")
    parser.add_argument(
        "--suite",
        default="all",
        choices=["all", "integrity", "coverage"],
        help="Which suite to run",
    )
    args = parser.parse_args()

    app = create_app()
    results = []

    with app.app_context():
        if args.suite in ("all", "integrity"):
            results.append(run_integrity_audit())
        if args.suite in ("all", "coverage"):
            results.append(run_coverage_audit())

    return 0 if all(results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
