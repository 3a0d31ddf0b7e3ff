# Overview: Delivery lifecycle state machine; start, complete and fail transitions.

"""
Doorstep Delivery Lifecycle Service

================================================================================
PURPOSE: Drive each delivery from PENDING to DELIVERED or FAILED with proof
================================================================================

STATE MACHINE:
    PENDING -> IN_PROGRESS -> DELIVERED
                           -> FAILED
    PENDING -> DELIVERED | FAILED   (agent completes/fails without starting)

    PENDING:     Generated, assigned (or unassigned), reassignable
    IN_PROGRESS: Agent is on the way; no longer moved by reassignment
    DELIVERED:   TERMINAL. Proof (photo|signature URL) stored
    FAILED:      TERMINAL. Reason code from the fixed catalog stored

RULES (NON-NEGOTIABLE):
1. Only the assigned agent may transition a delivery (unassigned -> nobody)
2. Terminal states are final; no transition leaves DELIVERED or FAILED
3. DELIVERED requires a non-empty proof URL
4. FAILED requires a reason code from FAILURE_REASONS
5. completed_at is set exactly when a terminal state is entered

Concurrent terminal transitions on one row: version_id makes the losing flush
raise StaleDataError, the retry re-reads the row and rule 2 rejects it.

Notifications go out only after the transition has committed and never
affect its outcome.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from doorstep.extensions import db
from doorstep.errors import (
    AlreadyTerminalError,
    InvalidProofError,
    InvalidReasonCodeError,
    InvalidTransitionError,
    MissingProofError,
    MissingReasonError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from doorstep.models import Delivery
from doorstep.services import ledger_service, notification_service
from doorstep.services.concurrency import lock_for_update, run_in_transaction
from doorstep.time_utils import parse_iso_datetime, utcnow


STATUS_PENDING = "PENDING"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_DELIVERED = "DELIVERED"
STATUS_FAILED = "FAILED"

VALID_STATUSES = {STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_DELIVERED, STATUS_FAILED}
TERMINAL_STATUSES = frozenset({STATUS_DELIVERED, STATUS_FAILED})
ACTIVE_STATUSES = frozenset({STATUS_PENDING, STATUS_IN_PROGRESS})

# The only legal forward moves
TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_IN_PROGRESS, STATUS_DELIVERED, STATUS_FAILED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_DELIVERED, STATUS_FAILED}),
    STATUS_DELIVERED: frozenset(),
    STATUS_FAILED: frozenset(),
}

PROOF_TYPES = frozenset({"photo", "signature"})

# Fixed failure catalog, in display order
FAILURE_REASONS: dict[str, str] = {
    "CUSTOMER_UNAVAILABLE": "Customer was not available",
    "WRONG_ADDRESS": "Address was incorrect or not found",
    "CUSTOMER_REFUSED": "Customer refused delivery",
    "ACCESS_DENIED": "Could not access the location",
    "WEATHER_CONDITIONS": "Delivery not possible due to weather",
    "VEHICLE_BREAKDOWN": "Delivery vehicle breakdown",
    "OTHER": "Other reason",
}

MAX_FAILURE_NOTE_LENGTH = 500


@dataclass(frozen=True)
class DeliveryProof:
    type: str
    url: str
    captured_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "DeliveryProof | None":
        if not payload:
            return None
        if not isinstance(payload, Mapping):
            raise MissingProofError("Proof must be an object with type and url")
        return cls(
            type=str(payload.get("type") or "").strip().lower(),
            url=str(payload.get("url") or "").strip(),
            captured_at=parse_iso_datetime(payload.get("captured_at")),
        )


@dataclass(frozen=True)
class FailureReason:
    code: str
    note: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "FailureReason | None":
        if not payload:
            return None
        if not isinstance(payload, Mapping):
            raise MissingReasonError("Reason must be an object with a code")
        note = payload.get("note", payload.get("notes"))
        return cls(
            code=str(payload.get("code") or "").strip().upper(),
            note=str(note).strip() if note else None,
        )


def failure_description(code: str | None) -> str | None:
    if code is None:
        return None
    return FAILURE_REASONS.get(code, "Unknown reason")


def list_failure_reason_codes() -> list[dict]:
    return [
        {"code": code, "description": description}
        for code, description in FAILURE_REASONS.items()
    ]


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def _load_for_agent(delivery_id: int, acting_agent_id: int) -> Delivery:
    delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
    if delivery is None:
        raise NotFoundError(f"Delivery {delivery_id} not found")

    if delivery.agent_id is None or delivery.agent_id != acting_agent_id:
        raise UnauthorizedError(f"Agent {acting_agent_id} is not assigned to delivery {delivery_id}")

    return delivery


def _reject_terminal(delivery: Delivery) -> None:
    if delivery.status in TERMINAL_STATUSES:
        raise AlreadyTerminalError(
            f"Delivery {delivery.id} is already {delivery.status} and cannot be changed"
        )


def _coerce_proof(proof: DeliveryProof | Mapping[str, Any] | None) -> DeliveryProof | None:
    if proof is None or isinstance(proof, DeliveryProof):
        return proof
    return DeliveryProof.from_payload(proof)


def _coerce_reason(reason: FailureReason | Mapping[str, Any] | None) -> FailureReason | None:
    if reason is None or isinstance(reason, FailureReason):
        return reason
    return FailureReason.from_payload(reason)


def start_delivery(delivery_id: int, acting_agent_id: int) -> Delivery:
    """
    PENDING -> IN_PROGRESS.

    Raises:
        NotFoundError, UnauthorizedError
        InvalidTransitionError: status is not PENDING
    """
    def _op():
        delivery = _load_for_agent(delivery_id, acting_agent_id)

        if delivery.status != STATUS_PENDING:
            raise InvalidTransitionError(
                f"Cannot start delivery {delivery_id}: "
                f"current status is '{delivery.status}', must be '{STATUS_PENDING}'"
            )

        delivery.status = STATUS_IN_PROGRESS
        delivery.started_at = utcnow()

        ledger_service.append_delivery_event(
            delivery_id=delivery.id,
            event_type=ledger_service.EVENT_STARTED,
            from_status=STATUS_PENDING,
            to_status=STATUS_IN_PROGRESS,
            actor_agent_id=acting_agent_id,
            occurred_at=delivery.started_at,
        )
        return delivery

    return run_in_transaction(_op)


def complete_delivery(
    delivery_id: int,
    acting_agent_id: int,
    proof: DeliveryProof | Mapping[str, Any] | None,
) -> Delivery:
    """
    PENDING | IN_PROGRESS -> DELIVERED, storing proof.

    Raises:
        NotFoundError, UnauthorizedError
        AlreadyTerminalError: already DELIVERED or FAILED
        MissingProofError: proof or its URL is empty
        InvalidProofError: proof type is not photo|signature

    After commit, notifies the customer (fire-and-forget).
    """
    proof = _coerce_proof(proof)

    def _op():
        delivery = _load_for_agent(delivery_id, acting_agent_id)
        _reject_terminal(delivery)

        if proof is None or not proof.url:
            raise MissingProofError("Please capture delivery proof")
        if proof.type not in PROOF_TYPES:
            raise InvalidProofError("Proof type must be photo or signature")

        from_status = delivery.status
        now = utcnow()
        delivery.status = STATUS_DELIVERED
        delivery.proof_type = proof.type
        delivery.proof_url = proof.url
        delivery.proof_captured_at = proof.captured_at or now
        delivery.completed_at = now

        ledger_service.append_delivery_event(
            delivery_id=delivery.id,
            event_type=ledger_service.EVENT_DELIVERED,
            from_status=from_status,
            to_status=STATUS_DELIVERED,
            actor_agent_id=acting_agent_id,
            occurred_at=now,
        )
        return delivery

    delivery = run_in_transaction(_op)

    subscription = delivery.subscription
    notification_service.notify_delivery_completed(
        subscription.customer_id,
        delivery.id,
        [{"name": p.product_name, "quantity": p.quantity} for p in subscription.products],
    )
    return delivery


def fail_delivery(
    delivery_id: int,
    acting_agent_id: int,
    reason: FailureReason | Mapping[str, Any] | None,
) -> Delivery:
    """
    PENDING | IN_PROGRESS -> FAILED, storing reason code and optional note.

    Raises:
        NotFoundError, UnauthorizedError
        AlreadyTerminalError: already DELIVERED or FAILED
        MissingReasonError: no reason code
        InvalidReasonCodeError: code not in FAILURE_REASONS
        ValidationError: note longer than MAX_FAILURE_NOTE_LENGTH

    After commit, notifies the customer (fire-and-forget).
    """
    reason = _coerce_reason(reason)

    def _op():
        delivery = _load_for_agent(delivery_id, acting_agent_id)
        _reject_terminal(delivery)

        if reason is None or not reason.code:
            raise MissingReasonError("Please select failure reason")
        if reason.code not in FAILURE_REASONS:
            raise InvalidReasonCodeError(f"Invalid failure reason code '{reason.code}'")
        if reason.note and len(reason.note) > MAX_FAILURE_NOTE_LENGTH:
            raise ValidationError(
                f"Failure note must be at most {MAX_FAILURE_NOTE_LENGTH} characters"
            )

        from_status = delivery.status
        now = utcnow()
        delivery.status = STATUS_FAILED
        delivery.failure_code = reason.code
        delivery.failure_note = reason.note
        delivery.completed_at = now

        ledger_service.append_delivery_event(
            delivery_id=delivery.id,
            event_type=ledger_service.EVENT_FAILED,
            from_status=from_status,
            to_status=STATUS_FAILED,
            actor_agent_id=acting_agent_id,
            occurred_at=now,
            note=reason.code,
        )
        return delivery

    delivery = run_in_transaction(_op)

    notification_service.notify_delivery_failed(
        delivery.subscription.customer_id,
        delivery.id,
        failure_description(delivery.failure_code),
    )
    return delivery


def check_delivery_integrity(delivery: Delivery) -> dict:
    """
    Report whether a delivery satisfies the proof/reason/timestamp invariants.

    Used by audits and the admin analytics endpoint; never raises.
    """
    is_delivered = delivery.status == STATUS_DELIVERED
    is_failed = delivery.status == STATUS_FAILED

    has_proof = bool(delivery.proof_url) and delivery.proof_type in PROOF_TYPES
    has_reason = bool(delivery.failure_code) and delivery.failure_code in FAILURE_REASONS
    has_completed_at = delivery.completed_at is not None

    proof_ok = has_proof == is_delivered
    reason_ok = has_reason == is_failed
    timestamp_ok = has_completed_at == (is_delivered or is_failed)

    return {
        "delivery_id": delivery.id,
        "status": delivery.status,
        "proof_ok": proof_ok,
        "reason_ok": reason_ok,
        "timestamp_ok": timestamp_ok,
        "is_valid": proof_ok and reason_ok and timestamp_ok,
    }
