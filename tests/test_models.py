from datetime import datetime

import pytest

from branch_queue.errors import InvalidTransitionError
from branch_queue.models import (
    ALLOWED_TRANSITIONS,
    Priority,
    QueueEntry,
    TokenStatus,
    check_transition,
)


def test_priority_weights_order_emergency_first():
    assert Priority.EMERGENCY.weight < Priority.SENIOR.weight < Priority.NORMAL.weight


def test_priority_parse_defaults_to_normal():
    assert Priority.parse("senior") is Priority.SENIOR
    assert Priority.parse("vip") is Priority.NORMAL
    assert Priority.parse(None) is Priority.NORMAL


def test_terminal_statuses():
    terminal = {s for s in TokenStatus if s.is_terminal}
    assert terminal == {TokenStatus.COMPLETED, TokenStatus.CANCELLED, TokenStatus.NO_SHOW}


def test_happy_path_transitions_allowed():
    check_transition(TokenStatus.WAITING, TokenStatus.ARRIVED)
    check_transition(TokenStatus.ARRIVED, TokenStatus.SERVING)
    check_transition(TokenStatus.SERVING, TokenStatus.COMPLETED)


def test_cancellation_allowed_before_completion_only():
    for s in (TokenStatus.WAITING, TokenStatus.ARRIVED, TokenStatus.SERVING):
        assert TokenStatus.CANCELLED in ALLOWED_TRANSITIONS[s]
    with pytest.raises(InvalidTransitionError):
        check_transition(TokenStatus.COMPLETED, TokenStatus.CANCELLED)


def test_no_backwards_moves():
    with pytest.raises(InvalidTransitionError):
        check_transition(TokenStatus.SERVING, TokenStatus.WAITING)
    with pytest.raises(InvalidTransitionError):
        check_transition(TokenStatus.ARRIVED, TokenStatus.NO_SHOW)


def test_status_parse_rejects_unknown_values():
    assert TokenStatus.parse("no-show") is TokenStatus.NO_SHOW
    with pytest.raises(InvalidTransitionError):
        TokenStatus.parse("teleported")


def test_entry_document_and_message_forms():
    entry = QueueEntry(
        token_id="t1",
        queue_number=4,
        branch_id="branch1",
        service_type="checkup",
        user_name="Ann",
        priority=Priority.SENIOR,
        created_at=datetime(2026, 3, 2, 9, 30),
    )
    doc = entry.to_document()
    assert doc["priority"] == "senior"
    assert doc["status"] == "waiting"
    assert QueueEntry.from_document({**doc, "unrelated": 1}) == entry

    msg = entry.to_message()
    assert msg["created_at"] == "2026-03-02T09:30:00"
    assert msg["assigned_seat"] is None
