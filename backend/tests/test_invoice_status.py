"""Tests for the invoice status state machine."""

import itertools
from types import SimpleNamespace

import pytest

from app.core.errors import (
    InvalidDataError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from app.models.invoice import InvoiceStatus
from app.services.invoice_status import (
    VALID_TRANSITIONS,
    allowed_transitions,
    can_transition,
    is_editable,
    validate_editable,
    validate_transition,
)

ALLOWED = {
    (InvoiceStatus.DRAFT, InvoiceStatus.SENT),
    (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED),
    (InvoiceStatus.SENT, InvoiceStatus.PAID),
    (InvoiceStatus.SENT, InvoiceStatus.CANCELLED),
}


def _invoice(status):
    return SimpleNamespace(status=status.value, invoice_number="INV-2026-01-001")


class TestTransitionTable:
    @pytest.mark.parametrize(
        "from_status,to_status", sorted(ALLOWED, key=lambda pair: (pair[0].value, pair[1].value))
    )
    def test_allowed_pairs_pass(self, from_status, to_status):
        validate_transition(_invoice(from_status), to_status)
        assert can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            pair
            for pair in itertools.product(InvoiceStatus, InvoiceStatus)
            if pair not in ALLOWED
        ],
    )
    def test_every_other_pair_fails_with_invalid_data(self, from_status, to_status):
        with pytest.raises(InvalidDataError) as exc_info:
            validate_transition(_invoice(from_status), to_status)
        assert isinstance(exc_info.value, InvalidTransitionError)
        assert not can_transition(from_status, to_status)

    def test_terminal_states(self):
        assert allowed_transitions(InvoiceStatus.PAID) == frozenset()
        assert allowed_transitions(InvoiceStatus.CANCELLED) == frozenset()

    def test_overdue_is_never_a_target(self):
        for targets in VALID_TRANSITIONS.values():
            assert InvoiceStatus.OVERDUE not in targets

    def test_accepts_string_statuses(self):
        assert can_transition("draft", "sent")
        validate_transition(_invoice(InvoiceStatus.SENT), "paid")

    def test_message_lists_allowed_targets(self):
        with pytest.raises(InvalidTransitionError, match="Allowed transitions: cancelled, sent"):
            validate_transition(_invoice(InvoiceStatus.DRAFT), InvoiceStatus.PAID)

    def test_missing_invoice(self):
        with pytest.raises(NotFoundError):
            validate_transition(None, InvoiceStatus.SENT)

    def test_validation_has_no_side_effects(self):
        invoice = _invoice(InvoiceStatus.DRAFT)
        validate_transition(invoice, InvoiceStatus.SENT)
        validate_transition(invoice, InvoiceStatus.SENT)
        assert invoice.status == "draft"


class TestEditability:
    def test_only_draft_is_editable(self):
        assert is_editable(InvoiceStatus.DRAFT)
        for status in InvoiceStatus:
            if status != InvoiceStatus.DRAFT:
                assert not is_editable(status)

    @pytest.mark.parametrize(
        "status",
        [InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED],
    )
    def test_non_draft_raises_invalid_state(self, status):
        with pytest.raises(InvalidStateError):
            validate_editable(_invoice(status))

    def test_draft_returns_invoice(self):
        invoice = _invoice(InvoiceStatus.DRAFT)
        assert validate_editable(invoice) is invoice

    def test_missing_invoice(self):
        with pytest.raises(NotFoundError):
            validate_editable(None)
