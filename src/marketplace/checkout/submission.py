"""Checkout submission bookkeeping — commands and handler.

These commands move the persisted submission cursor. The checkout saga
issues them one by one, each in its own unit of work, so progress survives
a failure halfway through.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.checkout.session import CheckoutSession, PaymentOutcome
from marketplace.domain import marketplace


@marketplace.command(part_of="CheckoutSession")
class BeginSubmission:
    session_id = Identifier(required=True)
    requests = Text(required=True)  # JSON list of per-vendor order-creation requests


@marketplace.command(part_of="CheckoutSession")
class RecordVendorOrder:
    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)


@marketplace.command(part_of="CheckoutSession")
class RecordVendorPayment:
    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    outcome = String(required=True, choices=PaymentOutcome)
    failure_reason = String(max_length=500)


@marketplace.command(part_of="CheckoutSession")
class RecordVendorFailure:
    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="CheckoutSession")
class CompleteCheckout:
    session_id = Identifier(required=True)


@marketplace.command_handler(part_of=CheckoutSession)
class CheckoutSubmissionHandler:
    @handle(BeginSubmission)
    def begin_submission(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.begin_submission(json.loads(command.requests))
        repo.add(session)

    @handle(RecordVendorOrder)
    def record_vendor_order(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.record_order_placed(command.vendor_id, command.order_id, command.order_number)
        repo.add(session)

    @handle(RecordVendorPayment)
    def record_vendor_payment(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.record_payment_outcome(command.vendor_id, command.outcome, command.failure_reason)
        repo.add(session)

    @handle(RecordVendorFailure)
    def record_vendor_failure(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.record_group_failure(command.vendor_id, command.reason)
        repo.add(session)

    @handle(CompleteCheckout)
    def complete(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.complete()
        repo.add(session)
