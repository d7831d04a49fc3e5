"""Shared test fixtures for all test modules."""

from typing import Dict, List, Optional

import pytest

from config import Settings
from errors import StripeAPIError

ENV_VARS = (
    'STRIPE_SECRET_KEY',
    'STRIPE_API_BASE',
    'GCP_PROJECT',
    'GOOGLE_CLOUD_PROJECT',
    'SUBSCRIPTION_STATUS',
    'SUBSCRIPTION_PAGE_SIZE',
    'INVOICE_PAGE_SIZE',
    'OUTPUT_DIR',
    'OUTPUT_FORMAT',
    'ENRICHED_JSON_LAYOUT',
    'LOG_LEVEL',
)


class FakeStripeClient:
    """In-memory stand-in for StripeClient.

    Any id listed in ``fail_on`` raises StripeAPIError from whichever call
    receives it. Calls are recorded in ``calls`` as (method, argument) pairs.
    """

    def __init__(
        self,
        subscriptions: Optional[List[Dict]] = None,
        invoices_by_customer: Optional[Dict[str, List[Dict]]] = None,
        customers: Optional[Dict[str, Dict]] = None,
        sessions_by_subscription: Optional[Dict[str, List[Dict]]] = None,
        payment_intents: Optional[Dict[str, Dict]] = None,
        fail_on: Optional[set] = None,
    ):
        self.subscriptions = subscriptions or []
        self.invoices_by_customer = invoices_by_customer or {}
        self.customers = customers or {}
        self.sessions_by_subscription = sessions_by_subscription or {}
        self.payment_intents = payment_intents or {}
        self.fail_on = fail_on or set()
        self.calls = []

    def _check(self, method: str, object_id: str) -> None:
        self.calls.append((method, object_id))
        if object_id in self.fail_on:
            raise StripeAPIError(f"HTTP 500 on {method} {object_id}: boom", status_code=500)

    def _invoices(self) -> Dict[str, Dict]:
        return {inv['id']: inv for invs in self.invoices_by_customer.values() for inv in invs}

    def list_subscriptions(self, status='active', limit=5):
        self._check('list_subscriptions', status)
        return [s for s in self.subscriptions if s.get('status', 'active') == status][:limit]

    def list_invoices(self, customer_id, limit=100):
        self._check('list_invoices', customer_id)
        return list(self.invoices_by_customer.get(customer_id, []))[:limit]

    def get_customer(self, customer_id):
        self._check('get_customer', customer_id)
        if customer_id not in self.customers:
            raise StripeAPIError(f"HTTP 404 on GET /customers/{customer_id}: No such customer", status_code=404)
        return self.customers[customer_id]

    def get_invoice(self, invoice_id):
        self._check('get_invoice', invoice_id)
        invoices = self._invoices()
        if invoice_id not in invoices:
            raise StripeAPIError(f"HTTP 404 on GET /invoices/{invoice_id}: No such invoice", status_code=404)
        return invoices[invoice_id]

    def list_checkout_sessions(self, subscription_id, limit=1):
        self._check('list_checkout_sessions', subscription_id)
        return list(self.sessions_by_subscription.get(subscription_id, []))[:limit]

    def get_payment_intent(self, payment_intent_id):
        self._check('get_payment_intent', payment_intent_id)
        if payment_intent_id not in self.payment_intents:
            raise StripeAPIError(f"HTTP 404 on GET /payment_intents/{payment_intent_id}", status_code=404)
        return self.payment_intents[payment_intent_id]


def make_invoice(invoice_id: str, created: int, total: int = 1000, payment_intent=None, discounts=None) -> Dict:
    return {
        'id': invoice_id,
        'object': 'invoice',
        'created': created,
        'subtotal': total,
        'total': total,
        'total_discount_amounts': discounts if discounts is not None else [],
        'payment_intent': payment_intent,
    }


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's shell or .env from leaking into tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr('config.load_dotenv', lambda *args, **kwargs: False)


@pytest.fixture
def stripe_account():
    """Two active subscriptions with invoices, a checkout session and a payment intent."""
    return FakeStripeClient(
        subscriptions=[
            {'id': 'sub_1', 'customer': 'cus_1', 'status': 'active'},
            {'id': 'sub_2', 'customer': 'cus_2', 'status': 'active'},
        ],
        invoices_by_customer={
            'cus_1': [
                make_invoice('in_b', 200, total=2500, payment_intent='pi_1'),
                make_invoice('in_a', 100, total=1000, discounts=[{'amount': 200, 'discount': 'di_1'}]),
            ],
            'cus_2': [make_invoice('in_c', 300, total=500)],
        },
        customers={
            'cus_1': {'id': 'cus_1', 'email': 'one@example.com'},
            'cus_2': {'id': 'cus_2', 'email': 'two@example.com'},
        },
        sessions_by_subscription={
            'sub_1': [{'id': 'cs_1', 'status': 'complete', 'subscription': 'sub_1'}],
        },
        payment_intents={
            'pi_1': {'id': 'pi_1', 'object': 'payment_intent', 'created': 210, 'status': 'succeeded'},
        },
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(stripe_api_key='sk_test_123', output_dir=str(tmp_path))
