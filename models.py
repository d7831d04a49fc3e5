"""
Data models for the invoice enrichment pipeline.

Summaries and enriched records serialize with the camelCase keys used by
invoices.json and invoices_updated.json.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class SubscriptionSummary:
    """A subscription joined with its customer's first and last invoice."""
    subscription_id: str
    customer_id: str
    customer_email: Optional[str]
    first_invoice_id: str
    last_invoice_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subscriptionId': self.subscription_id,
            'customerId': self.customer_id,
            'customerEmail': self.customer_email,
            'firstInvoiceId': self.first_invoice_id,
            'lastInvoiceId': self.last_invoice_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubscriptionSummary':
        return cls(
            subscription_id=data['subscriptionId'],
            customer_id=data['customerId'],
            customer_email=data.get('customerEmail'),
            first_invoice_id=data['firstInvoiceId'],
            last_invoice_id=data['lastInvoiceId'],
        )


@dataclass
class InvoiceDetail:
    """Financial totals of one invoice; amounts are None when the fetch failed."""
    subtotal: Optional[int] = None
    total_discount_amounts: List[Dict[str, Any]] = field(default_factory=list)
    total_amount: Optional[int] = None

    @classmethod
    def from_invoice(cls, invoice: Dict[str, Any]) -> 'InvoiceDetail':
        return cls(
            subtotal=invoice.get('subtotal'),
            total_discount_amounts=invoice.get('total_discount_amounts') or [],
            total_amount=invoice.get('total'),
        )

    @property
    def failed(self) -> bool:
        return self.total_amount is None


@dataclass
class CheckoutSessionDetail:
    """The first checkout session tied to a subscription, or empty."""
    status: Optional[str] = None
    id: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None

    @classmethod
    def from_session(cls, session: Dict[str, Any]) -> 'CheckoutSessionDetail':
        return cls(status=session.get('status'), id=session.get('id'), raw_payload=session)

    @property
    def is_empty(self) -> bool:
        return self.raw_payload is None

    def to_dict(self) -> Dict[str, Any]:
        if self.is_empty:
            return {}
        return {'status': self.status, 'id': self.id, 'completeJson': self.raw_payload}


@dataclass
class PaymentIntentDetail:
    """Raw payment intent of the last invoice, or empty."""
    raw_payload: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not self.raw_payload

    @property
    def created(self) -> Optional[int]:
        return self.raw_payload.get('created') if self.raw_payload else None

    def to_dict(self) -> Dict[str, Any]:
        return {'created': self.created, 'completeJson': self.raw_payload or {}}


@dataclass
class EnrichedRecord:
    """A summary plus every detail block fetched for it."""
    summary: SubscriptionSummary
    first_invoice: InvoiceDetail
    last_invoice: InvoiceDetail
    checkout_session: CheckoutSessionDetail
    payment_intent: PaymentIntentDetail

    def detail_blocks(self) -> Dict[str, Any]:
        return {
            'firstInvoice': _invoice_block(self.summary.first_invoice_id, self.first_invoice),
            'lastInvoice': _invoice_block(self.summary.last_invoice_id, self.last_invoice),
            'checkoutSession': self.checkout_session.to_dict(),
            'paymentIntent': self.payment_intent.to_dict(),
        }

    def to_dict(self, layout: str = 'nested') -> Dict[str, Any]:
        """
        Serialize for invoices_updated.json.

        Args:
            layout: 'nested' puts the detail blocks under event.secondColumn,
                'flat' puts them next to the summary fields
        """
        data = self.summary.to_dict()
        if layout == 'flat':
            data.update(self.detail_blocks())
        elif layout == 'nested':
            data['event'] = {'secondColumn': self.detail_blocks()}
        else:
            raise ValueError(f"Unknown layout: {layout}")
        return data


def _invoice_block(invoice_id: str, detail: InvoiceDetail) -> Dict[str, Any]:
    return {
        'invoiceId': invoice_id,
        'total': detail.total_amount,
        'subtotal': detail.subtotal,
        'totalDiscountAmounts': detail.total_discount_amounts,
    }


@dataclass(frozen=True)
class FetchFailure:
    """One failed (or skipped) lookup, kept for the end-of-run report."""
    stage: str
    object_id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {'stage': self.stage, 'objectId': self.object_id, 'reason': self.reason}


@dataclass
class StageResult(Generic[T]):
    """Value produced by a stage together with the failures it absorbed."""
    value: T
    failures: List[FetchFailure] = field(default_factory=list)


@dataclass
class PipelineReport:
    """Counts and failures aggregated across all stages of one run."""
    subscriptions_fetched: int = 0
    summaries_written: int = 0
    records_enriched: int = 0
    snapshot_path: Optional[str] = None
    output_path: Optional[str] = None
    failures: List[FetchFailure] = field(default_factory=list)

    @property
    def subscriptions_skipped(self) -> int:
        return self.subscriptions_fetched - self.summaries_written

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subscriptionsFetched': self.subscriptions_fetched,
            'summariesWritten': self.summaries_written,
            'subscriptionsSkipped': self.subscriptions_skipped,
            'recordsEnriched': self.records_enriched,
            'snapshotPath': self.snapshot_path,
            'outputPath': self.output_path,
            'failures': [f.to_dict() for f in self.failures],
        }
