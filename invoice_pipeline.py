"""
Invoice enrichment pipeline: fetch -> join -> enrich -> persist.

Stages run sequentially, one subscription at a time. Per-record lookup errors
are logged and collected as FetchFailure entries; only listing subscriptions
and file I/O are fatal to the run.
"""
import logging
from typing import Dict, List, Tuple

from config import MAX_PAGE_SIZE, Settings
from errors import StripeAPIError
from exporters import read_snapshot, write_enriched, write_snapshot
from models import (
    CheckoutSessionDetail,
    EnrichedRecord,
    FetchFailure,
    InvoiceDetail,
    PaymentIntentDetail,
    PipelineReport,
    StageResult,
    SubscriptionSummary,
)
from stripe_client import StripeClient

logger = logging.getLogger(__name__)


def list_active_subscriptions(client: StripeClient, status: str = 'active', limit: int = 5) -> List[Dict]:
    """
    Fetch a single page of subscriptions.

    Anything past the first page is dropped: with limit=100 and 250 active
    subscriptions only the first 100 are processed.

    Raises:
        ValueError: if limit is outside 1..100
        StripeAPIError: if the listing call fails
    """
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"Subscription page size must be between 1 and {MAX_PAGE_SIZE}, got {limit}")

    logger.info(f"Fetching up to {limit} '{status}' subscriptions...")
    subscriptions = client.list_subscriptions(status=status, limit=limit)
    logger.info(f"Found {len(subscriptions)} subscription(s)")
    return subscriptions


def select_first_and_last(invoices: List[Dict]) -> Tuple[Dict, Dict]:
    """Return the earliest and latest invoice by creation time (the same one if there is only one)."""
    if not invoices:
        raise ValueError("No invoices to select from")
    ordered = sorted(invoices, key=lambda invoice: invoice.get('created', 0))
    return ordered[0], ordered[-1]


def _customer_id(subscription: Dict) -> str:
    customer = subscription.get('customer')
    # customer may come back expanded
    if isinstance(customer, dict):
        return customer.get('id', '')
    return customer or ''


def resolve_invoice_pairs(
    client: StripeClient,
    subscriptions: List[Dict],
    invoice_limit: int = MAX_PAGE_SIZE,
) -> StageResult[List[SubscriptionSummary]]:
    """
    Build a SubscriptionSummary for each subscription.

    A subscription whose invoice or customer lookup fails, or whose customer has
    no invoices, is left out of the result and recorded as a failure.
    """
    summaries: List[SubscriptionSummary] = []
    failures: List[FetchFailure] = []
    total = len(subscriptions)

    for idx, subscription in enumerate(subscriptions, 1):
        subscription_id = subscription.get('id', 'N/A')
        customer_id = _customer_id(subscription)
        logger.info(f"[{idx}/{total}] Fetching invoices for subscription {subscription_id} (customer: {customer_id})")

        if not customer_id:
            logger.warning(f"  Subscription {subscription_id} has no customer, skipping")
            failures.append(FetchFailure('resolve', subscription_id, 'no customer on subscription'))
            continue

        try:
            invoices = client.list_invoices(customer_id, limit=invoice_limit)
            if not invoices:
                logger.info(f"  No invoices found for customer {customer_id}")
                failures.append(FetchFailure('resolve', subscription_id, 'no invoices'))
                continue

            first_invoice, last_invoice = select_first_and_last(invoices)
            customer = client.get_customer(customer_id)
        except StripeAPIError as e:
            logger.error(f"  Error fetching invoices for customer {customer_id}: {e}")
            failures.append(FetchFailure('resolve', subscription_id, str(e)))
            continue

        summary = SubscriptionSummary(
            subscription_id=subscription_id,
            customer_id=customer_id,
            customer_email=customer.get('email'),
            first_invoice_id=first_invoice['id'],
            last_invoice_id=last_invoice['id'],
        )
        summaries.append(summary)
        logger.info(
            f"  ✓ First invoice: {summary.first_invoice_id}, last invoice: {summary.last_invoice_id}, "
            f"email: {summary.customer_email}"
        )

    logger.info(f"Resolved {len(summaries)}/{total} subscription(s)")
    return StageResult(summaries, failures)


def fetch_invoice_detail(client: StripeClient, invoice_id: str, failures: List[FetchFailure]) -> InvoiceDetail:
    try:
        return InvoiceDetail.from_invoice(client.get_invoice(invoice_id))
    except StripeAPIError as e:
        logger.error(f"  Error fetching invoice details for ID {invoice_id}: {e}")
        failures.append(FetchFailure('invoice', invoice_id, str(e)))
        return InvoiceDetail()


def fetch_checkout_session(client: StripeClient, subscription_id: str, failures: List[FetchFailure]) -> CheckoutSessionDetail:
    """Return the first checkout session for the subscription; empty if there is none."""
    try:
        sessions = client.list_checkout_sessions(subscription_id, limit=1)
    except StripeAPIError as e:
        logger.error(f"  Error fetching checkout session for subscription {subscription_id}: {e}")
        failures.append(FetchFailure('checkout_session', subscription_id, str(e)))
        return CheckoutSessionDetail()

    if not sessions:
        logger.info(f"  No checkout session found for subscription {subscription_id}")
        return CheckoutSessionDetail()
    return CheckoutSessionDetail.from_session(sessions[0])


def fetch_payment_intent(client: StripeClient, invoice_id: str, failures: List[FetchFailure]) -> PaymentIntentDetail:
    """
    Look up the payment intent referenced by an invoice.

    The invoice is re-read to get its payment_intent reference, which may be an
    id or an already expanded object. No reference gives an empty detail.
    """
    try:
        invoice = client.get_invoice(invoice_id)
        reference = invoice.get('payment_intent')
        if isinstance(reference, dict):
            reference = reference.get('id')
        if not reference:
            logger.info(f"  Invoice {invoice_id} has no payment intent")
            return PaymentIntentDetail()
        return PaymentIntentDetail(client.get_payment_intent(reference))
    except StripeAPIError as e:
        logger.error(f"  Error fetching payment intent for invoice {invoice_id}: {e}")
        failures.append(FetchFailure('payment_intent', invoice_id, str(e)))
        return PaymentIntentDetail()


def enrich_summary(client: StripeClient, summary: SubscriptionSummary, failures: List[FetchFailure]) -> EnrichedRecord:
    """Run the four detail lookups for one summary. Each one fails on its own."""
    first_invoice = fetch_invoice_detail(client, summary.first_invoice_id, failures)
    last_invoice = fetch_invoice_detail(client, summary.last_invoice_id, failures)
    checkout_session = fetch_checkout_session(client, summary.subscription_id, failures)

    payment_intent = PaymentIntentDetail()
    if not last_invoice.failed:
        payment_intent = fetch_payment_intent(client, summary.last_invoice_id, failures)

    return EnrichedRecord(
        summary=summary,
        first_invoice=first_invoice,
        last_invoice=last_invoice,
        checkout_session=checkout_session,
        payment_intent=payment_intent,
    )


def enrich_summaries(client: StripeClient, summaries: List[SubscriptionSummary]) -> StageResult[List[EnrichedRecord]]:
    """Enrich every summary. Always returns one record per summary."""
    records: List[EnrichedRecord] = []
    failures: List[FetchFailure] = []
    total = len(summaries)

    for idx, summary in enumerate(summaries, 1):
        logger.info(f"[{idx}/{total}] Enriching subscription {summary.subscription_id}")
        record = enrich_summary(client, summary, failures)
        records.append(record)
        logger.debug(f"  Detail blocks: {record.detail_blocks()}")

    logger.info(f"Enriched {len(records)} record(s) with {len(failures)} failed lookup(s)")
    return StageResult(records, failures)


def run_pipeline(client: StripeClient, settings: Settings) -> PipelineReport:
    """
    Run all four stages once.

    The enricher works from what was read back out of invoices.json, so the
    snapshot on disk is exactly what the final output was built from.

    Raises:
        StripeAPIError: if subscriptions cannot be listed
        OSError: if a file cannot be written or read
    """
    report = PipelineReport()

    subscriptions = list_active_subscriptions(
        client, status=settings.subscription_status, limit=settings.subscription_page_size
    )
    report.subscriptions_fetched = len(subscriptions)

    resolved = resolve_invoice_pairs(client, subscriptions, invoice_limit=settings.invoice_page_size)
    report.failures.extend(resolved.failures)

    write_snapshot(resolved.value, settings.snapshot_path)
    report.snapshot_path = settings.snapshot_path
    report.summaries_written = len(resolved.value)
    summaries = read_snapshot(settings.snapshot_path)

    enriched = enrich_summaries(client, summaries)
    report.failures.extend(enriched.failures)

    write_enriched(enriched.value, settings.output_path, settings.output_format, layout=settings.json_layout)
    report.records_enriched = len(enriched.value)
    report.output_path = settings.output_path

    return report


def log_report(report: PipelineReport) -> None:
    logger.info("=" * 60)
    logger.info("Enrichment Complete")
    logger.info("=" * 60)
    logger.info(f"  Subscriptions fetched: {report.subscriptions_fetched}")
    logger.info(f"  Summaries written:     {report.summaries_written} -> {report.snapshot_path}")
    logger.info(f"  Records enriched:      {report.records_enriched} -> {report.output_path}")
    if report.failures:
        logger.warning(f"  {len(report.failures)} lookup(s) failed:")
        for failure in report.failures:
            logger.warning(f"    [{failure.stage}] {failure.object_id}: {failure.reason}")
