"""
Stripe invoice enrichment job.

Lists active subscriptions, resolves each customer's first and last invoice
into invoices.json, then enriches those entries with invoice totals, checkout
session and payment intent details into invoices_updated.{json,csv,xlsx}.

Configuration is read from the environment / .env (see config.py).
"""
import sys
import logging
from datetime import datetime, timezone
from typing import Optional

from config import Settings, load_settings
from errors import EnricherError
from invoice_pipeline import log_report, run_pipeline
from models import PipelineReport
from stripe_client import StripeClient

logger = logging.getLogger(__name__)


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def run(settings: Settings, client: Optional[StripeClient] = None) -> PipelineReport:
    """
    Run the pipeline once with the given settings.

    Args:
        settings: Resolved settings
        client: Optional pre-built client (a new StripeClient is created otherwise)

    Returns:
        Report of the run
    """
    if client is None:
        client = StripeClient(settings.stripe_api_key, base_url=settings.stripe_api_base)

    logger.info("=" * 60)
    logger.info("Starting Stripe invoice enrichment")
    logger.info(f"Triggered at: {datetime.now(timezone.utc).isoformat()}")
    logger.info(f"Output: {settings.output_path} (format: {settings.output_format})")
    logger.info("=" * 60)

    report = run_pipeline(client, settings)
    log_report(report)
    return report


def main() -> int:
    """
    Main function to run the enrichment job.

    Returns:
        Process exit code: 0 when the run completed (per-record failures
        included), 1 when it was aborted
    """
    try:
        settings = load_settings()
    except EnricherError as e:
        configure_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    configure_logging(settings.log_level)

    try:
        run(settings)
    except (EnricherError, OSError, ValueError) as e:
        logger.error(f"Error processing subscriptions: {e}", exc_info=True)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
