"""
Runtime configuration for the invoice enrichment job.
Values come from the environment (optionally via a .env file); the Stripe key
falls back to GCP Secret Manager when it is not set locally.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = 'https://api.stripe.com/v1'
STRIPE_SECRET_NAME = 'stripe-api-key'
MAX_PAGE_SIZE = 100  # Stripe max per page

OUTPUT_FORMATS = ('json', 'csv', 'xlsx')
JSON_LAYOUTS = ('nested', 'flat')


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one pipeline run."""
    stripe_api_key: str
    stripe_api_base: str = DEFAULT_API_BASE
    subscription_status: str = 'active'
    subscription_page_size: int = 5
    invoice_page_size: int = 100
    output_dir: str = '.'
    output_format: str = 'json'
    json_layout: str = 'nested'
    log_level: str = 'INFO'

    @property
    def snapshot_path(self) -> str:
        return os.path.join(self.output_dir, 'invoices.json')

    @property
    def output_path(self) -> str:
        return os.path.join(self.output_dir, f'invoices_updated.{self.output_format}')


def _read_secret(project_id: str, secret_name: str) -> str:
    # Imported lazily so local runs with STRIPE_SECRET_KEY don't need GCP auth
    from google.cloud import secretmanager

    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode('UTF-8').strip()


def get_api_key() -> str:
    """
    Get the Stripe API key from the environment or Google Secret Manager.

    Returns:
        Stripe API key string

    Raises:
        ConfigError: if the key is configured in neither place
    """
    api_key = os.getenv('STRIPE_SECRET_KEY')
    if api_key:
        logger.info("Using Stripe API key from environment variable")
        return api_key.strip()

    project_id = os.getenv('GCP_PROJECT') or os.getenv('GOOGLE_CLOUD_PROJECT')
    if not project_id:
        raise ConfigError(
            "STRIPE_SECRET_KEY not found in environment variables.\n"
            "Please create a .env file with: STRIPE_SECRET_KEY=your_key_here "
            "or set GCP_PROJECT to read it from Secret Manager."
        )

    try:
        api_key = _read_secret(project_id, STRIPE_SECRET_NAME)
    except Exception as e:
        raise ConfigError(f"Error getting Stripe API key from Secret Manager: {e}") from e

    if not api_key:
        raise ConfigError(f"Secret {STRIPE_SECRET_NAME} in project {project_id} is empty")
    logger.info("Retrieved Stripe API key from Secret Manager")
    return api_key


def _page_size(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if not 1 <= value <= MAX_PAGE_SIZE:
        raise ConfigError(f"{name} must be between 1 and {MAX_PAGE_SIZE}, got {value}")
    return value


def _choice(name: str, default: str, allowed: tuple) -> str:
    value = (os.getenv(name) or default).strip().lower()
    if value not in allowed:
        raise ConfigError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return value


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the process environment.

    Args:
        env_file: Optional path to a .env file (defaults to python-dotenv's lookup)

    Returns:
        Settings instance

    Raises:
        ConfigError: on a missing key or an invalid value
    """
    load_dotenv(env_file)

    return Settings(
        stripe_api_key=get_api_key(),
        stripe_api_base=(os.getenv('STRIPE_API_BASE') or DEFAULT_API_BASE).rstrip('/'),
        subscription_status=(os.getenv('SUBSCRIPTION_STATUS') or 'active').strip(),
        subscription_page_size=_page_size('SUBSCRIPTION_PAGE_SIZE', 5),
        invoice_page_size=_page_size('INVOICE_PAGE_SIZE', MAX_PAGE_SIZE),
        output_dir=os.getenv('OUTPUT_DIR') or '.',
        output_format=_choice('OUTPUT_FORMAT', 'json', OUTPUT_FORMATS),
        json_layout=_choice('ENRICHED_JSON_LAYOUT', 'nested', JSON_LAYOUTS),
        log_level=(os.getenv('LOG_LEVEL') or 'INFO').strip().upper(),
    )
