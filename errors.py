"""Exceptions raised by the invoice enrichment job."""
from typing import Optional


class EnricherError(Exception):
    """Base class for errors raised by this project."""


class ConfigError(EnricherError):
    """Missing or invalid configuration."""


class StripeAPIError(EnricherError):
    """A Stripe API call failed (transport error, non-2xx status or bad body)."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path
