"""
Stripe API client for the invoice enrichment job.
Talks to the REST API directly over HTTPS; every failed call raises StripeAPIError.
"""
import logging
import requests
from typing import Any, Dict, List, Optional

from config import DEFAULT_API_BASE, MAX_PAGE_SIZE
from errors import StripeAPIError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class StripeClient:
    """Client for the handful of Stripe endpoints the pipeline reads."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_API_BASE, timeout: int = REQUEST_TIMEOUT):
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/x-www-form-urlencoded'
        }

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict:
        """
        GET a Stripe endpoint and return the decoded JSON object.

        Args:
            path: Endpoint path relative to the API base (e.g. '/invoices/in_123')
            params: Optional query parameters

        Returns:
            Decoded response body

        Raises:
            StripeAPIError: on timeout, connection failure, non-2xx status or non-JSON body
        """
        url = f"{self.base_url}{path}"
        try:
            response = requests.get(url, headers=self.headers, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise StripeAPIError(f"Request timed out after {self.timeout} seconds: GET {path}", path=path) from e
        except requests.exceptions.ConnectionError as e:
            raise StripeAPIError(f"Connection failed: GET {path}: {e}", path=path) from e
        except requests.exceptions.RequestException as e:
            raise StripeAPIError(f"Request failed: GET {path}: {type(e).__name__}: {e}", path=path) from e

        if response.status_code >= 400:
            raise StripeAPIError(
                f"HTTP {response.status_code} on GET {path}: {_error_message(response)}",
                status_code=response.status_code,
                path=path,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise StripeAPIError(
                f"Invalid JSON from GET {path}: {response.text[:200]}",
                status_code=response.status_code,
                path=path,
            ) from e

        if not isinstance(data, dict):
            raise StripeAPIError(f"Unexpected response structure from GET {path}", status_code=response.status_code, path=path)
        return data

    def _list(self, path: str, params: Dict[str, Any]) -> List[Dict]:
        """Fetch one page of a list endpoint. No pagination past the first page."""
        limit = params.get('limit')
        if limit is not None and not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")

        data = self._get(path, params)
        if 'data' not in data:
            raise StripeAPIError(f"Unexpected list response from GET {path}: no 'data' field", path=path)

        items = data.get('data') or []
        if data.get('has_more'):
            logger.debug(f"GET {path}: more results available beyond first {len(items)}")
        return items

    def list_subscriptions(self, status: str = 'active', limit: int = 5) -> List[Dict]:
        """List one page of subscriptions with the given status."""
        return self._list('/subscriptions', {'status': status, 'limit': limit})

    def list_invoices(self, customer_id: str, limit: int = MAX_PAGE_SIZE) -> List[Dict]:
        """List up to `limit` invoices for a customer."""
        return self._list('/invoices', {'customer': customer_id, 'limit': limit})

    def get_customer(self, customer_id: str) -> Dict:
        return self._get(f'/customers/{customer_id}')

    def get_invoice(self, invoice_id: str) -> Dict:
        return self._get(f'/invoices/{invoice_id}')

    def list_checkout_sessions(self, subscription_id: str, limit: int = 1) -> List[Dict]:
        """List checkout sessions that created the given subscription."""
        return self._list('/checkout/sessions', {'subscription': subscription_id, 'limit': limit})

    def get_payment_intent(self, payment_intent_id: str) -> Dict:
        return self._get(f'/payment_intents/{payment_intent_id}')


def _error_message(response: requests.Response) -> str:
    """Pull Stripe's error.message out of an error response, falling back to the raw text."""
    try:
        error_data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(error_data, dict) and isinstance(error_data.get('error'), dict):
        return error_data['error'].get('message', 'Unknown error')
    return response.text[:200]
