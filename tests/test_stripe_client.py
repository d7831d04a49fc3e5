"""Tests for the Stripe REST client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import StripeAPIError
from stripe_client import StripeClient


def _response(status_code=200, json_data=None, text=''):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def client():
    return StripeClient('sk_test_123', base_url='https://stripe.test/v1/')


class TestRequests:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            StripeClient('')

    def test_list_subscriptions_params(self, client):
        with patch('stripe_client.requests.get') as mock_get:
            mock_get.return_value = _response(json_data={'object': 'list', 'data': [{'id': 'sub_1'}], 'has_more': True})
            subs = client.list_subscriptions(status='active', limit=5)

        assert subs == [{'id': 'sub_1'}]
        args, kwargs = mock_get.call_args
        assert args[0] == 'https://stripe.test/v1/subscriptions'
        assert kwargs['params'] == {'status': 'active', 'limit': 5}
        assert kwargs['headers']['Authorization'] == 'Bearer sk_test_123'
        assert kwargs['timeout'] == 30

    def test_list_invoices_filters_by_customer(self, client):
        with patch('stripe_client.requests.get') as mock_get:
            mock_get.return_value = _response(json_data={'data': []})
            assert client.list_invoices('cus_1') == []
        assert mock_get.call_args.kwargs['params'] == {'customer': 'cus_1', 'limit': 100}

    def test_list_checkout_sessions_by_subscription(self, client):
        with patch('stripe_client.requests.get') as mock_get:
            mock_get.return_value = _response(json_data={'data': [{'id': 'cs_1'}]})
            client.list_checkout_sessions('sub_1')
        assert mock_get.call_args.args[0] == 'https://stripe.test/v1/checkout/sessions'
        assert mock_get.call_args.kwargs['params'] == {'subscription': 'sub_1', 'limit': 1}

    @pytest.mark.parametrize('method, object_id, path', [
        ('get_customer', 'cus_1', '/customers/cus_1'),
        ('get_invoice', 'in_1', '/invoices/in_1'),
        ('get_payment_intent', 'pi_1', '/payment_intents/pi_1'),
    ])
    def test_retrieve_paths(self, client, method, object_id, path):
        with patch('stripe_client.requests.get') as mock_get:
            mock_get.return_value = _response(json_data={'id': object_id})
            assert getattr(client, method)(object_id) == {'id': object_id}
        assert mock_get.call_args.args[0] == f'https://stripe.test/v1{path}'

    def test_limit_out_of_range(self, client):
        with pytest.raises(ValueError):
            client.list_invoices('cus_1', limit=101)


class TestErrors:
    def test_http_error_carries_stripe_message(self, client):
        body = {'error': {'type': 'invalid_request_error', 'message': 'No such invoice: in_x'}}
        with patch('stripe_client.requests.get', return_value=_response(404, body)):
            with pytest.raises(StripeAPIError) as exc_info:
                client.get_invoice('in_x')

        assert exc_info.value.status_code == 404
        assert exc_info.value.path == '/invoices/in_x'
        assert 'No such invoice: in_x' in str(exc_info.value)

    def test_http_error_without_json_body(self, client):
        response = _response(502, ValueError('no json'), text='Bad Gateway')
        with patch('stripe_client.requests.get', return_value=response):
            with pytest.raises(StripeAPIError, match='Bad Gateway'):
                client.get_customer('cus_1')

    def test_timeout(self, client):
        with patch('stripe_client.requests.get', side_effect=requests.exceptions.Timeout()):
            with pytest.raises(StripeAPIError, match='timed out'):
                client.get_customer('cus_1')

    def test_connection_error(self, client):
        with patch('stripe_client.requests.get', side_effect=requests.exceptions.ConnectionError('refused')):
            with pytest.raises(StripeAPIError, match='Connection failed'):
                client.list_subscriptions()

    def test_invalid_json(self, client):
        response = _response(200, ValueError('bad json'), text='<html>')
        with patch('stripe_client.requests.get', return_value=response):
            with pytest.raises(StripeAPIError, match='Invalid JSON'):
                client.get_invoice('in_1')

    def test_list_without_data_field(self, client):
        with patch('stripe_client.requests.get', return_value=_response(json_data={'object': 'invoice'})):
            with pytest.raises(StripeAPIError):
                client.list_invoices('cus_1')
