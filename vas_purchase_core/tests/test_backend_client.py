"""
Unit Tests for the Backend API Client
Tests purchase payload building and the three HTTP calls against a mocked session
"""

import unittest
from unittest import mock

import requests

from vas_purchase_core.models import PurchaseAttempt, PurchaseRequest, RawResponse
from vas_purchase_core.services.backend_client import (
    BackendClient,
    build_purchase_payload,
    mask_payload,
)
from vas_purchase_core.utils.vtpass_catalog import get_correct_service_id, get_correct_variation_code, get_network_key


def attempt_for(request_id='1700000000000-airtime-r0-abcdef123456', **fields):
    defaults = {
        'category': 'airtime',
        'service_id': 'mtn',
        'amount': 100,
        'recipient': '08031234567',
        'pin': '1234',
    }
    defaults.update(fields)
    return PurchaseAttempt(request=PurchaseRequest(**defaults), ordinal=0, request_id=request_id)


def fake_response(status_code=200, body=None):
    response = mock.Mock()
    response.status_code = status_code
    response.text = '' if body is None else str(body)
    if body is None:
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.json.return_value = body
    return response


class TestBuildPurchasePayload(unittest.TestCase):

    def test_airtime(self):
        payload = build_purchase_payload(attempt_for())
        self.assertEqual(payload, {
            'service_id': 'mtn',
            'amount': 100,
            'pin': '1234',
            'transaction_type': 'airtime',
            'request_id': '1700000000000-airtime-r0-abcdef123456',
            'phone': '08031234567',
        })

    def test_data_carries_variation_code(self):
        payload = build_purchase_payload(attempt_for(category='data', service_id='mtn-data',
                                                     variation_code='mtn-monthly-2gb'))
        self.assertEqual(payload['variation_code'], 'mtn-monthly-2gb')
        self.assertEqual(payload['transaction_type'], 'data')

    def test_network_name_and_old_plan_label_are_mapped(self):
        payload = build_purchase_payload(attempt_for(category='data', service_id='9mobile',
                                                     variation_code='1GB'))
        self.assertEqual(payload['service_id'], 'etisalat-data')
        self.assertEqual(payload['variation_code'], 'etisalat-1gb')

        payload = build_purchase_payload(attempt_for(service_id='Airtel'))
        self.assertEqual(payload['service_id'], 'airtel')

    def test_unknown_service_id_is_sent_unchanged(self):
        payload = build_purchase_payload(attempt_for(category='data', service_id='smile-direct',
                                                     variation_code='smile-1gb'))
        self.assertEqual(payload['service_id'], 'smile-direct')
        self.assertEqual(payload['variation_code'], 'smile-1gb')

    def test_tv_uses_billers_code_and_passes_extras(self):
        payload = build_purchase_payload(attempt_for(
            category='tv', service_id='dstv', recipient='7027914329',
            variation_code='dstv-padi', extras={'subscription_type': 'change'},
        ))
        self.assertEqual(payload['billersCode'], '7027914329')
        self.assertEqual(payload['subscription_type'], 'change')
        self.assertEqual(payload['transaction_type'], 'tv-subscription')
        self.assertNotIn('phone', payload)

    def test_waec_defaults_variation_and_uses_email(self):
        payload = build_purchase_payload(attempt_for(category='exam', service_id='waec',
                                                     recipient='student@example.com'))
        self.assertEqual(payload['variation_code'], 'waecdirect')
        self.assertEqual(payload['email'], 'student@example.com')
        self.assertEqual(payload['transaction_type'], 'education')

    def test_jamb_profile_id(self):
        payload = build_purchase_payload(attempt_for(
            category='exam', service_id='jamb', variation_code='utme',
            extras={'profile_id': '0123456789'},
        ))
        self.assertEqual(payload['billersCode'], '0123456789')
        self.assertEqual(payload['phone'], '08031234567')
        self.assertNotIn('profile_id', payload)

    def test_mask_payload(self):
        masked = mask_payload({'pin': '1234', 'phone': '08031234567', 'amount': 100})
        self.assertEqual(masked['pin'], '***')
        self.assertEqual(masked['phone'], '080***67')
        self.assertEqual(masked['amount'], 100)


class TestBackendClient(unittest.TestCase):

    def setUp(self):
        self.http = mock.Mock()
        self.client = BackendClient(base_url='https://api.example.com/api/', token='tok', session=self.http)

    def test_purchase_posts_payload(self):
        self.http.post.return_value = fake_response(200, {'code': '000'})
        attempt = attempt_for()

        raw = self.client.purchase(attempt, timeout=20)

        self.assertEqual(raw, RawResponse(payload={'code': '000'}, http_status=200))
        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], 'https://api.example.com/api/users/purchase/')
        self.assertEqual(kwargs['timeout'], 20)
        self.assertEqual(kwargs['json']['request_id'], attempt.request_id)
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer tok')

    def test_purchase_non_json_body(self):
        self.http.post.return_value = fake_response(502)

        raw = self.client.purchase(attempt_for(), timeout=20)

        self.assertEqual(raw.payload, {})
        self.assertEqual(raw.http_status, 502)

    def test_purchase_timeout_propagates(self):
        self.http.post.side_effect = requests.exceptions.ReadTimeout('timed out')
        with self.assertRaises(requests.exceptions.Timeout):
            self.client.purchase(attempt_for(), timeout=20)

    def test_get_balance(self):
        self.http.get.return_value = fake_response(200, {'data': {'balance': '500.00'}})

        self.assertEqual(self.client.get_balance(), 500.0)
        self.assertEqual(self.http.get.call_args.args[0], 'https://api.example.com/api/users/balance/')

    def test_transaction_status(self):
        self.http.get.return_value = fake_response(200, {'status': 'completed'})

        raw = self.client.transaction_status('abc-123')

        self.assertEqual(raw.payload, {'status': 'completed'})
        self.assertEqual(self.http.get.call_args.args[0],
                         'https://api.example.com/api/users/transaction-status/abc-123/')

    def test_no_token_no_authorization_header(self):
        client = BackendClient(base_url='https://api.example.com/api', token='', session=self.http)
        self.assertNotIn('Authorization', client._headers())


class TestVTPassCatalog(unittest.TestCase):

    def test_service_ids(self):
        self.assertEqual(get_correct_service_id('9mobile', 'DATA'), 'etisalat-data')
        self.assertEqual(get_correct_service_id('MTN', 'AIRTIME'), 'mtn')
        self.assertEqual(get_correct_service_id('smile', 'DATA'), 'smile-data')

    def test_network_key(self):
        self.assertEqual(get_network_key('etisalat-data'), '9MOBILE')
        self.assertEqual(get_network_key('glo'), 'GLO')
        self.assertIsNone(get_network_key('dstv'))

    def test_variation_codes(self):
        self.assertEqual(get_correct_variation_code('mtn', 'DATA', '2GB-30Days'), 'mtn-monthly-2gb')
        self.assertEqual(get_correct_variation_code('glo', 'DATA', 'glo-custom'), 'glo-custom')


if __name__ == '__main__':
    unittest.main()
