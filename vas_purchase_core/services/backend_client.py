"""
Backend API Client

Thin requests wrapper around the three backend calls the purchase engine
needs:

- POST /users/purchase/                      submit one purchase attempt
- GET  /users/balance/                       authoritative wallet balance
- GET  /users/transaction-status/<id>/       stored record for an attempt

The client does not interpret purchase responses. It returns a RawResponse
(payload + HTTP status) and lets transport errors (requests.exceptions.*)
propagate so the normalizer can tell a timeout from a refused connection.
"""

import logging

import requests

from vas_purchase_core.config.environment import LOOKUP_TIMEOUT, VAS_API_BASE_URL, VAS_API_TOKEN
from vas_purchase_core.models import RawResponse
from vas_purchase_core.utils.balance_sync import extract_balance
from vas_purchase_core.utils.vtpass_catalog import (
    WAEC_RESULT_CHECKER,
    get_correct_service_id,
    get_correct_variation_code,
    get_network_key,
    get_transaction_type,
)

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ('pin', 'phone', 'email', 'billersCode')


def _mask(value):
    text = str(value)
    if len(text) <= 4:
        return '***'
    return f'{text[:3]}***{text[-2:]}'


def mask_payload(payload):
    """Copy of payload safe to log"""
    masked = dict(payload or {})
    for key in SENSITIVE_FIELDS:
        if masked.get(key):
            masked[key] = _mask(masked[key])
    return masked


def build_purchase_payload(attempt):
    """
    Build the purchase request body for one attempt.

    The attempt's request_id is sent as the idempotency key. Category-specific
    extras (e.g. JAMB profile ID, subscription_type) are passed through.
    """
    request = attempt.request
    extras = dict(request.extras)
    recipient = (request.recipient or '').strip()

    payload = {
        'service_id': request.service_id,
        'amount': request.amount,
        'pin': request.pin,
        'transaction_type': get_transaction_type(request.category),
        'request_id': attempt.request_id,
    }

    if request.variation_code:
        payload['variation_code'] = request.variation_code

    # Airtime and data forms may send a bare network name or an old plan label
    if request.category in ('airtime', 'data'):
        network_key = get_network_key(request.service_id)
        if network_key:
            payload['service_id'] = get_correct_service_id(network_key, request.category.upper())
            if request.variation_code:
                payload['variation_code'] = get_correct_variation_code(
                    network_key, 'DATA', request.variation_code)

    phone = extras.pop('phone', None)
    email = request.email or extras.pop('email', None)
    billers_code = extras.pop('billersCode', None) or extras.pop('profile_id', None)

    if request.category in ('airtime', 'data'):
        phone = recipient
    elif request.category == 'exam':
        if '@' in recipient:
            email = recipient
        else:
            phone = phone or recipient
        if request.service_id == WAEC_RESULT_CHECKER[0] and not request.variation_code:
            payload['variation_code'] = WAEC_RESULT_CHECKER[1]
    else:
        billers_code = billers_code or recipient

    if phone:
        payload['phone'] = phone
    if email:
        payload['email'] = email
    if billers_code:
        payload['billersCode'] = str(billers_code)

    for key, value in extras.items():
        payload.setdefault(key, value)

    return payload


def _parse(response):
    try:
        body = response.json()
    except ValueError:
        logger.warning(f'Non-JSON response ({response.status_code}): {response.text[:200]}')
        body = {}
    return RawResponse(payload=body, http_status=response.status_code)


class BackendClient:
    """Calls the backend purchase, balance and transaction-status endpoints"""

    def __init__(self, base_url=None, token=None, session=None, lookup_timeout=LOOKUP_TIMEOUT):
        self.base_url = (base_url or VAS_API_BASE_URL).rstrip('/')
        self.token = token if token is not None else VAS_API_TOKEN
        self.session = session or requests.Session()
        self.lookup_timeout = lookup_timeout

    def _headers(self):
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': 'VAS-Purchase-Core/1.0',
        }
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def purchase(self, attempt, timeout):
        """Submit one attempt. Raises requests.exceptions.Timeout/ConnectionError on transport failure."""
        payload = build_purchase_payload(attempt)
        url = f'{self.base_url}/users/purchase/'

        logger.info(f'Purchase {attempt.request_id} -> {url}: {mask_payload(payload)}')

        response = self.session.post(url, headers=self._headers(), json=payload, timeout=timeout)

        logger.info(f'Purchase {attempt.request_id} response: {response.status_code} {response.text[:500]}')
        return _parse(response)

    def get_balance(self):
        """Current wallet balance as a float (0.0 when the body has no usable balance)"""
        url = f'{self.base_url}/users/balance/'
        response = self.session.get(url, headers=self._headers(), timeout=self.lookup_timeout)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError:
            logger.warning(f'Non-JSON balance response: {response.text[:200]}')
            return 0.0
        return extract_balance(body)

    def transaction_status(self, request_id):
        """Stored transaction record for a request ID, as a RawResponse"""
        url = f'{self.base_url}/users/transaction-status/{request_id}/'
        response = self.session.get(url, headers=self._headers(), timeout=self.lookup_timeout)
        logger.info(f'Status lookup {request_id}: {response.status_code}')
        return _parse(response)
