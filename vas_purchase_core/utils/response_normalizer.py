"""
Response Normalizer

Maps a purchase response of unknown shape to one canonical Outcome.

The aggregator reports the same result in several shapes: a top-level
`code`, a nested `content.transactions.status`, the same two fields wrapped
under `response`, or only a `response_description`. The paths below are
walked in order, once per marker class:

1. success markers (a success anywhere wins over a failure anywhere)
2. pending markers
3. failure markers

Nothing found means AMBIGUOUS. A missing signal is never read as success.
New provider shapes are supported by appending a path, not by adding a
branch.
"""

import logging
import re
import socket
from typing import Any, Dict, Optional, Tuple

import requests

from vas_purchase_core.models import (
    AMBIGUOUS,
    FAILED,
    PENDING,
    SUCCESS,
    Outcome,
    RawResponse,
)
from vas_purchase_core.utils.error_taxonomy import (
    FAILURE_CODES,
    PENDING_CODES,
    PROVIDER_UNAVAILABLE,
    classify,
)

logger = logging.getLogger(__name__)

SUCCESS_CODES = frozenset({'000', '01'})
SUCCESS_STATUSES = frozenset({'delivered', 'successful'})
PENDING_STATUSES = frozenset({'pending', 'initiated'})
FAILURE_STATUSES = frozenset({'failed', 'reversed'})

# Whole word only: UNSUCCESSFUL must not read as success
_SUCCESS_DESCRIPTION = re.compile(r'\bSUCCESSFUL\b', re.IGNORECASE)
# "NOT SUCCESSFUL", "was not successful", "never successful"
_NEGATED_SUCCESS = re.compile(r'\b(?:not|never|no)\s+(?:\w+\s+)?SUCCESSFUL\b', re.IGNORECASE)

PATH_CODE = 'code'
PATH_STATUS = 'status'
PATH_DESCRIPTION = 'description'

# (prefix, field path relative to prefix, signal type). Order is precedence.
STATUS_PATHS = (
    ((), ('code',), PATH_CODE),
    ((), ('content', 'transactions', 'status'), PATH_STATUS),
    (('response',), ('code',), PATH_CODE),
    (('response',), ('content', 'transactions', 'status'), PATH_STATUS),
    ((), ('response_description',), PATH_DESCRIPTION),
    ((), ('transaction', 'status'), PATH_STATUS),
    (('response',), ('transaction', 'status'), PATH_STATUS),
    (('response',), ('response_description',), PATH_DESCRIPTION),
)

REFERENCE_FIELDS = ('requestId', 'request_id', 'reference', 'transactionId', 'transaction_id')
DESCRIPTION_FIELDS = ('response_description', 'error_message', 'message')
REJECTION_FIELDS = ('detail', 'error', 'message', 'error_message', 'response_description')

TIMEOUT_MESSAGE = 'The purchase request timed out. Please check your transaction history before trying again.'
UNREACHABLE_MESSAGE = 'Unable to reach the server. Please check your network connection and try again.'
AMBIGUOUS_MESSAGE = ('We could not confirm the status of this transaction. '
                     'Please check your transaction history before trying again.')


def _dig(node: Any, keys: Tuple[str, ...]) -> Any:
    """Follow keys through nested dicts; None as soon as the shape breaks."""
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def is_timeout_error(error: BaseException) -> bool:
    """True for read/connect timeouts from requests, sockets or the stdlib."""
    return isinstance(error, (requests.exceptions.Timeout, socket.timeout, TimeoutError))


def _signal(payload: Dict[str, Any], prefix, path, kind) -> Optional[str]:
    value = _text(_dig(payload, prefix + path))
    if value is None:
        return None
    if kind == PATH_STATUS:
        return value.lower()
    return value


def _is_success(value: str, kind: str) -> bool:
    if kind == PATH_CODE:
        return value in SUCCESS_CODES
    if kind == PATH_STATUS:
        return value in SUCCESS_STATUSES
    return bool(_SUCCESS_DESCRIPTION.search(value)) and not _NEGATED_SUCCESS.search(value)


def _is_pending(value: str, kind: str) -> bool:
    if kind == PATH_CODE:
        return value in PENDING_CODES
    if kind == PATH_STATUS:
        return value in PENDING_STATUSES
    return False


def _is_failure(value: str, kind: str) -> bool:
    if kind == PATH_CODE:
        return value in FAILURE_CODES
    if kind == PATH_STATUS:
        return value in FAILURE_STATUSES
    return False


def _find(payload: Dict[str, Any], predicate) -> Optional[Tuple[Tuple[str, ...], str, str]]:
    for prefix, path, kind in STATUS_PATHS:
        value = _signal(payload, prefix, path, kind)
        if value is not None and predicate(value, kind):
            return prefix, value, kind
    return None


def _reference(payload: Dict[str, Any], prefix: Tuple[str, ...]) -> Optional[str]:
    candidates = (_dig(payload, prefix), _dig(payload, prefix + ('content', 'transactions')), payload)
    for node in candidates:
        if not isinstance(node, dict):
            continue
        for key in REFERENCE_FIELDS:
            value = _text(node.get(key))
            if value:
                return value
    return None


def _product_name(payload: Dict[str, Any], prefix: Tuple[str, ...]) -> Optional[str]:
    return (_text(_dig(payload, prefix + ('content', 'transactions', 'product_name')))
            or _text(_dig(payload, ('content', 'transactions', 'product_name')))
            or _text(_dig(payload, ('response', 'content', 'transactions', 'product_name'))))


def _description(node: Any) -> Optional[str]:
    if not isinstance(node, dict):
        return None
    for key in DESCRIPTION_FIELDS:
        value = _text(node.get(key))
        if value:
            return value
    return None


def _suggested_action(payload: Dict[str, Any], prefix: Tuple[str, ...]) -> Optional[str]:
    return _text(_dig(payload, prefix + ('suggested_action',))) or _text(payload.get('suggested_action'))


def _failed(kind_and_message: Dict[str, str], raw: Any = None, consumed_attempt: bool = True) -> Outcome:
    return Outcome(
        status=FAILED,
        error_kind=kind_and_message['kind'],
        message=kind_and_message['message'],
        raw=raw,
        consumed_attempt=consumed_attempt,
    )


def normalize_transport_error(error: BaseException) -> Outcome:
    """
    Outcome for a call that produced no response.

    A timeout may have reached the aggregator, so it consumes the attempt.
    Anything else (DNS, refused connection) never left the client and is
    marked consumed_attempt=False so it does not use up a retry.
    """
    if is_timeout_error(error):
        logger.warning(f'Purchase call timed out: {error}')
        return _failed({'kind': PROVIDER_UNAVAILABLE, 'message': TIMEOUT_MESSAGE})

    logger.warning(f'Purchase call did not reach the server: {error}')
    return _failed({'kind': PROVIDER_UNAVAILABLE, 'message': UNREACHABLE_MESSAGE}, consumed_attempt=False)


def normalize_payload(payload: Any, http_status: Optional[int] = None) -> Outcome:
    """Resolve a response body (and optional HTTP status) to an Outcome."""
    if not isinstance(payload, dict) or not payload:
        logger.warning(f'Ambiguous purchase response (status {http_status}): {payload!r}')
        return Outcome(status=AMBIGUOUS, message=AMBIGUOUS_MESSAGE, raw=payload)

    match = _find(payload, _is_success)
    if match:
        prefix, value, kind = match
        product_name = _product_name(payload, prefix)
        message = f'{product_name} purchased successfully!' if product_name else 'Transaction completed successfully!'
        return Outcome(
            status=SUCCESS,
            message=message,
            reference=_reference(payload, prefix),
            product_name=product_name,
        )

    match = _find(payload, _is_pending)
    if match:
        prefix, value, kind = match
        node = _dig(payload, prefix)
        code = value if kind == PATH_CODE else _text(_dig(node, ('code',)))
        classified = classify(code, None)
        return Outcome(
            status=PENDING,
            message=classified['message'] if code in PENDING_CODES else 'Transaction is pending. Please wait for confirmation.',
            reference=_reference(payload, prefix),
        )

    match = _find(payload, _is_failure)
    if match:
        prefix, value, kind = match
        node = _dig(payload, prefix)
        code = value if kind == PATH_CODE else _text(_dig(node, ('code',)))
        classified = classify(code, _description(node), _suggested_action(payload, prefix))
        return _failed(classified, raw=payload)

    if http_status is not None and 400 <= http_status < 500:
        description = None
        for key in REJECTION_FIELDS:
            description = _text(payload.get(key))
            if description:
                break
        classified = classify(_text(payload.get('code')), description, _suggested_action(payload, ()))
        return _failed(classified, raw=payload)

    logger.warning(f'Ambiguous purchase response (status {http_status}): {payload!r}')
    return Outcome(status=AMBIGUOUS, message=AMBIGUOUS_MESSAGE, raw=payload)


def normalize(raw) -> Outcome:
    """
    Resolve a RawResponse, a bare payload, or a transport exception.

    Returns:
        Outcome: exactly one, never partially filled
    """
    if isinstance(raw, BaseException):
        return normalize_transport_error(raw)
    if isinstance(raw, RawResponse):
        if raw.error is not None:
            return normalize_transport_error(raw.error)
        return normalize_payload(raw.payload, raw.http_status)
    return normalize_payload(raw)


RECORD_SUCCESS_STATUSES = frozenset({'completed', 'successful', 'success', 'delivered'})
RECORD_PENDING_STATUSES = frozenset({'pending', 'processing', 'initiated'})
RECORD_FAILURE_STATUSES = frozenset({'failed', 'reversed'})


def _record_reference(record: Dict[str, Any]) -> Optional[str]:
    return _text(record.get('vtpass_reference')) or _text(record.get('request_id'))


def _record_outcome(record: Dict[str, Any]) -> Optional[Outcome]:
    status = (_text(record.get('status')) or '').lower()
    reference = _record_reference(record)
    if status in RECORD_SUCCESS_STATUSES:
        return Outcome(status=SUCCESS, message='Transaction completed successfully!', reference=reference)
    if status in RECORD_PENDING_STATUSES:
        return Outcome(status=PENDING, message='Transaction is pending. Please wait for confirmation.',
                       reference=reference)
    if status in RECORD_FAILURE_STATUSES:
        classified = classify(_text(record.get('code')), _description(record))
        return _failed(classified, raw=record)
    return None


def normalize_record(raw) -> Outcome:
    """
    Resolve a stored transaction record (status lookup) to an Outcome.

    The record wraps the aggregator payload under response_data next to its
    own status field. Both are read; a success in either one wins.

    A lookup that did not return a record (transport error or non-2xx
    status) resolves to AMBIGUOUS, never to FAILED.
    """
    if isinstance(raw, BaseException) or (isinstance(raw, RawResponse) and raw.error is not None):
        error = raw if isinstance(raw, BaseException) else raw.error
        logger.warning(f'Status lookup did not complete: {error}')
        return Outcome(status=AMBIGUOUS, message=AMBIGUOUS_MESSAGE, raw=repr(error))

    record = raw.payload if isinstance(raw, RawResponse) else raw
    http_status = raw.http_status if isinstance(raw, RawResponse) else None
    if http_status is not None and not 200 <= http_status < 300:
        # A failed lookup says nothing about the purchase itself
        logger.warning(f'Status lookup failed with HTTP {http_status}: {record!r}')
        return Outcome(status=AMBIGUOUS, message=AMBIGUOUS_MESSAGE, raw=record)
    if not isinstance(record, dict) or not record:
        return normalize_payload(record, http_status)

    nested = record.get('response_data')
    from_payload = normalize_payload(nested) if isinstance(nested, dict) and nested else None
    from_record = _record_outcome(record)

    for outcome in (from_payload, from_record):
        if outcome is not None and outcome.status == SUCCESS:
            if outcome.reference is None:
                return Outcome(status=SUCCESS, message=outcome.message, reference=_record_reference(record),
                               product_name=outcome.product_name)
            return outcome

    if from_payload is not None and from_payload.status != AMBIGUOUS:
        return from_payload
    if from_record is not None:
        return from_record
    return normalize_payload(record, http_status)
