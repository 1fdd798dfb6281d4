"""Error taxonomy for aggregator failures.

Maps provider error codes and free-text descriptions to a stable error kind
and a message fit to show the user:

- classify(code, description, suggested_action=None) -> dict
- is_retryable_kind(kind) -> bool

Resolution order is code table first, then description phrases, then
UNKNOWN. classify never raises and never returns an empty message.
"""

from typing import Dict, Optional

INSUFFICIENT_PROVIDER_FUNDS = 'INSUFFICIENT_PROVIDER_FUNDS'
DUPLICATE_TRANSACTION = 'DUPLICATE_TRANSACTION'
INVALID_PLAN_OR_VARIATION = 'INVALID_PLAN_OR_VARIATION'
INVALID_RECIPIENT_FORMAT = 'INVALID_RECIPIENT_FORMAT'
TRANSACTION_PENDING = 'TRANSACTION_PENDING'
TRANSACTION_FAILED_GENERIC = 'TRANSACTION_FAILED_GENERIC'
VERIFICATION_FAILED = 'VERIFICATION_FAILED'
PROVIDER_UNAVAILABLE = 'PROVIDER_UNAVAILABLE'
UNKNOWN = 'UNKNOWN'

ERROR_KINDS = (
    INSUFFICIENT_PROVIDER_FUNDS,
    DUPLICATE_TRANSACTION,
    INVALID_PLAN_OR_VARIATION,
    INVALID_RECIPIENT_FORMAT,
    TRANSACTION_PENDING,
    TRANSACTION_FAILED_GENERIC,
    VERIFICATION_FAILED,
    PROVIDER_UNAVAILABLE,
    UNKNOWN,
)

# These need the user to change what they entered; retrying as-is cannot help
INPUT_ERROR_KINDS = frozenset({INVALID_RECIPIENT_FORMAT, INVALID_PLAN_OR_VARIATION})
RETRYABLE_KINDS = frozenset(ERROR_KINDS) - INPUT_ERROR_KINDS

GENERIC_ERROR_MESSAGE = 'An error occurred with your transaction.'

# Codes shared by more than one provider must keep a single kind
_CODE_KIND_MAP = {
    '014': INSUFFICIENT_PROVIDER_FUNDS,
    '009': DUPLICATE_TRANSACTION,
    '019': DUPLICATE_TRANSACTION,
    '010': INVALID_PLAN_OR_VARIATION,
    '012': INVALID_PLAN_OR_VARIATION,
    '013': INVALID_PLAN_OR_VARIATION,
    '017': INVALID_PLAN_OR_VARIATION,
    '025': INVALID_PLAN_OR_VARIATION,
    '026': INVALID_PLAN_OR_VARIATION,
    '028': INVALID_PLAN_OR_VARIATION,
    '011': INVALID_RECIPIENT_FORMAT,
    '018': INVALID_RECIPIENT_FORMAT,
    '099': TRANSACTION_PENDING,
    '089': TRANSACTION_PENDING,
    '016': TRANSACTION_FAILED_GENERIC,
    '040': TRANSACTION_FAILED_GENERIC,
    '091': TRANSACTION_FAILED_GENERIC,
    '020': VERIFICATION_FAILED,
    '015': VERIFICATION_FAILED,
    '027': VERIFICATION_FAILED,
    '021': PROVIDER_UNAVAILABLE,
    '022': PROVIDER_UNAVAILABLE,
    '023': PROVIDER_UNAVAILABLE,
    '024': PROVIDER_UNAVAILABLE,
    '030': PROVIDER_UNAVAILABLE,
    '034': PROVIDER_UNAVAILABLE,
    '035': PROVIDER_UNAVAILABLE,
    '083': PROVIDER_UNAVAILABLE,
    'timeout': PROVIDER_UNAVAILABLE,
}

_CODE_MESSAGES = {
    '014': 'Insufficient funds in your account. Please add funds and try again.',
    '010': 'The selected variation code does not exist for this product. Please try a different bundle.',
    '012': 'This product does not exist. Please select a different product.',
    '013': 'The amount is below the minimum allowed for this service.',
    '017': 'The amount is above the maximum allowed for this service.',
    '025': 'Invalid amount for this service. Please enter a valid amount.',
    '026': 'Invalid variation code. Please select a different bundle.',
    '028': 'This product is not available at the moment. Please select a different product.',
    '011': 'Some purchase details are invalid. Please check and try again.',
    '018': 'Invalid phone number format. Please check and try again.',
    '089': 'Transaction is being processed. Please wait for confirmation.',
    '040': 'Transaction was reversed. Your wallet will be refunded.',
    '091': 'Transaction was not processed. Please try again.',
    '015': 'Transaction reference could not be verified. Please try again.',
    '027': 'Transaction reference could not be verified. Please try again.',
    '021': 'Network error or service unavailable. Please try again later.',
    '022': 'This service is temporarily suspended. Please try again later.',
    '023': 'This service is currently inactive. Please try again later.',
    '024': 'The service account is inactive. Please try again later.',
    '030': 'The biller cannot be reached at the moment. Please try again later.',
    '034': 'This service is temporarily suspended. Please try again later.',
    '035': 'This service is currently inactive. Please try again later.',
    '083': 'The service encountered a system error. Please try again later.',
    'timeout': 'Request timed out. Please try again.',
}

# Checked in order; first phrase found in the description wins
_DESCRIPTION_PHRASES = (
    ('insufficient', INSUFFICIENT_PROVIDER_FUNDS),
    ('duplicate', DUPLICATE_TRANSACTION),
    ('does not exist', INVALID_PLAN_OR_VARIATION),
    ('invalid variation', INVALID_PLAN_OR_VARIATION),
    ('invalid phone', INVALID_RECIPIENT_FORMAT),
    ('verification', VERIFICATION_FAILED),
    ('timed out', PROVIDER_UNAVAILABLE),
    ('unavailable', PROVIDER_UNAVAILABLE),
)

_KIND_MESSAGES = {
    INSUFFICIENT_PROVIDER_FUNDS: 'Insufficient funds to complete this transaction. Please add funds and try again.',
    DUPLICATE_TRANSACTION: 'Duplicate transaction detected. Please check if your previous transaction was successful.',
    INVALID_PLAN_OR_VARIATION: 'The selected plan is not available. Please choose a different one.',
    INVALID_RECIPIENT_FORMAT: 'The recipient details are invalid. Please check and try again.',
    TRANSACTION_PENDING: 'Transaction is pending. Please wait for confirmation.',
    TRANSACTION_FAILED_GENERIC: 'Transaction failed. Please try again.',
    VERIFICATION_FAILED: 'Transaction verification failed. Please contact support.',
    PROVIDER_UNAVAILABLE: 'Service unavailable. Please try again later.',
    UNKNOWN: GENERIC_ERROR_MESSAGE,
}


def _clean(value: Optional[object]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _with_action(message: str, suggested_action: Optional[object]) -> str:
    action = _clean(suggested_action)
    if action:
        return f'{message} {action}'
    return message


def classify(code=None, description=None, suggested_action=None) -> Dict[str, str]:
    """Return {'kind': ..., 'message': ...} for a provider code/description.

    Example: classify('014') -> INSUFFICIENT_PROVIDER_FUNDS,
    classify(None, 'Phone number does not exist') -> INVALID_PLAN_OR_VARIATION
    """
    code_key = _clean(code)
    text = _clean(description)

    if code_key is not None:
        if code_key.lower() == 'timeout':
            code_key = 'timeout'
        kind = _CODE_KIND_MAP.get(code_key)
        if kind is not None:
            message = _CODE_MESSAGES.get(code_key) or message_for_kind(kind)
            # Generic failures keep whatever reason the provider gave
            if kind == TRANSACTION_FAILED_GENERIC and code_key == '016':
                message = f"Transaction failed: {text or 'Unknown reason'}"
            return {'kind': kind, 'message': _with_action(message, suggested_action)}

    if text is not None:
        lowered = text.lower()
        for phrase, kind in _DESCRIPTION_PHRASES:
            if phrase in lowered:
                return {'kind': kind, 'message': _with_action(text, suggested_action)}
        return {'kind': UNKNOWN, 'message': _with_action(text, suggested_action)}

    return {'kind': UNKNOWN, 'message': _with_action(GENERIC_ERROR_MESSAGE, suggested_action)}


def is_retryable_kind(kind: Optional[str]) -> bool:
    """Return True if an outcome of this kind may be retried unchanged."""
    return kind in RETRYABLE_KINDS


def message_for_kind(kind: Optional[str]) -> str:
    """Default display message for a kind."""
    return _KIND_MESSAGES.get(kind, GENERIC_ERROR_MESSAGE)


PENDING_CODES = frozenset(c for c, k in _CODE_KIND_MAP.items() if k == TRANSACTION_PENDING)
FAILURE_CODES = frozenset(c for c, k in _CODE_KIND_MAP.items() if k != TRANSACTION_PENDING)
