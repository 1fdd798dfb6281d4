"""
Purchase Data Model

PurchaseRequest, PurchaseAttempt, RawResponse and Outcome are immutable
values. PurchaseSession is the only mutable record and is owned by one
PurchaseOrchestrator for the lifetime of a single purchase flow.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from vas_purchase_core.config.environment import PURCHASE_CATEGORIES
from vas_purchase_core.utils.error_taxonomy import is_retryable_kind

# ==================== OUTCOME STATUSES ====================

SUCCESS = 'SUCCESS'
PENDING = 'PENDING'
FAILED = 'FAILED'
AMBIGUOUS = 'AMBIGUOUS'

OUTCOME_STATUSES = (SUCCESS, PENDING, FAILED, AMBIGUOUS)

# ==================== SESSION STATES ====================

IDLE = 'IDLE'
SUBMITTING = 'SUBMITTING'
EXHAUSTED = 'EXHAUSTED'

TERMINAL_STATES = (SUCCESS, PENDING, EXHAUSTED)
RETRYABLE_STATES = (FAILED, AMBIGUOUS)


@dataclass(frozen=True)
class PurchaseRequest:
    """What the user asked to buy. Never mutated; a retry makes a new attempt."""

    category: str
    service_id: str
    amount: float
    recipient: str
    pin: str
    variation_code: Optional[str] = None
    email: Optional[str] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'category', (self.category or '').lower())
        object.__setattr__(self, 'extras', MappingProxyType(dict(self.extras or {})))


@dataclass(frozen=True)
class PurchaseAttempt:
    """One idempotency key bound to one request and one ordinal (0 = first try)."""

    request: PurchaseRequest
    ordinal: int
    request_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class RawResponse:
    """Unmodified backend payload, or the transport error that replaced it."""

    payload: Any = None
    http_status: Optional[int] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class Outcome:
    """
    Canonical result of one attempt.

    status is SUCCESS, PENDING, FAILED or AMBIGUOUS. error_kind is only set
    for FAILED. consumed_attempt is False when the request never reached
    the server, in which case the attempt does not count against retries.
    """

    status: str
    message: str
    error_kind: Optional[str] = None
    reference: Optional[str] = None
    product_name: Optional[str] = None
    raw: Any = None
    consumed_attempt: bool = True

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    @property
    def is_failed(self) -> bool:
        return self.status == FAILED

    @property
    def is_ambiguous(self) -> bool:
        return self.status == AMBIGUOUS

    @property
    def may_retry(self) -> bool:
        """True for AMBIGUOUS, and for FAILED unless the user must change input."""
        if self.status == AMBIGUOUS:
            return True
        if self.status == FAILED:
            return is_retryable_kind(self.error_kind)
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'message': self.message,
            'error_kind': self.error_kind,
            'reference': self.reference,
            'product_name': self.product_name,
            'may_retry': self.may_retry,
        }


@dataclass
class PurchaseSession:
    """
    One user-initiated purchase flow.

    attempts holds only attempts that reached the server (at most
    max_retries + 1). Attempts lost to a connection error before reaching
    the server go to discarded_attempts instead. history keeps both, in
    dispatch order.
    """

    request: PurchaseRequest
    max_retries: int
    attempts: List[PurchaseAttempt] = field(default_factory=list)
    discarded_attempts: List[PurchaseAttempt] = field(default_factory=list)
    history: List[PurchaseAttempt] = field(default_factory=list)
    outcome: Optional[Outcome] = None
    state: str = IDLE
    reconciliation_flags: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def last_attempt(self) -> Optional[PurchaseAttempt]:
        if not self.history:
            return None
        return self.history[-1]

    @property
    def next_ordinal(self) -> int:
        return len(self.attempts)

    @property
    def retries_used(self) -> int:
        return max(len(self.attempts) - 1, 0)

    @property
    def retries_remaining(self) -> int:
        if self.state == EXHAUSTED:
            return 0
        return max(self.max_retries + 1 - len(self.attempts), 0)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def request_ids(self) -> List[str]:
        return [attempt.request_id for attempt in self.attempts]


class ModelValidator:
    """
    Validation utilities for purchase requests.
    Runs before any network call so a bad form never reaches the backend.
    """

    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format."""
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return re.match(pattern, email or '') is not None

    @staticmethod
    def validate_amount(amount) -> bool:
        """Validate amount is positive."""
        try:
            return float(amount) > 0
        except (ValueError, TypeError):
            return False

    @staticmethod
    def validate_phone_number(phone: str) -> bool:
        """Validate Nigerian phone number (080..., 234..., +234...)."""
        digits = re.sub(r'[\s-]', '', phone or '')
        return re.match(r'^(\+?234|0)[789][01]\d{8}$', digits) is not None

    @staticmethod
    def validate_category(category: str) -> bool:
        """Validate purchase category."""
        return (category or '').lower() in PURCHASE_CATEGORIES

    @staticmethod
    def validate_pin(pin: str) -> bool:
        """Validate 4-digit wallet PIN."""
        return re.match(r'^\d{4}$', str(pin or '')) is not None

    @classmethod
    def validate_purchase_request(cls, request: PurchaseRequest) -> Dict[str, List[str]]:
        """
        Validate a purchase request.

        Returns:
            dict: field name -> list of error messages (empty when valid)
        """
        errors = {}

        if not cls.validate_category(request.category):
            errors['category'] = [f'Unsupported purchase category: {request.category}']
        if not request.service_id:
            errors['service_id'] = ['Service is required']
        if not cls.validate_amount(request.amount):
            errors['amount'] = ['Amount must be greater than zero']
        if not cls.validate_pin(request.pin):
            errors['pin'] = ['Wallet PIN must be 4 digits']

        recipient = (request.recipient or '').strip()
        if not recipient:
            errors['recipient'] = ['Recipient is required']
        elif request.category in ('airtime', 'data') and not cls.validate_phone_number(recipient):
            errors['recipient'] = ['Invalid phone number format']
        elif request.category == 'exam' and '@' in recipient and not cls.validate_email(recipient):
            errors['recipient'] = ['Invalid email address']

        if request.email and not cls.validate_email(request.email):
            errors['email'] = ['Invalid email address']

        if request.category == 'data' and not request.variation_code:
            errors['variation_code'] = ['Data plan is required']

        if request.category == 'exam' and 'jamb' in (request.service_id or '').lower():
            profile_id = str(request.extras.get('profile_id') or request.extras.get('billersCode') or '').strip()
            if not profile_id:
                errors['profile_id'] = ['Please enter your JAMB profile ID']
            elif not profile_id.isdigit():
                errors['profile_id'] = ['JAMB profile ID should contain only numbers']
            elif len(profile_id) < 9:
                errors['profile_id'] = ['JAMB profile ID should be at least 9 digits']

        return errors


__all__ = [
    'SUCCESS',
    'PENDING',
    'FAILED',
    'AMBIGUOUS',
    'IDLE',
    'SUBMITTING',
    'EXHAUSTED',
    'PurchaseRequest',
    'PurchaseAttempt',
    'RawResponse',
    'Outcome',
    'PurchaseSession',
    'ModelValidator',
]
