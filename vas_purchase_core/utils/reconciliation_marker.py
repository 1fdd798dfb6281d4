"""
Standardized Reconciliation Marker

Any attempt whose outcome might hide a success on the provider side is
flagged here, so ambiguous results are logged distinctly from plain
failures and can be looked up later by request ID.

Flags:
- AMBIGUOUS outcomes (unrecognized or contradictory response)
- Timeouts (the call may have reached the aggregator)
- Failures whose reason suggests the provider actually succeeded
"""

import logging
from datetime import datetime

from vas_purchase_core.models import AMBIGUOUS, FAILED
from vas_purchase_core.utils.error_taxonomy import PROVIDER_UNAVAILABLE, UNKNOWN

logger = logging.getLogger(__name__)

REASON_AMBIGUOUS_RESPONSE = 'AMBIGUOUS_RESPONSE'
REASON_TIMEOUT = 'TIMEOUT_AFTER_DISPATCH'
REASON_SUSPICIOUS_FAILURE = 'SUSPICIOUS_FAILURE'

# Provider clearly said no; nothing to reconcile
CLEAR_FAILURES = (
    'insufficient',
    'invalid phone',
    'invalid number',
    'does not exist',
    'duplicate',
    'network not active',
    'invalid request',
)

# Wording that usually means the provider delivered but we were told otherwise
SUSPICIOUS_PATTERNS = (
    'successful',
    'delivered',
    'credited',
    'completed',
    'plan mismatch',
    'price mismatch',
    'internal server error',
    'exception',
)


def is_suspicious_outcome(outcome):
    """
    Determine if an outcome might be a ghost success

    Returns: (is_suspicious: bool, reason: str)
    """
    if outcome is None:
        return (False, 'No outcome')

    if outcome.status == AMBIGUOUS:
        return (True, REASON_AMBIGUOUS_RESPONSE)

    if outcome.status != FAILED:
        return (False, f'Outcome is {outcome.status}')

    if outcome.error_kind == PROVIDER_UNAVAILABLE and outcome.consumed_attempt:
        return (True, REASON_TIMEOUT)

    message = (outcome.message or '').lower()
    for clear_fail in CLEAR_FAILURES:
        if clear_fail in message:
            return (False, f'Clear failure: {clear_fail}')

    if outcome.error_kind == UNKNOWN:
        for pattern in SUSPICIOUS_PATTERNS:
            if pattern in message:
                return (True, REASON_SUSPICIOUS_FAILURE)

    return (False, 'Appears to be legitimate failure')


def mark_attempt_for_reconciliation(session, attempt, outcome, reason, severity='MEDIUM', details=None):
    """
    Standard way to flag an attempt for reconciliation

    Args:
        session: PurchaseSession the attempt belongs to
        attempt: PurchaseAttempt being flagged
        outcome: Outcome the attempt produced
        reason: Reconciliation reason (e.g., 'AMBIGUOUS_RESPONSE', 'TIMEOUT_AFTER_DISPATCH')
        severity: 'LOW', 'MEDIUM', or 'HIGH'
        details: Additional details dict

    Returns:
        dict: the marker that was recorded on the session
    """
    marker = {
        'request_id': attempt.request_id,
        'ordinal': attempt.ordinal,
        'category': attempt.request.category,
        'service_id': attempt.request.service_id,
        'amount': attempt.request.amount,
        'original_status': outcome.status,
        'error_kind': outcome.error_kind,
        'reason': reason,
        'severity': severity,
        'marked_at': datetime.utcnow(),
    }
    if details:
        marker['details'] = details

    session.reconciliation_flags.append(marker)

    log = logger.error if severity == 'HIGH' else logger.warning
    log(f'RECONCILIATION NEEDED: {attempt.request_id} reason={reason} severity={severity} '
        f'status={outcome.status} raw={outcome.raw!r}')

    return marker


def flag_if_suspicious(session, attempt, outcome, http_status=None):
    """Flag the attempt when its outcome could hide a success. Returns the marker or None."""
    suspicious, reason = is_suspicious_outcome(outcome)
    if not suspicious:
        return None

    severity = 'HIGH' if reason == REASON_AMBIGUOUS_RESPONSE and http_status and http_status >= 500 else 'MEDIUM'
    details = {'http_status': http_status} if http_status is not None else None
    return mark_attempt_for_reconciliation(session, attempt, outcome, reason, severity=severity, details=details)
