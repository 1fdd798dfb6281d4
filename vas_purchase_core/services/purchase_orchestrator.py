"""
Purchase Orchestrator - single entry point for purchase forms

Ties the retry coordinator, response normalizer and balance reconciler
together for one purchase flow:

- submit(request) -> Outcome      first attempt (new session)
- retry() -> Outcome              next attempt for a FAILED/AMBIGUOUS session
- check_status() -> Outcome       re-resolve the last attempt from the backend record

Single-flight: at most one network call per session at any time. A second
submit/retry while one is in flight raises ConcurrentSubmissionRejected and
makes no call.

For every resolved outcome the orchestrator refreshes the wallet balance
exactly once and emits exactly one notification.
"""

import logging
import threading

from vas_purchase_core.config.environment import MAX_RETRIES, get_purchase_timeout
from vas_purchase_core.models import (
    AMBIGUOUS,
    IDLE,
    SUBMITTING,
    SUCCESS,
    ModelValidator,
)
from vas_purchase_core.utils.balance_sync import BalanceReconciler
from vas_purchase_core.utils.errors import ConcurrentSubmissionRejected, InvalidPurchaseRequest, RetryNotAllowed
from vas_purchase_core.utils.notifications import get_notification_context, log_notifier
from vas_purchase_core.utils.reconciliation_marker import flag_if_suspicious
from vas_purchase_core.utils.response_normalizer import normalize, normalize_record
from vas_purchase_core.utils.retry_coordinator import RetryCoordinator

logger = logging.getLogger(__name__)


class PurchaseOrchestrator:
    """
    Drives one purchase flow at a time.

    Collaborators (any callables will do; BackendClient provides all three):
        submit_purchase(attempt, timeout) -> RawResponse, may raise transport errors
        fetch_balance() -> balance number or balance response
        lookup_status(request_id) -> RawResponse for the stored record (optional)
        notify(notification_dict) -> None (optional, defaults to logging)

    The per-category timeout is passed to submit_purchase, which must enforce
    it (BackendClient hands it to requests). A submit_purchase that ignores
    it can block indefinitely while holding the single-flight lock, and any
    other call is rejected until it returns.
    """

    def __init__(self, submit_purchase, fetch_balance=None, lookup_status=None, notify=None,
                 reconciler=None, max_retries=MAX_RETRIES, auto_retries=0,
                 validate=True, coordinator=None):
        self.submit_purchase = submit_purchase
        self.lookup_status = lookup_status
        self.notify = notify or log_notifier
        self.reconciler = reconciler or BalanceReconciler(fetch_balance)
        self.auto_retries = auto_retries
        self.validate = validate
        self.coordinator = coordinator or RetryCoordinator(
            max_retries=max_retries,
            normalizer=normalize,
        )
        self.coordinator.on_outcome = self._on_outcome
        if self.lookup_status is not None:
            self.coordinator.verify = self._verify_attempt
        self.session = None
        self._flight = threading.Lock()

    @classmethod
    def from_client(cls, client, **kwargs):
        """Build an orchestrator wired to a BackendClient"""
        return cls(
            submit_purchase=client.purchase,
            fetch_balance=client.get_balance,
            lookup_status=client.transaction_status,
            **kwargs
        )

    # ==================== COLLABORATOR ADAPTERS ====================

    def _submit(self, attempt):
        timeout = get_purchase_timeout(attempt.request.category)
        return self.submit_purchase(attempt, timeout)

    def _verify_attempt(self, attempt):
        return normalize_record(self.lookup_status(attempt.request_id))

    def _on_outcome(self, session, attempt, outcome, raw):
        """Runs exactly once per resolved outcome"""
        http_status = getattr(raw, 'http_status', None)
        flag_if_suspicious(session, attempt, outcome, http_status=http_status)

        # Balance first: the notification must not depend on it succeeding
        self.reconciler.reconcile()

        notification = get_notification_context(session, outcome)
        try:
            self.notify(notification)
        except Exception as e:
            logger.warning(f'Notification for {attempt.request_id} failed: {str(e)}')

    # ==================== SINGLE-FLIGHT ====================

    def _acquire(self):
        if not self._flight.acquire(blocking=False):
            in_flight = self.session.last_attempt if self.session else None
            logger.warning('Rejected concurrent submission'
                           + (f' while {in_flight.request_id} is in flight' if in_flight else ''))
            raise ConcurrentSubmissionRejected(in_flight.request_id if in_flight else None)

    @property
    def is_submitting(self):
        return self.session is not None and self.session.state == SUBMITTING

    # ==================== PUBLIC API ====================

    def submit(self, request, auto_retries=None):
        """
        Start a new purchase flow for request and run its first attempt.

        Returns:
            Outcome of the last attempt made (more than one with auto_retries)

        Raises:
            ConcurrentSubmissionRejected: an attempt is already in flight
            InvalidPurchaseRequest: request failed validation (no network call)
        """
        self._acquire()
        try:
            if self.validate:
                errors = ModelValidator.validate_purchase_request(request)
                if errors:
                    raise InvalidPurchaseRequest(errors)

            session = self.coordinator.new_session(request)
            self.session = session
            logger.info(f'New {request.category} purchase session for {request.service_id} ₦{request.amount}')

            self.coordinator.attempt(
                request,
                self._submit,
                auto_retries=self.auto_retries if auto_retries is None else auto_retries,
                session=session,
            )
            return session.outcome
        finally:
            self._flight.release()

    def retry(self, session=None, auto_retries=0):
        """
        Run the next attempt for a FAILED or AMBIGUOUS session.

        Raises:
            ConcurrentSubmissionRejected: an attempt is already in flight
            RetriesExhausted: the session has no retries left
            RetryNotAllowed: the session succeeded, is pending, or needs new input
        """
        session = session or self.session
        if session is None:
            raise RetryNotAllowed(IDLE, 'nothing has been submitted yet')

        self._acquire()
        try:
            self.session = session
            self.coordinator.retry(session, self._submit, auto_retries=auto_retries)
            return session.outcome
        finally:
            self._flight.release()

    def check_status(self, session=None):
        """
        Re-resolve the last attempt from the backend's stored record.

        Meant for PENDING and AMBIGUOUS sessions. When the record gives a
        different status the session takes it, and the balance refresh and
        notification fire once for the new outcome.
        """
        session = session or self.session
        if session is None or session.last_attempt is None:
            raise RetryNotAllowed(IDLE, 'nothing has been submitted yet')
        if self.lookup_status is None:
            return session.outcome

        self._acquire()
        try:
            attempt = session.last_attempt
            try:
                outcome = self._verify_attempt(attempt)
            except Exception as e:
                logger.warning(f'Status check for {attempt.request_id} failed: {str(e)}')
                return session.outcome

            current = session.outcome
            if outcome.status == AMBIGUOUS or (current is not None and outcome.status == current.status):
                return current
            # A confirmed success is never downgraded by a later lookup
            if current is not None and current.status == SUCCESS:
                return current

            logger.info(f'Status check moved {attempt.request_id} from '
                        f'{current.status if current else None} to {outcome.status}')
            self.coordinator.settle(session, outcome)
            self._on_outcome(session, attempt, outcome, None)
            return outcome
        finally:
            self._flight.release()

    def reset(self):
        """Discard the current session (user started over or left the form)"""
        if self.is_submitting:
            raise ConcurrentSubmissionRejected(self.session.last_attempt.request_id)
        self.session = None
