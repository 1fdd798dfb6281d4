"""
Retry Coordinator

Owns the per-session state machine:

    IDLE -> SUBMITTING -> SUCCESS | PENDING                  (terminal)
    SUBMITTING -> FAILED | AMBIGUOUS -> SUBMITTING           (retry, fresh key)
    SUBMITTING -> FAILED | AMBIGUOUS -> EXHAUSTED            (ceiling reached)

Every entry into SUBMITTING creates a new PurchaseAttempt with a new
request ID. A previous key may already denote a completed transaction on the
backend, so it is never reused.
"""

import logging
import time

import requests

from vas_purchase_core.config.environment import AUTO_RETRY_DELAY, MAX_RETRIES
from vas_purchase_core.models import (
    AMBIGUOUS,
    EXHAUSTED,
    FAILED,
    IDLE,
    PENDING,
    SUBMITTING,
    SUCCESS,
    Outcome,
    PurchaseAttempt,
    PurchaseSession,
)
from vas_purchase_core.utils.error_taxonomy import PROVIDER_UNAVAILABLE
from vas_purchase_core.utils.errors import (
    ConcurrentSubmissionRejected,
    RetriesExhausted,
    RetryNotAllowed,
)
from vas_purchase_core.utils.request_id import generate_request_id
from vas_purchase_core.utils.response_normalizer import AMBIGUOUS_MESSAGE, normalize

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (requests.exceptions.RequestException, TimeoutError, ConnectionError)


def needs_verification(outcome):
    """True when the last call may have gone through without us hearing back"""
    if outcome is None:
        return False
    if outcome.status == AMBIGUOUS:
        return True
    return (outcome.status == FAILED and outcome.error_kind == PROVIDER_UNAVAILABLE
            and outcome.consumed_attempt)


class RetryCoordinator:
    """
    Runs attempts for a PurchaseSession and enforces the retry ceiling.

    submit(attempt) must return a RawResponse (or a bare payload dict) and may
    raise a transport error; both are resolved to an Outcome by the
    normalizer. on_outcome(session, attempt, outcome, raw) is called exactly
    once per resolved outcome. verify(attempt) may return an Outcome from the
    backend record for an attempt whose result was unclear.
    """

    def __init__(self, max_retries=MAX_RETRIES, key_generator=generate_request_id,
                 normalizer=normalize, on_outcome=None, verify=None,
                 auto_retry_delay=AUTO_RETRY_DELAY, sleep=time.sleep):
        self.max_retries = max_retries
        self.key_generator = key_generator
        self.normalizer = normalizer
        self.on_outcome = on_outcome
        self.verify = verify
        self.auto_retry_delay = auto_retry_delay
        self.sleep = sleep

    # ==================== SESSION HELPERS ====================

    def new_session(self, request):
        return PurchaseSession(request=request, max_retries=self.max_retries)

    def check_can_retry(self, session):
        """Raise if the session's last outcome cannot be retried"""
        if session.state == SUBMITTING:
            last = session.last_attempt
            raise ConcurrentSubmissionRejected(last.request_id if last else None)

        if session.state == IDLE or session.outcome is None:
            raise RetryNotAllowed(session.state, 'nothing has been submitted yet')

        if session.state in (SUCCESS, PENDING):
            raise RetryNotAllowed(session.state, 'the purchase already has a final result')

        if session.state == EXHAUSTED or len(session.attempts) >= self.max_retries + 1:
            session.state = EXHAUSTED
            raise RetriesExhausted(session.last_attempt.request_id, self.max_retries)

        if not session.outcome.may_retry:
            raise RetryNotAllowed(session.state, 'the purchase details must be changed first')

    def _new_attempt(self, session):
        ordinal = session.next_ordinal
        attempt = PurchaseAttempt(
            request=session.request,
            ordinal=ordinal,
            request_id=self.key_generator(session.request.category, ordinal),
        )
        session.history.append(attempt)
        return attempt

    def _dispatch(self, attempt, submit):
        """Call submit and resolve whatever comes back to (outcome, raw)"""
        try:
            raw = submit(attempt)
        except TRANSPORT_ERRORS as e:
            return self.normalizer(e), None
        except Exception as e:
            # The call may have reached the aggregator before failing locally
            logger.exception(f'Unexpected error submitting {attempt.request_id}: {str(e)}')
            return Outcome(status=AMBIGUOUS, message=AMBIGUOUS_MESSAGE, raw=repr(e)), None
        return self.normalizer(raw), raw

    def settle(self, session, outcome):
        """Make outcome the session's current result and move to the matching state"""
        session.outcome = outcome
        if outcome.status in (SUCCESS, PENDING):
            session.state = outcome.status
        elif outcome.may_retry and len(session.attempts) >= self.max_retries + 1:
            session.state = EXHAUSTED
        else:
            session.state = outcome.status

    def _apply(self, session, attempt, outcome):
        if outcome.consumed_attempt:
            session.attempts.append(attempt)
        else:
            session.discarded_attempts.append(attempt)

        self.settle(session, outcome)

        logger.info(f'Attempt {attempt.request_id} (ordinal {attempt.ordinal}) -> '
                    f'{outcome.status} {outcome.error_kind or ""} session={session.state}')

    def _notify(self, session, attempt, outcome, raw):
        if self.on_outcome is None:
            return
        self.on_outcome(session, attempt, outcome, raw)

    def run_attempt(self, session, submit):
        """Create a fresh attempt, submit it and record its outcome"""
        attempt = self._new_attempt(session)
        session.state = SUBMITTING
        try:
            outcome, raw = self._dispatch(attempt, submit)
        except BaseException:
            # Never leave the session stuck in SUBMITTING
            session.history.remove(attempt)
            session.state = session.outcome.status if session.outcome else IDLE
            raise
        self._apply(session, attempt, outcome)
        self._notify(session, attempt, outcome, raw)
        return outcome

    def _verify_previous(self, session):
        """Look up the previous attempt before re-submitting; True if it resolved the session"""
        if self.verify is None or not needs_verification(session.outcome):
            return False

        attempt = session.last_attempt
        try:
            outcome = self.verify(attempt)
        except Exception as e:
            logger.warning(f'Status check for {attempt.request_id} failed: {str(e)}')
            return False

        if outcome is None or outcome.status not in (SUCCESS, PENDING):
            return False

        logger.info(f'Status check resolved {attempt.request_id} to {outcome.status}; not re-submitting')
        session.outcome = outcome
        session.state = outcome.status
        self._notify(session, attempt, outcome, None)
        return True

    # ==================== PUBLIC API ====================

    def attempt(self, request, submit, auto_retries=0, session=None):
        """
        Run the first attempt for a request.

        Args:
            request: PurchaseRequest
            submit: callable(PurchaseAttempt) -> RawResponse
            auto_retries: retries to run without asking the user (still capped)
            session: existing IDLE session to use instead of a new one

        Returns:
            PurchaseSession
        """
        if session is None:
            session = self.new_session(request)
        self.run_attempt(session, submit)
        return self._auto_retry(session, submit, auto_retries)

    def retry(self, session, submit, auto_retries=0):
        """Run the next attempt for a FAILED or AMBIGUOUS session"""
        self.check_can_retry(session)
        if not self._verify_previous(session):
            self.run_attempt(session, submit)
        return self._auto_retry(session, submit, auto_retries)

    def _auto_retry(self, session, submit, auto_retries):
        used = 0
        while used < auto_retries and session.state in (FAILED, AMBIGUOUS) and session.outcome.may_retry:
            used += 1
            if self.auto_retry_delay:
                self.sleep(self.auto_retry_delay)
            logger.info(f'Automatic retry {used}/{auto_retries} for {session.last_attempt.request_id}')
            if self._verify_previous(session):
                break
            self.run_attempt(session, submit)
        return session
