"""
Unit Tests for Purchase Models, Validation and Configuration
"""

import os
import unittest
from unittest import mock

from vas_purchase_core.config.environment import DEFAULT_TIMEOUT, get_purchase_timeout
from vas_purchase_core.models import (
    AMBIGUOUS,
    EXHAUSTED,
    FAILED,
    PENDING,
    SUCCESS,
    ModelValidator,
    Outcome,
    PurchaseAttempt,
    PurchaseRequest,
    PurchaseSession,
)
from vas_purchase_core.utils.error_taxonomy import INVALID_RECIPIENT_FORMAT, PROVIDER_UNAVAILABLE, UNKNOWN
from vas_purchase_core.utils.notifications import get_notification_context
from vas_purchase_core.utils.reconciliation_marker import (
    REASON_SUSPICIOUS_FAILURE,
    REASON_TIMEOUT,
    flag_if_suspicious,
    is_suspicious_outcome,
)


def make_request(**overrides):
    fields = {
        'category': 'Airtime',
        'service_id': 'mtn',
        'amount': 100,
        'recipient': '08031234567',
        'pin': '1234',
    }
    fields.update(overrides)
    return PurchaseRequest(**fields)


class TestPurchaseRequest(unittest.TestCase):

    def test_category_is_normalized(self):
        self.assertEqual(make_request().category, 'airtime')

    def test_request_is_immutable(self):
        request = make_request(extras={'profile_id': '0123456789'})
        with self.assertRaises(Exception):
            request.amount = 200
        with self.assertRaises(TypeError):
            request.extras['profile_id'] = '1'


class TestOutcome(unittest.TestCase):

    def test_may_retry(self):
        self.assertTrue(Outcome(status=AMBIGUOUS, message='?').may_retry)
        self.assertTrue(Outcome(status=FAILED, message='x', error_kind=PROVIDER_UNAVAILABLE).may_retry)
        self.assertFalse(Outcome(status=FAILED, message='x', error_kind=INVALID_RECIPIENT_FORMAT).may_retry)
        self.assertFalse(Outcome(status=SUCCESS, message='ok').may_retry)
        self.assertFalse(Outcome(status=PENDING, message='wait').may_retry)

    def test_to_dict(self):
        data = Outcome(status=SUCCESS, message='ok', reference='VT-1').to_dict()
        self.assertEqual(data['status'], SUCCESS)
        self.assertEqual(data['reference'], 'VT-1')
        self.assertFalse(data['may_retry'])


class TestPurchaseSession(unittest.TestCase):

    def test_retry_counters(self):
        request = make_request()
        session = PurchaseSession(request=request, max_retries=3)
        self.assertEqual(session.retries_remaining, 4)
        self.assertEqual(session.retries_used, 0)

        session.attempts.append(PurchaseAttempt(request=request, ordinal=0, request_id='a'))
        session.attempts.append(PurchaseAttempt(request=request, ordinal=1, request_id='b'))
        self.assertEqual(session.retries_used, 1)
        self.assertEqual(session.retries_remaining, 2)
        self.assertEqual(session.next_ordinal, 2)

        session.state = EXHAUSTED
        self.assertEqual(session.retries_remaining, 0)
        self.assertTrue(session.is_terminal)


class TestModelValidator(unittest.TestCase):

    def test_phone_numbers(self):
        for phone in ('08031234567', '+2348031234567', '2349031234567', '0803 123 4567'):
            self.assertTrue(ModelValidator.validate_phone_number(phone), phone)
        for phone in ('12345', '0603123456', '', None):
            self.assertFalse(ModelValidator.validate_phone_number(phone), phone)

    def test_valid_request(self):
        self.assertEqual(ModelValidator.validate_purchase_request(make_request()), {})

    def test_invalid_fields(self):
        errors = ModelValidator.validate_purchase_request(
            make_request(category='lottery', amount=0, pin='12', service_id='')
        )
        self.assertEqual(set(errors), {'category', 'amount', 'pin', 'service_id'})

    def test_jamb_profile_id(self):
        base = {'category': 'exam', 'service_id': 'jamb', 'variation_code': 'utme'}
        cases = [
            ({}, 'Please enter your JAMB profile ID'),
            ({'profile_id': 'ABC123456'}, 'JAMB profile ID should contain only numbers'),
            ({'profile_id': '12345'}, 'JAMB profile ID should be at least 9 digits'),
        ]
        for extras, message in cases:
            with self.subTest(extras=extras):
                errors = ModelValidator.validate_purchase_request(make_request(extras=extras, **base))
                self.assertEqual(errors['profile_id'], [message])

        ok = ModelValidator.validate_purchase_request(make_request(extras={'profile_id': '0123456789'}, **base))
        self.assertNotIn('profile_id', ok)

    def test_exam_email_recipient(self):
        errors = ModelValidator.validate_purchase_request(
            make_request(category='exam', service_id='waec', recipient='not@valid')
        )
        self.assertIn('recipient', errors)


class TestPurchaseTimeouts(unittest.TestCase):

    def test_category_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop('VAS_TIMEOUT_DATA', None)
            self.assertEqual(get_purchase_timeout('data'), 20.0)

    def test_environment_override(self):
        with mock.patch.dict(os.environ, {'VAS_TIMEOUT_DATA': '45'}):
            self.assertEqual(get_purchase_timeout('DATA'), 45.0)

    def test_bad_override_is_ignored(self):
        with mock.patch.dict(os.environ, {'VAS_TIMEOUT_TV': 'soon'}):
            self.assertEqual(get_purchase_timeout('tv'), 30.0)

    def test_unknown_category(self):
        self.assertEqual(get_purchase_timeout('gift-card'), DEFAULT_TIMEOUT)


class TestNotificationContext(unittest.TestCase):

    def setUp(self):
        self.request = make_request()
        self.session = PurchaseSession(request=self.request, max_retries=3)
        self.session.history.append(PurchaseAttempt(request=self.request, ordinal=0, request_id='req-1'))
        self.session.attempts.append(self.session.history[0])

    def test_success(self):
        self.session.state = SUCCESS
        context = get_notification_context(self.session, Outcome(status=SUCCESS, message='Done'))
        self.assertEqual(context['level'], 'success')
        self.assertEqual(context['title'], 'Airtime purchase successful')
        self.assertEqual(context['request_id'], 'req-1')

    def test_retryable_failure(self):
        self.session.state = FAILED
        outcome = Outcome(status=FAILED, message='Service unavailable', error_kind=PROVIDER_UNAVAILABLE)
        context = get_notification_context(self.session, outcome)
        self.assertEqual(context['level'], 'error')
        self.assertTrue(context['may_retry'])
        self.assertEqual(context['retries_remaining'], 3)

    def test_exhausted(self):
        self.session.state = EXHAUSTED
        outcome = Outcome(status=FAILED, message='Service unavailable', error_kind=PROVIDER_UNAVAILABLE)
        context = get_notification_context(self.session, outcome)
        self.assertIn('contact support with reference req-1', context['body'])
        self.assertFalse(context['may_retry'])


class TestReconciliationMarker(unittest.TestCase):

    def test_timeout_is_flagged(self):
        outcome = Outcome(status=FAILED, message='timed out', error_kind=PROVIDER_UNAVAILABLE)
        self.assertEqual(is_suspicious_outcome(outcome), (True, REASON_TIMEOUT))

    def test_unsent_attempt_is_not_flagged(self):
        outcome = Outcome(status=FAILED, message='refused', error_kind=PROVIDER_UNAVAILABLE, consumed_attempt=False)
        self.assertFalse(is_suspicious_outcome(outcome)[0])

    def test_clear_failure_is_not_flagged(self):
        outcome = Outcome(status=FAILED, message='Insufficient balance, transaction completed', error_kind=UNKNOWN)
        self.assertFalse(is_suspicious_outcome(outcome)[0])

    def test_failure_that_reads_like_success(self):
        outcome = Outcome(status=FAILED, message='Recharge delivered but not confirmed', error_kind=UNKNOWN)
        self.assertEqual(is_suspicious_outcome(outcome), (True, REASON_SUSPICIOUS_FAILURE))

    def test_flag_records_marker_on_session(self):
        request = make_request()
        session = PurchaseSession(request=request, max_retries=3)
        attempt = PurchaseAttempt(request=request, ordinal=0, request_id='req-9')

        marker = flag_if_suspicious(session, attempt, Outcome(status=AMBIGUOUS, message='?'), http_status=503)

        self.assertEqual(session.reconciliation_flags, [marker])
        self.assertEqual(marker['severity'], 'HIGH')
        self.assertEqual(marker['request_id'], 'req-9')
        self.assertIsNone(flag_if_suspicious(session, attempt, Outcome(status=SUCCESS, message='ok')))


if __name__ == '__main__':
    unittest.main()
