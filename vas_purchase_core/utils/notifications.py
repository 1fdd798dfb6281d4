"""
Purchase Notification Helper
Builds the single user-facing message for a purchase outcome

One notification per resolved attempt. The orchestrator hands the result to
whatever notifier the host application supplies (toast, push, log).
"""

import logging

from vas_purchase_core.models import AMBIGUOUS, EXHAUSTED, PENDING, SUCCESS

logger = logging.getLogger(__name__)

CATEGORY_TITLES = {
    'airtime': 'Airtime',
    'data': 'Data Bundle',
    'exam': 'Exam PIN',
    'tv': 'TV Subscription',
    'electricity': 'Electricity Token',
}


def exhausted_message(request_id):
    return ('We could not complete this purchase after several attempts. '
            f'Please contact support with reference {request_id}.')


def get_notification_context(session, outcome):
    """
    Determine notification message and level for an outcome

    Args:
        session: PurchaseSession the outcome belongs to
        outcome: Outcome to announce

    Returns:
        dict: {
            'level': 'success' | 'info' | 'warning' | 'error',
            'title': str,
            'body': str,
            'request_id': str,
            'retries_remaining': int,
            'may_retry': bool
        }
    """
    category_title = CATEGORY_TITLES.get(session.request.category, 'Purchase')
    last = session.last_attempt
    request_id = last.request_id if last else None
    may_retry = outcome.may_retry and session.state != EXHAUSTED

    if outcome.status == SUCCESS:
        level = 'success'
        title = f'{category_title} purchase successful'
        body = outcome.message
    elif outcome.status == PENDING:
        level = 'info'
        title = f'{category_title} purchase processing'
        body = outcome.message
    elif session.state == EXHAUSTED:
        level = 'error'
        title = f'{category_title} purchase failed'
        body = exhausted_message(request_id)
    elif outcome.status == AMBIGUOUS:
        level = 'warning'
        title = f'{category_title} purchase not confirmed'
        body = outcome.message
    else:
        level = 'error'
        title = f'{category_title} purchase failed'
        body = outcome.message

    return {
        'level': level,
        'title': title,
        'body': body,
        'request_id': request_id,
        'retries_remaining': session.retries_remaining if may_retry else 0,
        'may_retry': may_retry,
    }


def log_notifier(notification):
    """Default notifier: write the notification to the log"""
    level = notification.get('level')
    message = f"{notification.get('title')}: {notification.get('body')} [{notification.get('request_id')}]"
    if level == 'error':
        logger.error(message)
    elif level == 'warning':
        logger.warning(message)
    else:
        logger.info(message)


__all__ = ['get_notification_context', 'log_notifier', 'exhausted_message']
