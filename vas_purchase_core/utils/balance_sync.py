"""
Balance Synchronization Utility

The wallet balance is owned by the backend ledger. This module is the single
refresh path for it: the orchestrator calls BalanceReconciler.reconcile()
once per terminal purchase outcome and components subscribe to the result
instead of decrementing a local copy.

CRITICAL: A failed refresh must never mask the purchase outcome. reconcile()
logs and swallows every error.
"""

import logging
import threading

logger = logging.getLogger(__name__)


def _to_float(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(',', '').replace('₦', '').strip()
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def extract_balance(payload):
    """
    Get the wallet balance from a balance response of varying shape.

    Args:
        payload: Response body; balance may sit at data.balance or balance

    Returns:
        float: Current balance or 0.0 if not found
    """
    if not isinstance(payload, dict):
        return _to_float(payload) or 0.0

    data = payload.get('data')
    if isinstance(data, dict):
        balance = _to_float(data.get('balance'))
        if balance is not None:
            return balance

    balance = _to_float(payload.get('balance'))
    if balance is not None:
        return balance

    logger.warning(f'Balance not found in response: {payload!r}')
    return 0.0


class BalanceReconciler:
    """
    Re-fetches the wallet balance and pushes it to subscribers.

    fetch_balance: callable returning the balance (number) or a raw balance
    response, which is passed through extract_balance. With no fetcher,
    reconcile() does nothing.
    """

    def __init__(self, fetch_balance=None):
        self.fetch_balance = fetch_balance
        self.last_balance = None
        self._subscribers = []
        self._lock = threading.Lock()

    def subscribe(self, callback):
        """Register callback(balance); returns a function that unsubscribes it"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def reconcile(self):
        """Refresh the balance. Never raises."""
        if self.fetch_balance is None:
            return None

        try:
            result = self.fetch_balance()
            balance = _to_float(result)
            if balance is None:
                balance = extract_balance(result)
        except Exception as e:
            logger.error(f'Balance refresh failed: {str(e)}')
            return None

        self.last_balance = balance
        logger.info(f'Balance sync: New balance: ₦{balance:,.2f}')

        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(balance)
            except Exception as e:
                logger.warning(f'Balance subscriber failed: {str(e)}')

        return balance
