"""
Purchase Errors

Only usage errors raise. Provider and transport problems are returned as
Outcome values by the normalizer and never surface as exceptions.
"""


class PurchaseError(Exception):
    """Base class for errors raised by the purchase engine"""


class ConcurrentSubmissionRejected(PurchaseError):
    """A submit or retry was called while the session already had an attempt in flight"""

    def __init__(self, request_id=None):
        self.request_id = request_id
        message = 'A purchase is already being processed. Please wait for it to finish.'
        if request_id:
            message = f'{message} (in flight: {request_id})'
        super().__init__(message)


class RetriesExhausted(PurchaseError):
    """The session has used every retry it is allowed"""

    def __init__(self, last_request_id, max_retries):
        self.last_request_id = last_request_id
        self.max_retries = max_retries
        super().__init__(
            f'Purchase could not be completed after {max_retries} retries. '
            f'Please contact support with reference {last_request_id}.'
        )


class RetryNotAllowed(PurchaseError):
    """The last outcome cannot be retried (terminal, or needs new input)"""

    def __init__(self, state, reason):
        self.state = state
        self.reason = reason
        super().__init__(f'Cannot retry a purchase in state {state}: {reason}')


class InvalidPurchaseRequest(PurchaseError):
    """Purchase request failed validation before any network call"""

    def __init__(self, errors):
        self.errors = errors
        fields = ', '.join(sorted(errors))
        super().__init__(f'Invalid purchase request: {fields}')
