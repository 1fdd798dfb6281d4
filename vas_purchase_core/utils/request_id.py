"""Idempotency key generation for purchase attempts"""

import time
import uuid


def generate_request_id(category, ordinal=0):
    """
    Generate unique request ID for idempotency

    Format: <millis>-<category>-r<ordinal>-<random>. Two calls with the same
    arguments never return the same key: the random suffix differs even when
    the clock has not moved.
    """
    timestamp = time.time_ns() // 1_000_000
    prefix = (category or 'tx').strip().lower() or 'tx'
    unique_suffix = uuid.uuid4().hex[:12]
    return f'{timestamp}-{prefix}-r{int(ordinal)}-{unique_suffix}'
