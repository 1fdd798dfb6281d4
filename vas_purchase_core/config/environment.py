"""
Environment Configuration for VAS Purchases

This module provides centralized access to environment variables for:
- Backend API configuration (base URL, bearer token)
- Per-category purchase timeouts
- Retry ceiling and automatic retry pacing
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Backend API Configuration
VAS_API_BASE_URL = os.environ.get('VAS_API_BASE_URL', 'http://localhost:8000/api').rstrip('/')
VAS_API_TOKEN = os.environ.get('VAS_API_TOKEN', '')

# Retry Configuration
MAX_RETRIES = int(os.environ.get('VAS_MAX_RETRIES', '3'))
AUTO_RETRY_DELAY = float(os.environ.get('VAS_AUTO_RETRY_DELAY', '2'))

# Purchase categories accepted by the backend
PURCHASE_CATEGORIES = ('airtime', 'data', 'exam', 'tv', 'electricity')

# Seconds to wait for the backend before treating a purchase as timed out
DEFAULT_TIMEOUT = float(os.environ.get('VAS_DEFAULT_TIMEOUT', '30'))
PURCHASE_TIMEOUTS = {
    'airtime': 25.0,
    'data': 20.0,
    'exam': 30.0,
    'tv': 30.0,
    'electricity': 30.0,
}

# Balance and status lookups are cheap reads
LOOKUP_TIMEOUT = float(os.environ.get('VAS_LOOKUP_TIMEOUT', '10'))


def get_purchase_timeout(category):
    """Timeout for a purchase category, honouring VAS_TIMEOUT_<CATEGORY> overrides"""
    key = (category or '').lower()
    override = os.environ.get(f'VAS_TIMEOUT_{key.upper()}')
    if override:
        try:
            return float(override)
        except ValueError:
            pass
    return PURCHASE_TIMEOUTS.get(key, DEFAULT_TIMEOUT)
