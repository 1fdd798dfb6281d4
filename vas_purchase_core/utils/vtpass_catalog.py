"""
VTPass catalog helpers

Translates the network and plan names used in purchase forms into the service
IDs and variation codes the aggregator expects.
"""

# Centralized mapping to decouple form names from aggregator service IDs
VTPASS_SERVICE_IDS = {
    'MTN': {'AIRTIME': 'mtn', 'DATA': 'mtn-data'},
    'AIRTEL': {'AIRTIME': 'airtel', 'DATA': 'airtel-data'},
    'GLO': {'AIRTIME': 'glo', 'DATA': 'glo-data'},
    '9MOBILE': {'AIRTIME': 'etisalat', 'DATA': 'etisalat-data'},
}

# Old plan labels -> current variation codes
VTPASS_VARIATION_CODES = {
    'MTN': {
        'DATA': {
            '500MB-1Day': 'mtn-daily-500mb',
            '1GB-7Days': 'mtn-weekly-1gb',
            '2GB-30Days': 'mtn-monthly-2gb',
            '3GB-30Days': 'mtn-monthly-3gb',
            '5GB-30Days': 'mtn-monthly-5gb',
            '10GB-30Days': 'mtn-monthly-10gb',
        },
    },
    'AIRTEL': {
        'DATA': {
            '750MB': 'airtel-750mb',
            '1.5GB': 'airtel-1.5gb',
            '3GB': 'airtel-3gb',
            '4.5GB': 'airtel-4.5gb',
            '10GB': 'airtel-10gb',
        },
    },
    'GLO': {
        'DATA': {
            '1GB': 'glo-1gb',
            '2GB': 'glo-2gb',
            '5GB': 'glo-5gb',
            '10GB': 'glo-10gb',
        },
    },
    '9MOBILE': {
        'DATA': {
            '1GB': 'etisalat-1gb',
            '2.5GB': 'etisalat-2.5gb',
            '11.5GB': 'etisalat-11.5gb',
        },
    },
}

# Backend transaction_type per purchase category
TRANSACTION_TYPES = {
    'airtime': 'airtime',
    'data': 'data',
    'exam': 'education',
    'tv': 'tv-subscription',
    'electricity': 'electricity-bill',
}

WAEC_RESULT_CHECKER = ('waec', 'waecdirect')


def get_correct_service_id(network_id, service):
    """Service ID for a network and service ('AIRTIME' or 'DATA'), e.g. ('9mobile', 'DATA') -> 'etisalat-data'"""
    network_key = (network_id or '').upper()
    service_id = VTPASS_SERVICE_IDS.get(network_key, {}).get(service)
    if service_id:
        return service_id
    return f'{network_id}-{service.lower()}'


def get_correct_variation_code(network_id, service, old_code):
    """Current variation code for an old plan label; unknown labels pass through unchanged"""
    network_key = (network_id or '').upper()
    return VTPASS_VARIATION_CODES.get(network_key, {}).get(service, {}).get(old_code, old_code)


def get_network_key(service_id):
    """Network key for a network name or one of its service IDs, e.g. 'etisalat-data' -> '9MOBILE'"""
    value = (service_id or '').strip()
    if value.upper() in VTPASS_SERVICE_IDS:
        return value.upper()
    for network_key, service_ids in VTPASS_SERVICE_IDS.items():
        if value.lower() in service_ids.values():
            return network_key
    return None


def get_transaction_type(category):
    return TRANSACTION_TYPES.get((category or '').lower(), category)
