from django.conf import settings

DEFAULTS = {
    'DEFAULT_TIMEOUT': 30.0,
    'TOP_SPENDERS_LIMIT': 10,
    'RECENT_ORDERS_LIMIT': 1000,
    'LOW_STOCK_THRESHOLD': 10,
    'RETRY_ATTEMPTS': 3,
    'RETRY_BACKOFF': 0.1,
}


def report_setting(name):
    """Returns ``SHOP_REPORTS[name]`` from the Django settings, falling back to the default."""
    overrides = getattr(settings, 'SHOP_REPORTS', None) or {}
    if name not in DEFAULTS:
        raise KeyError(f"Unknown report setting: {name}")
    return overrides.get(name, DEFAULTS[name])
