"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name, documentation, labelnames=()):
    # Re-imports (e.g. under test reloads) must reuse the registered collector
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Ledger metrics
token_transactions_counter = _counter(
    'frequency_token_transactions_total',
    'Total number of token ledger transactions written',
    ['type', 'direction']
)

tokens_moved_counter = _counter(
    'frequency_tokens_moved_total',
    'Total number of tokens awarded or spent',
    ['direction']
)

spend_rejections_counter = _counter(
    'frequency_spend_rejections_total',
    'Total number of spend attempts rejected without touching the ledger',
    ['reason']
)

# Daily bonus metrics
daily_bonus_claims_counter = _counter(
    'frequency_daily_bonus_claims_total',
    'Total number of daily bonus claim attempts',
    ['status']
)

# Auth metrics
login_attempts_counter = _counter(
    'frequency_login_attempts_total',
    'Total number of login attempts',
    ['status']
)
