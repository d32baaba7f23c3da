# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports vault metrics in Prometheus format.

Metrics:
- Calls processed, by type and outcome
- Stake / unstake / redeem counters
- Active deposits, total staked, custody balance
- Pending receipts
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CALL METRICS
# ═══════════════════════════════════════════════════════════════════

calls_total = Counter(
    'stakevault_calls_total',
    'Total number of calls processed',
    ['call_type', 'status'],
    registry=metrics_registry
)

call_sequence = Gauge(
    'stakevault_call_sequence',
    'Sequence number of the last executed call',
    registry=metrics_registry
)

pending_calls = Gauge(
    'stakevault_pending_calls',
    'Number of calls with a pending receipt',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# CUSTODY METRICS
# ═══════════════════════════════════════════════════════════════════

stakes_total = Counter(
    'stakevault_stakes_total',
    'Total number of deposits opened',
    registry=metrics_registry
)

unstakes_total = Counter(
    'stakevault_unstakes_total',
    'Total number of cooling-off periods started',
    registry=metrics_registry
)

redeems_total = Counter(
    'stakevault_redeems_total',
    'Total number of deposits redeemed',
    registry=metrics_registry
)

active_deposits = Gauge(
    'stakevault_active_deposits',
    'Number of live deposits (active or cooling off)',
    registry=metrics_registry
)

total_staked = Gauge(
    'stakevault_total_staked',
    'Sum of amount over all live deposits',
    registry=metrics_registry
)

custody_balance = Gauge(
    'stakevault_custody_balance',
    'Token balance held by the custody account',
    registry=metrics_registry
)

last_staking_id = Gauge(
    'stakevault_last_staking_id',
    'Last allocated staking id',
    registry=metrics_registry
)

total_supply = Gauge(
    'stakevault_token_total_supply',
    'Total token supply',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

_OPERATION_COUNTERS = {
    "STAKE": stakes_total,
    "UNSTAKE": unstakes_total,
    "REDEEM": redeems_total,
}


def update_call_metrics(call_type: str, status: str):
    """
    Count one processed call.

    Args:
        call_type: CallType value
        status: 'confirmed' or 'failed'
    """
    calls_total.labels(call_type=call_type, status=status).inc()
    if status == 'confirmed' and call_type in _OPERATION_COUNTERS:
        _OPERATION_COUNTERS[call_type].inc()


def update_metrics(vault):
    """
    Update gauges from vault state.
    Called after each executed call and when metrics are scraped.

    Args:
        vault: Vault instance
    """
    staking = vault.staking

    call_sequence.set(vault.sequence)
    pending_calls.set(vault.receipts.count('pending'))
    active_deposits.set(staking.active_count)
    total_staked.set(staking.total_staked())
    custody_balance.set(staking.custody_balance())
    last_staking_id.set(staking.last_staking_id)
    total_supply.set(vault.token.total_supply)
