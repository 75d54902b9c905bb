"""
Fee, volume and reward arithmetic.
"""

from decimal import Decimal

from sdk_batch.services.ledger_client import ChainTransaction, ChainReceipt
from .core.types import TransactionMetrics

WEI_PER_UNIT = 10 ** 18

# 0.001 native units
DEFAULT_MIN_REWARD_WEI = 10 ** 15


def estimate_reward(fee_generated: int, min_reward: int = DEFAULT_MIN_REWARD_WEI) -> int:
    """Off-chain reward estimate: a tenth of the fee, floored at ``min_reward``."""
    return max(fee_generated // 10, min_reward)


def calculate_metrics(
    transaction: ChainTransaction,
    receipt: ChainReceipt,
    min_reward: int = DEFAULT_MIN_REWARD_WEI,
) -> TransactionMetrics:
    """Derive metrics from the transaction and its receipt.

    The gas price is the one declared on the transaction (zero when the
    network omits it).
    """
    gas_used = int(receipt.gas_used)
    gas_price = int(transaction.gas_price or 0)
    fee_generated = gas_used * gas_price

    return TransactionMetrics(
        gas_used=gas_used,
        gas_price=gas_price,
        fee_generated=fee_generated,
        transaction_value=int(transaction.value or 0),
        reward_estimate=estimate_reward(fee_generated, min_reward),
    )


def format_native(amount_wei: int, symbol: str = "XFI", places: int = 6) -> str:
    """Render a wei amount in native units, e.g. ``0.001000 XFI``."""
    value = Decimal(int(amount_wei)) / Decimal(WEI_PER_UNIT)
    return f"{value:.{places}f} {symbol}"
