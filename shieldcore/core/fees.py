"""
Protocol fees - basis-point fee schedule enforced by the on-chain verifier.

Charged operations:
- transfer: private -> private, charged on all value leaving the note
  (transfer amount plus any unshield amount)
- unshield: private -> public
- swap: adapter swaps, charged on the swapped amount

Free operations: shield, consolidate, order, vote.

The verifier accepts fee >= floor(amount * bps / 10000). Wallets pay the
ceiling so a fee computed here never falls short after rounding.
"""

from dataclasses import dataclass

from shieldcore.utils.validation import require, validate_amount

BPS_DIVISOR = 10_000
MAX_FEE_BPS = 1_000  # 10%

FEEABLE_OPERATIONS = ("transfer", "unshield", "swap")
FREE_OPERATIONS = ("shield", "consolidate", "order", "vote")


@dataclass(frozen=True)
class FeeSchedule:
    """Fee rates in basis points (10 = 0.1%)."""
    transfer_bps: int = 10
    unshield_bps: int = 25
    swap_bps: int = 30
    enabled: bool = True

    def __post_init__(self):
        for name in ("transfer_bps", "unshield_bps", "swap_bps"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value <= MAX_FEE_BPS:
                raise ValueError(f"{name} must be in [0, {MAX_FEE_BPS}], got {value!r}")

    def rate_for(self, operation: str) -> int:
        """Basis points charged for operation; 0 for free operations or when disabled."""
        if operation in FREE_OPERATIONS:
            return 0
        if operation not in FEEABLE_OPERATIONS:
            raise ValueError(f"Unknown operation {operation!r}")
        if not self.enabled:
            return 0
        return getattr(self, f"{operation}_bps")

    def minimum_fee(self, operation: str, amount: int) -> int:
        return calculate_minimum_fee(amount, self.rate_for(operation))


NO_FEES = FeeSchedule(enabled=False)


@dataclass(frozen=True)
class FeeCalculation:
    """Fee breakdown for one operation."""
    amount: int
    fee_amount: int
    amount_after_fee: int
    fee_bps: int
    is_free: bool


def calculate_protocol_fee(amount: int, operation: str, schedule: FeeSchedule) -> FeeCalculation:
    """
    Fee deducted from amount at the operation's rate, rounded down.

    Args:
        amount: Amount the fee is charged on
        operation: One of FEEABLE_OPERATIONS or FREE_OPERATIONS
        schedule: Fee rates in force

    Returns:
        FeeCalculation with the fee and the remainder
    """
    require(validate_amount(amount))
    fee_bps = schedule.rate_for(operation)
    fee_amount = amount * fee_bps // BPS_DIVISOR
    return FeeCalculation(
        amount=amount,
        fee_amount=fee_amount,
        amount_after_fee=amount - fee_amount,
        fee_bps=fee_bps,
        is_free=operation in FREE_OPERATIONS,
    )


def calculate_minimum_fee(amount: int, fee_bps: int) -> int:
    """Smallest fee for amount at fee_bps, rounded up."""
    require(validate_amount(amount))
    if fee_bps == 0:
        return 0
    return (amount * fee_bps + BPS_DIVISOR - 1) // BPS_DIVISOR


def verify_fee_amount(amount: int, fee_amount: int, fee_bps: int) -> bool:
    return fee_amount >= calculate_minimum_fee(amount, fee_bps)
