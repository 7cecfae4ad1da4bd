from decimal import Decimal
from typing import List, Sequence

from fpmm.errors import FixedPointError, ValidationError
from fpmm.utils import (
    ONE,
    ceil_div,
    checked_add,
    checked_mul,
    checked_sub,
    floor_div,
    safe_divide,
    validate_amount,
)


def validate_outcome_index(outcome_index: int, n_outcomes: int) -> None:
    if isinstance(outcome_index, bool) or not isinstance(outcome_index, int):
        raise ValidationError(f"Invalid outcome index: {outcome_index!r}")
    if not 0 <= outcome_index < n_outcomes:
        raise ValidationError(f"Invalid outcome index {outcome_index}; market has {n_outcomes} outcomes")


def buy_fee(investment_amount: int, fee: int) -> int:
    """Fee skimmed from a buy: investment * fee / ONE, rounded down."""
    return floor_div(checked_mul(investment_amount, fee), ONE)


def sell_amount_plus_fees(return_amount: int, fee: int) -> int:
    """Gross collateral that must leave the pools so the seller nets return_amount."""
    return floor_div(checked_mul(return_amount, ONE), checked_sub(ONE, fee))


def sell_fee(return_amount: int, fee: int) -> int:
    return sell_amount_plus_fees(return_amount, fee) - return_amount


def calc_buy_amount(
    pool_balances: Sequence[int],
    investment_amount: int,
    outcome_index: int,
    fee: int
) -> int:
    """
    Outcome tokens received for investing investment_amount of collateral.

    The investment net of fees is split into every pool, then enough of the
    bought outcome is withdrawn that the product of balances is not lower than
    before. Each step rounds against the trader.
    """
    validate_outcome_index(outcome_index, len(pool_balances))
    validate_amount(investment_amount, "investment amount")

    investment_minus_fees = checked_sub(investment_amount, buy_fee(investment_amount, fee))
    buy_token_pool_balance = pool_balances[outcome_index]
    ending_outcome_balance = checked_mul(buy_token_pool_balance, ONE)
    for i, pool_balance in enumerate(pool_balances):
        if i == outcome_index:
            continue
        ending_outcome_balance = ceil_div(
            checked_mul(ending_outcome_balance, pool_balance),
            checked_add(pool_balance, investment_minus_fees),
        )

    if ending_outcome_balance <= 0:
        raise FixedPointError("must have non-zero balances")

    return checked_sub(
        checked_add(buy_token_pool_balance, investment_minus_fees),
        ceil_div(ending_outcome_balance, ONE),
    )


def calc_sell_amount(
    pool_balances: Sequence[int],
    return_amount: int,
    outcome_index: int,
    fee: int
) -> int:
    """Outcome tokens a seller must hand in to receive return_amount of collateral."""
    validate_outcome_index(outcome_index, len(pool_balances))
    validate_amount(return_amount, "return amount")

    return_amount_plus_fees = sell_amount_plus_fees(return_amount, fee)
    sell_token_pool_balance = pool_balances[outcome_index]
    ending_outcome_balance = checked_mul(sell_token_pool_balance, ONE)
    for i, pool_balance in enumerate(pool_balances):
        if i == outcome_index:
            continue
        remaining = checked_sub(pool_balance, return_amount_plus_fees)
        if remaining == 0:
            raise FixedPointError(f"Sell would drain pool for outcome {i}")
        ending_outcome_balance = ceil_div(
            checked_mul(ending_outcome_balance, pool_balance),
            remaining,
        )

    if ending_outcome_balance <= 0:
        raise FixedPointError("must have non-zero balances")

    return checked_sub(
        checked_add(return_amount_plus_fees, ceil_div(ending_outcome_balance, ONE)),
        sell_token_pool_balance,
    )


def calc_marginal_prices(pool_balances: Sequence[int]) -> List[Decimal]:
    """
    Spot price of each outcome: p_i = prod_{j != i} b_j / sum_k prod_{j != k} b_j.
    Prices sum to 1; an empty pool yields no prices.
    """
    if any(b <= 0 for b in pool_balances):
        return []
    others = []
    for i in range(len(pool_balances)):
        product = Decimal(1)
        for j, b in enumerate(pool_balances):
            if j != i:
                product *= Decimal(b)
        others.append(product)
    total = sum(others, Decimal(0))
    return [safe_divide(p, total) for p in others]


def invariant_product(pool_balances: Sequence[int]) -> int:
    product = 1
    for b in pool_balances:
        product *= b
    return product
