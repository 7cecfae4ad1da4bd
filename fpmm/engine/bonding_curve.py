from decimal import Decimal, ROUND_FLOOR
from typing import Protocol, runtime_checkable

from fpmm.errors import ValidationError
from fpmm.utils import decimal_sqrt, validate_amount


@runtime_checkable
class BondingCurve(Protocol):
    def calculate_cost(self, requested_increase: int, current_supply: int) -> int:
        """Liquidity shares to issue for a deposit of requested_increase collateral."""
        ...


class IdentityBondingCurve:
    """Issues one share per unit of collateral, whatever the supply."""

    def calculate_cost(self, requested_increase: int, current_supply: int) -> int:
        validate_amount(requested_increase, "funding amount")
        return requested_increase

    def __repr__(self) -> str:
        return "IdentityBondingCurve()"


class SquareRootBondingCurve:
    """
    Linear price curve p(s) = slope * s. Depositing d moves supply from s to
    sqrt(s^2 + 2d/slope), so later funders receive fewer shares per unit.
    """

    def __init__(self, slope: Decimal | str = Decimal('1')):
        slope = Decimal(str(slope))
        if slope <= 0:
            raise ValidationError("slope must be >0")
        self.slope = slope

    def calculate_cost(self, requested_increase: int, current_supply: int) -> int:
        validate_amount(requested_increase, "funding amount")
        if current_supply < 0:
            raise ValidationError(f"Invalid supply: {current_supply}")
        s = Decimal(current_supply)
        new_supply = decimal_sqrt(s * s + Decimal(2) * Decimal(requested_increase) / self.slope)
        issued = (new_supply - s).to_integral_value(rounding=ROUND_FLOOR)
        return max(int(issued), 0)

    def __repr__(self) -> str:
        return f"SquareRootBondingCurve(slope={self.slope})"


def get_default_bonding_curve() -> BondingCurve:
    return IdentityBondingCurve()
