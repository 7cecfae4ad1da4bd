from typing import List

from typing_extensions import TypedDict

from fpmm.config import get_default_engine_params
from fpmm.errors import ValidationError
from fpmm.utils import UINT256_MAX, validate_fraction

class MarketParams(TypedDict):
    """Parameters fixed when a market is initialized."""
    condition_ids: List[int]
    fee: int  # fixed point, ONE == 1.0
    oracle: str
    oracle_fee: int  # fixed point share of the fee pool paid to the oracle once

def get_default_params(condition_ids: List[int], oracle: str) -> MarketParams:
    engine_defaults = get_default_engine_params()
    return {
        'condition_ids': list(condition_ids),
        'fee': engine_defaults['fee'],
        'oracle': oracle,
        'oracle_fee': engine_defaults['oracle_fee'],
    }

def validate_params(params: MarketParams) -> None:
    condition_ids = params['condition_ids']
    if not condition_ids:
        raise ValidationError("At least one condition is required.")
    for condition_id in condition_ids:
        if isinstance(condition_id, bool) or not isinstance(condition_id, int) or not 0 <= condition_id <= UINT256_MAX:
            raise ValidationError(f"Invalid condition id: {condition_id!r}")
    if len(set(condition_ids)) != len(condition_ids):
        raise ValidationError("Duplicate condition in condition list.")
    validate_fraction(params['fee'], "fee")
    validate_fraction(params['oracle_fee'], "oracle_fee", inclusive_one=True)
    oracle = params['oracle']
    if not isinstance(oracle, str) or not oracle:
        raise ValidationError("oracle address is required")
