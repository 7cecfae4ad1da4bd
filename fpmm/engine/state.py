import copy
from typing import Dict, Any

from typing_extensions import TypedDict

from fpmm.utils import checked_add, serialize_state as _to_json, deserialize_state as _from_json

class MarketState(TypedDict):
    initialized: bool
    fee_pool_weight: int
    oracle_paid: bool
    total_supply: int
    share_balances: Dict[str, int]  # holder address -> liquidity shares

def init_state() -> MarketState:
    return {
        'initialized': False,
        'fee_pool_weight': 0,
        'oracle_paid': False,
        'total_supply': 0,
        'share_balances': {},
    }

def copy_state(state: MarketState) -> MarketState:
    return copy.deepcopy(state)

def serialize_state(state: MarketState) -> str:
    """
    Serialize state to JSON. Integers are written as strings so values beyond
    2**53 survive consumers that parse numbers as doubles.
    """
    payload: Dict[str, Any] = {
        'initialized': state['initialized'],
        'fee_pool_weight': str(state['fee_pool_weight']),
        'oracle_paid': state['oracle_paid'],
        'total_supply': str(state['total_supply']),
        'share_balances': {k: str(v) for k, v in state['share_balances'].items()},
    }
    return _to_json(payload)

def deserialize_state(json_str: str) -> MarketState:
    raw = _from_json(json_str)
    return {
        'initialized': bool(raw['initialized']),
        'fee_pool_weight': int(raw['fee_pool_weight']),
        'oracle_paid': bool(raw['oracle_paid']),
        'total_supply': int(raw['total_supply']),
        'share_balances': {k: int(v) for k, v in raw['share_balances'].items()},
    }

def mint_shares(state: MarketState, holder: str, amount: int) -> None:
    total_supply = checked_add(state['total_supply'], amount)
    state['share_balances'][holder] = state['share_balances'].get(holder, 0) + amount
    state['total_supply'] = total_supply

def burn_shares(state: MarketState, holder: str, amount: int) -> None:
    balance = state['share_balances'].get(holder, 0)
    if amount > balance:
        raise ValueError(f"Cannot burn {amount} shares; {holder} holds {balance}")
    remaining = balance - amount
    if remaining:
        state['share_balances'][holder] = remaining
    else:
        state['share_balances'].pop(holder, None)
    state['total_supply'] -= amount
