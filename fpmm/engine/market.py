"""
Fixed-product market maker over a market's combinatorial positions.

The market keeps no copy of its pools: every pricing call reads the market's
live position balances from the conditional token ledger. Local state is the
fee pool, the oracle payout flag and the liquidity share ledger.

Every mutating call is serialized per market and runs all-or-nothing: the
market's own state and each collaborator's state are restored if any step
raises. Collaborators snapshot their whole ledger on entry, so a call costs
time proportional to ledger size with the in-memory ledgers in fpmm.ledger.
"""
import logging
import threading
from contextlib import ExitStack, contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from fpmm.errors import ExternalCallError, StateError, ValidationError
from fpmm.utils import ONE, checked_add, checked_mul, checked_sub, floor_div, validate_amount
from .amm_math import (
    buy_fee,
    calc_buy_amount,
    calc_marginal_prices,
    calc_sell_amount,
    sell_amount_plus_fees,
    validate_outcome_index,
)
from .bonding_curve import BondingCurve, get_default_bonding_curve
from .params import MarketParams, validate_params
from .positions import PositionSpace, build_position_space, generate_basic_partition
from .state import MarketState, burn_shares, copy_state, init_state, mint_shares, serialize_state

logger = logging.getLogger(__name__)


class FixedProductMarketMaker:
    def __init__(self, address: str, conditional_tokens: Any):
        self.address = address
        self.conditional_tokens = conditional_tokens
        self.collateral_token: Any = None
        self.params: Optional[MarketParams] = None
        self.bonding_curve: Optional[BondingCurve] = None
        self.outcome_slot_counts: List[int] = []
        self.position_space: Optional[PositionSpace] = None
        self.state: MarketState = init_state()
        self.events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._active_thread: Optional[int] = None

    def clone(self, address: str) -> 'FixedProductMarketMaker':
        """Fresh, uninitialized instance sharing this market's ledger."""
        return type(self)(address, self.conditional_tokens)

    # Initialization

    def initialize(
        self,
        collateral_token: Any,
        condition_ids: Sequence[int],
        fee: int,
        oracle: str,
        oracle_fee: int,
        bonding_curve: Optional[BondingCurve] = None
    ) -> None:
        with self._operation('initialize', require_initialized=False):
            if self.state['initialized']:
                raise StateError("market already initialized")

            params: MarketParams = {
                'condition_ids': list(condition_ids),
                'fee': fee,
                'oracle': oracle,
                'oracle_fee': oracle_fee,
            }
            validate_params(params)

            slot_counts = []
            for condition_id in params['condition_ids']:
                count = self.conditional_tokens.get_outcome_slot_count(condition_id)
                if count == 0:
                    raise ValidationError(f"condition {condition_id:#x} not prepared")
                slot_counts.append(count)

            self.position_space = build_position_space(collateral_token.address, params['condition_ids'], slot_counts)
            self.outcome_slot_counts = slot_counts
            self.collateral_token = collateral_token
            self.params = params
            self.bonding_curve = bonding_curve if bonding_curve is not None else get_default_bonding_curve()
            self.state['initialized'] = True

        logger.info(
            f"Market {self.address} initialized: {len(slot_counts)} conditions, "
            f"{len(self.position_ids)} positions, fee={fee}, oracle={oracle}, oracle_fee={oracle_fee}"
        )

    # Views

    @property
    def is_initialized(self) -> bool:
        return self.state['initialized']

    @property
    def fee(self) -> int:
        return self._require_params()['fee']

    @property
    def oracle(self) -> str:
        return self._require_params()['oracle']

    @property
    def oracle_fee(self) -> int:
        return self._require_params()['oracle_fee']

    @property
    def condition_ids(self) -> List[int]:
        return list(self._require_params()['condition_ids'])

    @property
    def position_ids(self) -> List[int]:
        self._require_params()
        return list(self.position_space.position_ids)

    @property
    def fee_pool_weight(self) -> int:
        return self.state['fee_pool_weight']

    @property
    def oracle_paid(self) -> bool:
        return self.state['oracle_paid']

    @property
    def total_supply(self) -> int:
        return self.state['total_supply']

    def balance_of(self, holder: str) -> int:
        return self.state['share_balances'].get(holder, 0)

    def get_pool_balances(self) -> List[int]:
        position_ids = self.position_ids
        return self.conditional_tokens.balance_of_batch([self.address] * len(position_ids), position_ids)

    def is_resolved(self) -> bool:
        return all(self.conditional_tokens.payout_denominator(c) != 0 for c in self.condition_ids)

    def calc_buy_amount(self, investment_amount: int, outcome_index: int) -> int:
        return calc_buy_amount(self.get_pool_balances(), investment_amount, outcome_index, self.fee)

    def calc_sell_amount(self, return_amount: int, outcome_index: int) -> int:
        return calc_sell_amount(self.get_pool_balances(), return_amount, outcome_index, self.fee)

    def calc_marginal_prices(self) -> List[Decimal]:
        return calc_marginal_prices(self.get_pool_balances())

    def export_state(self) -> str:
        return serialize_state(self.state)

    # Trading

    def buy(self, buyer: str, investment_amount: int, outcome_index: int, min_outcome_tokens_to_buy: int) -> int:
        validate_amount(investment_amount, "investment amount")
        _validate_bound(min_outcome_tokens_to_buy, "min_outcome_tokens_to_buy")
        with self._operation('buy'):
            validate_outcome_index(outcome_index, len(self.position_space.position_ids))
            outcome_tokens_to_buy = self.calc_buy_amount(investment_amount, outcome_index)
            if outcome_tokens_to_buy < min_outcome_tokens_to_buy:
                raise ValidationError(
                    f"minimum buy amount not reached: {outcome_tokens_to_buy} < {min_outcome_tokens_to_buy}"
                )
            if outcome_tokens_to_buy == 0:
                raise ValidationError("investment too small to buy any outcome tokens")

            fee_amount = buy_fee(investment_amount, self.fee)
            investment_amount_minus_fees = checked_sub(investment_amount, fee_amount)
            self.state['fee_pool_weight'] = checked_add(self.state['fee_pool_weight'], fee_amount)
            self.events.append({'type': 'BUY', 'payload': {
                'buyer': buyer,
                'investment_amount': investment_amount,
                'fee_amount': fee_amount,
                'outcome_index': outcome_index,
                'outcome_tokens_bought': outcome_tokens_to_buy,
            }})

            self._receive_collateral(buyer, investment_amount)
            self._split_position_through_all_conditions(investment_amount_minus_fees)
            self.conditional_tokens.safe_transfer_from(
                self.address, self.address, buyer,
                self.position_space.position_ids[outcome_index], outcome_tokens_to_buy,
            )

        logger.info(
            f"Market {self.address}: {buyer} bought {outcome_tokens_to_buy} of outcome {outcome_index} "
            f"for {investment_amount} (fee {fee_amount})"
        )
        return outcome_tokens_to_buy

    def sell(self, seller: str, return_amount: int, outcome_index: int, max_outcome_tokens_to_sell: int) -> int:
        validate_amount(return_amount, "return amount")
        _validate_bound(max_outcome_tokens_to_sell, "max_outcome_tokens_to_sell")
        with self._operation('sell'):
            validate_outcome_index(outcome_index, len(self.position_space.position_ids))
            outcome_tokens_to_sell = self.calc_sell_amount(return_amount, outcome_index)
            if outcome_tokens_to_sell > max_outcome_tokens_to_sell:
                raise ValidationError(
                    f"maximum sell amount exceeded: {outcome_tokens_to_sell} > {max_outcome_tokens_to_sell}"
                )

            return_amount_plus_fees = sell_amount_plus_fees(return_amount, self.fee)
            fee_amount = return_amount_plus_fees - return_amount
            self.state['fee_pool_weight'] = checked_add(self.state['fee_pool_weight'], fee_amount)
            self.events.append({'type': 'SELL', 'payload': {
                'seller': seller,
                'return_amount': return_amount,
                'fee_amount': fee_amount,
                'outcome_index': outcome_index,
                'outcome_tokens_sold': outcome_tokens_to_sell,
            }})

            self.conditional_tokens.safe_transfer_from(
                self.address, seller, self.address,
                self.position_space.position_ids[outcome_index], outcome_tokens_to_sell,
            )
            self._merge_positions_through_all_conditions(return_amount_plus_fees)
            if not self.collateral_token.transfer(self.address, seller, return_amount):
                raise ExternalCallError("return transfer failed")

        logger.info(
            f"Market {self.address}: {seller} sold {outcome_tokens_to_sell} of outcome {outcome_index} "
            f"for {return_amount} (fee {fee_amount})"
        )
        return outcome_tokens_to_sell

    # Liquidity

    def add_funding(self, funder: str, added_funds: int) -> int:
        validate_amount(added_funds, "added funds")
        with self._operation('add_funding'):
            mint_amount = self.bonding_curve.calculate_cost(added_funds, self.state['total_supply'])
            if isinstance(mint_amount, bool) or not isinstance(mint_amount, int) or mint_amount < 0:
                raise ValidationError(f"bonding curve returned invalid issuance {mint_amount!r}")
            if mint_amount == 0:
                raise ValidationError(f"funding of {added_funds} too small to mint any liquidity shares")
            mint_shares(self.state, funder, mint_amount)
            self.events.append({'type': 'FUNDING_ADDED', 'payload': {
                'funder': funder,
                'amount': added_funds,
                'shares_minted': mint_amount,
            }})

            self._receive_collateral(funder, added_funds)
            self._split_position_through_all_conditions(added_funds)

        logger.info(f"Market {self.address}: {funder} added {added_funds} funding, minted {mint_amount} shares")
        return mint_amount

    def remove_funding(self, *args: Any, **kwargs: Any) -> None:
        logger.warning(f"Market {self.address}: remove_funding rejected")
        raise StateError("removing funding is disabled")

    def redeem_fees(self, caller: str) -> int:
        with self._operation('redeem_fees'):
            if not self.is_resolved():
                raise StateError("market not resolved")

            oracle_payout = 0
            if not self.state['oracle_paid']:
                oracle_payout = floor_div(checked_mul(self.state['fee_pool_weight'], self.oracle_fee), ONE)
                self.state['fee_pool_weight'] = checked_sub(self.state['fee_pool_weight'], oracle_payout)
                self.state['oracle_paid'] = True
                self.events.append({'type': 'ORACLE_PAID', 'payload': {
                    'oracle': self.oracle,
                    'amount': oracle_payout,
                }})

            shares = self.balance_of(caller)
            if shares <= 0:
                raise StateError(f"{caller} holds no liquidity shares")
            fee_share = floor_div(checked_mul(self.state['fee_pool_weight'], shares), self.state['total_supply'])
            burn_shares(self.state, caller, shares)
            self.state['fee_pool_weight'] = checked_sub(self.state['fee_pool_weight'], fee_share)
            self.events.append({'type': 'FEES_REDEEMED', 'payload': {
                'holder': caller,
                'shares_burned': shares,
                'amount': fee_share,
            }})

            if oracle_payout > 0:
                self._send_collateral(self.oracle, oracle_payout)
            if fee_share > 0:
                self._send_collateral(caller, fee_share)

        if oracle_payout:
            logger.info(f"Market {self.address}: paid oracle {self.oracle} {oracle_payout}")
        logger.info(f"Market {self.address}: {caller} redeemed {fee_share} fees for {shares} shares")
        return fee_share

    # Internals

    def _require_params(self) -> MarketParams:
        if self.params is None:
            raise StateError("market not initialized")
        return self.params

    def _participants(self) -> List[Any]:
        return [p for p in (self.conditional_tokens, self.collateral_token) if hasattr(p, 'transaction')]

    @contextmanager
    def _operation(self, name: str, require_initialized: bool = True):
        if self._active_thread == threading.get_ident():
            raise StateError(f"reentrant call to {name}")
        with self._lock:
            self._active_thread = threading.get_ident()
            try:
                if require_initialized and not self.state['initialized']:
                    raise StateError("market not initialized")
                saved_state = copy_state(self.state)
                saved_event_count = len(self.events)
                with ExitStack() as stack:
                    for participant in self._participants():
                        stack.enter_context(participant.transaction())
                    try:
                        yield
                    except Exception as e:
                        self.state = saved_state
                        del self.events[saved_event_count:]
                        logger.warning(f"Market {self.address}: {name} reverted: {e}")
                        raise
            finally:
                self._active_thread = None

    def _receive_collateral(self, sender: str, amount: int) -> None:
        if not self.collateral_token.transfer_from(self.address, sender, self.address, amount):
            raise ExternalCallError(f"collateral transfer from {sender} failed")

    def _send_collateral(self, to: str, amount: int) -> None:
        if not self.collateral_token.transfer(self.address, to, amount):
            raise ExternalCallError(f"collateral transfer to {to} failed")

    def _split_position_through_all_conditions(self, amount: int) -> None:
        if not self.collateral_token.approve(self.address, self.conditional_tokens.address, amount):
            raise ExternalCallError("approval for splits failed")
        condition_ids = self.params['condition_ids']
        for i in reversed(range(len(condition_ids))):
            partition = generate_basic_partition(self.outcome_slot_counts[i])
            for parent_collection_id in self.position_space.collection_ids[i]:
                self.conditional_tokens.split_position(
                    self.address, self.collateral_token, parent_collection_id,
                    condition_ids[i], partition, amount,
                )

    def _merge_positions_through_all_conditions(self, amount: int) -> None:
        condition_ids = self.params['condition_ids']
        for i in range(len(condition_ids)):
            partition = generate_basic_partition(self.outcome_slot_counts[i])
            for parent_collection_id in self.position_space.collection_ids[i]:
                self.conditional_tokens.merge_positions(
                    self.address, self.collateral_token, parent_collection_id,
                    condition_ids[i], partition, amount,
                )


def _validate_bound(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")
