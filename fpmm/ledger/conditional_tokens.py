"""
In-memory conditional token ledger.

Holds balances of positions (collateral x collection) and converts between
collateral and positions by splitting and merging along a condition's outcome
partition. Once an oracle reports payouts, holders redeem positions for their
share of collateral.
"""
import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Sequence, Tuple

from fpmm.engine.positions import (
    MAX_OUTCOME_SLOTS,
    get_collection_id,
    get_condition_id,
    get_position_id,
)
from fpmm.errors import ExternalCallError, StateError, ValidationError
from fpmm.ledger.collateral import CollateralToken
from fpmm.utils import ZERO_COLLECTION_ID, validate_amount

logger = logging.getLogger(__name__)

class ConditionalTokens:
    def __init__(self, address: str):
        self.address = address
        self._balances: Dict[Tuple[str, int], int] = {}
        self._operators: Dict[Tuple[str, str], bool] = {}
        self._outcome_slot_counts: Dict[int, int] = {}
        self._payout_numerators: Dict[int, List[int]] = {}
        self._payout_denominators: Dict[int, int] = {}
        self._lock = threading.RLock()

    # Conditions

    def prepare_condition(self, oracle: str, question_id: Any, outcome_slot_count: int) -> int:
        if not 2 <= outcome_slot_count <= MAX_OUTCOME_SLOTS:
            raise ValidationError(f"outcome slot count must be in [2, {MAX_OUTCOME_SLOTS}], got {outcome_slot_count}")
        condition_id = get_condition_id(oracle, question_id, outcome_slot_count)
        with self._lock:
            if condition_id in self._outcome_slot_counts:
                raise StateError("condition already prepared")
            self._outcome_slot_counts[condition_id] = outcome_slot_count
        logger.info(f"Prepared condition {condition_id:#x} with {outcome_slot_count} outcomes for oracle {oracle}")
        return condition_id

    def get_outcome_slot_count(self, condition_id: int) -> int:
        return self._outcome_slot_counts.get(condition_id, 0)

    def payout_denominator(self, condition_id: int) -> int:
        return self._payout_denominators.get(condition_id, 0)

    def payout_numerators(self, condition_id: int) -> List[int]:
        return list(self._payout_numerators.get(condition_id, []))

    def report_payouts(self, oracle: str, question_id: Any, payouts: Sequence[int]) -> int:
        """Settle the condition identified by (oracle, question_id, len(payouts))."""
        outcome_slot_count = len(payouts)
        if outcome_slot_count < 2:
            raise ValidationError("there should be more than one outcome slot")
        condition_id = get_condition_id(oracle, question_id, outcome_slot_count)
        with self._lock:
            if self._outcome_slot_counts.get(condition_id) != outcome_slot_count:
                raise StateError("condition not prepared or found")
            if self.payout_denominator(condition_id) != 0:
                raise StateError("payout denominator already set")
            if any(p < 0 for p in payouts):
                raise ValidationError("payouts must be non-negative")
            denominator = sum(payouts)
            if denominator <= 0:
                raise ValidationError("payout is all zeroes")
            self._payout_numerators[condition_id] = list(payouts)
            self._payout_denominators[condition_id] = denominator
        logger.info(f"Condition {condition_id:#x} resolved with payouts {list(payouts)}")
        return condition_id

    # Balances

    def balance_of(self, owner: str, position_id: int) -> int:
        return self._balances.get((owner, position_id), 0)

    def balance_of_batch(self, owners: Sequence[str], position_ids: Sequence[int]) -> List[int]:
        if len(owners) != len(position_ids):
            raise ValidationError("owners and position ids must have the same length")
        with self._lock:
            return [self.balance_of(o, p) for o, p in zip(owners, position_ids)]

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        with self._lock:
            self._operators[(owner, operator)] = approved

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._operators.get((owner, operator), False)

    def safe_transfer_from(self, operator: str, from_: str, to: str, position_id: int, amount: int) -> None:
        validate_amount(amount)
        with self.transaction():
            if operator != from_ and not self.is_approved_for_all(from_, operator):
                raise ExternalCallError(f"{operator} is not approved to transfer positions of {from_}")
            self._burn(from_, position_id, amount)
            self._mint(to, position_id, amount)

    # Split / merge / redeem

    def split_position(
        self,
        sender: str,
        collateral_token: CollateralToken,
        parent_collection_id: int,
        condition_id: int,
        partition: Sequence[int],
        amount: int
    ) -> None:
        validate_amount(amount)
        with self.transaction():
            full_index_set, free_index_set = self._check_partition(condition_id, partition)
            if free_index_set == 0:
                if parent_collection_id == ZERO_COLLECTION_ID:
                    if not collateral_token.transfer_from(self.address, sender, self.address, amount):
                        raise ExternalCallError("could not receive collateral tokens")
                else:
                    self._burn(sender, get_position_id(collateral_token.address, parent_collection_id), amount)
            else:
                union = full_index_set ^ free_index_set
                self._burn(sender, self._position(collateral_token, parent_collection_id, condition_id, union), amount)

            for index_set in partition:
                self._mint(sender, self._position(collateral_token, parent_collection_id, condition_id, index_set), amount)

    def merge_positions(
        self,
        sender: str,
        collateral_token: CollateralToken,
        parent_collection_id: int,
        condition_id: int,
        partition: Sequence[int],
        amount: int
    ) -> None:
        validate_amount(amount)
        with self.transaction():
            full_index_set, free_index_set = self._check_partition(condition_id, partition)
            for index_set in partition:
                self._burn(sender, self._position(collateral_token, parent_collection_id, condition_id, index_set), amount)

            if free_index_set == 0:
                if parent_collection_id == ZERO_COLLECTION_ID:
                    if not collateral_token.transfer(self.address, sender, amount):
                        raise ExternalCallError("could not send collateral tokens")
                else:
                    self._mint(sender, get_position_id(collateral_token.address, parent_collection_id), amount)
            else:
                union = full_index_set ^ free_index_set
                self._mint(sender, self._position(collateral_token, parent_collection_id, condition_id, union), amount)

    def redeem_positions(
        self,
        sender: str,
        collateral_token: CollateralToken,
        parent_collection_id: int,
        condition_id: int,
        index_sets: Sequence[int]
    ) -> int:
        with self.transaction():
            denominator = self.payout_denominator(condition_id)
            if denominator == 0:
                raise StateError("result for condition not received yet")
            numerators = self._payout_numerators[condition_id]
            full_index_set = (1 << len(numerators)) - 1

            total_payout = 0
            for index_set in index_sets:
                if not 0 < index_set <= full_index_set:
                    raise ValidationError(f"got invalid index set {index_set}")
                numerator = sum(n for j, n in enumerate(numerators) if index_set & (1 << j))
                position_id = self._position(collateral_token, parent_collection_id, condition_id, index_set)
                stake = self.balance_of(sender, position_id)
                if stake > 0:
                    total_payout += stake * numerator // denominator
                    self._burn(sender, position_id, stake)

            if total_payout > 0:
                if parent_collection_id == ZERO_COLLECTION_ID:
                    if not collateral_token.transfer(self.address, sender, total_payout):
                        raise ExternalCallError("could not transfer payout to message sender")
                else:
                    self._mint(sender, get_position_id(collateral_token.address, parent_collection_id), total_payout)
        logger.info(f"{sender} redeemed {total_payout} from condition {condition_id:#x}")
        return total_payout

    # Transactions

    def snapshot(self) -> dict:
        with self._lock:
            return {
                'balances': dict(self._balances),
                'operators': dict(self._operators),
                'outcome_slot_counts': dict(self._outcome_slot_counts),
                'payout_numerators': copy.deepcopy(self._payout_numerators),
                'payout_denominators': dict(self._payout_denominators),
            }

    def restore(self, snapshot: dict) -> None:
        with self._lock:
            self._balances = dict(snapshot['balances'])
            self._operators = dict(snapshot['operators'])
            self._outcome_slot_counts = dict(snapshot['outcome_slot_counts'])
            self._payout_numerators = copy.deepcopy(snapshot['payout_numerators'])
            self._payout_denominators = dict(snapshot['payout_denominators'])

    @contextmanager
    def transaction(self):
        """Hold the ledger exclusively; undo every change if the block raises."""
        with self._lock:
            saved = self.snapshot()
            try:
                yield self
            except Exception:
                self.restore(saved)
                raise

    # Internals

    def _check_partition(self, condition_id: int, partition: Sequence[int]) -> Tuple[int, int]:
        if len(partition) <= 1:
            raise ValidationError("got empty or singleton partition")
        outcome_slot_count = self.get_outcome_slot_count(condition_id)
        if outcome_slot_count == 0:
            raise StateError("condition not prepared yet")
        full_index_set = (1 << outcome_slot_count) - 1
        free_index_set = full_index_set
        for index_set in partition:
            if not 0 < index_set < full_index_set:
                raise ValidationError(f"got invalid index set {index_set}")
            if (index_set & free_index_set) != index_set:
                raise ValidationError("partition not disjoint")
            free_index_set ^= index_set
        return full_index_set, free_index_set

    def _position(self, collateral_token: CollateralToken, parent_collection_id: int, condition_id: int, index_set: int) -> int:
        return get_position_id(collateral_token.address, get_collection_id(parent_collection_id, condition_id, index_set))

    def _mint(self, owner: str, position_id: int, amount: int) -> None:
        key = (owner, position_id)
        self._balances[key] = self._balances.get(key, 0) + amount

    def _burn(self, owner: str, position_id: int, amount: int) -> None:
        key = (owner, position_id)
        balance = self._balances.get(key, 0)
        if balance < amount:
            raise ExternalCallError(f"insufficient position balance: {owner} holds {balance}, needs {amount}")
        if balance == amount:
            del self._balances[key]
        else:
            self._balances[key] = balance - amount
