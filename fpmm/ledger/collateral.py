import copy
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Tuple

from fpmm.utils import validate_amount

logger = logging.getLogger(__name__)

class CollateralToken:
    """
    In-memory fungible collateral with boolean-success transfers.

    Transfers report failure by returning False rather than raising; callers
    decide how to surface it.
    """

    def __init__(self, address: str, symbol: str = 'USDC'):
        self.address = address
        self.symbol = symbol
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0
        self._lock = threading.RLock()

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, to: str, amount: int) -> None:
        validate_amount(amount)
        with self._lock:
            self._balances[to] = self.balance_of(to) + amount
            self._total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        with self._lock:
            self._allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        with self._lock:
            return self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        with self._lock:
            allowed = self.allowance(owner, spender)
            if spender != owner and allowed < amount:
                logger.debug(f"{self.symbol}: allowance {allowed} < {amount} for {spender} on {owner}")
                return False
            if not self._move(owner, to, amount):
                return False
            if spender != owner:
                self._allowances[(owner, spender)] = allowed - amount
            return True

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0:
            return False
        balance = self.balance_of(sender)
        if balance < amount:
            logger.debug(f"{self.symbol}: balance {balance} < {amount} for {sender}")
            return False
        self._balances[sender] = balance - amount
        self._balances[to] = self.balance_of(to) + amount
        return True

    def snapshot(self) -> dict:
        with self._lock:
            return {
                'balances': dict(self._balances),
                'allowances': dict(self._allowances),
                'total_supply': self._total_supply,
            }

    def restore(self, snapshot: dict) -> None:
        with self._lock:
            self._balances = dict(snapshot['balances'])
            self._allowances = dict(snapshot['allowances'])
            self._total_supply = snapshot['total_supply']

    @contextmanager
    def transaction(self):
        """Hold the token exclusively; undo every change if the block raises."""
        with self._lock:
            saved = copy.deepcopy(self.snapshot())
            try:
                yield self
            except Exception:
                self.restore(saved)
                raise
