"""
Deterministic clone deployment for markets.

A clone's address depends only on the deployer, the template and the salt, so
other parties can reference a market before it exists. Deployment and
initialization are separate steps; the market itself rejects a second
initialize call.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

from fpmm.errors import StateError
from fpmm.utils import hash_packed, to_address
from .bonding_curve import BondingCurve
from .market import FixedProductMarketMaker

logger = logging.getLogger(__name__)

CLONE_PREFIX = b'\xff'

def compute_clone_address(deployer: str, template: str, salt: Any) -> str:
    code_hash = hash_packed('minimal-proxy', template)
    return to_address(hash_packed(CLONE_PREFIX, deployer, salt, code_hash))

class CloneDeployer:
    def __init__(self, address: str, template: FixedProductMarketMaker):
        self.address = address
        self.template = template
        self._clones: Dict[str, FixedProductMarketMaker] = {}
        self._lock = threading.Lock()

    def compute_address(self, salt: Any, template: Optional[FixedProductMarketMaker] = None) -> str:
        template = template or self.template
        return compute_clone_address(self.address, template.address, salt)

    def deploy(self, salt: Any, template: Optional[FixedProductMarketMaker] = None) -> FixedProductMarketMaker:
        """Create an uninitialized clone of template at its deterministic address."""
        template = template or self.template
        address = self.compute_address(salt, template)
        with self._lock:
            if address in self._clones:
                raise StateError(f"address {address} already deployed")
            clone = template.clone(address)
            self._clones[address] = clone
        logger.info(f"Deployed market clone at {address} from template {template.address}")
        return clone

    def get_market(self, address: str) -> Optional[FixedProductMarketMaker]:
        return self._clones.get(address)

    @property
    def markets(self) -> List[FixedProductMarketMaker]:
        return list(self._clones.values())

    def create_market(
        self,
        creator: str,
        salt: Any,
        collateral_token: Any,
        condition_ids: Sequence[int],
        fee: int,
        oracle: str,
        oracle_fee: int,
        bonding_curve: Optional[BondingCurve] = None,
        initial_funds: int = 0
    ) -> FixedProductMarketMaker:
        """Deploy, initialize and optionally fund a market; nothing is kept if a step fails."""
        market = self.deploy(salt)
        try:
            market.initialize(collateral_token, condition_ids, fee, oracle, oracle_fee, bonding_curve)
            if initial_funds:
                market.add_funding(creator, initial_funds)
        except Exception:
            with self._lock:
                self._clones.pop(market.address, None)
            raise
        logger.info(f"Market {market.address} created by {creator} with {initial_funds} initial funds")
        return market
