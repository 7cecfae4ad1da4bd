from .amm_math import calc_buy_amount, calc_sell_amount, calc_marginal_prices
from .bonding_curve import BondingCurve, IdentityBondingCurve, SquareRootBondingCurve
from .deployer import CloneDeployer, compute_clone_address
from .market import FixedProductMarketMaker
from .params import MarketParams
from .positions import PositionSpace, build_position_space
from .state import MarketState
