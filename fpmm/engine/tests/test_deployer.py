import re
import pytest

from fpmm.engine.deployer import CloneDeployer, compute_clone_address
from fpmm.engine.market import FixedProductMarketMaker
from fpmm.errors import StateError, ValidationError
from fpmm.ledger.collateral import CollateralToken
from fpmm.ledger.conditional_tokens import ConditionalTokens

LEDGER = '0x' + 'c7' * 20
TOKEN = '0x' + 'cc' * 20
TEMPLATE = '0x' + 'ee' * 20
FACTORY = '0x' + 'fa' * 20
ORACLE = '0x' + '0a' * 20
CREATOR = '0x' + 'c0' * 20

FEE = 2 * 10**16
ORACLE_FEE = 10**17

@pytest.fixture
def ledger() -> ConditionalTokens:
    return ConditionalTokens(LEDGER)

@pytest.fixture
def collateral() -> CollateralToken:
    return CollateralToken(TOKEN)

@pytest.fixture
def deployer(ledger) -> CloneDeployer:
    return CloneDeployer(FACTORY, FixedProductMarketMaker(TEMPLATE, ledger))

def test_clone_address_is_deterministic():
    address = compute_clone_address(FACTORY, TEMPLATE, 7)
    assert re.fullmatch(r'0x[0-9a-f]{40}', address)
    assert address == compute_clone_address(FACTORY, TEMPLATE, 7)
    assert address != compute_clone_address(FACTORY, TEMPLATE, 8)
    assert address != compute_clone_address('0x' + 'fb' * 20, TEMPLATE, 7)
    assert address != compute_clone_address(FACTORY, '0x' + 'ef' * 20, 7)

def test_deploy_at_predicted_address(deployer, ledger):
    predicted = deployer.compute_address(1)
    market = deployer.deploy(1)
    assert market.address == predicted
    assert market.conditional_tokens is ledger
    assert market.is_initialized is False
    assert deployer.get_market(predicted) is market
    assert deployer.markets == [market]

def test_duplicate_salt_rejected(deployer):
    deployer.deploy('salt')
    with pytest.raises(StateError, match="already deployed"):
        deployer.deploy('salt')

def test_address_independent_of_deploy_order(ledger):
    first = CloneDeployer(FACTORY, FixedProductMarketMaker(TEMPLATE, ledger))
    second = CloneDeployer(FACTORY, FixedProductMarketMaker(TEMPLATE, ledger))
    a1, b1 = first.deploy(1), first.deploy(2)
    b2, a2 = second.deploy(2), second.deploy(1)
    assert a1.address == a2.address
    assert b1.address == b2.address

def test_clone_can_only_be_initialized_once(deployer, ledger, collateral):
    condition_id = ledger.prepare_condition(ORACLE, 'q', 2)
    market = deployer.deploy(3)
    market.initialize(collateral, [condition_id], FEE, ORACLE, ORACLE_FEE)
    with pytest.raises(StateError, match="already initialized"):
        market.initialize(collateral, [condition_id], 0, CREATOR, 0)
    assert market.fee == FEE
    assert market.oracle == ORACLE

def test_create_market_with_initial_funds(deployer, ledger, collateral):
    condition_id = ledger.prepare_condition(ORACLE, 'q', 3)
    collateral.mint(CREATOR, 900)
    collateral.approve(CREATOR, deployer.compute_address('m1'), 900)

    market = deployer.create_market(
        CREATOR, 'm1', collateral, [condition_id], FEE, ORACLE, ORACLE_FEE, initial_funds=900,
    )
    assert market.is_initialized
    assert market.get_pool_balances() == [900, 900, 900]
    assert market.balance_of(CREATOR) == 900
    assert collateral.balance_of(CREATOR) == 0

def test_failed_create_market_leaves_nothing_behind(deployer, ledger, collateral):
    condition_id = ledger.prepare_condition(ORACLE, 'q', 2)
    address = deployer.compute_address('m2')
    with pytest.raises(ValidationError):
        deployer.create_market(CREATOR, 'm2', collateral, [condition_id], 10**18, ORACLE, ORACLE_FEE)
    assert deployer.get_market(address) is None

    market = deployer.create_market(CREATOR, 'm2', collateral, [condition_id], FEE, ORACLE, ORACLE_FEE)
    assert market.address == address
    assert market.is_initialized
