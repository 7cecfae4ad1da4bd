import pytest

from fpmm.ledger.collateral import CollateralToken

TOKEN = '0x' + 'cc' * 20
ALICE = '0x' + 'a1' * 20
BOB = '0x' + 'b0' * 20
SPENDER = '0x' + '5e' * 20

@pytest.fixture
def token() -> CollateralToken:
    token = CollateralToken(TOKEN)
    token.mint(ALICE, 100)
    return token

def test_transfer(token: CollateralToken):
    assert token.transfer(ALICE, BOB, 40) is True
    assert token.balance_of(ALICE) == 60
    assert token.balance_of(BOB) == 40
    assert token.total_supply == 100

def test_transfer_insufficient_balance_returns_false(token: CollateralToken):
    assert token.transfer(ALICE, BOB, 101) is False
    assert token.balance_of(ALICE) == 100
    assert token.balance_of(BOB) == 0

def test_transfer_from_requires_allowance(token: CollateralToken):
    assert token.transfer_from(SPENDER, ALICE, BOB, 10) is False
    assert token.approve(ALICE, SPENDER, 30) is True
    assert token.transfer_from(SPENDER, ALICE, BOB, 20) is True
    assert token.allowance(ALICE, SPENDER) == 10
    assert token.transfer_from(SPENDER, ALICE, BOB, 11) is False
    assert token.balance_of(BOB) == 20

def test_transfer_from_with_allowance_but_no_balance(token: CollateralToken):
    token.approve(ALICE, SPENDER, 500)
    assert token.transfer_from(SPENDER, ALICE, BOB, 200) is False
    assert token.allowance(ALICE, SPENDER) == 500

def test_transaction_rolls_back_on_error(token: CollateralToken):
    with pytest.raises(RuntimeError):
        with token.transaction():
            token.transfer(ALICE, BOB, 50)
            raise RuntimeError("abort")
    assert token.balance_of(ALICE) == 100
    assert token.balance_of(BOB) == 0

def test_transaction_keeps_changes_on_success(token: CollateralToken):
    with token.transaction():
        token.transfer(ALICE, BOB, 50)
    assert token.balance_of(BOB) == 50
