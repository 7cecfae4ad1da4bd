import pytest

from fpmm.engine.positions import get_collection_id, get_condition_id, get_position_id
from fpmm.errors import ExternalCallError, StateError, ValidationError
from fpmm.ledger.collateral import CollateralToken
from fpmm.ledger.conditional_tokens import ConditionalTokens
from fpmm.utils import ZERO_COLLECTION_ID

LEDGER = '0x' + 'c7' * 20
TOKEN = '0x' + 'cc' * 20
ORACLE = '0x' + '0a' * 20
ALICE = '0x' + 'a1' * 20
BOB = '0x' + 'b0' * 20

@pytest.fixture
def ledger() -> ConditionalTokens:
    return ConditionalTokens(LEDGER)

@pytest.fixture
def collateral() -> CollateralToken:
    token = CollateralToken(TOKEN)
    token.mint(ALICE, 1000)
    token.approve(ALICE, LEDGER, 1000)
    return token

@pytest.fixture
def condition_id(ledger: ConditionalTokens) -> int:
    return ledger.prepare_condition(ORACLE, 'will-it-rain', 3)

def position(condition_id: int, index_set: int, parent: int = ZERO_COLLECTION_ID) -> int:
    return get_position_id(TOKEN, get_collection_id(parent, condition_id, index_set))

def test_prepare_condition(ledger: ConditionalTokens, condition_id: int):
    assert condition_id == get_condition_id(ORACLE, 'will-it-rain', 3)
    assert ledger.get_outcome_slot_count(condition_id) == 3
    assert ledger.payout_denominator(condition_id) == 0
    with pytest.raises(StateError, match="already prepared"):
        ledger.prepare_condition(ORACLE, 'will-it-rain', 3)
    with pytest.raises(ValidationError):
        ledger.prepare_condition(ORACLE, 'single', 1)

def test_split_and_merge_full_partition(ledger, collateral, condition_id):
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 300)
    assert collateral.balance_of(ALICE) == 700
    assert collateral.balance_of(LEDGER) == 300
    ids = [position(condition_id, s) for s in (1, 2, 4)]
    assert ledger.balance_of_batch([ALICE] * 3, ids) == [300, 300, 300]

    ledger.merge_positions(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 100)
    assert ledger.balance_of_batch([ALICE] * 3, ids) == [200, 200, 200]
    assert collateral.balance_of(ALICE) == 800

def test_split_coarse_then_fine_partition(ledger, collateral, condition_id):
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 6], 50)
    assert ledger.balance_of(ALICE, position(condition_id, 6)) == 50
    # Splitting a union position burns it and mints its parts
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [2, 4], 20)
    assert ledger.balance_of(ALICE, position(condition_id, 6)) == 30
    assert ledger.balance_of(ALICE, position(condition_id, 2)) == 20
    assert ledger.balance_of(ALICE, position(condition_id, 4)) == 20

def test_split_under_parent_collection(ledger, collateral, condition_id):
    other = ledger.prepare_condition(ORACLE, 'will-it-snow', 2)
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, other, [1, 2], 40)
    parent = get_collection_id(ZERO_COLLECTION_ID, other, 1)
    ledger.split_position(ALICE, collateral, parent, condition_id, [1, 2, 4], 40)
    assert ledger.balance_of(ALICE, get_position_id(TOKEN, parent)) == 0
    assert ledger.balance_of(ALICE, position(condition_id, 4, parent)) == 40
    assert collateral.balance_of(LEDGER) == 40

def test_split_requires_collateral_allowance(ledger, collateral, condition_id):
    collateral.mint(BOB, 100)
    with pytest.raises(ExternalCallError, match="could not receive collateral"):
        ledger.split_position(BOB, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 10)

@pytest.mark.parametrize("partition", [[1], [1, 3], [0, 1], [1, 8], []])
def test_invalid_partitions(ledger, collateral, condition_id, partition):
    with pytest.raises(ValidationError):
        ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, partition, 10)

def test_split_unprepared_condition(ledger, collateral):
    with pytest.raises(StateError, match="not prepared"):
        ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, 12345, [1, 2], 10)

def test_failed_merge_leaves_balances_untouched(ledger, collateral, condition_id):
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 100)
    ledger.safe_transfer_from(ALICE, ALICE, BOB, position(condition_id, 4), 100)
    with pytest.raises(ExternalCallError, match="insufficient"):
        ledger.merge_positions(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 100)
    ids = [position(condition_id, s) for s in (1, 2, 4)]
    assert ledger.balance_of_batch([ALICE] * 3, ids) == [100, 100, 0]
    assert collateral.balance_of(ALICE) == 900

def test_safe_transfer_requires_operator_approval(ledger, collateral, condition_id):
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 10)
    pid = position(condition_id, 1)
    with pytest.raises(ExternalCallError, match="not approved"):
        ledger.safe_transfer_from(BOB, ALICE, BOB, pid, 5)
    ledger.set_approval_for_all(ALICE, BOB, True)
    ledger.safe_transfer_from(BOB, ALICE, BOB, pid, 5)
    assert ledger.balance_of(BOB, pid) == 5

def test_report_payouts_and_redeem(ledger, collateral, condition_id):
    ledger.split_position(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4], 100)
    with pytest.raises(StateError, match="not received"):
        ledger.redeem_positions(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1])

    assert ledger.report_payouts(ORACLE, 'will-it-rain', [1, 1, 0]) == condition_id
    assert ledger.payout_denominator(condition_id) == 2
    assert ledger.payout_numerators(condition_id) == [1, 1, 0]

    payout = ledger.redeem_positions(ALICE, collateral, ZERO_COLLECTION_ID, condition_id, [1, 2, 4])
    assert payout == 100
    assert collateral.balance_of(ALICE) == 1000
    assert ledger.balance_of(ALICE, position(condition_id, 1)) == 0

def test_report_payouts_guards(ledger, condition_id):
    with pytest.raises(StateError, match="not prepared"):
        ledger.report_payouts(ORACLE, 'unknown-question', [1, 0, 0])
    with pytest.raises(ValidationError, match="all zeroes"):
        ledger.report_payouts(ORACLE, 'will-it-rain', [0, 0, 0])
    ledger.report_payouts(ORACLE, 'will-it-rain', [0, 0, 1])
    with pytest.raises(StateError, match="already set"):
        ledger.report_payouts(ORACLE, 'will-it-rain', [1, 0, 0])
