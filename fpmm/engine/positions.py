"""
Combinatorial position enumeration for a market's condition list.

A market over conditions c_0..c_{n-1} trades one position per combination of
outcomes, so it holds prod(slot_counts) positions. The canonical order expands
the last condition first: position k corresponds to the outcome tuple at flat
index k of an array shaped by the reversed slot counts. Every outcome index used
by the pricing code refers to this order.
"""
import logging
import math
from typing import Any, List, NamedTuple, Sequence, Tuple

import numpy as np

from fpmm.errors import PositionSpaceError, ValidationError
from fpmm.utils import UINT256_MAX, ZERO_COLLECTION_ID, hash_to_int

logger = logging.getLogger(__name__)

MAX_OUTCOME_SLOTS = 256

class PositionSpace(NamedTuple):
    # collection_ids[k]: parent collections that condition k is split under
    collection_ids: List[List[int]]
    position_ids: List[int]

def get_condition_id(oracle: str, question_id: Any, outcome_slot_count: int) -> int:
    return hash_to_int(oracle, question_id, outcome_slot_count)

def get_collection_id(parent_collection_id: int, condition_id: int, index_set: int) -> int:
    """
    Collections combine additively so that the same outcome combination reached
    through a different condition order yields the same id.
    """
    return (parent_collection_id + hash_to_int(condition_id, index_set)) % (UINT256_MAX + 1)

def get_position_id(collateral: str, collection_id: int) -> int:
    return hash_to_int(collateral, collection_id)

def generate_basic_partition(outcome_slot_count: int) -> List[int]:
    return [1 << i for i in range(outcome_slot_count)]

def validate_slot_counts(slot_counts: Sequence[int]) -> None:
    if len(slot_counts) == 0:
        raise ValidationError("At least one condition is required.")
    for k, count in enumerate(slot_counts):
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError(f"Outcome slot count for condition {k} must be an integer, got {count!r}")
        if not 2 <= count <= MAX_OUTCOME_SLOTS:
            raise ValidationError(f"Condition {k} has {count} outcome slots; need 2..{MAX_OUTCOME_SLOTS}")

def build_position_space(
    collateral: str,
    condition_ids: Sequence[int],
    slot_counts: Sequence[int]
) -> PositionSpace:
    if len(condition_ids) != len(slot_counts):
        raise ValidationError("Each condition needs exactly one outcome slot count.")
    if len(set(condition_ids)) != len(condition_ids):
        raise ValidationError("Duplicate condition in condition list.")
    validate_slot_counts(slot_counts)

    n = len(condition_ids)
    collection_ids: List[List[int]] = [[] for _ in range(n)]

    # Breadth-first per level gives each level in the same lexicographic order
    # a depth-first expansion would visit it.
    frontier = [ZERO_COLLECTION_ID]
    for k in reversed(range(n)):
        collection_ids[k] = list(frontier)
        partition = generate_basic_partition(slot_counts[k])
        frontier = [
            get_collection_id(parent, condition_ids[k], index_set)
            for parent in frontier
            for index_set in partition
        ]

    position_ids = [get_position_id(collateral, c) for c in frontier]

    expected = math.prod(slot_counts)
    if len(position_ids) != expected:
        raise PositionSpaceError(f"Enumerated {len(position_ids)} positions, expected {expected}")

    logger.debug(f"Built position space: {n} conditions, {expected} positions")
    return PositionSpace(collection_ids=collection_ids, position_ids=position_ids)

def iter_index_tuples(slot_counts: Sequence[int]):
    """Yield per-condition outcome tuples in canonical position order."""
    validate_slot_counts(slot_counts)
    for reversed_tuple in np.ndindex(*reversed(slot_counts)):
        yield tuple(int(i) for i in reversed(reversed_tuple))

def outcome_index(slot_counts: Sequence[int], outcomes: Sequence[int]) -> int:
    """Map a per-condition outcome tuple to its position in the canonical list."""
    validate_slot_counts(slot_counts)
    if len(outcomes) != len(slot_counts):
        raise ValidationError("Outcome tuple length must match the number of conditions.")
    for k, (o, count) in enumerate(zip(outcomes, slot_counts)):
        if not 0 <= o < count:
            raise ValidationError(f"Outcome {o} out of range for condition {k} with {count} slots")
    return int(np.ravel_multi_index(tuple(reversed(outcomes)), tuple(reversed(slot_counts))))

def index_tuple(slot_counts: Sequence[int], index: int) -> Tuple[int, ...]:
    validate_slot_counts(slot_counts)
    total = math.prod(slot_counts)
    if not 0 <= index < total:
        raise ValidationError(f"Outcome index {index} out of range [0, {total})")
    reversed_tuple = np.unravel_index(index, tuple(reversed(slot_counts)))
    return tuple(int(i) for i in reversed(reversed_tuple))

def leaf_collection_id(condition_ids: Sequence[int], outcomes: Sequence[int]) -> int:
    collection = ZERO_COLLECTION_ID
    for k in reversed(range(len(condition_ids))):
        collection = get_collection_id(collection, condition_ids[k], 1 << outcomes[k])
    return collection
