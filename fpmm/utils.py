import hashlib
import json
from decimal import Decimal, getcontext
from typing import Any, Dict

import mpmath as mp
import numpy as np

from fpmm.errors import FixedPointError, ValidationError

getcontext().prec = 78
mp.mp.dps = 80

# Fixed-point scale: ONE represents 1.0 for fee fractions.
ONE = 10**18
UINT256_MAX = 2**256 - 1
ZERO_COLLECTION_ID = 0

def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > UINT256_MAX:
        raise FixedPointError(f"Overflow in addition: {a} + {b}")
    return result

def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise FixedPointError(f"Underflow in subtraction: {a} - {b}")
    return a - b

def checked_mul(a: int, b: int) -> int:
    result = a * b
    if result > UINT256_MAX:
        raise FixedPointError(f"Overflow in multiplication: {a} * {b}")
    return result

def floor_div(a: int, b: int) -> int:
    if b == 0:
        raise FixedPointError("Division by zero.")
    return a // b

def ceil_div(a: int, b: int) -> int:
    """Integer division rounding up; zero stays zero."""
    if b == 0:
        raise FixedPointError("Division by zero.")
    if a > 0:
        return (a - 1) // b + 1
    return a // b

def to_fixed_point(fraction: float | str | Decimal) -> int:
    """Convert a decimal fraction such as '0.05' to its ONE-scaled integer."""
    value = Decimal(str(fraction)) * ONE
    if value != value.to_integral_value():
        raise ValidationError(f"Fraction {fraction} is finer than fixed-point precision.")
    return int(value)

def from_fixed_point(value: int) -> Decimal:
    return Decimal(value) / Decimal(ONE)

def validate_amount(amount: Any, name: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Invalid {name}: {amount!r}. Must be an integer.")
    if amount <= 0:
        raise ValidationError(f"Invalid {name}: {amount}. Must be positive.")
    if amount > UINT256_MAX:
        raise ValidationError(f"Invalid {name}: {amount}. Exceeds uint256 range.")

def validate_fraction(value: Any, name: str, inclusive_one: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be a fixed-point integer, got {value!r}")
    upper_ok = value <= ONE if inclusive_one else value < ONE
    if value < 0 or not upper_ok:
        bound = "[0, ONE]" if inclusive_one else "[0, ONE)"
        raise ValidationError(f"{name} must be in {bound}, got {value}")

def _encode(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        raise ValidationError("Cannot hash a boolean identifier component.")
    if isinstance(value, int):
        if not 0 <= value <= UINT256_MAX:
            raise ValidationError(f"Identifier component out of uint256 range: {value}")
        return value.to_bytes(32, 'big')
    if isinstance(value, str):
        if value.startswith('0x'):
            try:
                return bytes.fromhex(value[2:])
            except ValueError:
                pass
        return value.encode('utf-8')
    raise ValidationError(f"Unsupported identifier component: {value!r}")

def hash_packed(*parts: Any) -> bytes:
    """Hash the packed encoding of parts (ints as 32-byte words, 0x-hex as raw bytes)."""
    return hashlib.sha3_256(b''.join(_encode(p) for p in parts)).digest()

def hash_to_int(*parts: Any) -> int:
    return int.from_bytes(hash_packed(*parts), 'big')

def to_address(digest: bytes) -> str:
    return '0x' + digest[-20:].hex()

def decimal_sqrt(d: Decimal) -> Decimal:
    if d < Decimal(0):
        raise ValueError("Cannot take square root of negative value.")
    return Decimal(mp.nstr(mp.sqrt(mp.mpf(str(d))), mp.mp.dps))

def safe_divide(num: Decimal, den: Decimal) -> Decimal:
    if den == Decimal(0):
        raise FixedPointError("Division by zero.")
    return num / den

def serialize_state(state: Dict[str, Any]) -> str:
    def default_handler(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, (np.float64, np.float32)):
            return float(obj)
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
    return json.dumps(state, default=default_handler, sort_keys=True)

def deserialize_state(json_str: str) -> Dict[str, Any]:
    return json.loads(json_str)
