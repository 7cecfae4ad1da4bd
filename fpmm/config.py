import logging
import os
from decimal import Decimal

from dotenv import load_dotenv
from typing_extensions import TypedDict

from fpmm.utils import to_fixed_point

DEFAULTS = {
    'FPMM_FEE': '0.02',
    'FPMM_ORACLE_FEE': '0.1',
    'FPMM_LOG_LEVEL': 'INFO',
}

def load_env() -> dict[str, str]:
    # Values from a local .env file never override the real environment
    load_dotenv()

    env_vars = {}
    for key, default in DEFAULTS.items():
        value = os.getenv(key)
        if value is None or value.strip() == '':
            value = default
        env_vars[key] = value.strip()
    return env_vars

def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for scripts and services embedding the engine."""
    if level is None:
        level = load_env()['FPMM_LOG_LEVEL']
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

class EngineParams(TypedDict):
    fee: int
    oracle_fee: int

def get_default_engine_params() -> EngineParams:
    env = load_env()
    try:
        fee = to_fixed_point(Decimal(env['FPMM_FEE']))
        oracle_fee = to_fixed_point(Decimal(env['FPMM_ORACLE_FEE']))
    except ArithmeticError as e:
        raise ValueError(f"Invalid fee configuration: {e}") from e
    return EngineParams(fee=fee, oracle_fee=oracle_fee)
