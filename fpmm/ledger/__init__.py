# fpmm/ledger/__init__.py

# In-memory stand-ins for the external collateral token and conditional token
# ledger the market engine trades against.
from .collateral import CollateralToken
from .conditional_tokens import ConditionalTokens
