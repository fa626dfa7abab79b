"""
graphqltiers - Operations toolkit for the tiered Hasura GraphQL APIs
"""

__version__ = "3.0.0"

from .core import TierToolkit
from .errors import TierToolError

__all__ = ["TierToolkit", "TierToolError"]
