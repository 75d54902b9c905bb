"""
Blockchain reads for batch processing.
"""

from .chain_inspector import ChainInspector
from .eligibility import EligibilityValidator, decode_app_id

__all__ = [
    "ChainInspector",
    "EligibilityValidator",
    "decode_app_id",
]
