"""
Load generation for the permissioned-ledger access-control contract.
"""

from .main import main

__all__ = ["main"]
