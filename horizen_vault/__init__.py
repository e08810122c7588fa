"""Horizen Vault - secrets vault and session security for the Horizen start page."""

__version__ = "0.1.0"

from .vault import VaultManager

__all__ = [
    "__version__",
    "VaultManager",
]
