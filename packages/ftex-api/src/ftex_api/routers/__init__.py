"""API routers."""

from . import crypto, fiat, transactions

__all__ = ["crypto", "fiat", "transactions"]
