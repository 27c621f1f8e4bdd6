"""Authentication module."""

from tokenkv.auth.tokens import TokenAuthority

__all__ = ["TokenAuthority"]
