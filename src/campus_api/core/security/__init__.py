"""Credential helpers."""

from .tokens import decode_token, mint_access_token, mint_impersonation_token

__all__ = ["decode_token", "mint_access_token", "mint_impersonation_token"]
