"""Identifier validation: runs before any collaborator call."""
from __future__ import annotations

from solders.pubkey import Pubkey
from solders.signature import Signature

from .exceptions import ValidationError


def is_valid_address(address: str) -> bool:
    """True for a base58 string decoding to a 32-byte public key."""
    if not isinstance(address, str) or not address:
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def is_valid_signature(signature: str) -> bool:
    """True for a base58 string decoding to a 64-byte signature."""
    if not isinstance(signature, str) or not signature:
        return False
    try:
        Signature.from_string(signature)
    except ValueError:
        return False
    return True


def require_address(address: str, what: str = "wallet") -> str:
    if not is_valid_address(address):
        raise ValidationError(f"Invalid {what} address: {address!r}")
    return address


def require_signature(signature: str) -> str:
    if not is_valid_signature(signature):
        raise ValidationError(f"Invalid transaction signature: {signature!r}")
    return signature
