from __future__ import annotations

import hashlib
from typing import Any, Sequence

from solders.pubkey import Pubkey

from .errors import DistributionValidationError, ProgramAddressError

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LENGTH = 32
MAX_BUMP_SEED = 255


def to_pubkey(value: Any) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    text = str(getattr(value, "public_address", value) or "").strip()
    if not text:
        raise DistributionValidationError("Address is required.")
    try:
        return Pubkey.from_string(text)
    except ValueError as error:
        raise DistributionValidationError(f"Invalid Solana address: {text}") from error


def is_valid_address(value: Any) -> bool:
    text = str(value or "").strip()
    if not text:
        return False
    try:
        return str(Pubkey.from_string(text)) == text
    except ValueError:
        return False


def is_on_curve(candidate: bytes) -> bool:
    """True when the 32 bytes decode to an ed25519 point."""
    return Pubkey(candidate).is_on_curve()


def _validate_seeds(seeds: Sequence[bytes]) -> None:
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise DistributionValidationError("Max seed length exceeded")


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    _validate_seeds(seeds)

    digest = hashlib.sha256(b"".join(seeds) + bytes(program_id) + PDA_MARKER).digest()
    if is_on_curve(digest):
        raise ProgramAddressError("Invalid seeds, address must fall off the curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> tuple[Pubkey, int]:
    _validate_seeds(seeds)
    for bump in range(MAX_BUMP_SEED, 0, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except ProgramAddressError:
            continue
    raise ProgramAddressError("Unable to find a viable program address bump seed")


def derive_associated_token_address(
    owner: Any,
    mint: Any,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    address, _ = find_program_address(
        [bytes(to_pubkey(owner)), bytes(token_program_id), bytes(to_pubkey(mint))],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
