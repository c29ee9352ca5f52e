from __future__ import annotations

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.instructions import (
    create_associated_token_account,
    transfer_checked,
)
from spl.token.models import TransferCheckedParams

from .addresses import TOKEN_PROGRAM_ID
from .errors import DistributionValidationError

MAX_U64 = (1 << 64) - 1
TOKEN_ACCOUNT_SIZE = 165


def _require_u64_amount(amount_raw: int) -> int:
    if amount_raw <= 0:
        raise DistributionValidationError("Per-recipient amount must be greater than zero.")
    if amount_raw > MAX_U64:
        raise DistributionValidationError("Amount exceeds u64 range.")
    return amount_raw


def build_distribution_instructions(
    *,
    payer: Pubkey,
    mint: Pubkey,
    source_account: Pubkey,
    recipient: Pubkey,
    recipient_account: Pubkey,
    amount_raw: int,
    decimals: int,
    include_create_account: bool,
) -> list[Instruction]:
    instructions: list[Instruction] = []
    if include_create_account:
        instructions.append(create_associated_token_account(payer, recipient, mint))

    instructions.append(
        transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source_account,
                mint=mint,
                dest=recipient_account,
                owner=payer,
                amount=_require_u64_amount(amount_raw),
                decimals=decimals,
            )
        )
    )
    return instructions


def build_distribution_transaction(
    *,
    payer: Pubkey,
    mint: Pubkey,
    source_account: Pubkey,
    recipient: Pubkey,
    recipient_account: Pubkey,
    amount_raw: int,
    decimals: int,
    include_create_account: bool,
    blockhash: str | None = None,
) -> Transaction:
    """Unsigned single-recipient transfer, optionally creating the recipient's token account first."""
    instructions = build_distribution_instructions(
        payer=payer,
        mint=mint,
        source_account=source_account,
        recipient=recipient,
        recipient_account=recipient_account,
        amount_raw=amount_raw,
        decimals=decimals,
        include_create_account=include_create_account,
    )
    recent_blockhash = Hash.from_string(blockhash) if blockhash else Hash.default()
    message = Message.new_with_blockhash(instructions, payer, recent_blockhash)
    return Transaction.new_unsigned(message)
