from __future__ import annotations

import logging
import unittest
from typing import Any

from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from modules.chain.rpc import RpcMethodError
from modules.distribution.addresses import derive_associated_token_address
from modules.distribution.errors import ConnectionCapabilityError, DistributionValidationError
from modules.distribution.fees import (
    FALLBACK_FEE_LAMPORTS,
    SAFETY_BUFFER_LAMPORTS,
    estimate_fee_headroom,
)
from modules.distribution.inspector import inspect_accounts
from modules.distribution.types import AtaInspectionEntry, AtaInspectionResult

RENT_LAMPORTS = 2_039_280


def _address() -> str:
    return str(Keypair().pubkey())


def _inspection(*needs_creation: bool, decimals: int | None = 6) -> AtaInspectionResult:
    entries = [
        AtaInspectionEntry(
            recipient=_address(),
            derived_account_address=str(Pubkey.new_unique()),
            needs_creation=flag,
        )
        for flag in needs_creation
    ]
    return AtaInspectionResult.from_entries(mint=_address(), entries=entries, decimals=decimals)


class _FeeConnection:
    def __init__(self, *, balance: int, fees: dict[int, Any] | None = None) -> None:
        self.balance = balance
        self.fees = fees if fees is not None else {1: 5_000, 2: 7_000}
        self.blockhash = str(Hash.new_unique())
        self.rent_sizes: list[int] = []
        self.messages: list[Any] = []

    async def get_balance(self, address: str) -> int:
        return self.balance

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        self.rent_sizes.append(size)
        return RENT_LAMPORTS

    async def get_latest_blockhash(self) -> str:
        return self.blockhash

    async def get_fee_for_message(self, message: Any) -> Any:
        self.messages.append(message)
        fee = self.fees[len(message.instructions)]
        if isinstance(fee, Exception):
            raise fee
        return fee


class _InspectingFeeConnection(_FeeConnection):
    def __init__(self, *, balance: int, existing: set[str]) -> None:
        super().__init__(balance=balance)
        self.existing = existing

    async def get_multiple_accounts_info(self, addresses: list[str]) -> list[dict[str, Any] | None]:
        return [{"lamports": 1} if address in self.existing else None for address in addresses]


class _BalanceOnlyConnection:
    async def get_balance(self, address: str) -> int:
        return 50_000_000

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return RENT_LAMPORTS


class FeeHeadroomTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.logger = logging.getLogger("test.fees")

    async def test_required_balance_sums_fees_rent_and_buffer(self) -> None:
        connection = _FeeConnection(balance=5_000_000)

        estimate = await estimate_fee_headroom(
            connection,
            _address(),
            _address(),
            1_000,
            _inspection(False, True),
            logger=self.logger,
        )

        self.assertEqual(estimate.required_balance, 4_051_280)
        self.assertEqual(estimate.payer_balance, 5_000_000)
        self.assertEqual(estimate.fee_per_existing_account, 5_000)
        self.assertEqual(estimate.fee_per_missing_account, 7_000)
        self.assertEqual(estimate.rent_per_new_account, RENT_LAMPORTS)
        self.assertEqual(estimate.missing_count, 1)
        self.assertEqual(estimate.existing_count, 1)
        self.assertEqual(estimate.safety_buffer, SAFETY_BUFFER_LAMPORTS)
        self.assertTrue(estimate.passes)
        self.assertEqual(estimate.headroom, 5_000_000 - 4_051_280)
        self.assertEqual(connection.rent_sizes, [165])

    async def test_insufficient_balance_fails(self) -> None:
        estimate = await estimate_fee_headroom(
            _FeeConnection(balance=10_000),
            _address(),
            _address(),
            1,
            _inspection(True, decimals=0),
            logger=self.logger,
        )

        self.assertFalse(estimate.passes)
        self.assertGreater(estimate.required_balance, estimate.payer_balance)

    async def test_priced_messages_carry_fresh_blockhash(self) -> None:
        connection = _FeeConnection(balance=5_000_000)

        await estimate_fee_headroom(
            connection,
            _address(),
            _address(),
            1_000,
            _inspection(False, True),
            logger=self.logger,
        )

        self.assertEqual(len(connection.messages), 2)
        for message in connection.messages:
            self.assertEqual(str(message.recent_blockhash), connection.blockhash)

    async def test_falls_back_when_pricing_unsupported(self) -> None:
        estimate = await estimate_fee_headroom(
            _BalanceOnlyConnection(),
            _address(),
            _address(),
            10,
            _inspection(False, True, True),
            logger=self.logger,
        )

        self.assertEqual(estimate.fee_per_existing_account, FALLBACK_FEE_LAMPORTS)
        self.assertEqual(estimate.fee_per_missing_account, FALLBACK_FEE_LAMPORTS)
        self.assertEqual(
            estimate.required_balance,
            FALLBACK_FEE_LAMPORTS * 3 + RENT_LAMPORTS * 2 + SAFETY_BUFFER_LAMPORTS,
        )

    async def test_falls_back_when_node_returns_no_fee_or_errors(self) -> None:
        connection = _FeeConnection(
            balance=5_000_000,
            fees={1: None, 2: RpcMethodError(method="getFeeForMessage", message="boom")},
        )

        with self.assertLogs(self.logger, level="INFO") as captured:
            estimate = await estimate_fee_headroom(
                connection,
                _address(),
                _address(),
                1_000,
                _inspection(False, True),
                fallback_fee_lamports=6_000,
                logger=self.logger,
            )

        self.assertEqual(estimate.fee_per_existing_account, 6_000)
        self.assertEqual(estimate.fee_per_missing_account, 6_000)
        events = [getattr(record, "event", None) for record in captured.records]
        self.assertEqual(events.count("fee_price_fallback"), 2)

    async def test_custom_safety_buffer_is_applied(self) -> None:
        estimate = await estimate_fee_headroom(
            _FeeConnection(balance=5_000_000),
            _address(),
            _address(),
            1_000,
            _inspection(False),
            safety_buffer_lamports=0,
            logger=self.logger,
        )

        self.assertEqual(estimate.required_balance, 5_000)

    async def test_requires_balance_and_rent_capabilities(self) -> None:
        with self.assertRaises(ConnectionCapabilityError):
            await estimate_fee_headroom(object(), _address(), _address(), 1, _inspection(True), logger=self.logger)

    async def test_rejects_zero_amount_and_empty_inspection(self) -> None:
        connection = _FeeConnection(balance=1)
        with self.assertRaises(DistributionValidationError):
            await estimate_fee_headroom(connection, _address(), _address(), 0, _inspection(True), logger=self.logger)
        with self.assertRaises(DistributionValidationError):
            await estimate_fee_headroom(connection, _address(), _address(), 1, _inspection(), logger=self.logger)

    async def test_inspection_result_feeds_fee_estimate(self) -> None:
        mint, payer = _address(), _address()
        recipients = [_address(), _address()]
        connection = _InspectingFeeConnection(
            balance=5_000_000,
            existing={str(derive_associated_token_address(recipients[0], mint))},
        )

        inspection = await inspect_accounts(connection, mint, recipients, decimals=6, logger=self.logger)
        estimate = await estimate_fee_headroom(connection, payer, mint, 1_000, inspection, logger=self.logger)

        self.assertEqual(inspection.decimals, 6)
        self.assertEqual(estimate.existing_count, 1)
        self.assertEqual(estimate.missing_count, 1)
        self.assertEqual(estimate.required_balance, 4_051_280)
        self.assertTrue(estimate.passes)


if __name__ == "__main__":
    unittest.main()
