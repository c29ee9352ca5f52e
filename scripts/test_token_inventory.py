from __future__ import annotations

import logging
import unittest
from typing import Any
from unittest.mock import AsyncMock

from solders.keypair import Keypair

from modules.chain.inventory import (
    TokenInventoryError,
    TokenInventoryLoader,
    is_access_forbidden_error,
    normalize_token_accounts,
    pick_selected_mint,
)
from modules.chain.rpc import RpcMethodError
from modules.distribution.addresses import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID


def _address() -> str:
    return str(Keypair().pubkey())


def _account(mint: str, amount: str, decimals: int) -> dict[str, Any]:
    return {
        "pubkey": _address(),
        "account": {
            "data": {
                "parsed": {
                    "info": {"mint": mint, "tokenAmount": {"amount": amount, "decimals": decimals}},
                    "type": "account",
                },
                "program": "spl-token",
            }
        },
    }


def _forbidden() -> RpcMethodError:
    return RpcMethodError(method="getTokenAccountsByOwner", status=403, message="403 Access Forbidden")


class _InventoryConnection:
    def __init__(self, rpc_url: str, accounts: dict[str, list[dict[str, Any]]] | Exception) -> None:
        self.rpc_url = rpc_url
        self.accounts = accounts
        self.close = AsyncMock()

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> list[dict[str, Any]]:
        if isinstance(self.accounts, Exception):
            raise self.accounts
        return self.accounts.get(program_id, [])


class NormalizeTokenAccountsTests(unittest.TestCase):
    def test_aggregates_per_mint_and_skips_empty(self) -> None:
        mint_a, mint_b, mint_c = sorted([_address(), _address(), _address()])

        assets = normalize_token_accounts(
            [
                _account(mint_a, "1500000", 6),
                _account(mint_a, "500000", 6),
                _account(mint_b, "0", 9),
                _account(mint_c, "7", 0),
                {"account": {"data": ["raw", "base64"]}},
            ]
        )

        self.assertEqual([asset.mint for asset in assets], [mint_a, mint_c])
        self.assertEqual(assets[0].balance_raw, 2_000_000)
        self.assertEqual(assets[0].balance_ui, "2")
        self.assertTrue(assets[0].supported_program)

    def test_mismatched_decimals_are_ignored(self) -> None:
        mint = _address()

        assets = normalize_token_accounts([_account(mint, "10", 2), _account(mint, "99", 3)])

        self.assertEqual(assets[0].balance_raw, 10)
        self.assertEqual(assets[0].decimals, 2)

    def test_token_2022_accounts_are_unsupported(self) -> None:
        assets = normalize_token_accounts(
            [_account(_address(), "5", 1)],
            token_program_id=str(TOKEN_2022_PROGRAM_ID),
        )

        self.assertFalse(assets[0].supported_program)
        self.assertEqual(assets[0].token_program_id, str(TOKEN_2022_PROGRAM_ID))


class SelectionAndErrorTests(unittest.TestCase):
    def test_pick_selected_mint(self) -> None:
        assets = normalize_token_accounts([_account(_address(), "1", 0), _account(_address(), "2", 0)])

        self.assertEqual(pick_selected_mint(assets, assets[1].mint), assets[1].mint)
        self.assertIsNone(pick_selected_mint(assets, "missing"))
        self.assertEqual(pick_selected_mint(assets[:1], None), assets[0].mint)
        self.assertIsNone(pick_selected_mint([], None))

    def test_is_access_forbidden_error(self) -> None:
        self.assertTrue(is_access_forbidden_error(_forbidden()))
        self.assertTrue(is_access_forbidden_error(RuntimeError("HTTP 403: Forbidden")))
        self.assertFalse(is_access_forbidden_error(RuntimeError("HTTP 500")))


class TokenInventoryLoaderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.logger = logging.getLogger("test.inventory")
        self.owner = _address()

    async def test_loads_both_token_programs(self) -> None:
        classic_mint, extension_mint = _address(), _address()
        connection = _InventoryConnection(
            "https://api.devnet.solana.com",
            {
                str(TOKEN_PROGRAM_ID): [_account(classic_mint, "10", 1)],
                str(TOKEN_2022_PROGRAM_ID): [_account(extension_mint, "3", 0)],
            },
        )

        assets = await TokenInventoryLoader(connection, logger=self.logger).load(self.owner)

        by_mint = {asset.mint: asset for asset in assets}
        self.assertTrue(by_mint[classic_mint].supported_program)
        self.assertFalse(by_mint[extension_mint].supported_program)

    async def test_forbidden_primary_falls_back(self) -> None:
        mint = _address()
        primary = _InventoryConnection("https://api.mainnet-beta.solana.com", _forbidden())
        fallbacks: list[_InventoryConnection] = []

        def factory(endpoint: str) -> _InventoryConnection:
            accounts: Any = _forbidden() if not fallbacks else {str(TOKEN_PROGRAM_ID): [_account(mint, "4", 0)]}
            fallback = _InventoryConnection(endpoint, accounts)
            fallbacks.append(fallback)
            return fallback

        with self.assertLogs(self.logger, level="INFO") as captured:
            assets = await TokenInventoryLoader(primary, connection_factory=factory, logger=self.logger).load(
                self.owner
            )

        self.assertEqual([asset.mint for asset in assets], [mint])
        self.assertEqual(len(fallbacks), 2)
        for fallback in fallbacks:
            fallback.close.assert_awaited_once()
        events = [getattr(record, "event", None) for record in captured.records]
        self.assertEqual(events.count("token_inventory_provider_denied"), 2)
        self.assertIn("token_inventory_fallback_used", events)

    async def test_every_provider_denied_raises(self) -> None:
        primary = _InventoryConnection("https://api.mainnet-beta.solana.com", _forbidden())

        loader = TokenInventoryLoader(
            primary,
            connection_factory=lambda endpoint: _InventoryConnection(endpoint, _forbidden()),
            logger=self.logger,
        )

        with self.assertRaisesRegex(TokenInventoryError, "403 Access Forbidden"):
            await loader.load(self.owner)

    async def test_other_errors_propagate(self) -> None:
        primary = _InventoryConnection("https://api.mainnet-beta.solana.com", RuntimeError("HTTP 500"))
        factory = AsyncMock()

        with self.assertRaisesRegex(RuntimeError, "HTTP 500"):
            await TokenInventoryLoader(primary, connection_factory=factory, logger=self.logger).load(self.owner)
        factory.assert_not_called()

    async def test_missing_connection_raises(self) -> None:
        with self.assertRaises(TokenInventoryError):
            await TokenInventoryLoader(None, logger=self.logger).load(self.owner)


if __name__ == "__main__":
    unittest.main()
