from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from modules.common import get_logger, log_event
from modules.distribution.addresses import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID, to_pubkey
from modules.distribution.split import format_raw_with_decimals
from modules.distribution.types import TokenAsset

from .rpc import RpcMethodError, SolanaRpcConnection, fallback_endpoints_for

ConnectionFactory = Callable[[str], Any]


class TokenInventoryError(RuntimeError):
    """Every inventory provider refused the token-balance lookup."""


def is_access_forbidden_error(error: BaseException) -> bool:
    if isinstance(error, RpcMethodError) and error.status == 403:
        return True
    message = str(error).lower()
    return "403" in message and "forbidden" in message


def _parsed_token_info(account: Any) -> dict[str, Any] | None:
    if not isinstance(account, dict):
        return None
    data = (account.get("account") or {}).get("data")
    if not isinstance(data, dict):
        return None
    info = (data.get("parsed") or {}).get("info")
    return info if isinstance(info, dict) else None


def normalize_token_accounts(
    accounts: Iterable[Any],
    *,
    token_program_id: str = str(TOKEN_PROGRAM_ID),
) -> list[TokenAsset]:
    """Aggregate jsonParsed token accounts into one positive balance per mint.

    Accounts with a missing mint, bad decimals or an unparsable amount are skipped, as
    are later accounts whose decimals disagree with the first one seen for a mint.
    """
    balances: dict[str, tuple[int, int]] = {}
    for account in accounts:
        info = _parsed_token_info(account)
        if info is None:
            continue
        mint = str(info.get("mint") or "").strip()
        token_amount = info.get("tokenAmount") or {}
        decimals = token_amount.get("decimals")
        amount_text = str(token_amount.get("amount") or "").strip()
        if not mint or isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
            continue
        if not amount_text.isdigit():
            continue
        amount_raw = int(amount_text)
        if amount_raw <= 0:
            continue

        existing = balances.get(mint)
        if existing is None:
            balances[mint] = (decimals, amount_raw)
        elif existing[0] == decimals:
            balances[mint] = (decimals, existing[1] + amount_raw)

    supported = token_program_id == str(TOKEN_PROGRAM_ID)
    return [
        TokenAsset(
            mint=mint,
            decimals=decimals,
            balance_raw=balance_raw,
            balance_ui=format_raw_with_decimals(balance_raw, decimals),
            supported_program=supported,
            token_program_id=token_program_id,
        )
        for mint, (decimals, balance_raw) in sorted(balances.items())
    ]


def pick_selected_mint(assets: list[TokenAsset], previous_mint: str | None) -> str | None:
    if previous_mint and any(asset.mint == previous_mint for asset in assets):
        return previous_mint
    if len(assets) == 1:
        return assets[0].mint
    return None


class TokenInventoryLoader:
    def __init__(
        self,
        connection: Any,
        *,
        connection_factory: ConnectionFactory | None = None,
        logger: logging.Logger | None = None,
        include_token_2022: bool = True,
    ) -> None:
        self._connection = connection
        self._logger = get_logger(logger)
        self._connection_factory = connection_factory or self._default_factory
        self._program_ids = [str(TOKEN_PROGRAM_ID)]
        if include_token_2022:
            self._program_ids.append(str(TOKEN_2022_PROGRAM_ID))

    def _default_factory(self, endpoint: str) -> SolanaRpcConnection:
        return SolanaRpcConnection(rpc_url=endpoint, logger=self._logger)

    async def _load_from(self, connection: Any, owner: str) -> list[TokenAsset]:
        assets: dict[str, TokenAsset] = {}
        for program_id in self._program_ids:
            accounts = await connection.get_token_accounts_by_owner(owner, program_id)
            for asset in normalize_token_accounts(accounts, token_program_id=program_id):
                assets.setdefault(asset.mint, asset)
        return [assets[mint] for mint in sorted(assets)]

    async def load(self, owner: Any) -> list[TokenAsset]:
        """Token balances held by ``owner``, trying fallback endpoints when access is denied."""
        if self._connection is None or not callable(getattr(self._connection, "get_token_accounts_by_owner", None)):
            raise TokenInventoryError("Missing Solana connection for token inventory fetch.")
        owner_text = str(to_pubkey(owner))

        try:
            return await self._load_from(self._connection, owner_text)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if not is_access_forbidden_error(error):
                raise
            log_event(
                self._logger,
                level="warning",
                event="token_inventory_provider_denied",
                message="RPC endpoint denied token-balance lookup",
                endpoint=getattr(self._connection, "rpc_url", ""),
                error=str(error),
            )

        for endpoint in fallback_endpoints_for(getattr(self._connection, "rpc_url", "")):
            fallback = self._connection_factory(endpoint)
            try:
                assets = await self._load_from(fallback, owner_text)
            except asyncio.CancelledError:
                raise
            except Exception as error:
                if not is_access_forbidden_error(error):
                    raise
                log_event(
                    self._logger,
                    level="warning",
                    event="token_inventory_provider_denied",
                    message="Fallback RPC endpoint denied token-balance lookup",
                    endpoint=endpoint,
                    error=str(error),
                )
                continue
            finally:
                close = getattr(fallback, "close", None)
                if callable(close):
                    await close()

            log_event(
                self._logger,
                level="info",
                event="token_inventory_fallback_used",
                message="Token inventory loaded from fallback endpoint",
                endpoint=endpoint,
                count=len(assets),
            )
            return assets

        raise TokenInventoryError(
            "RPC endpoint denied token-balance lookup (403 Access Forbidden). "
            "Try again later or switch RPC endpoint."
        )
