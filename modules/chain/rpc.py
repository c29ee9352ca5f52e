from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp
from solders.message import Message
from solders.transaction import Transaction

from modules.common import get_logger, log_event

DEFAULT_CLUSTER = "devnet"
MAX_MULTIPLE_ACCOUNTS = 100

CLUSTER_ENDPOINTS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}

FALLBACK_ENDPOINTS = {
    "mainnet-beta": (
        "https://api.mainnet-beta.solana.com",
        "https://solana-rpc.publicnode.com",
        "https://rpc.ankr.com/solana",
    ),
    "devnet": ("https://api.devnet.solana.com",),
    "testnet": ("https://api.testnet.solana.com",),
}


class RpcMethodError(RuntimeError):
    def __init__(
        self,
        *,
        method: str,
        message: str,
        status: int | None = None,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.status = status
        self.code = code
        self.data = data


def normalize_cluster(value: str) -> str:
    cluster = (value or "").strip().lower()
    if cluster == "mainnet":
        return "mainnet-beta"
    if cluster in CLUSTER_ENDPOINTS:
        return cluster
    return DEFAULT_CLUSTER


def resolve_cluster_endpoint(cluster: str) -> str:
    endpoint = CLUSTER_ENDPOINTS.get(cluster)
    if endpoint is None:
        raise ValueError(f"Unsupported Solana cluster: {cluster}")
    return endpoint


def normalize_endpoint(endpoint: str) -> str:
    return (endpoint or "").strip().rstrip("/").lower()


def fallback_endpoints_for(endpoint: str) -> list[str]:
    """Public endpoints of the same cluster, excluding ``endpoint`` itself."""
    endpoint_text = (endpoint or "").lower()
    if "mainnet" in endpoint_text:
        candidates = FALLBACK_ENDPOINTS["mainnet-beta"]
    elif "devnet" in endpoint_text:
        candidates = FALLBACK_ENDPOINTS["devnet"]
    elif "testnet" in endpoint_text:
        candidates = FALLBACK_ENDPOINTS["testnet"]
    else:
        candidates = ()
    current = normalize_endpoint(endpoint)
    return [candidate for candidate in candidates if normalize_endpoint(candidate) != current]


def encode_message(message: Message) -> str:
    return base64.b64encode(bytes(message)).decode("ascii")


def encode_transaction(transaction: Transaction) -> str:
    return base64.b64encode(bytes(transaction)).decode("ascii")


class SolanaRpcConnection:
    def __init__(
        self,
        *,
        rpc_url: str,
        logger: logging.Logger | None = None,
        commitment: str = "confirmed",
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = get_logger(logger)
        self.rpc_url = rpc_url
        self._commitment = commitment
        self._timeout_seconds = timeout_seconds
        self._http_session: aiohttp.ClientSession | None = None
        self._request_id = 0

    async def connect(self) -> None:
        if not self.rpc_url:
            raise ValueError("An RPC endpoint is required.")
        if self._http_session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def healthcheck(self) -> None:
        await self.get_latest_blockhash()

    async def _rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        if self._http_session is None:
            await self.connect()
        if self._http_session is None:
            raise RuntimeError("RPC HTTP session is not initialized.")

        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            async with self._http_session.post(self.rpc_url, json=payload) as response:
                status_code = response.status
                raw_text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise RpcMethodError(
                method=method,
                message=f"RPC network error for {method}: {error}",
            ) from error

        body: Any
        try:
            body = json.loads(raw_text) if raw_text else {}
        except json.JSONDecodeError:
            body = {"raw_text": raw_text}

        if status_code >= 400:
            reason = "Access Forbidden" if status_code == 403 else "HTTP error"
            raise RpcMethodError(
                method=method,
                status=status_code,
                data=body,
                message=f"RPC call failed: method={method} status={status_code} {reason} body={body}",
            )

        if not isinstance(body, dict):
            raise RpcMethodError(method=method, data=body, message=f"Invalid RPC response for {method}: {body}")

        error_payload = body.get("error")
        if error_payload:
            code = error_payload.get("code") if isinstance(error_payload, dict) else None
            raise RpcMethodError(
                method=method,
                code=code if isinstance(code, int) else None,
                data=error_payload,
                message=f"RPC error for {method}: {error_payload}",
            )

        return body.get("result")

    @staticmethod
    def _value_of(method: str, result: Any) -> Any:
        if not isinstance(result, dict) or "value" not in result:
            raise RpcMethodError(method=method, data=result, message=f"Unexpected {method} response: {result}")
        return result["value"]

    async def get_multiple_accounts_info(self, addresses: list[str]) -> list[dict[str, Any] | None]:
        if len(addresses) > MAX_MULTIPLE_ACCOUNTS:
            raise ValueError(f"getMultipleAccounts accepts at most {MAX_MULTIPLE_ACCOUNTS} addresses.")
        result = await self._rpc_call(
            "getMultipleAccounts",
            [[str(address) for address in addresses], {"commitment": self._commitment, "encoding": "base64"}],
        )
        value = self._value_of("getMultipleAccounts", result)
        if not isinstance(value, list):
            raise RpcMethodError(method="getMultipleAccounts", data=result, message="getMultipleAccounts value is not a list")
        return [item if isinstance(item, dict) else None for item in value]

    async def get_balance(self, address: str) -> int:
        result = await self._rpc_call("getBalance", [str(address), {"commitment": self._commitment}])
        return int(self._value_of("getBalance", result))

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        result = await self._rpc_call(
            "getMinimumBalanceForRentExemption",
            [int(size), {"commitment": self._commitment}],
        )
        if not isinstance(result, int):
            raise RpcMethodError(
                method="getMinimumBalanceForRentExemption",
                data=result,
                message=f"Unexpected getMinimumBalanceForRentExemption response: {result}",
            )
        return result

    async def get_fee_for_message(self, message: Message) -> int | None:
        result = await self._rpc_call(
            "getFeeForMessage",
            [encode_message(message), {"commitment": self._commitment}],
        )
        value = self._value_of("getFeeForMessage", result)
        return int(value) if isinstance(value, int) else None

    async def get_latest_blockhash(self) -> str:
        result = await self._rpc_call("getLatestBlockhash", [{"commitment": self._commitment}])
        value = self._value_of("getLatestBlockhash", result)
        blockhash = value.get("blockhash") if isinstance(value, dict) else None
        if not isinstance(blockhash, str) or not blockhash:
            raise RpcMethodError(method="getLatestBlockhash", data=result, message=f"Missing blockhash in RPC response: {result}")
        return blockhash

    async def simulate_transaction(self, transaction: Transaction) -> dict[str, Any]:
        result = await self._rpc_call(
            "simulateTransaction",
            [
                encode_transaction(transaction),
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": self._commitment,
                },
            ],
        )
        value = self._value_of("simulateTransaction", result)
        if not isinstance(value, dict):
            raise RpcMethodError(method="simulateTransaction", data=result, message=f"Unexpected simulateTransaction payload: {result}")
        return value

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> list[dict[str, Any]]:
        result = await self._rpc_call(
            "getTokenAccountsByOwner",
            [
                str(owner),
                {"programId": str(program_id)},
                {"commitment": self._commitment, "encoding": "jsonParsed"},
            ],
        )
        value = self._value_of("getTokenAccountsByOwner", result)
        if not isinstance(value, list):
            raise RpcMethodError(method="getTokenAccountsByOwner", data=result, message="getTokenAccountsByOwner value is not a list")
        log_event(
            self._logger,
            level="debug",
            event="token_accounts_fetched",
            message="Fetched token accounts by owner",
            owner=str(owner),
            program_id=str(program_id),
            count=len(value),
        )
        return value


@dataclass(slots=True, frozen=True)
class ConnectionContext:
    cluster: str
    endpoint: str
    connection: SolanaRpcConnection


def create_connection_context(
    cluster: str,
    *,
    endpoint: str | None = None,
    logger: logging.Logger | None = None,
    commitment: str = "confirmed",
    timeout_seconds: float = 8.0,
) -> ConnectionContext:
    resolved_endpoint = endpoint or resolve_cluster_endpoint(cluster)
    return ConnectionContext(
        cluster=cluster,
        endpoint=resolved_endpoint,
        connection=SolanaRpcConnection(
            rpc_url=resolved_endpoint,
            logger=logger,
            commitment=commitment,
            timeout_seconds=timeout_seconds,
        ),
    )
