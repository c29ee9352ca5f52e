from __future__ import annotations

import asyncio
import json
import logging
import unittest
from unittest.mock import AsyncMock, patch

from modules.common import guarded_call, log_event, sanitize_text
from modules.runtime import AppSettings, JsonFormatter, setup_logger, to_bool, to_int


class AppSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = AppSettings.from_env()

        self.assertEqual(settings.cluster, "devnet")
        self.assertEqual(settings.rpc_url, "")
        self.assertEqual(settings.ata_lookup_chunk_size, 100)
        self.assertEqual(settings.safety_buffer_lamports, 2_000_000)
        self.assertEqual(settings.fallback_fee_lamports, 5_000)
        self.assertFalse(settings.run_preflight)

    def test_values_are_clamped_and_normalized(self) -> None:
        env = {
            "SOLANA_CLUSTER": "Mainnet",
            "ATA_LOOKUP_CHUNK_SIZE": "500",
            "GENERATE_WALLET_COUNT": "250",
            "RPC_TIMEOUT_SECONDS": "0.1",
            "MAINNET_ACK_FEES": "yes",
            "SAFETY_BUFFER_LAMPORTS": "-10",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = AppSettings.from_env()

        self.assertEqual(settings.cluster, "mainnet-beta")
        self.assertEqual(settings.ata_lookup_chunk_size, 100)
        self.assertEqual(settings.generate_wallet_count, 100)
        self.assertEqual(settings.rpc_timeout_seconds, 1.0)
        self.assertTrue(settings.mainnet_ack_fees)
        self.assertFalse(settings.mainnet_ack_irreversible)
        self.assertEqual(settings.safety_buffer_lamports, 0)

    def test_tolerant_parsers(self) -> None:
        self.assertEqual(to_int("12.9", 0), 12)
        self.assertEqual(to_int("twelve", 7), 7)
        self.assertTrue(to_bool("ON", False))
        self.assertTrue(to_bool(None, True))


class LoggingTests(unittest.IsolatedAsyncioTestCase):
    def test_api_keys_are_masked(self) -> None:
        text = sanitize_text("POST https://rpc.example.com/v1?api-key=secret failed, apiKey=abc123")

        self.assertNotIn("secret", text)
        self.assertNotIn("abc123", text)
        self.assertIn("https://rpc.example.com/v1", text)

    def test_json_formatter_masks_private_keys(self) -> None:
        logger = logging.getLogger("test.formatter")
        with self.assertLogs(logger, level="INFO") as captured:
            log_event(
                logger,
                level="info",
                event="wallets_generated",
                message="Generated wallets",
                count=2,
                private_key_base64="c2VjcmV0",
            )

        payload = json.loads(JsonFormatter().format(captured.records[0]))
        self.assertEqual(payload["event"], "wallets_generated")
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["private_key_base64"], "***")
        self.assertEqual(payload["level"], "INFO")

    def test_setup_logger_installs_single_json_handler(self) -> None:
        logger = setup_logger("debug")
        setup_logger("debug")

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)
        self.assertIsInstance(logger.handlers[0].formatter, JsonFormatter)
        self.assertFalse(logger.propagate)

    async def test_guarded_call_logs_and_returns_default(self) -> None:
        logger = logging.getLogger("test.guarded")
        action = AsyncMock(side_effect=RuntimeError("redis down"))

        with self.assertLogs(logger, level="WARNING") as captured:
            result = await guarded_call(
                action,
                logger=logger,
                event="report_write_failed",
                message="Report write failed",
                default="fallback",
            )

        self.assertEqual(result, "fallback")
        self.assertEqual(captured.records[0].event, "report_write_failed")
        self.assertEqual(captured.records[0].error, "redis down")

    async def test_guarded_call_times_out_slow_actions(self) -> None:
        logger = logging.getLogger("test.guarded")

        async def stalled() -> str:
            await asyncio.sleep(5)
            return "late"

        with self.assertLogs(logger, level="WARNING") as captured:
            result = await guarded_call(
                stalled,
                logger=logger,
                event="report_write_failed",
                message="Report write failed",
                timeout_seconds=0.01,
            )

        self.assertIsNone(result)
        self.assertEqual(captured.records[0].error_type, "TimeoutError")

    async def test_guarded_call_reraises_when_asked(self) -> None:
        with self.assertRaises(RuntimeError):
            await guarded_call(
                AsyncMock(side_effect=RuntimeError("boom")),
                logger=logging.getLogger("test.guarded"),
                event="failed",
                message="failed",
                reraise=True,
            )


if __name__ == "__main__":
    unittest.main()
