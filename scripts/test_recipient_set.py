from __future__ import annotations

import base64
import json
import unittest

from solders.keypair import Keypair

from modules.distribution.errors import DistributionValidationError
from modules.distribution.recipients import build_run_recipient_set
from modules.sources import (
    generate_wallets,
    parse_recipients_csv,
    serialize_wallets_csv,
    serialize_wallets_json,
    validate_wallet_count,
)


def _addresses(count: int) -> list[str]:
    return [str(Keypair().pubkey()) for _ in range(count)]


class RunRecipientSetTests(unittest.TestCase):
    def test_generated_first_then_imported_with_dedup(self) -> None:
        result = build_run_recipient_set(["A", "B"], ["B", "C"])

        self.assertEqual(result.addresses, ["A", "B", "C"])
        self.assertEqual(
            [recipient.source for recipient in result.recipients],
            ["generated", "generated", "imported"],
        )
        self.assertEqual(result.duplicates_skipped, 1)
        self.assertEqual(result.generated_count, 2)
        self.assertEqual(result.imported_count, 2)

    def test_counts_duplicates_within_a_source(self) -> None:
        result = build_run_recipient_set(
            [{"index": 1, "public_address": "AddrA"}, {"index": 2, "public_address": "AddrA"}],
            [{"id": "csv-1", "public_address": "AddrA"}, {"id": "csv-2", "public_address": "AddrB"}],
        )

        self.assertEqual(len(result), 2)
        self.assertEqual(result.duplicates_skipped, 2)
        self.assertEqual(result.recipients[0].id, "generated-1")
        self.assertEqual(result.recipients[1].id, "csv-2")

    def test_trims_and_skips_empty_addresses(self) -> None:
        result = build_run_recipient_set(["  A  ", "", "   "], None)

        self.assertEqual(result.addresses, ["A"])
        self.assertEqual(result.generated_count, 1)

    def test_empty_inputs_yield_empty_set(self) -> None:
        result = build_run_recipient_set([], [])

        self.assertEqual(len(result), 0)
        self.assertEqual(result.duplicates_skipped, 0)

    def test_merge_is_deterministic(self) -> None:
        generated = ["A", "B", "A"]
        imported = ["C", "B"]

        self.assertEqual(
            build_run_recipient_set(generated, imported),
            build_run_recipient_set(generated, imported),
        )


class RecipientCsvImportTests(unittest.TestCase):
    def test_header_selects_address_column(self) -> None:
        first, second = _addresses(2)
        csv_text = f"name,Public Address\nalice,{first}\nbob,{second}\ncarol,{first}\n"

        parsed = parse_recipients_csv(csv_text)

        self.assertEqual([item.public_address for item in parsed.recipients], [first, second])
        self.assertEqual([item.id for item in parsed.recipients], ["csv-1", "csv-2"])
        self.assertTrue(all(item.source == "imported" for item in parsed.recipients))
        self.assertEqual(parsed.duplicate_count, 1)
        self.assertEqual(parsed.total_rows, 3)

    def test_without_header_uses_first_column_and_reports_lines(self) -> None:
        (valid,) = _addresses(1)
        csv_text = f"{valid},note\n\nnot-an-address\n,empty\n"

        parsed = parse_recipients_csv(csv_text)

        self.assertEqual(len(parsed.recipients), 1)
        self.assertEqual([(row.line, row.reason) for row in parsed.invalid_rows], [
            (3, "Invalid Solana address."),
            (4, "Missing recipient address."),
        ])

    def test_quoted_cells_are_unwrapped(self) -> None:
        (valid,) = _addresses(1)

        parsed = parse_recipients_csv(f'wallet\n"{valid}"\n')

        self.assertEqual(parsed.recipients[0].public_address, valid)

    def test_blank_input_is_empty(self) -> None:
        parsed = parse_recipients_csv("   \n")

        self.assertEqual(parsed.recipients, ())
        self.assertEqual(parsed.total_rows, 0)


class WalletSourceTests(unittest.TestCase):
    def test_generates_distinct_indexed_wallets(self) -> None:
        wallets = generate_wallets(3)

        self.assertEqual([wallet.index for wallet in wallets], [1, 2, 3])
        self.assertEqual(len({wallet.public_address for wallet in wallets}), 3)
        restored = Keypair.from_bytes(base64.b64decode(wallets[0].private_key_base64))
        self.assertEqual(str(restored.pubkey()), wallets[0].public_address)

    def test_private_key_is_hidden_from_repr(self) -> None:
        (wallet,) = generate_wallets(1)

        self.assertNotIn(wallet.private_key_base64, repr(wallet))

    def test_wallet_count_bounds(self) -> None:
        self.assertEqual(validate_wallet_count("100"), 100)
        for value in (0, 101, "2.5", "abc", True):
            with self.subTest(value=value):
                with self.assertRaises(DistributionValidationError):
                    validate_wallet_count(value)

    def test_exporters_include_every_wallet(self) -> None:
        wallets = generate_wallets(2)

        csv_lines = serialize_wallets_csv(wallets).split("\n")
        payload = json.loads(serialize_wallets_json(wallets))

        self.assertEqual(csv_lines[0], "index,publicAddress,privateKeyBase64")
        self.assertEqual(csv_lines[1], f'1,"{wallets[0].public_address}","{wallets[0].private_key_base64}"')
        self.assertEqual([item["publicAddress"] for item in payload], [w.public_address for w in wallets])


if __name__ == "__main__":
    unittest.main()
