from __future__ import annotations

import json
from typing import Iterable

from .wallets import GeneratedWallet

WALLET_CSV_HEADER = "index,publicAddress,privateKeyBase64"


def csv_escape(value: object) -> str:
    return '"' + str(value).replace('"', '""') + '"'


def serialize_wallets_csv(wallets: Iterable[GeneratedWallet]) -> str:
    rows = [WALLET_CSV_HEADER]
    for wallet in wallets:
        rows.append(
            ",".join(
                [
                    str(wallet.index),
                    csv_escape(wallet.public_address),
                    csv_escape(wallet.private_key_base64),
                ]
            )
        )
    return "\n".join(rows)


def serialize_wallets_json(wallets: Iterable[GeneratedWallet]) -> str:
    payload = [
        {
            "index": wallet.index,
            "publicAddress": wallet.public_address,
            "privateKeyBase64": wallet.private_key_base64,
        }
        for wallet in wallets
    ]
    return json.dumps(payload, indent=2)
