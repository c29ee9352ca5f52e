from .csv_import import InvalidRecipientRow, RecipientImport, parse_recipients_csv
from .exporters import serialize_wallets_csv, serialize_wallets_json
from .wallets import GeneratedWallet, generate_wallets, validate_wallet_count

__all__ = [
    "GeneratedWallet",
    "InvalidRecipientRow",
    "RecipientImport",
    "generate_wallets",
    "parse_recipients_csv",
    "serialize_wallets_csv",
    "serialize_wallets_json",
    "validate_wallet_count",
]
