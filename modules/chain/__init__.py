from .inventory import (
    TokenInventoryError,
    TokenInventoryLoader,
    is_access_forbidden_error,
    normalize_token_accounts,
    pick_selected_mint,
)
from .rpc import (
    CLUSTER_ENDPOINTS,
    DEFAULT_CLUSTER,
    MAX_MULTIPLE_ACCOUNTS,
    ConnectionContext,
    RpcMethodError,
    SolanaRpcConnection,
    create_connection_context,
    fallback_endpoints_for,
    normalize_cluster,
    resolve_cluster_endpoint,
)

__all__ = [
    "CLUSTER_ENDPOINTS",
    "ConnectionContext",
    "DEFAULT_CLUSTER",
    "MAX_MULTIPLE_ACCOUNTS",
    "RpcMethodError",
    "SolanaRpcConnection",
    "TokenInventoryError",
    "TokenInventoryLoader",
    "create_connection_context",
    "fallback_endpoints_for",
    "is_access_forbidden_error",
    "normalize_cluster",
    "normalize_token_accounts",
    "pick_selected_mint",
    "resolve_cluster_endpoint",
]
