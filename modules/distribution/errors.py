from __future__ import annotations


class DistributionValidationError(ValueError):
    """Rejected input: amount text, decimals, recipient counts, addresses or raw amounts."""


class ConnectionCapabilityError(RuntimeError):
    """The connection handle lacks a query method the operation requires."""

    def __init__(self, capability: str, message: str | None = None) -> None:
        self.capability = capability
        super().__init__(message or f"Connection does not support {capability}.")


class ProgramAddressError(ValueError):
    pass


def require_capability(connection: object, method_name: str, message: str | None = None) -> None:
    if connection is None or not callable(getattr(connection, method_name, None)):
        raise ConnectionCapabilityError(method_name, message)


class DistributionGateError(RuntimeError):
    """An action was refused because the distribution gate is closed."""

    def __init__(self, message: str, *, check: str | None = None) -> None:
        self.check = check
        super().__init__(message)
