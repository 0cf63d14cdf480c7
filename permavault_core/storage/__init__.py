# permavault_core/storage/__init__.py

from .models import StoredRecord
from .provider import StorageGateway, BalanceOracle
from .providers.memory_provider import InMemoryGateway, InMemoryBalanceOracle
from .providers.sqlite_provider import SQLiteGateway
from .providers.http_provider import HTTPGateway, HTTPBalanceOracle
import os


def _timeout(config: dict) -> float:
    return float(config.get("timeout") or os.getenv("PERMAVAULT_TIMEOUT", "10"))


def load_gateway(config: dict | None = None) -> StorageGateway:
    """
    Factory resolver for selecting the storage gateway backend.

        - sqlite (default)
        - memory
        - http
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("PERMAVAULT_GATEWAY_PROVIDER", "sqlite")

    if provider == "memory":
        return InMemoryGateway()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("PERMAVAULT_DB_PATH", "db/permavault.db")
        return SQLiteGateway(db_path)

    if provider == "http":
        url = config.get("gateway_url") or os.getenv("PERMAVAULT_GATEWAY_URL", "http://localhost:8080")
        return HTTPGateway(url, timeout=_timeout(config))

    raise ValueError(f"Unknown gateway provider: {provider}")


def load_balance_oracle(config: dict | None = None) -> BalanceOracle | None:
    """HTTP oracle when a gateway URL is configured, otherwise none."""
    config = config or {}
    url = config.get("balance_url") or os.getenv("PERMAVAULT_BALANCE_URL") \
        or config.get("gateway_url") or os.getenv("PERMAVAULT_GATEWAY_URL")
    if not url:
        return None
    return HTTPBalanceOracle(url, timeout=_timeout(config))


__all__ = [
    "StoredRecord",
    "StorageGateway",
    "BalanceOracle",
    "InMemoryGateway",
    "InMemoryBalanceOracle",
    "SQLiteGateway",
    "HTTPGateway",
    "HTTPBalanceOracle",
    "load_gateway",
    "load_balance_oracle",
]
