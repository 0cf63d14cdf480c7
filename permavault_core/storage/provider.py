# permavault_core/storage/provider.py
from __future__ import annotations
from decimal import Decimal
from typing import Iterator, Mapping
from permavault_core import constants as C
from permavault_core.errors import GatewayError
from .models import StoredRecord


class StorageGateway:
    # Interface. Append-only: there is no update or delete.
    def put(self, payload: bytes, metadata: Mapping[str, str]) -> str: ...
    def get(self, record_id: str) -> StoredRecord: ...

    def records(self) -> Iterator[StoredRecord]:
        """All records in creation order, where the backend can list them."""
        raise GatewayError(
            f"{type(self).__name__} cannot list records; pass annotations explicitly"
        )

    def annotations_for(self, original_id: str) -> list[StoredRecord]:
        return [
            r for r in self.records()
            if r.is_annotation() and original_id in (
                r.tag(C.ORIGINAL_TRANSACTION), r.tag(C.BACKUP_OF)
            )
        ]

    def close(self) -> None:
        return


class BalanceOracle:
    # Interface
    def balance_of(self, identity: str) -> Decimal: ...
