from dataclasses import replace
from decimal import Decimal
from typing import Dict, Mapping
from permavault_core.errors import GatewayError, RecordNotFoundError
from permavault_core.storage.models import StoredRecord
from permavault_core.storage.provider import BalanceOracle, StorageGateway
from permavault_core.utils import new_id, now_ms

class InMemoryGateway(StorageGateway):
    def __init__(self):
        self._records: Dict[str, StoredRecord] = {}
        self._seq = 0

    def put(self, payload: bytes, metadata: Mapping[str, str]) -> str:
        self._seq += 1
        rec = StoredRecord(
            id=new_id(),
            payload=bytes(payload),
            metadata=dict(metadata),
            seq=self._seq,
            created_at_ms=now_ms(),
        )
        self._records[rec.id] = rec
        return rec.id

    def get(self, record_id: str) -> StoredRecord:
        rec = self._records.get(record_id)
        if rec is None:
            raise RecordNotFoundError(record_id)
        return replace(rec, metadata=dict(rec.metadata))

    def records(self):
        # dicts keep insertion order == creation order
        return iter([replace(r, metadata=dict(r.metadata)) for r in self._records.values()])

    def __len__(self):
        return len(self._records)

class InMemoryBalanceOracle(BalanceOracle):
    def __init__(self, balances: Mapping[str, object] = None):
        self.balances = {k: Decimal(str(v)) for k, v in (balances or {}).items()}
        self.calls = []

    def set_balance(self, identity: str, amount):
        self.balances[identity] = Decimal(str(amount))

    def balance_of(self, identity: str) -> Decimal:
        self.calls.append(identity)
        if identity not in self.balances:
            raise GatewayError(f"no balance known for {identity}")
        return self.balances[identity]
