# permavault_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional
from permavault_core import constants as C


@dataclass(frozen=True)
class StoredRecord:
    """
    A record as reported by the storage gateway.

    Payload and metadata are fixed at creation. `seq` is the gateway's creation
    order and is what annotation folding sorts on; providers that cannot report
    it leave it None.
    """
    id: str
    payload: bytes = b""
    metadata: Dict[str, str] = field(default_factory=dict)
    seq: Optional[int] = None
    created_at_ms: Optional[int] = None

    def tag(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.metadata.get(name, default)

    def is_annotation(self) -> bool:
        return C.ORIGINAL_TRANSACTION in self.metadata or C.BACKUP_OF in self.metadata
