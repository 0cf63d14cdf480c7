"""
permavault_core.utils
---------------------
Lightweight helpers for hex encoding, epoch-millisecond timestamps, ids and
tag list conversion. Timestamps on the wire are decimal-string epoch ms.
"""

from __future__ import annotations
import base64, time, uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping

def hexe(b: bytes) -> str:
    return b.hex()

def hexd(s: str) -> bytes:
    return bytes.fromhex(s)

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def now_ms() -> int:
    return int(time.time() * 1000)

def ms_to_iso(ms: int) -> str:
    # RFC3339 / ISO 8601 in UTC, millisecond precision
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def new_id() -> str:
    return uuid.uuid4().hex

def tags_to_list(metadata: Mapping[str, str]) -> List[Dict[str, str]]:
    return [{"name": k, "value": v} for k, v in metadata.items()]

def tags_from_list(tags: Iterable[Mapping[str, str]]) -> Dict[str, str]:
    # first occurrence wins; record metadata keys are unique
    out: Dict[str, str] = {}
    for t in tags:
        out.setdefault(t["name"], t["value"])
    return out
