# permavault_core/storage/providers/http_provider.py
import requests
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional
from permavault_core.errors import GatewayError, GatewayTimeoutError, RecordNotFoundError
from permavault_core.logger import get_logger
from permavault_core.storage.models import StoredRecord
from permavault_core.storage.provider import BalanceOracle, StorageGateway
from permavault_core.utils import b64e, tags_from_list, tags_to_list

log = get_logger("Permavault.Storage.HTTP")


class HTTPGateway(StorageGateway):
    """
    Storage gateway reached over HTTP.

    Endpoints:
    - POST {base}/tx        {"data": <base64>, "tags": [{name, value}]} -> {"id"}
    - GET  {base}/tx/{id}   -> {"id", "tags": [{name, value}], "seq"?, "height"?, "timestamp"?}
    - GET  {base}/{id}      -> raw payload bytes

    `seq` (or the block `height` when the gateway has no sequence) becomes
    StoredRecord.seq and `timestamp` (epoch ms) becomes created_at_ms, so
    annotation folding follows the gateway's creation order.

    No retries here. A timed-out put is reported as an unknown outcome: the
    gateway may still have committed the record.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def put(self, payload: bytes, metadata: Mapping[str, str]) -> str:
        url = f"{self.base_url}/tx"
        body = {"data": b64e(bytes(payload)), "tags": tags_to_list(metadata)}

        log.debug(f"[HTTP PUT] → {url} | bytes={len(payload)} tags={len(metadata)}")
        try:
            res = self.session.post(url, json=body, timeout=self.timeout)
        except requests.Timeout as e:
            log.error(f"[HTTP PUT] timeout after {self.timeout}s, outcome unknown")
            raise GatewayTimeoutError(f"put timed out: {e}", outcome_unknown=True) from e
        except requests.RequestException as e:
            log.error(f"[HTTP PUT] Exception: {e}")
            raise GatewayError(f"put failed: {e}") from e

        if not res.ok:
            log.error(f"[HTTP PUT] {res.status_code}: {res.text}")
            raise GatewayError(f"put rejected: {res.status_code} {res.text}")

        try:
            record_id = res.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayError(f"put response carried no id: {res.text}") from e
        log.info(f"[HTTP PUT] {res.status_code} id={record_id}")
        return record_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _get(self, url: str, record_id: str):
        try:
            res = self.session.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            raise GatewayTimeoutError(f"get timed out: {e}") from e
        except requests.RequestException as e:
            log.error(f"[HTTP GET] Exception: {e}")
            raise GatewayError(f"get failed: {e}") from e

        if res.status_code == 404:
            raise RecordNotFoundError(record_id)
        if not res.ok:
            log.error(f"[HTTP GET] {res.status_code}: {res.text}")
            raise GatewayError(f"get rejected: {res.status_code} {res.text}")
        return res

    def _tx_info(self, record_id: str) -> Dict[str, Any]:
        res = self._get(f"{self.base_url}/tx/{record_id}", record_id)
        try:
            info = res.json()
            return {
                "metadata": tags_from_list(info.get("tags") or []),
                "seq": _opt_int(info.get("seq", info.get("height"))),
                "created_at_ms": _opt_int(info.get("timestamp")),
            }
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise GatewayError(f"malformed tx info for {record_id}") from e

    def get_metadata(self, record_id: str) -> dict:
        return self._tx_info(record_id)["metadata"]

    def get(self, record_id: str) -> StoredRecord:
        info = self._tx_info(record_id)
        res = self._get(f"{self.base_url}/{record_id}", record_id)
        log.debug(f"[HTTP GET] id={record_id} bytes={len(res.content)} seq={info['seq']}")
        return StoredRecord(id=record_id, payload=res.content, **info)

    def close(self) -> None:
        self.session.close()


def _opt_int(raw) -> Optional[int]:
    return None if raw is None else int(raw)


class HTTPBalanceOracle(BalanceOracle):
    """GET {base}/account/balance/{identity} -> {"balance": "<decimal>"}"""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def balance_of(self, identity: str) -> Decimal:
        url = f"{self.base_url}/account/balance/{identity}"
        try:
            res = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise GatewayError(f"balance lookup failed: {e}") from e
        if not res.ok:
            raise GatewayError(f"balance lookup rejected: {res.status_code} {res.text}")
        try:
            balance = Decimal(str(res.json()["balance"]))
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            raise GatewayError(f"malformed balance response: {res.text}") from e
        if not balance.is_finite():
            raise GatewayError(f"non-finite balance for {identity}: {balance}")
        return balance
