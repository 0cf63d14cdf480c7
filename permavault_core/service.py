# permavault_core/service.py
"""
permavault_core.service
-----------------------
Protected upload / download over a StorageGateway.

Upload:   seal payload -> attach envelope + policy metadata -> gateway.put
Download: gateway.get -> fold lifecycle annotations (optional) -> evaluate
          policy -> open envelope with the caller's password
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, Mapping, Optional, Union
import os

from . import constants as C
from .crypto import open_sealed, seal
from .envelope import ENVELOPE_KEYS, EncryptionEnvelope
from .errors import PolicyDeniedError, RecordDeletedError, ValidationError
from .evaluator import BalancePosture, Decision, PolicyEvaluator
from .lifecycle import LIFECYCLE_KEYS, LifecycleEmulator, LogicalState, RollbackResult, VersionResult, resolve_state
from .logger import get_logger
from .policy import POLICY_KEYS, AccessPolicy, decode_policy, encode_policy
from .storage import load_balance_oracle, load_gateway
from .storage.models import StoredRecord
from .utils import now_ms

log = get_logger("Permavault.Service")

# caller tags may not pose as envelope, policy or lifecycle metadata
_RESERVED_KEYS = frozenset(ENVELOPE_KEYS + POLICY_KEYS + LIFECYCLE_KEYS + (C.UPLOAD_TIMESTAMP,))


@dataclass(frozen=True)
class UploadReceipt:
    id: str
    size: int
    encrypted: bool
    policy: Optional[AccessPolicy] = None


class ProtectedFileService:
    def __init__(
        self,
        gateway,
        balance_oracle=None,
        identity: str = "anonymous",
        balance_posture: BalancePosture = BalancePosture.SOFT,
        clock: Callable[[], int] = now_ms,
    ):
        self.gateway = gateway
        self.clock = clock
        self.evaluator = PolicyEvaluator(balance_oracle, balance_posture)
        self.lifecycle = LifecycleEmulator(gateway, identity=identity, clock=clock)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def upload_protected(
        self,
        payload: bytes,
        password: Optional[str] = None,
        policy: Optional[AccessPolicy] = None,
        tags: Optional[Mapping[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> UploadReceipt:
        if password is not None and not password:
            raise ValidationError("password must not be empty")

        clash = _RESERVED_KEYS.intersection(tags or {})
        if clash:
            raise ValidationError(f"tags may not set reserved keys: {sorted(clash)}")

        metadata: Dict[str, str] = {C.CONTENT_TYPE: content_type or C.DEFAULT_CONTENT_TYPE}
        metadata.update(tags or {})

        body = bytes(payload)
        if password is not None:
            body, envelope = seal(body, password)
            metadata.update(envelope.to_metadata())
        if policy is not None:
            metadata.update(encode_policy(policy))
        metadata[C.UPLOAD_TIMESTAMP] = str(self.clock())

        record_id = self.gateway.put(body, metadata)
        log.info(f"[UPLOAD] id={record_id} bytes={len(body)} encrypted={password is not None} policy={policy is not None}")
        return UploadReceipt(id=record_id, size=len(body), encrypted=password is not None, policy=policy)

    # ------------------------------------------------------------------
    # Access checks
    # ------------------------------------------------------------------
    def check_access(
        self,
        record_id: str,
        caller_identity: Optional[str] = None,
        caller_balance: Union[Decimal, str, None] = None,
    ) -> Decision:
        record = self.gateway.get(record_id)
        return self._evaluate(record, caller_identity, caller_balance)

    def _evaluate(self, record: StoredRecord, caller_identity, caller_balance) -> Decision:
        policy = decode_policy(record.metadata)
        return self.evaluator.evaluate(policy, self.clock(), caller_identity, caller_balance)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------
    def download_protected(
        self,
        record_id: str,
        password: Optional[str] = None,
        caller_identity: Optional[str] = None,
        caller_balance: Union[Decimal, str, None] = None,
        annotations: Optional[Iterable[StoredRecord]] = None,
    ) -> bytes:
        """
        Fetch, authorize and decrypt a record.

        When `annotations` are supplied the lifecycle state is enforced too:
        deleted records raise RecordDeletedError and revoked callers get
        PolicyDeniedError.
        """
        record = self.gateway.get(record_id)

        if annotations is not None:
            state = resolve_state(record_id, annotations)
            if state.deleted:
                raise RecordDeletedError(f"record {record_id} is deleted")
            if state.is_revoked_for(caller_identity):
                raise PolicyDeniedError(f"share revoked for {caller_identity or 'all users'}")

        decision = self._evaluate(record, caller_identity, caller_balance)
        if not decision.allow:
            log.info(f"[DOWNLOAD] denied id={record_id} check={decision.check.value}")
            raise PolicyDeniedError(decision.reason, decision.check)

        envelope = EncryptionEnvelope.from_metadata(record.metadata)
        if envelope is None:
            return record.payload
        if not password:
            raise ValidationError("password required for encrypted record")
        return open_sealed(record.payload, password, envelope)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def delete(self, record_id: str, permanent: bool = False) -> str:
        return self.lifecycle.mark_deleted(record_id, permanent)

    def restore(self, record_id: str, annotations: Optional[Iterable[StoredRecord]] = None) -> str:
        return self.lifecycle.restore(record_id, annotations)

    def revoke_share(self, record_id: str, user_identity: Optional[str] = None, revoke_all: bool = False) -> str:
        return self.lifecycle.revoke_share(record_id, user_identity, revoke_all)

    def create_version(
        self,
        record_id: str,
        payload: bytes,
        version: str,
        password: Optional[str] = None,
        policy: Optional[AccessPolicy] = None,
        content_type: Optional[str] = None,
    ) -> VersionResult:
        return self.lifecycle.create_version(record_id, payload, version, password, policy, content_type)

    def rollback(self, record_id: str, target_version: str, create_backup: bool = False) -> RollbackResult:
        return self.lifecycle.rollback(record_id, target_version, create_backup)

    def state(self, record_id: str, annotations: Optional[Iterable[StoredRecord]] = None) -> LogicalState:
        """
        Folded lifecycle state. Without `annotations` the gateway must be able
        to list records; otherwise GatewayError is raised.
        """
        if annotations is None:
            annotations = self.gateway.annotations_for(record_id)
        return resolve_state(record_id, annotations)


def build_service(config: dict | None = None) -> ProtectedFileService:
    """Assemble a service from `config`, falling back to PERMAVAULT_* env vars."""
    config = config or {}
    posture = config.get("balance_posture") or os.getenv("PERMAVAULT_BALANCE_POSTURE", "soft")
    try:
        posture = BalancePosture(posture)
    except ValueError:
        raise ValueError(f"Unknown balance posture: {posture}") from None

    gateway = config.get("gateway")
    if gateway is None:
        gateway = load_gateway(config)
    oracle = config.get("balance_oracle")
    if oracle is None:
        oracle = load_balance_oracle(config)

    return ProtectedFileService(
        gateway=gateway,
        balance_oracle=oracle,
        identity=config.get("identity") or os.getenv("PERMAVAULT_IDENTITY", "anonymous"),
        balance_posture=posture,
    )
