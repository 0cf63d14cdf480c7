"""
permavault_core.lifecycle
-------------------------
Delete / restore / revoke-share / version / rollback on a store that cannot
update or delete anything.

Every state change is written as a new annotation record whose metadata points
at the original record (Original-Transaction, or Backup-Of for backups).
Readers fold those annotations, in gateway creation order, into a
LogicalState. The latest Deleted/Restored annotation wins.

Deleted, Restored, Share-Revoked and backup annotations always have an empty
payload; a record carrying bytes is never folded as one of them. Version and
rollback records carry the file bytes.

Nothing here is transactional. A write that landed stays on the network, so
multi-step operations report exactly which steps completed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from . import constants as C
from .crypto import seal
from .envelope import ENVELOPE_KEYS
from .errors import GatewayError, LifecycleStateError, PartialLifecycleFailure, ValidationError
from .logger import get_logger
from .policy import POLICY_KEYS, AccessPolicy, encode_policy
from .storage.models import StoredRecord
from .utils import now_ms

log = get_logger("Permavault.Lifecycle")

LIFECYCLE_KEYS = (
    C.DELETED,
    C.DELETED_AT,
    C.PERMANENT,
    C.DELETED_BY,
    C.RESTORED,
    C.RESTORED_AT,
    C.RESTORED_BY,
    C.SHARE_REVOKED,
    C.REVOKED_AT,
    C.REVOKED_USER,
    C.REVOKE_ALL,
    C.ROLLBACK_TO,
    C.ROLLBACK_CREATED_AT,
    C.ORIGINAL_TRANSACTION,
    C.BACKUP_OF,
    C.BACKUP_CREATED_AT,
    C.VERSION,
    C.IS_VERSION,
)

# metadata copied from the target version onto a rollback record so the
# restored bytes stay decryptable and keep their policy
_CARRIED_KEYS = ENVELOPE_KEYS + POLICY_KEYS + (C.CONTENT_TYPE,)

# own timestamp of each annotation, used when the gateway reports no order
_TIMESTAMP_KEYS = (
    C.DELETED_AT,
    C.RESTORED_AT,
    C.REVOKED_AT,
    C.ROLLBACK_CREATED_AT,
    C.BACKUP_CREATED_AT,
    C.UPLOAD_TIMESTAMP,
)


class AnnotationKind(str, Enum):
    DELETED = "deleted"
    RESTORED = "restored"
    SHARE_REVOKED = "share-revoked"
    ROLLBACK = "rollback"
    BACKUP = "backup"
    VERSION = "version"


_EMPTY_PAYLOAD_KINDS = frozenset({
    AnnotationKind.DELETED,
    AnnotationKind.RESTORED,
    AnnotationKind.SHARE_REVOKED,
    AnnotationKind.BACKUP,
})


@dataclass
class LogicalState:
    original_id: str
    deleted: bool = False
    permanent: bool = False
    deleted_by: Optional[str] = None
    deleted_at: Optional[int] = None
    revoked_all: bool = False
    revoked_users: Set[str] = field(default_factory=set)
    current_id: Optional[str] = None
    rolled_back_to: Optional[str] = None
    backups: List[str] = field(default_factory=list)
    # version label -> record id, in creation order
    versions: Dict[str, str] = field(default_factory=dict)
    last_annotation_id: Optional[str] = None

    def __post_init__(self):
        if self.current_id is None:
            self.current_id = self.original_id

    def is_revoked_for(self, identity: Optional[str]) -> bool:
        if self.revoked_all:
            return True
        return identity is not None and identity in self.revoked_users


@dataclass(frozen=True)
class RollbackResult:
    original_id: str
    target_version: str
    new_id: str
    backup_id: Optional[str] = None


@dataclass(frozen=True)
class VersionResult:
    original_id: str
    version: str
    new_id: str
    encrypted: bool = False


def annotation_kind(record: StoredRecord) -> Optional[AnnotationKind]:
    md = record.metadata
    if md.get(C.DELETED) == C.TRUE:
        return AnnotationKind.DELETED
    if md.get(C.RESTORED) == C.TRUE:
        return AnnotationKind.RESTORED
    if md.get(C.SHARE_REVOKED) == C.TRUE:
        return AnnotationKind.SHARE_REVOKED
    if C.ROLLBACK_TO in md:
        return AnnotationKind.ROLLBACK
    if C.BACKUP_OF in md:
        return AnnotationKind.BACKUP
    if md.get(C.IS_VERSION) == C.TRUE:
        return AnnotationKind.VERSION
    return None


def _references(record: StoredRecord, original_id: str) -> bool:
    return original_id in (record.tag(C.ORIGINAL_TRANSACTION), record.tag(C.BACKUP_OF))


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def _folds(record: StoredRecord, kind: Optional[AnnotationKind]) -> bool:
    if kind is None:
        return False
    if kind in _EMPTY_PAYLOAD_KINDS and record.payload:
        log.warning(f"[RESOLVE] ignoring {kind.value} annotation {record.id} with a non-empty payload")
        return False
    return True


def _annotation_time(record: StoredRecord) -> Optional[int]:
    for key in _TIMESTAMP_KEYS:
        ts = _int_or_none(record.tag(key))
        if ts is not None:
            return ts
    return None


def _order_key(record: StoredRecord):
    # gateway seq first; otherwise gateway time, then the annotation's own time
    if record.seq is not None:
        return (0, record.seq)
    ts = record.created_at_ms
    if ts is None:
        ts = _annotation_time(record)
    return (1, ts if ts is not None else 0)


def resolve_state(original_id: str, records: Iterable[StoredRecord]) -> LogicalState:
    """
    Fold annotation records referencing `original_id` into the current state.

    `records` may contain unrelated records; they are ignored. Ordering comes
    from the gateway's `seq`. Records without one are ordered by the gateway
    timestamp or, failing that, the timestamp written into the annotation;
    ties keep their given order.
    """
    related = [
        r for r in records
        if _references(r, original_id) and _folds(r, annotation_kind(r))
    ]
    related.sort(key=_order_key)

    state = LogicalState(original_id=original_id)
    for rec in related:
        kind = annotation_kind(rec)
        md = rec.metadata
        if kind is AnnotationKind.DELETED:
            state.deleted = True
            state.permanent = md.get(C.PERMANENT) == C.TRUE
            state.deleted_by = md.get(C.DELETED_BY)
            state.deleted_at = _int_or_none(md.get(C.DELETED_AT))
        elif kind is AnnotationKind.RESTORED:
            state.deleted = False
            state.permanent = False
            state.deleted_by = None
            state.deleted_at = None
        elif kind is AnnotationKind.SHARE_REVOKED:
            if md.get(C.REVOKE_ALL) == C.TRUE:
                state.revoked_all = True
            elif md.get(C.REVOKED_USER):
                state.revoked_users.add(md[C.REVOKED_USER])
        elif kind is AnnotationKind.ROLLBACK:
            state.current_id = rec.id
            state.rolled_back_to = md.get(C.ROLLBACK_TO)
        elif kind is AnnotationKind.BACKUP:
            state.backups.append(rec.id)
        elif kind is AnnotationKind.VERSION:
            state.versions[md.get(C.VERSION, "")] = rec.id
        state.last_annotation_id = rec.id
    return state


class LifecycleEmulator:
    """Writes lifecycle annotations through a StorageGateway."""

    def __init__(self, gateway, identity: str = "anonymous", clock: Callable[[], int] = now_ms):
        self.gateway = gateway
        self.identity = identity
        self.clock = clock

    def _annotate(self, kind: AnnotationKind, metadata: Dict[str, str]) -> str:
        # annotation payloads carry no meaning
        annotation_id = self.gateway.put(b"", metadata)
        log.info(f"[ANNOTATE] id={annotation_id} kind={kind.value}")
        return annotation_id

    def mark_deleted(self, record_id: str, permanent: bool = False) -> str:
        return self._annotate(AnnotationKind.DELETED, {
            C.DELETED: C.TRUE,
            C.DELETED_AT: str(self.clock()),
            C.PERMANENT: C.TRUE if permanent else C.FALSE,
            C.DELETED_BY: self.identity,
            C.ORIGINAL_TRANSACTION: record_id,
        })

    def restore(self, record_id: str, annotations: Optional[Iterable[StoredRecord]] = None) -> str:
        """
        Write a Restored annotation.

        With `annotations`, the record must currently be deleted or
        LifecycleStateError is raised and nothing is written. Without them the
        deletion cannot be checked; the restore proceeds and a warning is logged.
        """
        if annotations is not None:
            if not resolve_state(record_id, annotations).deleted:
                raise LifecycleStateError(f"record {record_id} is not deleted")
        else:
            log.warning(f"[RESTORE] no annotations supplied, deletion of {record_id} not verified")

        return self._annotate(AnnotationKind.RESTORED, {
            C.RESTORED: C.TRUE,
            C.RESTORED_AT: str(self.clock()),
            C.RESTORED_BY: self.identity,
            C.ORIGINAL_TRANSACTION: record_id,
        })

    def revoke_share(self, record_id: str, user_identity: Optional[str] = None, revoke_all: bool = False) -> str:
        if not revoke_all and not user_identity:
            raise ValidationError("revoke_share needs a user_identity or revoke_all=True")

        md = {
            C.SHARE_REVOKED: C.TRUE,
            C.REVOKED_AT: str(self.clock()),
            C.ORIGINAL_TRANSACTION: record_id,
        }
        if revoke_all:
            md[C.REVOKE_ALL] = C.TRUE
        else:
            md[C.REVOKED_USER] = user_identity
        return self._annotate(AnnotationKind.SHARE_REVOKED, md)

    def create_version(
        self,
        original_id: str,
        payload: bytes,
        version: str,
        password: Optional[str] = None,
        policy: Optional[AccessPolicy] = None,
        content_type: Optional[str] = None,
    ) -> VersionResult:
        """
        Store `payload` as a new version of `original_id`.

        The version record carries the bytes (sealed when `password` is
        given), `Version`, `Is-Version="true"` and `Original-Transaction`.
        Its id is a valid `rollback` target. The original must exist;
        `Content-Type` defaults to the original's.
        """
        if not version:
            raise ValidationError("version label must not be empty")
        if password is not None and not password:
            raise ValidationError("password must not be empty")

        original = self.gateway.get(original_id)

        md: Dict[str, str] = {
            C.CONTENT_TYPE: content_type or original.tag(C.CONTENT_TYPE, C.DEFAULT_CONTENT_TYPE),
        }
        body = bytes(payload)
        if password is not None:
            body, envelope = seal(body, password)
            md.update(envelope.to_metadata())
        if policy is not None:
            md.update(encode_policy(policy))
        md.update({
            C.VERSION: version,
            C.ORIGINAL_TRANSACTION: original_id,
            C.IS_VERSION: C.TRUE,
            C.UPLOAD_TIMESTAMP: str(self.clock()),
        })

        new_id = self.gateway.put(body, md)
        log.info(f"[VERSION] {original_id} version={version} new={new_id} bytes={len(body)}")
        return VersionResult(
            original_id=original_id,
            version=version,
            new_id=new_id,
            encrypted=password is not None,
        )

    def rollback(self, record_id: str, target_version: str, create_backup: bool = False) -> RollbackResult:
        """
        Point `record_id` at the bytes of `target_version`, a record id such as
        one returned by create_version.

        Steps run strictly in order: read target, write backup pointer
        (optional), write rollback record. If the rollback write fails after the
        backup landed, PartialLifecycleFailure names the backup id. Its
        `outcome_unknown` is set when that write timed out.
        """
        target = self.gateway.get(target_version)

        backup_id = None
        if create_backup:
            backup_id = self._annotate(AnnotationKind.BACKUP, {
                C.BACKUP_OF: record_id,
                C.BACKUP_CREATED_AT: str(self.clock()),
                C.VERSION: "backup",
            })

        md = {k: target.metadata[k] for k in _CARRIED_KEYS if k in target.metadata}
        md.update({
            C.ROLLBACK_TO: target_version,
            C.ORIGINAL_TRANSACTION: record_id,
            C.ROLLBACK_CREATED_AT: str(self.clock()),
        })
        try:
            new_id = self.gateway.put(target.payload, md)
        except GatewayError as e:
            if backup_id is None:
                raise
            log.error(f"[ROLLBACK] failed after backup {backup_id} was written: {e}")
            raise PartialLifecycleFailure(
                "rollback", completed={"backup": backup_id}, failed_step="rollback", cause=e
            ) from e

        log.info(f"[ROLLBACK] {record_id} -> {target_version} new={new_id} backup={backup_id}")
        return RollbackResult(
            original_id=record_id,
            target_version=target_version,
            new_id=new_id,
            backup_id=backup_id,
        )
