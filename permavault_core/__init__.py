"""
permavault Core Package
=======================
Encryption envelope and conditional-access policy engine for an append-only,
content-addressed record store.

Provides:
- Password-based envelope encryption (scrypt + AES-256-CBC)
- Access policy encoding as flat record metadata, and its evaluator
- Delete / restore / revoke / version / rollback as annotation records
- Pluggable storage gateway (memory, SQLite, HTTP)
"""

from .crypto import encrypt, decrypt, seal, open_sealed
from .envelope import EncryptionEnvelope
from .errors import (
    PermavaultError,
    ValidationError,
    DecryptionError,
    MalformedPolicyError,
    MalformedEnvelopeError,
    PolicyDeniedError,
    RecordDeletedError,
    LifecycleStateError,
    PartialLifecycleFailure,
    GatewayError,
    GatewayTimeoutError,
    RecordNotFoundError,
)
from .evaluator import BalancePosture, Decision, DenyReason, PolicyEvaluator
from .lifecycle import LifecycleEmulator, LogicalState, RollbackResult, VersionResult, resolve_state
from .policy import AccessControl, AccessPolicy, decode_policy, encode_policy
from .service import ProtectedFileService, UploadReceipt, build_service

__version__ = "0.1.0"
