"""
permavault_core.errors
----------------------
Error taxonomy. Every failure reaches the caller with enough detail to tell
"nothing happened" apart from "something irreversible happened".
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class PermavaultError(Exception):
    pass


class ValidationError(PermavaultError):
    """Caller input rejected before anything was written."""


class DecryptionError(PermavaultError):
    """Wrong password or corrupted ciphertext. Never retried."""


class MetadataError(PermavaultError):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class MalformedPolicyError(MetadataError):
    pass


class MalformedEnvelopeError(MetadataError):
    pass


class PolicyDeniedError(PermavaultError):
    def __init__(self, reason: str, check: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.check = check


class RecordDeletedError(PolicyDeniedError):
    pass


class LifecycleStateError(PermavaultError):
    pass


class PartialLifecycleFailure(PermavaultError):
    """
    A multi-step lifecycle operation stopped after at least one write landed.

    `completed` maps step name -> id of the record that is now permanently on
    the network; `failed_step` names the step that did not complete, or whose
    outcome is unknown when `outcome_unknown` is True (a timed-out write that
    may still have been committed).
    """

    def __init__(
        self,
        operation: str,
        completed: Dict[str, str],
        failed_step: str,
        cause: BaseException,
    ):
        done = ", ".join(f"{k}={v}" for k, v in completed.items())
        outcome_unknown = bool(getattr(cause, "outcome_unknown", False))
        verb = "has unknown outcome" if outcome_unknown else "failed"
        super().__init__(
            f"{operation}: step '{failed_step}' {verb} after [{done}] "
            f"was written: {cause}"
        )
        self.operation = operation
        self.completed = dict(completed)
        self.failed_step = failed_step
        self.cause = cause
        self.outcome_unknown = outcome_unknown


class GatewayError(PermavaultError):
    """Storage gateway or balance oracle failure, propagated unchanged."""


class GatewayTimeoutError(GatewayError):
    def __init__(self, message: str, outcome_unknown: bool = False):
        super().__init__(message)
        # True for writes: the record may still have been committed
        self.outcome_unknown = outcome_unknown


class RecordNotFoundError(GatewayError):
    def __init__(self, record_id: str):
        super().__init__(f"record not found: {record_id}")
        self.record_id = record_id
