"""
permavault_core.evaluator
-------------------------
Decides ALLOW / DENY for a decoded AccessPolicy.

Checks run in a fixed order and the first failure wins:

1. no policy            -> ALLOW
2. valid_from           -> DENY before the window opens
3. valid_until          -> DENY after the window closes
4. allowed_users        -> DENY without identity / when not a member
5. required_balance     -> DENY when the caller's balance is too low
6. otherwise            -> ALLOW

Time and identity checks are local. The balance oracle is a network round
trip and is only consulted when every earlier check passed.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import GatewayError, PolicyDeniedError
from .logger import get_logger
from .policy import AccessPolicy
from .utils import ms_to_iso

log = get_logger("Permavault.Evaluator")


class DenyReason(str, Enum):
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    IDENTITY_REQUIRED = "IDENTITY_REQUIRED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    BALANCE_UNAVAILABLE = "BALANCE_UNAVAILABLE"


class BalancePosture(str, Enum):
    """
    What to do when a policy requires a balance that cannot be obtained.

    SOFT allows and logs a warning (behaviour of existing deployments).
    STRICT denies with BALANCE_UNAVAILABLE.
    """
    SOFT = "soft"
    STRICT = "strict"


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: Optional[str] = None
    check: Optional[DenyReason] = None

    @classmethod
    def allowed(cls) -> "Decision":
        return cls(allow=True)

    @classmethod
    def denied(cls, check: DenyReason, reason: str) -> "Decision":
        return cls(allow=False, reason=reason, check=check)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"allow": self.allow}
        if self.reason:
            d["reason"] = self.reason
        if self.check:
            d["check"] = self.check.value
        return d


class PolicyEvaluator:
    def __init__(self, balance_oracle=None, balance_posture: BalancePosture = BalancePosture.SOFT):
        self.balance_oracle = balance_oracle
        self.balance_posture = BalancePosture(balance_posture)

    def evaluate(
        self,
        policy: Optional[AccessPolicy],
        now: int,
        caller_identity: Optional[str] = None,
        caller_balance: Union[Decimal, str, None] = None,
    ) -> Decision:
        if policy is None:
            return Decision.allowed()

        if policy.valid_from is not None and now < policy.valid_from:
            return Decision.denied(
                DenyReason.NOT_YET_VALID,
                f"access becomes valid at {ms_to_iso(policy.valid_from)}",
            )

        if policy.valid_until is not None and now > policy.valid_until:
            return Decision.denied(
                DenyReason.EXPIRED,
                f"access expired at {ms_to_iso(policy.valid_until)}",
            )

        if policy.allowed_users:
            if caller_identity is None:
                return Decision.denied(
                    DenyReason.IDENTITY_REQUIRED,
                    "identity required: this record is restricted to specific users",
                )
            if caller_identity not in policy.allowed_users:
                return Decision.denied(
                    DenyReason.NOT_AUTHORIZED,
                    f"not authorized: {caller_identity} is not an allowed user",
                )

        required = policy.required_balance_decimal()
        if required is not None:
            current = self._resolve_balance(caller_identity, caller_balance)
            if current is None:
                if self.balance_posture is BalancePosture.STRICT:
                    return Decision.denied(
                        DenyReason.BALANCE_UNAVAILABLE,
                        f"required balance {required} could not be verified",
                    )
                log.warning(f"[BALANCE] unavailable, allowing under soft posture | required={required}")
            elif current < required:
                return Decision.denied(
                    DenyReason.INSUFFICIENT_BALANCE,
                    f"insufficient balance: required {required}, current {current}",
                )

        if policy.max_downloads is not None:
            log.debug(f"[QUOTA] max_downloads={policy.max_downloads} is recorded but not enforced")

        return Decision.allowed()

    def evaluate_or_raise(self, policy, now, caller_identity=None, caller_balance=None) -> Decision:
        decision = self.evaluate(policy, now, caller_identity, caller_balance)
        if not decision.allow:
            raise PolicyDeniedError(decision.reason, decision.check)
        return decision

    def _resolve_balance(self, caller_identity, caller_balance) -> Optional[Decimal]:
        if caller_balance is not None:
            try:
                value = Decimal(str(caller_balance))
            except InvalidOperation:
                log.warning(f"[BALANCE] caller balance is not a decimal: {caller_balance!r}")
                return None
            return _finite_or_none(value, "caller")

        if self.balance_oracle is None or caller_identity is None:
            return None

        try:
            value = Decimal(str(self.balance_oracle.balance_of(caller_identity)))
        except (GatewayError, InvalidOperation) as e:
            log.warning(f"[BALANCE] oracle lookup failed for {caller_identity}: {e}")
            return None
        return _finite_or_none(value, f"oracle ({caller_identity})")


def _finite_or_none(value: Decimal, source: str) -> Optional[Decimal]:
    # only finite balances are compared, matching Required-Balance decoding
    if not value.is_finite():
        log.warning(f"[BALANCE] {source} balance is not finite: {value}")
        return None
    return value
