# permavault_core/policy.py

"""
permavault_core.policy
----------------------
AccessPolicy (a "data contract") and its flat key/value encoding.

Records are immutable, so a policy is written once as metadata at upload time.
Changing it means uploading a new record and treating the old one as
superseded.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple
from . import constants as C
from .errors import MalformedPolicyError, ValidationError

POLICY_KEYS = (
    C.DATA_CONTRACT,
    C.ACCESS_CONTROL,
    C.VALID_FROM,
    C.VALID_UNTIL,
    C.REQUIRED_BALANCE,
    C.ALLOWED_USERS,
    C.MAX_DOWNLOADS,
)


class AccessControl(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    TIME_BASED = "time-based"
    BALANCE_BASED = "balance-based"


@dataclass(frozen=True)
class AccessPolicy:
    access_control: AccessControl = AccessControl.PUBLIC
    valid_from: Optional[int] = None        # epoch ms
    valid_until: Optional[int] = None       # epoch ms
    required_balance: Optional[str] = None  # decimal string, e.g. "0.5"
    allowed_users: Optional[Tuple[str, ...]] = None
    max_downloads: Optional[int] = None

    def __post_init__(self):
        # accept plain strings / lists from callers
        object.__setattr__(self, "access_control", AccessControl(self.access_control))
        if self.required_balance is not None and not isinstance(self.required_balance, str):
            object.__setattr__(self, "required_balance", str(self.required_balance))
        if self.allowed_users is not None:
            users = tuple(self.allowed_users)
            object.__setattr__(self, "allowed_users", users or None)

    def required_balance_decimal(self) -> Optional[Decimal]:
        if self.required_balance is None:
            return None
        return _parse_decimal(self.required_balance, C.REQUIRED_BALANCE)


def encode_policy(policy: AccessPolicy) -> Dict[str, str]:
    md = {
        C.DATA_CONTRACT: C.TRUE,
        C.ACCESS_CONTROL: policy.access_control.value,
    }
    if policy.valid_from is not None:
        md[C.VALID_FROM] = str(int(policy.valid_from))
    if policy.valid_until is not None:
        md[C.VALID_UNTIL] = str(int(policy.valid_until))
    if policy.required_balance is not None:
        try:
            policy.required_balance_decimal()
        except MalformedPolicyError:
            raise ValidationError(f"required_balance is not a decimal: {policy.required_balance!r}") from None
        md[C.REQUIRED_BALANCE] = str(policy.required_balance)
    if policy.allowed_users:
        md[C.ALLOWED_USERS] = _join_users(policy.allowed_users)
    if policy.max_downloads is not None:
        md[C.MAX_DOWNLOADS] = str(int(policy.max_downloads))
    return md


def decode_policy(metadata: Mapping[str, str]) -> Optional[AccessPolicy]:
    """
    Rebuild the policy from record metadata.

    Returns None (unrestricted) when Data-Contract is absent or not "true".
    A present field that cannot be parsed raises MalformedPolicyError; it is
    never silently defaulted.
    """
    if metadata.get(C.DATA_CONTRACT) != C.TRUE:
        return None

    raw_ac = metadata.get(C.ACCESS_CONTROL) or AccessControl.PUBLIC.value
    try:
        access_control = AccessControl(raw_ac)
    except ValueError:
        raise MalformedPolicyError(f"unknown {C.ACCESS_CONTROL}: {raw_ac!r}", key=C.ACCESS_CONTROL) from None

    required_balance = metadata.get(C.REQUIRED_BALANCE) or None
    if required_balance is not None:
        _parse_decimal(required_balance, C.REQUIRED_BALANCE)

    users = None
    if metadata.get(C.ALLOWED_USERS):
        parts = [u.strip() for u in metadata[C.ALLOWED_USERS].split(C.ALLOWED_USERS_SEP)]
        users = tuple(u for u in parts if u) or None

    return AccessPolicy(
        access_control=access_control,
        valid_from=_parse_int(metadata, C.VALID_FROM),
        valid_until=_parse_int(metadata, C.VALID_UNTIL),
        required_balance=required_balance,
        allowed_users=users,
        max_downloads=_parse_int(metadata, C.MAX_DOWNLOADS),
    )


def _join_users(users: Sequence[str]) -> str:
    for u in users:
        if not u or u != u.strip() or C.ALLOWED_USERS_SEP in u:
            raise ValidationError(f"identity cannot be encoded in {C.ALLOWED_USERS}: {u!r}")
    return C.ALLOWED_USERS_SEP.join(users)


def _parse_int(metadata: Mapping[str, str], key: str) -> Optional[int]:
    raw = metadata.get(key)
    if not raw:
        # empty value is treated as absent, same as older records
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise MalformedPolicyError(f"{key} is not an integer: {raw!r}", key=key) from None


def _parse_decimal(raw: str, key: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        raise MalformedPolicyError(f"{key} is not a decimal: {raw!r}", key=key) from None
    if not value.is_finite():
        raise MalformedPolicyError(f"{key} is not a finite decimal: {raw!r}", key=key)
    return value
