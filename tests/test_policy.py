import pytest
from permavault_core.policy import AccessControl, AccessPolicy, decode_policy, encode_policy
from permavault_core.errors import MalformedPolicyError, ValidationError


def test_policy_roundtrip_full():
    pol = AccessPolicy(
        access_control=AccessControl.TIME_BASED,
        valid_from=1_700_000_000_000,
        valid_until=1_800_000_000_000,
        required_balance="0.25",
        allowed_users=("0xabc", "0xdef"),
        max_downloads=3,
    )
    md = encode_policy(pol)
    assert md == {
        "Data-Contract": "true",
        "Access-Control": "time-based",
        "Valid-From": "1700000000000",
        "Valid-Until": "1800000000000",
        "Required-Balance": "0.25",
        "Allowed-Users": "0xabc,0xdef",
        "Max-Downloads": "3",
    }
    assert decode_policy(md) == pol


def test_policy_roundtrip_minimal_omits_absent_keys():
    pol = AccessPolicy(access_control="private")
    md = encode_policy(pol)
    assert set(md) == {"Data-Contract", "Access-Control"}
    assert decode_policy(md) == pol


def test_zero_values_are_encoded():
    pol = AccessPolicy(valid_from=0, max_downloads=0, required_balance="0")
    md = encode_policy(pol)
    assert md["Valid-From"] == "0"
    assert md["Max-Downloads"] == "0"
    assert decode_policy(md) == pol


def test_list_users_normalised_to_tuple():
    pol = AccessPolicy(allowed_users=["alice", "bob"])
    assert pol.allowed_users == ("alice", "bob")
    assert AccessPolicy(allowed_users=[]).allowed_users is None


def test_decode_without_contract_is_none():
    assert decode_policy({}) is None
    assert decode_policy({"Access-Control": "private"}) is None
    assert decode_policy({"Data-Contract": "false", "Valid-From": "1"}) is None


def test_decode_defaults_to_public():
    pol = decode_policy({"Data-Contract": "true"})
    assert pol == AccessPolicy()
    assert pol.access_control is AccessControl.PUBLIC


def test_decode_strips_user_list():
    pol = decode_policy({"Data-Contract": "true", "Allowed-Users": " alice, bob ,,"})
    assert pol.allowed_users == ("alice", "bob")


@pytest.mark.parametrize("key,value", [
    ("Valid-From", "soon"),
    ("Valid-Until", "12.5"),
    ("Max-Downloads", "many"),
    ("Required-Balance", "ten"),
    ("Required-Balance", "NaN"),
    ("Access-Control", "friends-only"),
])
def test_decode_malformed_field(key, value):
    with pytest.raises(MalformedPolicyError) as exc:
        decode_policy({"Data-Contract": "true", key: value})
    assert exc.value.key == key


def test_encode_rejects_unrepresentable_identity():
    with pytest.raises(ValidationError):
        encode_policy(AccessPolicy(allowed_users=("a,b",)))
    with pytest.raises(ValidationError):
        encode_policy(AccessPolicy(allowed_users=(" padded",)))


def test_encode_rejects_bad_balance():
    with pytest.raises(ValidationError):
        encode_policy(AccessPolicy(required_balance="lots"))
