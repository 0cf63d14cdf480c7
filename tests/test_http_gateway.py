import base64
import json
import pytest
import requests
from decimal import Decimal
from permavault_core.errors import GatewayError, GatewayTimeoutError, RecordNotFoundError
from permavault_core.storage import HTTPBalanceOracle, HTTPGateway


class FakeResponse:
    def __init__(self, status_code=200, body=None, content=b""):
        self.status_code = status_code
        self._body = body
        self.content = content if body is None else json.dumps(body).encode()
        self.text = self.content.decode("utf-8", "replace")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Records calls; routes GETs by URL, POSTs return `post_response`."""

    def __init__(self, routes=None, post_response=None, raise_on=None):
        self.routes = routes or {}
        self.post_response = post_response
        self.raise_on = raise_on
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json, timeout))
        if self.raise_on:
            raise self.raise_on
        return self.post_response

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None, timeout))
        if self.raise_on:
            raise self.raise_on
        return self.routes.get(url, FakeResponse(404, content=b"not found"))

    def close(self):
        pass


def test_put_posts_base64_and_tags():
    s = FakeSession(post_response=FakeResponse(200, {"id": "tx123"}))
    gw = HTTPGateway("http://gw.local/", timeout=3, session=s)

    assert gw.put(b"\x00\x01", {"Salt": "ab", "IV": "cd"}) == "tx123"

    method, url, body, timeout = s.calls[0]
    assert (method, url, timeout) == ("POST", "http://gw.local/tx", 3)
    assert base64.b64decode(body["data"]) == b"\x00\x01"
    assert body["tags"] == [{"name": "Salt", "value": "ab"}, {"name": "IV", "value": "cd"}]


def test_put_timeout_is_unknown_outcome():
    s = FakeSession(raise_on=requests.Timeout("slow"))
    gw = HTTPGateway("http://gw.local", session=s)
    with pytest.raises(GatewayTimeoutError) as exc:
        gw.put(b"x", {})
    assert exc.value.outcome_unknown is True


def test_put_connection_error():
    s = FakeSession(raise_on=requests.ConnectionError("refused"))
    with pytest.raises(GatewayError):
        HTTPGateway("http://gw.local", session=s).put(b"x", {})


def test_put_rejected_and_missing_id():
    gw = HTTPGateway("http://gw.local", session=FakeSession(post_response=FakeResponse(402, {"error": "funds"})))
    with pytest.raises(GatewayError):
        gw.put(b"x", {})
    gw = HTTPGateway("http://gw.local", session=FakeSession(post_response=FakeResponse(200, {})))
    with pytest.raises(GatewayError):
        gw.put(b"x", {})


def test_get_combines_tags_and_payload():
    s = FakeSession(routes={
        "http://gw.local/tx/tx1": FakeResponse(200, {
            "id": "tx1",
            "tags": [
                {"name": "Encrypted", "value": "true"},
                {"name": "Salt", "value": "00"},
            ],
            "seq": 42,
            "timestamp": 1_700_000_000_123,
        }),
        "http://gw.local/tx1": FakeResponse(200, content=b"cipher"),
    })
    rec = HTTPGateway("http://gw.local", session=s).get("tx1")
    assert rec.id == "tx1"
    assert rec.payload == b"cipher"
    assert rec.metadata == {"Encrypted": "true", "Salt": "00"}
    assert rec.seq == 42
    assert rec.created_at_ms == 1_700_000_000_123


def test_get_falls_back_to_block_height():
    s = FakeSession(routes={
        "http://gw.local/tx/tx2": FakeResponse(200, {"id": "tx2", "tags": [], "height": 7}),
        "http://gw.local/tx2": FakeResponse(200, content=b""),
    })
    rec = HTTPGateway("http://gw.local", session=s).get("tx2")
    assert rec.seq == 7
    assert rec.created_at_ms is None


def test_get_malformed_tx_info():
    s = FakeSession(routes={
        "http://gw.local/tx/tx3": FakeResponse(200, [{"name": "a", "value": "b"}]),
        "http://gw.local/tx/tx4": FakeResponse(200, {"tags": [], "seq": "first"}),
    })
    gw = HTTPGateway("http://gw.local", session=s)
    with pytest.raises(GatewayError):
        gw.get("tx3")
    with pytest.raises(GatewayError):
        gw.get("tx4")


def test_get_not_found():
    with pytest.raises(RecordNotFoundError):
        HTTPGateway("http://gw.local", session=FakeSession()).get("gone")


def test_get_timeout_is_not_unknown_outcome():
    s = FakeSession(raise_on=requests.Timeout("slow"))
    with pytest.raises(GatewayTimeoutError) as exc:
        HTTPGateway("http://gw.local", session=s).get("tx1")
    assert exc.value.outcome_unknown is False


def test_http_gateway_listing_raises_gateway_error():
    with pytest.raises(GatewayError, match="cannot list records"):
        HTTPGateway("http://gw.local", session=FakeSession()).records()


def test_balance_oracle():
    s = FakeSession(routes={
        "http://gw.local/account/balance/0xabc": FakeResponse(200, {"balance": "1.5"}),
        "http://gw.local/account/balance/0xbad": FakeResponse(200, {"balance": "lots"}),
    })
    oracle = HTTPBalanceOracle("http://gw.local", session=s)
    assert oracle.balance_of("0xabc") == Decimal("1.5")
    with pytest.raises(GatewayError):
        oracle.balance_of("0xbad")
    with pytest.raises(GatewayError):
        oracle.balance_of("0xmissing")


def test_balance_oracle_rejects_non_finite():
    s = FakeSession(routes={
        "http://gw.local/account/balance/0xnan": FakeResponse(200, {"balance": "NaN"}),
        "http://gw.local/account/balance/0xinf": FakeResponse(200, {"balance": "Infinity"}),
    })
    oracle = HTTPBalanceOracle("http://gw.local", session=s)
    with pytest.raises(GatewayError):
        oracle.balance_of("0xnan")
    with pytest.raises(GatewayError):
        oracle.balance_of("0xinf")
