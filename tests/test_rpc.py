import base64

import pytest
import requests

from launchpad.domain.errors import ExternalDependencyFailure
from launchpad.ledger.rpc import RpcLedger
from launchpad.utils.config_loader import LedgerConfig


class _Response:
    def __init__(self, body, status=200):
        self._body = body
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body


class FakeSession:
    """Answers JSON-RPC calls from a method -> result map and records the requests."""

    def __init__(self, results=None, error=None, exc=None, status=200):
        self.results = results or {}
        self.error = error
        self.exc = exc
        self.status = status
        self.calls = []

    def post(self, url, json, timeout):
        self.calls.append(json)
        if self.exc:
            raise self.exc
        if self.error:
            return _Response({"jsonrpc": "2.0", "id": json["id"], "error": self.error}, self.status)
        return _Response({"jsonrpc": "2.0", "id": json["id"], "result": self.results.get(json["method"])}, self.status)


def _ledger(session) -> RpcLedger:
    return RpcLedger(LedgerConfig(rpc_url="http://rpc.test"), session=session)


def test_latest_blockhash():
    session = FakeSession({"getLatestBlockhash": {"value": {"blockhash": "abc", "lastValidBlockHeight": 1}}})
    assert _ledger(session).get_latest_blockhash() == "abc"
    assert session.calls[0]["params"] == [{"commitment": "confirmed"}]


def test_account_data_decodes_base64_and_handles_missing():
    raw = bytes(range(10))
    session = FakeSession({"getAccountInfo": {"value": {"data": [base64.b64encode(raw).decode(), "base64"]}}})
    assert _ledger(session).get_account_data("Addr") == raw
    assert _ledger(FakeSession({"getAccountInfo": {"value": None}})).get_account_data("Addr") is None


def test_confirmed_transaction_includes_loaded_addresses():
    session = FakeSession(
        {
            "getTransaction": {
                "transaction": {"message": {"accountKeys": ["Payer", "Treasury"]}},
                "meta": {
                    "err": None,
                    "preBalances": [10, 0, 5],
                    "postBalances": [4, 5, 5],
                    "loadedAddresses": {"writable": ["Lookup"], "readonly": []},
                },
            }
        }
    )
    tx = _ledger(session).get_confirmed_transaction("sig")
    assert tx.account_keys == ["Payer", "Treasury", "Lookup"]
    assert tx.post_balances[1] - tx.pre_balances[1] == 5
    assert tx.failed is False
    assert tx.token_mints == []


def test_confirmed_transaction_lists_mints_with_changed_balances():
    session = FakeSession(
        {
            "getTransaction": {
                "transaction": {"message": {"accountKeys": ["Payer", "Treasury", "BuyerHolding", "Other"]}},
                "meta": {
                    "err": None,
                    "preBalances": [10, 0, 2, 2],
                    "postBalances": [4, 5, 2, 2],
                    "preTokenBalances": [
                        {"accountIndex": 3, "mint": "Unmoved", "uiTokenAmount": {"amount": "7"}},
                    ],
                    "postTokenBalances": [
                        {"accountIndex": 2, "mint": "Issued", "uiTokenAmount": {"amount": "1000"}},
                        {"accountIndex": 3, "mint": "Unmoved", "uiTokenAmount": {"amount": "7"}},
                    ],
                },
            }
        }
    )
    assert _ledger(session).get_confirmed_transaction("sig").token_mints == ["Issued"]


def test_unknown_transaction_is_none():
    assert _ledger(FakeSession({"getTransaction": None})).get_confirmed_transaction("sig") is None


def test_send_transaction_base64_encodes():
    session = FakeSession({"sendTransaction": "5ig"})
    assert _ledger(session).send_transaction(b"\x01\x02") == "5ig"
    assert session.calls[0]["params"][0] == base64.b64encode(b"\x01\x02").decode()


def test_signature_status():
    confirmed = FakeSession({"getSignatureStatuses": {"value": [{"confirmationStatus": "finalized", "err": None}]}})
    assert _ledger(confirmed).is_confirmed("s") is True
    processed = FakeSession({"getSignatureStatuses": {"value": [{"confirmationStatus": "processed", "err": None}]}})
    assert _ledger(processed).is_confirmed("s") is False
    unknown = FakeSession({"getSignatureStatuses": {"value": [None]}})
    assert _ledger(unknown).is_confirmed("s") is False
    failed = FakeSession({"getSignatureStatuses": {"value": [{"confirmationStatus": "confirmed", "err": {"x": 1}}]}})
    with pytest.raises(ExternalDependencyFailure):
        _ledger(failed).is_confirmed("s")


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.ConnectionError("down")),
        FakeSession(error={"code": -32002, "message": "blockhash not found"}),
        FakeSession(status=502),
    ],
)
def test_transport_and_rpc_errors_map_to_dependency_failure(session):
    with pytest.raises(ExternalDependencyFailure):
        _ledger(session).get_latest_blockhash()
