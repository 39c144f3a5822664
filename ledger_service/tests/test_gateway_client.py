from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest

from ledger_service.app.config import GatewayConfig
from ledger_service.app.exceptions import (
    GatewayAmbiguous,
    GatewayFailure,
    GatewayUnreachable,
)
from ledger_service.app.gateway.client import TransferGatewayClient
from ledger_service.app.gateway.interfaces import TransferStatus
from ledger_service.app.models.payee import PayeeContact


NOW = 1_700_000_000.0
TOKEN_OK = (200, {"status": "SUCCESS", "data": {"token": "tok-1", "expiry": NOW + 3600}})


class _ScriptedGateway:
    """경로별 응답을 순서대로 돌려준다. 마지막 응답은 계속 반복된다."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Any]] = {"/authorize": [TOKEN_OK]}
        self.requests: list[httpx.Request] = []

    def on(self, path: str, *responses: Any) -> "_ScriptedGateway":
        self.routes[path] = list(responses)
        return self

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes[request.url.path]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status, json=body)


class _Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> float:
        return self.now


def _client(gateway: _ScriptedGateway, clock: _Clock | None = None):
    sleeps: list[float] = []
    client = TransferGatewayClient(
        GatewayConfig(
            base_url="https://gateway.test",
            client_id="cid",
            client_secret="secret",
            timeout_seconds=10.0,
        ),
        transport=httpx.MockTransport(gateway),
        sleep=sleeps.append,
        clock=clock or _Clock(),
    )
    return client, sleeps


def test_transfer_request_is_authorized_and_parsed() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        (200, {"status": "SUCCESS", "subCode": "200", "data": {"referenceId": 98765}}),
    )
    client, _ = _client(gw)

    receipt = client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("500"))

    assert receipt.status is TransferStatus.SUCCESS
    assert receipt.reference_id == "98765"
    [auth] = gw.calls("/authorize")
    assert auth.headers["X-Client-Id"] == "cid"
    assert auth.headers["X-Client-Secret"] == "secret"
    [transfer] = gw.calls("/requestTransfer")
    assert transfer.headers["Authorization"] == "Bearer tok-1"
    assert json.loads(transfer.content) == {
        "beneId": "BENE_resp_1",
        "amount": "500.00",
        "transferId": "PAYOUT_abc",
        "transferMode": "upi",
        "remarks": "Responder earnings payout",
    }


def test_accepted_but_unsettled_transfer_is_pending() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        (200, {"status": "SUCCESS", "subCode": "201", "message": "Transfer Initiated"}),
    )
    client, _ = _client(gw)

    receipt = client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))

    assert receipt.status is TransferStatus.PENDING
    assert receipt.reference_id is None


def test_transfer_server_error_is_ambiguous_and_not_retried() -> None:
    gw = _ScriptedGateway().on("/requestTransfer", (502, {"message": "bad gateway"}))
    client, sleeps = _client(gw)

    with pytest.raises(GatewayAmbiguous):
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))

    assert len(gw.calls("/requestTransfer")) == 1
    assert sleeps == []


def test_transfer_client_error_is_failure() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        (400, {"status": "ERROR", "subCode": "400", "message": "Insufficient balance"}),
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayFailure) as excinfo:
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))

    assert not isinstance(excinfo.value, GatewayAmbiguous)
    assert excinfo.value.status_code == 400
    assert "Insufficient balance" in str(excinfo.value)


def test_error_status_in_ok_response_is_failure() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer", (200, {"status": "ERROR", "message": "Invalid beneId"})
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayFailure):
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))


def test_duplicate_transfer_id_is_ambiguous() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        (409, {"status": "ERROR", "subCode": "409", "message": "Transfer Id already exists"}),
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayAmbiguous):
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))


def test_transfer_timeout_is_ambiguous_but_connect_error_is_failure() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        httpx.ReadTimeout("read timed out"),
        httpx.ConnectError("connection refused"),
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayAmbiguous):
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))
    with pytest.raises(GatewayUnreachable) as excinfo:
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))

    assert isinstance(excinfo.value, GatewayFailure)


def test_authorization_outage_before_transfer_is_failure() -> None:
    gw = _ScriptedGateway().on("/authorize", (503, {"message": "down"}))
    client, sleeps = _client(gw)

    with pytest.raises(GatewayFailure) as excinfo:
        client.request_transfer("PAYOUT_abc", "BENE_resp_1", Decimal("10.00"))

    assert not isinstance(excinfo.value, GatewayAmbiguous)
    assert len(gw.calls("/authorize")) == 3
    assert len(sleeps) == 2
    assert gw.calls("/requestTransfer") == []


def test_token_is_cached_until_close_to_expiry() -> None:
    gw = _ScriptedGateway().on(
        "/getBalance", (200, {"status": "SUCCESS", "data": {"availableBalance": "10"}})
    )
    clock = _Clock()
    client, _ = _client(gw, clock)

    client.get_account_balance()
    client.get_account_balance()
    assert len(gw.calls("/authorize")) == 1

    clock.now = NOW + 3600 - 30
    client.get_account_balance()
    assert len(gw.calls("/authorize")) == 2


def test_token_lock_is_not_held_while_authorize_backs_off() -> None:
    gw = _ScriptedGateway().on(
        "/requestTransfer",
        (200, {"status": "SUCCESS", "subCode": "200", "data": {"referenceId": 1}}),
    )
    gw.on("/authorize", (503, {"status": "ERROR"}), TOKEN_OK)
    client, _ = _client(gw)
    lock_held_during_backoff: list[bool] = []
    client._sleep = lambda _: lock_held_during_backoff.append(client._token_lock.locked())

    client.request_transfer("PAYOUT_a", "BENE_resp_1", Decimal("1"))
    client.request_transfer("PAYOUT_b", "BENE_resp_1", Decimal("1"))

    assert lock_held_during_backoff == [False]
    assert len(gw.calls("/authorize")) == 2
    assert len(gw.calls("/requestTransfer")) == 2


def test_rejected_authorize_does_not_block_later_calls() -> None:
    gw = _ScriptedGateway().on("/authorize", (401, {"status": "ERROR"}), TOKEN_OK)
    gw.on(
        "/requestTransfer",
        (200, {"status": "SUCCESS", "subCode": "200", "data": {"referenceId": 1}}),
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayFailure):
        client.request_transfer("PAYOUT_a", "BENE_resp_1", Decimal("1"))
    receipt = client.request_transfer("PAYOUT_b", "BENE_resp_1", Decimal("1"))

    assert receipt.status is TransferStatus.SUCCESS


def test_unauthorized_response_forces_new_token() -> None:
    gw = _ScriptedGateway().on(
        "/getBalance",
        (401, {"status": "ERROR", "message": "token expired"}),
        (200, {"status": "SUCCESS", "data": {"balance": 5}}),
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayFailure):
        client.get_account_balance()
    assert client.get_account_balance() == Decimal("5")
    assert len(gw.calls("/authorize")) == 2


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        ((404, {"message": "not found"}), TransferStatus.NOT_FOUND),
        (
            (400, {"status": "ERROR", "subCode": "404", "message": "Transfer Id does not exist"}),
            TransferStatus.NOT_FOUND,
        ),
        (
            (200, {"status": "SUCCESS", "data": {"transfer": {"status": "SUCCESS", "referenceId": "77"}}}),
            TransferStatus.SUCCESS,
        ),
        (
            (200, {"status": "SUCCESS", "data": {"transfer": {"status": "REVERSED"}}}),
            TransferStatus.REVERSED,
        ),
        (
            (200, {"status": "SUCCESS", "data": {"transfer": {"status": "SENT_TO_BANK"}}}),
            TransferStatus.PENDING,
        ),
    ],
)
def test_transfer_status_mapping(response: tuple, expected: TransferStatus) -> None:
    gw = _ScriptedGateway().on("/getTransferStatus", response)
    client, _ = _client(gw)

    result = client.get_transfer_status("PAYOUT_abc")

    assert result.status is expected
    [call] = gw.calls("/getTransferStatus")
    assert call.url.params["transferId"] == "PAYOUT_abc"


def test_status_query_is_retried_on_server_error() -> None:
    gw = _ScriptedGateway().on(
        "/getTransferStatus",
        (503, {"message": "busy"}),
        (200, {"status": "SUCCESS", "data": {"transfer": {"status": "SUCCESS", "referenceId": "77"}}}),
    )
    client, sleeps = _client(gw)

    result = client.get_transfer_status("PAYOUT_abc")

    assert result.status is TransferStatus.SUCCESS
    assert result.reference_id == "77"
    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= 0.5


def test_status_query_gives_up_after_max_attempts() -> None:
    gw = _ScriptedGateway().on("/getTransferStatus", httpx.ReadTimeout("slow"))
    client, sleeps = _client(gw)

    with pytest.raises(GatewayAmbiguous):
        client.get_transfer_status("PAYOUT_abc")

    assert len(gw.calls("/getTransferStatus")) == 3
    assert len(sleeps) == 2


def test_register_payee_sends_normalized_contact() -> None:
    gw = _ScriptedGateway().on("/addBeneficiary", (200, {"status": "SUCCESS"}))
    client, _ = _client(gw)

    client.register_payee(
        "BENE_resp_1",
        PayeeContact(name="Resp One", email="r@example.com", phone="+91 98765 43210"),
        "resp@okbank",
    )

    [call] = gw.calls("/addBeneficiary")
    body = json.loads(call.content)
    assert body["beneId"] == "BENE_resp_1"
    assert body["vpa"] == "resp@okbank"
    assert body["phone"] == "9876543210"


def test_register_existing_payee_is_success() -> None:
    gw = _ScriptedGateway().on(
        "/addBeneficiary",
        (409, {"status": "ERROR", "subCode": "409", "message": "Beneficiary Id already exists"}),
    )
    client, _ = _client(gw)

    body = client.register_payee("BENE_resp_1", PayeeContact(name="R"), "resp@okbank")

    assert body["subCode"] == "BENEFICIARY_ALREADY_EXISTS"


def test_unparseable_balance_is_failure() -> None:
    gw = _ScriptedGateway().on(
        "/getBalance", (200, {"status": "SUCCESS", "data": {"availableBalance": "n/a"}})
    )
    client, _ = _client(gw)

    with pytest.raises(GatewayFailure):
        client.get_account_balance()
