"""Tests for the gateway client and envelope classification."""

import base64

import httpx
import pytest

from payment_relay.errors import GatewayError, NetworkError
from payment_relay.gateway import GatewayClient, GatewayResult, classify_envelope
from payment_relay.signing import LegacyIyziScheme, canonical_json


@pytest.fixture
async def client(credentials, fake_gateway):
    gateway = GatewayClient(credentials, transport=fake_gateway.transport)
    yield gateway
    await gateway.close()


class TestClassifyEnvelope:
    """Tests for success/failure envelope interpretation."""

    def test_success(self):
        result = classify_envelope({"status": "success", "paymentId": "1"})
        assert isinstance(result, GatewayResult)
        assert result.data["paymentId"] == "1"
        assert result.status == "success"

    def test_failure(self, failure_response):
        with pytest.raises(GatewayError) as exc_info:
            classify_envelope(failure_response)
        error = exc_info.value
        assert error.error_code == "10051"
        assert error.error_message == "Kart limiti yetersiz, yetersiz bakiye"
        assert error.error_group == "NOT_SUFFICIENT_FUNDS"
        assert error.status_code == 400
        assert error.to_dict() == {
            "errorCode": "10051",
            "errorMessage": "Kart limiti yetersiz, yetersiz bakiye",
        }

    def test_missing_status_is_failure(self):
        with pytest.raises(GatewayError):
            classify_envelope({"paymentId": "1"})

    def test_non_object_is_failure(self):
        with pytest.raises(GatewayError):
            classify_envelope(["success"])


class TestGatewayClient:
    """Tests for signed gateway calls."""

    async def test_successful_call(self, client, fake_gateway):
        fake_gateway.respond("/payment/detail", {"status": "success", "paymentId": "1"})

        result = await client.call("POST", "/payment/detail", {"paymentId": "1"})

        assert result.data == {"status": "success", "paymentId": "1"}
        request = fake_gateway.requests[-1]
        assert request.method == "POST"
        assert str(request.url) == "https://gateway.test/payment/detail"

    async def test_request_carries_signed_headers(self, client, fake_gateway):
        fake_gateway.respond("/payment/auth", {"status": "success"})

        await client.call("POST", "/payment/auth", {"a": 1})

        request = fake_gateway.requests[-1]
        assert request.headers["Authorization"].startswith("IYZWSv2 ")
        nonce = request.headers["x-iyzi-rnd"]
        assert nonce
        decoded = base64.b64decode(request.headers["Authorization"].split(" ", 1)[1]).decode()
        assert f"&randomKey:{nonce}&" in decoded
        assert request.headers["Content-Type"] == "application/json"

    async def test_sent_body_is_signed_body(self, client, fake_gateway, credentials):
        fake_gateway.respond("/payment/auth", {"status": "success"})
        body = {"z": 1, "a": "İ"}

        await client.call("POST", "/payment/auth", body)

        request = fake_gateway.requests[-1]
        assert request.content == canonical_json(body).encode("utf-8")
        resigned = client.signer.sign("/payment/auth", body, nonce=request.headers["x-iyzi-rnd"])
        assert resigned.authorization == request.headers["Authorization"]

    async def test_fresh_nonce_each_call(self, client, fake_gateway):
        fake_gateway.respond("/payment/auth", {"status": "success"})

        await client.call("POST", "/payment/auth", {})
        await client.call("POST", "/payment/auth", {})

        first, second = (r.headers["x-iyzi-rnd"] for r in fake_gateway.requests)
        assert first != second

    async def test_failure_envelope_raises(self, client, fake_gateway, failure_response):
        fake_gateway.respond("/payment/auth", failure_response)

        with pytest.raises(GatewayError) as exc_info:
            await client.call("POST", "/payment/auth", {})
        assert exc_info.value.error_code == "10051"

    async def test_failure_envelope_on_http_error_status(self, client, fake_gateway, failure_response):
        fake_gateway.respond("/payment/auth", failure_response, status_code=401)

        with pytest.raises(GatewayError):
            await client.call("POST", "/payment/auth", {})

    async def test_transport_failure(self, client, fake_gateway):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_gateway.respond_with("/payment/auth", boom)

        with pytest.raises(NetworkError) as exc_info:
            await client.call("POST", "/payment/auth", {})
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert exc_info.value.status_code == 502

    async def test_timeout(self, client, fake_gateway):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake_gateway.respond_with("/payment/auth", slow)

        with pytest.raises(NetworkError, match="timed out"):
            await client.call("POST", "/payment/auth", {})

    async def test_non_json_response(self, client, fake_gateway):
        fake_gateway.respond_with(
            "/payment/auth", lambda request: httpx.Response(503, text="<html>down</html>")
        )

        with pytest.raises(NetworkError, match="non-JSON"):
            await client.call("POST", "/payment/auth", {})

    async def test_no_retry(self, client, fake_gateway):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        fake_gateway.respond_with("/payment/auth", boom)

        with pytest.raises(NetworkError):
            await client.call("POST", "/payment/auth", {})
        assert len(fake_gateway.requests) == 1

    async def test_timeout_configured(self, credentials):
        gateway = GatewayClient(credentials, timeout_seconds=3.5)
        try:
            assert gateway.http_client.timeout.read == 3.5
        finally:
            await gateway.close()

    async def test_legacy_scheme(self, credentials, fake_gateway):
        fake_gateway.respond("/payment/auth", {"status": "success"})
        gateway = GatewayClient(credentials, scheme=LegacyIyziScheme(), transport=fake_gateway.transport)
        try:
            await gateway.call("POST", "/payment/auth", {})
        finally:
            await gateway.close()

        request = fake_gateway.requests[-1]
        assert request.headers["Authorization"].startswith("IYZWS sandbox-api-key:")
        assert "x-iyzi-client-version" in request.headers
