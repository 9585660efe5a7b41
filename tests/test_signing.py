"""Tests for outbound request signing."""

import base64
import hashlib
import hmac

import pytest

from payment_relay.config import Credentials
from payment_relay.errors import ConfigurationError, ValidationError
from payment_relay.signing import (
    IyziV2Scheme,
    LegacyIyziScheme,
    SignedHeaders,
    Signer,
    canonical_json,
    get_signing_scheme,
    sign,
)
from payment_relay.schemas import RefundBody


def expected_v2(api_key: str, secret_key: str, nonce: str, path: str, body_text: str) -> str:
    digest = hmac.new(
        secret_key.encode(), (nonce + path + body_text).encode(), hashlib.sha256
    ).hexdigest()
    auth_string = f"apiKey:{api_key}&randomKey:{nonce}&signature:{digest}"
    return "IYZWSv2 " + base64.b64encode(auth_string.encode()).decode()


@pytest.fixture
def simple_credentials():
    return Credentials(api_key="K", secret_key="S", base_url="https://gateway.test")


class TestCanonicalJson:
    """Tests for the body serialization used in signatures."""

    def test_compact_and_ordered(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"b":1,"a":[1,2]}'

    def test_none_signs_as_empty_object(self):
        assert canonical_json(None) == "{}"

    def test_non_ascii_kept(self):
        assert canonical_json({"city": "İstanbul"}) == '{"city":"İstanbul"}'

    def test_pydantic_model_keeps_field_order(self):
        body = RefundBody(
            locale="tr",
            conversationId="c1",
            paymentTransactionId="t1",
            price="10.50",
        )
        assert canonical_json(body) == (
            '{"locale":"tr","conversationId":"c1","paymentTransactionId":"t1","price":"10.50"}'
        )


class TestV2Signing:
    """Tests for the IYZWSv2 scheme."""

    def test_known_vector(self, simple_credentials):
        """sign('/payment/auth', {a:1}, nonce='12345') with K/S."""
        signed = sign("/payment/auth", {"a": 1}, simple_credentials, nonce="12345")

        assert signed.authorization == expected_v2("K", "S", "12345", "/payment/auth", '{"a":1}')
        assert signed.nonce == "12345"
        assert signed.extra_headers == {"x-iyzi-rnd": "12345"}

    def test_decoded_authorization_string(self, simple_credentials):
        signed = sign("/payment/auth", {"a": 1}, simple_credentials, nonce="12345")
        prefix, encoded = signed.authorization.split(" ", 1)
        decoded = base64.b64decode(encoded).decode()

        assert prefix == "IYZWSv2"
        assert decoded.startswith("apiKey:K&randomKey:12345&signature:")
        signature = decoded.rsplit(":", 1)[1]
        assert len(signature) == 64
        assert signature == signature.lower()

    def test_deterministic(self, simple_credentials):
        first = sign("/payment/auth", {"a": 1, "b": "x"}, simple_credentials, nonce="n-1")
        second = sign("/payment/auth", {"a": 1, "b": "x"}, simple_credentials, nonce="n-1")
        assert first == second

    @pytest.mark.parametrize(
        "change",
        [
            {"api_key": "K2"},
            {"secret_key": "S2"},
            {"path": "/payment/refund"},
            {"body": {"a": 2}},
            {"nonce": "12346"},
        ],
    )
    def test_any_input_change_alters_signature(self, change):
        inputs = {
            "api_key": "K",
            "secret_key": "S",
            "path": "/payment/auth",
            "body": {"a": 1},
            "nonce": "12345",
        }
        baseline = sign(
            inputs["path"],
            inputs["body"],
            Credentials(api_key=inputs["api_key"], secret_key=inputs["secret_key"]),
            nonce=inputs["nonce"],
        )
        inputs.update(change)
        changed = sign(
            inputs["path"],
            inputs["body"],
            Credentials(api_key=inputs["api_key"], secret_key=inputs["secret_key"]),
            nonce=inputs["nonce"],
        )
        assert changed.authorization != baseline.authorization

    def test_empty_body_signs_as_empty_object(self, simple_credentials):
        signed = sign("/payment/detail", None, simple_credentials, nonce="1")
        assert signed.authorization == expected_v2("K", "S", "1", "/payment/detail", "{}")

    def test_fresh_nonce_per_call(self, simple_credentials):
        nonces = {sign("/payment/auth", {}, simple_credentials).nonce for _ in range(50)}
        assert len(nonces) == 50
        assert all(nonces)

    def test_generated_nonce_starts_with_timestamp(self):
        nonce = IyziV2Scheme().generate_nonce()
        assert nonce[:13].isdigit()

    def test_empty_path_rejected(self, simple_credentials):
        with pytest.raises(ValidationError):
            sign("", {"a": 1}, simple_credentials, nonce="1")

    def test_empty_nonce_rejected(self, simple_credentials):
        with pytest.raises(ValidationError):
            sign("/payment/auth", {"a": 1}, simple_credentials, nonce="")

    def test_empty_generated_nonce_rejected(self, simple_credentials):
        class BrokenScheme(IyziV2Scheme):
            def generate_nonce(self) -> str:
                return ""

        with pytest.raises(ValidationError):
            sign("/payment/auth", {}, simple_credentials, scheme=BrokenScheme())


class TestLegacySigning:
    """Tests for the legacy IYZWS scheme."""

    def test_known_vector(self, simple_credentials):
        signed = sign(
            "/payment/auth", {"a": 1}, simple_credentials,
            nonce="abcdef0123456789", scheme=LegacyIyziScheme(),
        )
        digest = hmac.new(b"S", b'Kabcdef0123456789{"a":1}', hashlib.sha256).digest()

        assert signed.authorization == f"IYZWS K:{base64.b64encode(digest).decode()}"
        assert signed.extra_headers["x-iyzi-rnd"] == "abcdef0123456789"
        assert "x-iyzi-client-version" in signed.extra_headers

    def test_nonce_is_random_hex(self):
        nonce = LegacyIyziScheme().generate_nonce()
        assert len(nonce) == 16
        int(nonce, 16)


class TestSchemeSelection:
    """Tests for the configurable scheme registry."""

    def test_lookup(self):
        assert isinstance(get_signing_scheme("v2"), IyziV2Scheme)
        assert isinstance(get_signing_scheme("v1"), LegacyIyziScheme)

    def test_unknown_scheme(self):
        with pytest.raises(ConfigurationError):
            get_signing_scheme("v3")


class TestSigner:
    """Tests for the credential-bound Signer."""

    def test_matches_function(self, simple_credentials):
        signer = Signer(simple_credentials)
        assert signer.sign("/payment/auth", {"a": 1}, nonce="12345") == sign(
            "/payment/auth", {"a": 1}, simple_credentials, nonce="12345"
        )

    def test_as_headers(self):
        signed = SignedHeaders(authorization="IYZWSv2 abc", nonce="1", extra_headers={"x-iyzi-rnd": "1"})
        assert signed.as_headers() == {"Authorization": "IYZWSv2 abc", "x-iyzi-rnd": "1"}

    def test_secret_not_in_repr(self, simple_credentials):
        assert "secret_key" not in repr(simple_credentials)
