"""Request signing for outbound gateway calls.

A signing scheme turns (credentials, path, body, nonce) into the value of
the ``Authorization`` header plus any companion headers. Output is fully
determined by those inputs; only nonce generation is random.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .config import Credentials
from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

CLIENT_VERSION = "payment-relay-python-0.1.0"


def canonical_json(body: Any) -> str:
    """Serialize a request body exactly as it is signed and sent.

    Keys keep their insertion order and separators carry no whitespace, so
    the signed text and the transmitted bytes are always identical.
    """
    if body is None:
        body = {}
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def hmac_sha256_hex(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class SignedHeaders:
    """Result of signing one request."""
    authorization: str
    nonce: str
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def as_headers(self) -> Dict[str, str]:
        headers = {"Authorization": self.authorization}
        headers.update(self.extra_headers)
        return headers


class SigningScheme(ABC):
    """Interface every signing scheme implements."""

    name: str = ""

    @abstractmethod
    def generate_nonce(self) -> str:
        """Return a fresh nonce for one request."""
        raise NotImplementedError

    @abstractmethod
    def authorization(
        self, credentials: Credentials, path: str, body_text: str, nonce: str
    ) -> str:
        """Return the Authorization header value."""
        raise NotImplementedError

    def extra_headers(self, nonce: str) -> Dict[str, str]:
        return {"x-iyzi-rnd": nonce}


class IyziV2Scheme(SigningScheme):
    """IYZWSv2: HMAC-SHA256 hex over nonce + path + body, wrapped in base64."""

    name = "v2"

    def generate_nonce(self) -> str:
        # Millisecond timestamp keeps nonces increasing; the suffix makes them unique
        return f"{int(time.time() * 1000)}{secrets.token_hex(4)}"

    def authorization(
        self, credentials: Credentials, path: str, body_text: str, nonce: str
    ) -> str:
        signature = hmac_sha256_hex(credentials.secret_key, nonce + path + body_text)
        auth_string = (
            f"apiKey:{credentials.api_key}"
            f"&randomKey:{nonce}"
            f"&signature:{signature}"
        )
        encoded = base64.b64encode(auth_string.encode("utf-8")).decode("ascii")
        return f"IYZWSv2 {encoded}"


class LegacyIyziScheme(SigningScheme):
    """Legacy IYZWS: base64 HMAC-SHA256 over apiKey + random hex nonce + body."""

    name = "v1"

    def generate_nonce(self) -> str:
        return secrets.token_hex(8)

    def authorization(
        self, credentials: Credentials, path: str, body_text: str, nonce: str
    ) -> str:
        payload = credentials.api_key + nonce + body_text
        digest = hmac.new(
            credentials.secret_key.encode("utf-8"),
            payload.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return f"IYZWS {credentials.api_key}:{base64.b64encode(digest).decode('ascii')}"

    def extra_headers(self, nonce: str) -> Dict[str, str]:
        return {"x-iyzi-rnd": nonce, "x-iyzi-client-version": CLIENT_VERSION}


SIGNING_SCHEMES: Dict[str, SigningScheme] = {
    IyziV2Scheme.name: IyziV2Scheme(),
    LegacyIyziScheme.name: LegacyIyziScheme(),
}


def get_signing_scheme(name: str) -> SigningScheme:
    """Look up a signing scheme by its configured name.

    Raises:
        ConfigurationError: If no scheme is registered under ``name``.
    """
    scheme = SIGNING_SCHEMES.get(name)
    if scheme is None:
        supported = ", ".join(sorted(SIGNING_SCHEMES))
        raise ConfigurationError(
            f"Unknown signing scheme {name!r}; supported: {supported}"
        )
    return scheme


def sign(
    path: str,
    body: Any,
    credentials: Credentials,
    nonce: Optional[str] = None,
    scheme: Optional[SigningScheme] = None,
) -> SignedHeaders:
    """Build the authorization headers for one gateway request.

    Args:
        path: Gateway resource path, e.g. ``/payment/auth``.
        body: JSON-serializable body or pydantic model; ``None`` signs as ``{}``.
        credentials: Gateway credentials.
        nonce: Fixed nonce. A fresh one is generated when omitted.
        scheme: Signing scheme. Defaults to IYZWSv2.

    Returns:
        SignedHeaders with the Authorization value, the nonce used and the
        companion headers to attach.

    Raises:
        ValidationError: If ``path`` is empty or the nonce comes out empty.
    """
    if not path:
        raise ValidationError("path must not be empty")

    scheme = scheme or SIGNING_SCHEMES["v2"]
    if nonce is None:
        nonce = scheme.generate_nonce()
    if not nonce:
        raise ValidationError("nonce must not be empty")

    body_text = canonical_json(body)
    authorization = scheme.authorization(credentials, path, body_text, nonce)
    logger.debug(f"Signed {path} with scheme {scheme.name}")
    return SignedHeaders(
        authorization=authorization,
        nonce=nonce,
        extra_headers=scheme.extra_headers(nonce),
    )


class Signer:
    """Signer bound to one set of credentials and one scheme."""

    def __init__(self, credentials: Credentials, scheme: Optional[SigningScheme] = None):
        self.credentials = credentials
        self.scheme = scheme or SIGNING_SCHEMES["v2"]

    def sign(self, path: str, body: Any, nonce: Optional[str] = None) -> SignedHeaders:
        return sign(path, body, self.credentials, nonce=nonce, scheme=self.scheme)
