"""HTTP client for the payment gateway."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from .config import Credentials
from .errors import GatewayError, NetworkError
from .signing import Signer, SigningScheme, canonical_json

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"


@dataclass
class GatewayResult:
    """Successful gateway envelope."""
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "GatewayResult":
        return cls(data=data)

    @property
    def status(self) -> str:
        return self.data.get("status", STATUS_SUCCESS)


def classify_envelope(payload: Any) -> GatewayResult:
    """Turn a decoded gateway response into a result or a GatewayError.

    Raises:
        GatewayError: For any envelope whose status is not ``success``.
    """
    if not isinstance(payload, dict):
        raise GatewayError(None, "gateway returned an unexpected response body")

    if payload.get("status") == STATUS_SUCCESS:
        return GatewayResult.ok(payload)

    raise GatewayError(
        error_code=payload.get("errorCode"),
        error_message=payload.get("errorMessage"),
        error_group=payload.get("errorGroup"),
        raw_response=payload,
    )


class GatewayClient:
    """
    Issues signed requests to the gateway and interprets its envelope.

    A single pooled httpx.AsyncClient is shared by all requests; call
    ``close()`` on shutdown. No retries are attempted.
    """

    def __init__(
        self,
        credentials: Credentials,
        scheme: Optional[SigningScheme] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.signer = Signer(credentials, scheme)
        self.base_url = credentials.base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.http_client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)
        logger.info(
            f"GatewayClient initialized for {self.base_url} "
            f"(timeout {timeout_seconds}s, scheme {self.signer.scheme.name})"
        )

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        await self.http_client.aclose()

    async def call(self, method: str, path: str, body: Any = None) -> GatewayResult:
        """Send one signed request.

        Args:
            method: HTTP method.
            path: Gateway resource path.
            body: Request body (dict or pydantic model).

        Returns:
            GatewayResult carrying the success envelope.

        Raises:
            NetworkError: Transport failure, timeout or a non-JSON response.
            GatewayError: The gateway answered with a failure envelope.
        """
        body_text = canonical_json(body)
        signed = self.signer.sign(path, body)
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            **signed.as_headers(),
        }
        url = f"{self.base_url}{path}"

        logger.info(f"Gateway request {method.upper()} {path}")
        try:
            response = await self.http_client.request(
                method.upper(),
                url,
                content=body_text.encode("utf-8"),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Gateway request {path} timed out after {self.timeout_seconds}s")
            raise NetworkError(f"gateway request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gateway request {path} failed: {e}")
            raise NetworkError(f"gateway request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(
                f"Gateway returned non-JSON response for {path} "
                f"(HTTP {response.status_code})"
            )
            raise NetworkError(
                f"gateway returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        try:
            result = classify_envelope(payload)
        except GatewayError as e:
            logger.warning(
                f"Gateway rejected {path}: {e.error_code} {e.error_message} "
                f"(HTTP {response.status_code})"
            )
            raise

        logger.info(f"Gateway request {path} succeeded")
        return result
