# payment_relay package
__version__ = "0.1.0"

from .config import Credentials, RelayConfig, load_config
from .errors import (
    PaymentRelayError,
    ConfigurationError,
    ValidationError,
    GatewayError,
    NetworkError,
    StorageError,
    SignatureInvalid,
)
from .signing import (
    SignedHeaders,
    Signer,
    SigningScheme,
    IyziV2Scheme,
    LegacyIyziScheme,
    canonical_json,
    sign,
)
from .webhooks import WebhookPayload, compute_webhook_signature, verify
from .gateway import GatewayClient, GatewayResult
from .services import PaymentService
