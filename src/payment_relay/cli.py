#!/usr/bin/env python3
"""Command-line interface for the payment relay.

Usage:
    payment-relay serve --port 5000
    payment-relay sign --path /payment/auth --body '{"a":1}' --nonce 12345
    payment-relay webhook-signature --payload '{"eventType":"SUCCESS", ...}'
"""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import load_config, load_credentials
from .errors import ConfigurationError, ValidationError
from .signing import get_signing_scheme, sign
from .webhooks import compute_webhook_signature

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def run_server(host: str, port: Optional[int]) -> int:
    """Start the HTTP server. Refuses to start without valid configuration."""
    import uvicorn

    from .api import create_app

    try:
        config = load_config()
        app = create_app(config)
    except ConfigurationError as e:
        logger.error(f"Refusing to start: {e}")
        return 1

    logging.getLogger().setLevel(config.log_level)
    uvicorn.run(app, host=host, port=port or config.port, log_level=config.log_level.lower())
    return 0


def run_sign(path: str, body: Optional[str], nonce: Optional[str]) -> int:
    """Print the headers the relay would attach to a gateway request."""
    try:
        config = load_config()
        scheme = get_signing_scheme(config.signing_scheme)
        parsed_body = json.loads(body) if body else {}
        signed = sign(path, parsed_body, config.credentials, nonce=nonce, scheme=scheme)
    except (ConfigurationError, ValidationError) as e:
        logger.error(str(e))
        return 1
    except json.JSONDecodeError as e:
        logger.error(f"--body is not valid JSON: {e}")
        return 1

    print(json.dumps(signed.as_headers(), indent=2))
    return 0


def run_webhook_signature(payload: str) -> int:
    """Print the signature the gateway would send for a webhook payload."""
    try:
        credentials = load_credentials()
        signature = compute_webhook_signature(json.loads(payload), credentials.secret_key)
    except (ConfigurationError, ValidationError) as e:
        logger.error(str(e))
        return 1
    except json.JSONDecodeError as e:
        logger.error(f"--payload is not valid JSON: {e}")
        return 1

    print(signature)
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payment-relay",
        description="Signed relay between a storefront and the payment gateway",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port (default: $PORT or 5000)")

    sign_parser = subparsers.add_parser("sign", help="Print signed headers for a request")
    sign_parser.add_argument("--path", required=True, help="Gateway path, e.g. /payment/auth")
    sign_parser.add_argument("--body", help="JSON request body (default: {})")
    sign_parser.add_argument("--nonce", help="Fixed nonce (default: freshly generated)")

    webhook_parser = subparsers.add_parser(
        "webhook-signature", help="Compute the signature of a webhook payload"
    )
    webhook_parser.add_argument("--payload", required=True, help="Webhook JSON payload")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == "serve":
        return run_server(parsed_args.host, parsed_args.port)
    if parsed_args.command == "sign":
        return run_sign(parsed_args.path, parsed_args.body, parsed_args.nonce)
    if parsed_args.command == "webhook-signature":
        return run_webhook_signature(parsed_args.payload)

    return 0


if __name__ == "__main__":
    sys.exit(main())
