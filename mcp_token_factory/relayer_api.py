import base64
import binascii
import os
from typing import Any, Tuple

from flask import Flask, request, jsonify

from mcp_token_factory import config
from mcp_token_factory.errors import (
    BondingCurveNotEnabledError,
    InvalidCurveKindError,
    InvalidMessagePayloadError,
    RateLimitExceededError,
    TokenNotFoundError,
    UnknownMessageTypeError,
    UntrustedEmitterError,
)
from mcp_token_factory.factory import TokenFactory
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Inbound error kinds and the status the relayer sees for each.
ERROR_STATUS = (
    (UntrustedEmitterError, 403),
    (RateLimitExceededError, 429),
    (InvalidMessagePayloadError, 400),
    (UnknownMessageTypeError, 400),
)


def create_app(factory: TokenFactory) -> Flask:
    """
    Builds the relayer-facing HTTP API around a TokenFactory.

    Routes:
        POST /v1/messages            inbound message delivery from the bridge relayer
        GET  /v1/tokens/<id>/price   price quote on the token's bonding curve
    """
    app = Flask(__name__)

    @app.route('/v1/messages', methods=['POST'])
    def post_message() -> Tuple[Any, int]:
        """Accepts a message delivered by the relayer and returns the resulting fact."""
        if not request.is_json:
            return jsonify({"message": "Content-Type must be application/json"}), 415

        payload = request.get_json(silent=True)
        if not payload:
            return jsonify({"message": "Empty or invalid JSON payload"}), 400

        for field in ("sourceChain", "sourceAddress", "payload"):
            if field not in payload:
                return jsonify({"message": f"{field} not provided in request"}), 400

        try:
            source_chain = int(payload["sourceChain"])
            if not 0 <= source_chain <= 0xFFFF:
                raise ValueError("sourceChain out of range")
            source_address = bytes.fromhex(str(payload["sourceAddress"]).removeprefix("0x"))
            raw_bytes = base64.b64decode(str(payload["payload"]), validate=True)
        except (ValueError, TypeError, binascii.Error) as e:
            logger.warning(f"Malformed relayer delivery: {e}")
            return jsonify({"message": f"Malformed delivery: {e}"}), 400

        try:
            fact = factory.receive_message(source_chain, source_address, raw_bytes)
        except tuple(kind for kind, _ in ERROR_STATUS) as e:
            status = next(code for kind, code in ERROR_STATUS if isinstance(e, kind))
            logger.warning(f"Inbound message from chain {source_chain} rejected ({status}): {e}")
            return jsonify({"message": str(e), "error": type(e).__name__}), status
        except Exception as e:
            logger.exception(f"Unexpected error in post_message: {e}")
            return jsonify({"message": "An unexpected server error occurred"}), 500

        return jsonify({"fact": type(fact).__name__, "data": fact.model_dump(mode="json")}), 200

    @app.route('/v1/tokens/<int:token_id>/price', methods=['GET'])
    def get_price(token_id: int) -> Tuple[Any, int]:
        """Quotes the price of `amount` units at `supply` on the token's curve."""
        try:
            supply = int(request.args.get("supply", ""))
            amount = int(request.args.get("amount", ""))
        except ValueError:
            return jsonify({"message": "supply and amount must be integers"}), 400

        try:
            price = factory.calculate_price(token_id, supply, amount)
        except TokenNotFoundError as e:
            return jsonify({"message": str(e)}), 404
        except (BondingCurveNotEnabledError, InvalidCurveKindError) as e:
            return jsonify({"message": str(e), "error": type(e).__name__}), 409
        except ValueError as e:
            return jsonify({"message": str(e)}), 400
        except Exception as e:
            logger.exception(f"Unexpected error quoting token {token_id}: {e}")
            return jsonify({"message": "An unexpected server error occurred"}), 500

        return jsonify({"token_id": token_id, "supply": supply, "amount": amount, "price": str(price)}), 200

    return app


# --- Main Execution (for running the relayer API directly) ---
if __name__ == '__main__':
    from mcp_token_factory.server import build_factory

    port = config.RELAYER_PORT
    logger.info(f"Starting relayer API server on port {port}...")
    create_app(build_factory()).run(debug=os.getenv("FLASK_DEBUG", "False").lower() == "true", port=port, host="0.0.0.0")
