import base64
from typing import List, Optional, Tuple

import httpx
from solders.keypair import Keypair

from mcp_token_factory.codec import RawMessage
from mcp_token_factory.errors import TransportError
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class HttpBridgeTransport:
    """
    Hands outbound messages to a bridge relayer over JSON-RPC.

    The message bytes are signed with the emitter keypair so the relayer can attribute them
    to this factory before publishing them to the guardian network.
    """

    def __init__(
        self,
        relayer_url: str,
        emitter: Keypair,
        source_chain: int,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.relayer_url = relayer_url
        self.emitter = emitter
        self.source_chain = source_chain
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

    def build_request(self, target_chain: int, message: RawMessage) -> dict:
        data = message.to_bytes()
        signature = self.emitter.sign_message(data)
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "postMessage",
            "params": [
                {
                    "sourceChain": self.source_chain,
                    "targetChain": target_chain,
                    "emitter": bytes(self.emitter.pubkey()).hex(),
                    "payload": base64.b64encode(data).decode("ascii"),
                    "signature": str(signature),
                }
            ],
        }

    def send(self, target_chain: int, message: RawMessage) -> None:
        """
        Posts a message to the relayer.

        Raises:
            TransportError: On HTTP failures, timeouts or a JSON-RPC error response.
        """
        try:
            response = self.client.post(self.relayer_url, json=self.build_request(target_chain, message))
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error posting message to chain {target_chain}: "
                         f"{e.response.status_code} - {e.response.text}")
            raise TransportError(f"HTTP error posting message: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Error posting message to chain {target_chain}: {e}")
            raise TransportError(f"Error posting message: {e}")
        except ValueError as e:
            raise TransportError(f"Malformed relayer response: {e}")

        if result.get("error"):
            logger.error(f"Relayer rejected message to chain {target_chain}: {result['error']}")
            raise TransportError(f"Relayer rejected message: {result['error']}")

        logger.info(f"Posted {len(message.body) + 1}-byte message (type {message.tag}) to chain {target_chain}; "
                    f"relayer sequence: {result.get('result')}")

    def close(self) -> None:
        self.client.close()


class InMemoryBridgeTransport:
    """Records outbound messages instead of sending them; used for local runs and tests."""

    def __init__(self):
        self.sent: List[Tuple[int, RawMessage]] = []

    def send(self, target_chain: int, message: RawMessage) -> None:
        self.sent.append((target_chain, message))
        logger.debug(f"Queued message type {message.tag} for chain {target_chain} in memory")
