from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from .chain import Chain, InvalidBlockError, ValidationError
from .config import CONFIG, NodeConfig
from .errors import APIErrorAndReason, encode_block_error, encode_entry_error
from .models import Block
from .peers import AlreadyPresentError, EntryRejectedError, MemberEntry, PeerRegistry

logger = logging.getLogger(__name__)

INVALID_REQUEST_LABEL = "Invalid request"
NOT_FOUND_LABEL = "Not found"
SERVER_ERROR_LABEL = "Server error"


class RequestError(ValidationError):
    pass


class ChainNode:
    def __init__(
        self,
        config: NodeConfig = CONFIG,
        chain: Chain | None = None,
        peers: PeerRegistry | None = None,
    ) -> None:
        self.config = config
        self.chain = chain if chain is not None else Chain(config.genesis_message)
        self.peers = peers if peers is not None else PeerRegistry()
        self.host = config.host
        self.stop_event = threading.Event()
        self._serving = threading.Event()

        self.server = ThreadingHTTPServer((self.host, int(config.port)), self._build_handler())
        self.server.daemon_threads = True
        self.server.timeout = 1.0
        # Port 0 binds an ephemeral port; report the real one.
        self.port = int(self.server.server_address[1])
        self.node_url = f"http://{self.host}:{self.port}"

    def _build_handler(self):
        node = self

        class Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def _send_json(self, status: int, payload: Any) -> None:
                raw = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(raw)))
                self.end_headers()
                self.wfile.write(raw)

            def _send_error_pair(self, status: int, api_error: APIErrorAndReason) -> None:
                self._send_json(status, api_error.to_dict())

            def _read_json(self) -> dict[str, Any]:
                length_text = self.headers.get("Content-Length", "0").strip()
                try:
                    length = int(length_text)
                except ValueError as exc:
                    raise RequestError("Invalid Content-Length header") from exc
                if length <= 0:
                    raise RequestError("Request body is empty")
                if length > node.config.max_request_body_bytes:
                    # The body stays unread, so the connection cannot be reused.
                    self.close_connection = True
                    raise RequestError(f"Request body too large (max {node.config.max_request_body_bytes} bytes)")
                body = self.rfile.read(length)
                try:
                    decoded = json.loads(body.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    raise RequestError("Request body is not valid JSON") from exc
                if not isinstance(decoded, dict):
                    raise RequestError("Request body must be a JSON object")
                return decoded

            @staticmethod
            def _query_first(query: dict[str, list[str]], key: str, default: str = "") -> str:
                values = query.get(key)
                if not values:
                    return default
                return str(values[0])

            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                path = parsed.path
                try:
                    if path == "/health":
                        self._send_json(200, {"ok": True})
                        return

                    if path == "/status":
                        self._send_json(200, node.status_payload())
                        return

                    if path == "/blocks/last":
                        last = node.chain.last_block()
                        if last is None:
                            self._send_error_pair(404, APIErrorAndReason(NOT_FOUND_LABEL, "chain is empty"))
                            return
                        self._send_json(200, last.to_dict())
                        return

                    if path == "/blocks":
                        query = parse_qs(parsed.query, keep_blank_values=False)
                        from_text = self._query_first(query, "from_index", "0").strip()
                        try:
                            from_index = int(from_text)
                        except ValueError as exc:
                            raise RequestError("Query parameter 'from_index' must be an integer") from exc
                        self._send_json(200, node.blocks_payload(from_index=from_index))
                        return

                    if path == "/peers":
                        self._send_json(200, node.peers_payload())
                        return

                    self._send_error_pair(404, APIErrorAndReason(NOT_FOUND_LABEL, path))
                except ValidationError as exc:
                    self._send_error_pair(400, APIErrorAndReason(INVALID_REQUEST_LABEL, str(exc)))
                except Exception as exc:  # pragma: no cover - unexpected server fault
                    logger.exception("Unhandled error serving GET %s", path)
                    self._send_error_pair(500, APIErrorAndReason(SERVER_ERROR_LABEL, str(exc)))

            def do_POST(self) -> None:
                parsed = urlparse(self.path)
                path = parsed.path
                try:
                    if path == "/blocks":
                        payload = self._read_json()
                        try:
                            block = Block.from_dict(payload)
                        except ValueError as exc:
                            raise RequestError(str(exc)) from exc
                        status, body = node.add_block(block)
                        self._send_json(status, body)
                        return

                    if path == "/peers":
                        payload = self._read_json()
                        try:
                            entry = MemberEntry.from_dict(payload)
                        except ValueError as exc:
                            raise RequestError(str(exc)) from exc
                        status, body = node.add_peer(entry)
                        self._send_json(status, body)
                        return

                    self._send_error_pair(404, APIErrorAndReason(NOT_FOUND_LABEL, path))
                except ValidationError as exc:
                    self._send_error_pair(400, APIErrorAndReason(INVALID_REQUEST_LABEL, str(exc)))
                except Exception as exc:  # pragma: no cover - unexpected server fault
                    logger.exception("Unhandled error serving POST %s", path)
                    self._send_error_pair(500, APIErrorAndReason(SERVER_ERROR_LABEL, str(exc)))

            def log_message(self, fmt: str, *args) -> None:
                logger.debug("%s - %s", self.address_string(), fmt % args)

        return Handler

    def status_payload(self) -> dict[str, Any]:
        last = self.chain.last_block()
        return {
            "ok": True,
            "node": self.node_url,
            "height": self.chain.height(),
            "tip_hash": last.hash() if last else None,
            "peer_count": len(self.peers),
        }

    def blocks_payload(self, from_index: int = 0) -> dict[str, Any]:
        limit = self.config.max_listing_items or None
        rows = self.chain.blocks_from(from_index, limit=limit)
        return {"items": [block.to_dict() for block in rows]}

    def peers_payload(self) -> dict[str, Any]:
        return {"items": [entry.to_dict() for entry in self.peers.members()]}

    def add_block(self, block: Block) -> tuple[int, dict[str, Any]]:
        try:
            added = self.chain.append(block)
        except InvalidBlockError as exc:
            return 400, encode_block_error(exc).to_dict()
        return 200, added.to_dict()

    def add_peer(self, entry: MemberEntry) -> tuple[int, dict[str, Any]]:
        try:
            added = self.peers.append(entry)
        except AlreadyPresentError as exc:
            # Already a member is reported as success.
            return 200, exc.entry.to_dict()
        except EntryRejectedError as exc:
            return 400, encode_entry_error(exc).to_dict()
        return 201, added.to_dict()

    def serve_forever(self) -> None:
        logger.info("Serving chain node on %s", self.node_url)
        self._serving.set()
        try:
            self.server.serve_forever(poll_interval=0.5)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        # BaseServer.shutdown() blocks until serve_forever() exits, so only call it while serving.
        if self._serving.is_set():
            self.server.shutdown()
        self.server.server_close()
        logger.info("Chain node on %s stopped", self.node_url)
