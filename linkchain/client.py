from __future__ import annotations

import json
import logging
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .errors import APIErrorAndReason, decode_block_error, decode_entry_error
from .models import Block
from .peers import MemberEntry

logger = logging.getLogger(__name__)


class NetworkError(Exception):
    pass


def _join_url(base_url: str, path: str) -> str:
    base = base_url.strip().rstrip("/")
    return f"{base}{path if path.startswith('/') else '/' + path}"


def _request_json(
    url: str,
    method: str = "GET",
    payload: dict[str, Any] | None = None,
    timeout: float | None = 4.0,
) -> tuple[int, Any]:
    """Send one JSON request and return ``(status, decoded_body)``.

    HTTP error statuses are returned, not raised, so callers can decode
    rejection bodies. Transport failures and non-JSON bodies raise
    ``NetworkError``.
    """
    data = None
    headers = {"Accept": "application/json"}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"

    req = Request(url=url, data=data, method=method.upper(), headers=headers)
    request_timeout = None if timeout is None else float(timeout)

    try:
        with urlopen(req, timeout=request_timeout) as response:
            status = int(response.status)
            raw = response.read()
    except HTTPError as exc:
        status = int(exc.code)
        raw = exc.read()
    except URLError as exc:
        if isinstance(getattr(exc, "reason", None), (TimeoutError, socket.timeout)):
            raise NetworkError(f"Timeout calling {url}") from exc
        raise NetworkError(f"Network error calling {url}: {exc}") from exc
    except (TimeoutError, socket.timeout) as exc:
        raise NetworkError(f"Timeout calling {url}") from exc
    except OSError as exc:
        raise NetworkError(f"Connection error calling {url}: {exc}") from exc

    logger.debug("%s %s -> %s", method.upper(), url, status)
    if not raw:
        return status, {}
    try:
        return status, json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise NetworkError(f"Invalid JSON response from {url} (HTTP {status})") from exc


def _expect_object(url: str, status: int, body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise NetworkError(f"Expected JSON object response from {url} (HTTP {status})")
    return body


class APIClient:
    def __init__(self, host_url: str, timeout: float | None = 4.0) -> None:
        self.host_url = host_url
        self.timeout = timeout

    def _get(self, path: str) -> dict[str, Any]:
        url = _join_url(self.host_url, path)
        status, body = _request_json(url, method="GET", timeout=self.timeout)
        body = _expect_object(url, status, body)
        if status != 200:
            raise NetworkError(f"HTTP {status} calling {url}: {body}")
        return body

    def status(self) -> dict[str, Any]:
        return self._get("/status")

    def get_all_blocks(self) -> list[Block]:
        return self._block_list(self._get("/blocks"))

    def get_blocks(self, from_index: int) -> list[Block]:
        query = urlencode({"from_index": int(from_index)})
        return self._block_list(self._get(f"/blocks?{query}"))

    def get_last_block(self) -> Block:
        return self._parse_block(self._get("/blocks/last"))

    def send_block(self, block: Block) -> Block:
        """Post ``block``; return the confirmed block or raise the decoded rejection."""
        url = _join_url(self.host_url, "/blocks")
        status, body = _request_json(url, method="POST", payload=block.to_dict(), timeout=self.timeout)
        body = _expect_object(url, status, body)
        if 200 <= status < 300:
            return self._parse_block(body)
        if status == 400:
            raise decode_block_error(APIErrorAndReason.from_dict(body))
        raise NetworkError(f"HTTP {status} calling {url}: {body}")

    def list_peers(self) -> list[MemberEntry]:
        body = self._get("/peers")
        items = body.get("items", [])
        if not isinstance(items, list):
            raise NetworkError("Peer list response has no 'items' array")
        try:
            return [MemberEntry.from_dict(item) for item in items]
        except (AttributeError, ValueError) as exc:
            raise NetworkError(f"Malformed peer in response: {exc}") from exc

    def add_peer(self, peer: str) -> MemberEntry:
        """Register ``peer``. An already registered peer counts as success."""
        entry = MemberEntry(peer=peer)
        url = _join_url(self.host_url, "/peers")
        status, body = _request_json(url, method="POST", payload=entry.to_dict(), timeout=self.timeout)
        body = _expect_object(url, status, body)
        if status in (200, 201):
            return entry
        if status == 400:
            raise decode_entry_error(APIErrorAndReason.from_dict(body))
        raise NetworkError(f"HTTP {status} calling {url}: {body}")

    def _block_list(self, body: dict[str, Any]) -> list[Block]:
        items = body.get("items", [])
        if not isinstance(items, list):
            raise NetworkError("Block list response has no 'items' array")
        return [self._parse_block(item) for item in items]

    @staticmethod
    def _parse_block(raw: Any) -> Block:
        if not isinstance(raw, dict):
            raise NetworkError("Expected block object in response")
        try:
            return Block.from_dict(raw)
        except ValueError as exc:
            raise NetworkError(f"Malformed block in response: {exc}") from exc
