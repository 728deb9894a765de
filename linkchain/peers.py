from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from .chain import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberEntry:
    peer: str

    def to_dict(self) -> dict[str, Any]:
        return {"peer": self.peer}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemberEntry":
        peer = data.get("peer")
        if not isinstance(peer, str):
            raise ValueError("Field 'peer' must be a string")
        return cls(peer=peer)


class EntryRejectedError(ValidationError):
    pass


class InvalidURLError(EntryRejectedError):
    def __init__(self, url: str) -> None:
        super().__init__(url)
        self.url = url

    def __str__(self) -> str:
        return f"not an absolute URL: {self.url!r}"


class AlreadyPresentError(EntryRejectedError):
    def __init__(self, entry: MemberEntry) -> None:
        super().__init__(entry)
        self.entry = entry

    def __str__(self) -> str:
        return f"peer already registered: {self.entry.peer}"


class UnknownEntryError(EntryRejectedError):
    def __str__(self) -> str:
        return "unknown entry rejection"


def is_absolute_url(raw: str) -> bool:
    if not raw or raw != raw.strip() or any(ch.isspace() for ch in raw):
        return False
    try:
        parsed = urlparse(raw)
        # .port raises ValueError on a non-numeric or out-of-range port.
        parsed.port
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc and parsed.hostname)


class PeerRegistry:
    def __init__(self) -> None:
        self._members: list[MemberEntry] = []
        self.lock = threading.Lock()

    def __len__(self) -> int:
        with self.lock:
            return len(self._members)

    def __contains__(self, item: object) -> bool:
        peer = item.peer if isinstance(item, MemberEntry) else item
        with self.lock:
            return any(member.peer == peer for member in self._members)

    def members(self) -> list[MemberEntry]:
        with self.lock:
            return list(self._members)

    def append(self, entry: MemberEntry) -> MemberEntry:
        if not is_absolute_url(entry.peer):
            raise InvalidURLError(entry.peer)
        with self.lock:
            for member in self._members:
                if member.peer == entry.peer:
                    raise AlreadyPresentError(member)
            self._members.append(entry)
        logger.info("Registered peer %s", entry.peer)
        return entry
