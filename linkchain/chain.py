from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Iterable

from .models import Block, genesis_block

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    # Rejections are values: same class and same payload compare equal.
    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class InvalidBlockError(ValidationError):
    pass


class NotCorrelatedError(InvalidBlockError):
    def __init__(self, given: int, expected: int) -> None:
        super().__init__(given, expected)
        self.given = given
        self.expected = expected

    def __str__(self) -> str:
        return f"block index {self.given} does not follow tail index {self.expected}"


class NotPosteriorError(InvalidBlockError):
    def __init__(self, given: int, expected: int) -> None:
        super().__init__(given, expected)
        self.given = given
        self.expected = expected

    def __str__(self) -> str:
        return f"block timestamp {self.given} is earlier than tail timestamp {self.expected}"


class HashNotMatchingError(InvalidBlockError):
    def __init__(self, given: str, expected: str) -> None:
        super().__init__(given, expected)
        self.given = given
        self.expected = expected

    def __str__(self) -> str:
        return f"previous_hash {self.given!r} does not match tail hash {self.expected!r}"


class GenesisBlockNotFoundError(InvalidBlockError):
    def __str__(self) -> str:
        return "chain has no genesis block"


class UnknownBlockError(InvalidBlockError):
    def __str__(self) -> str:
        return "unknown block rejection"


class Chain:
    def __init__(self, genesis_message: str = "Genesis block", genesis_timestamp: int | None = None) -> None:
        self.blocks: list[Block] = [genesis_block(genesis_message, timestamp=genesis_timestamp)]
        self.lock = threading.Lock()

    @classmethod
    def empty(cls) -> "Chain":
        chain = cls()
        chain.blocks = []
        return chain

    @classmethod
    def from_blocks(cls, blocks: Iterable[Block]) -> "Chain":
        """Rebuild a chain by replaying ``append`` over every block after the first.

        The first block is trusted as genesis. Raises the first
        ``InvalidBlockError`` met while replaying.
        """
        items = list(blocks)
        chain = cls.empty()
        if not items:
            return chain
        chain.blocks.append(replace(items[0]))
        for block in items[1:]:
            chain.append(block)
        return chain

    def __len__(self) -> int:
        with self.lock:
            return len(self.blocks)

    def height(self) -> int:
        return len(self)

    def append(self, block: Block) -> Block:
        stored = replace(block)
        try:
            with self.lock:
                self._validate_next_unlocked(stored)
                self.blocks.append(stored)
        except InvalidBlockError as exc:
            logger.warning("Rejected block %s: %s", block.index, exc)
            raise
        logger.info("Appended block %s", block.index)
        return replace(stored)

    def _validate_next_unlocked(self, block: Block) -> None:
        if not self.blocks:
            raise GenesisBlockNotFoundError()
        last = self.blocks[-1]
        if block.index != last.index + 1:
            raise NotCorrelatedError(block.index, last.index)
        # Equal timestamps are accepted.
        if block.timestamp < last.timestamp:
            raise NotPosteriorError(block.timestamp, last.timestamp)
        last_hash = last.hash()
        if block.previous_hash != last_hash:
            raise HashNotMatchingError(block.previous_hash, last_hash)

    def last_block(self) -> Block | None:
        with self.lock:
            last = self.blocks[-1] if self.blocks else None
        return replace(last) if last is not None else None

    def blocks_from(self, from_index: int = 0, limit: int | None = None) -> list[Block]:
        if from_index < 0:
            raise ValidationError("from_index must be >= 0")
        with self.lock:
            if from_index >= len(self.blocks):
                return []
            if limit is None or limit <= 0:
                rows = self.blocks[from_index:]
            else:
                rows = self.blocks[from_index : from_index + limit]
        # Stored blocks never leave the chain; readers get their own copies.
        return [replace(block) for block in rows]

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            tip = self.blocks[-1] if self.blocks else None
            return {
                "height": len(self.blocks),
                "tip_hash": tip.hash() if tip else None,
                "blocks": [block.to_dict() for block in self.blocks],
            }
