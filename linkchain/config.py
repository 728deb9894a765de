from __future__ import annotations

import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class NodeConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    # Payload message of the genesis block: {"message": genesis_message}.
    genesis_message: str = "Genesis block"
    request_timeout: float = 4.0
    max_request_body_bytes: int = 256_000
    # 0 disables the cap on GET /blocks.
    max_listing_items: int = 0
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @classmethod
    def from_env(cls) -> "NodeConfig":
        defaults = cls()
        return cls(
            host=os.getenv("LINKCHAIN_HOST", defaults.host),
            port=int(os.getenv("LINKCHAIN_PORT", str(defaults.port))),
            genesis_message=os.getenv("LINKCHAIN_GENESIS_MESSAGE", defaults.genesis_message),
            request_timeout=float(os.getenv("LINKCHAIN_REQUEST_TIMEOUT", str(defaults.request_timeout))),
            max_request_body_bytes=int(
                os.getenv("LINKCHAIN_MAX_REQUEST_BODY_BYTES", str(defaults.max_request_body_bytes))
            ),
            max_listing_items=int(os.getenv("LINKCHAIN_MAX_LISTING_ITEMS", str(defaults.max_listing_items))),
            log_level=os.getenv("LINKCHAIN_LOG_LEVEL", defaults.log_level),
            log_format=os.getenv("LINKCHAIN_LOG_FORMAT", defaults.log_format),
        )


CONFIG = NodeConfig()


def setup_logging(config: NodeConfig | None = None, level: str | None = None) -> None:
    cfg = config or CONFIG
    level_name = (level or cfg.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=cfg.log_format,
        force=True,
    )
