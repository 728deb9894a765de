from __future__ import annotations

import argparse
import json
from dataclasses import replace

from linkchain.chain import InvalidBlockError, ValidationError
from linkchain.client import APIClient, NetworkError
from linkchain.config import NodeConfig, setup_logging
from linkchain.errors import encode_block_error, encode_entry_error
from linkchain.node import ChainNode
from linkchain.peers import EntryRejectedError, MemberEntry


def _client(args: argparse.Namespace) -> APIClient:
    return APIClient(args.node, timeout=args.timeout)


def cmd_node_run(args: argparse.Namespace) -> None:
    config = replace(
        NodeConfig.from_env(),
        host=args.host,
        port=args.port,
        genesis_message=args.genesis_message,
        max_request_body_bytes=args.max_request_body_bytes,
        max_listing_items=args.max_listing_items,
    )
    node = ChainNode(config)
    for peer in args.peer or []:
        status, body = node.add_peer(MemberEntry(peer=peer))
        if status >= 400:
            raise ValidationError(f"Rejected --peer {peer}: {body['reason']}")
    genesis = node.chain.last_block()
    print(
        json.dumps(
            {
                "node": node.node_url,
                "genesis_hash": genesis.hash() if genesis else None,
                "peers": [entry.peer for entry in node.peers.members()],
            },
            indent=2,
        )
    )
    print("Node running. Press Ctrl+C to stop.")

    try:
        node.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        node.shutdown()


def cmd_node_status(args: argparse.Namespace) -> None:
    print(json.dumps(_client(args).status(), indent=2))


def cmd_blocks(args: argparse.Namespace) -> None:
    blocks = _client(args).get_blocks(args.from_index)
    rows = [{**block.to_dict(), "hash": block.hash()} for block in blocks]
    print(json.dumps(rows, indent=2))


def cmd_last_block(args: argparse.Namespace) -> None:
    block = _client(args).get_last_block()
    print(json.dumps({**block.to_dict(), "hash": block.hash()}, indent=2))


def cmd_send(args: argparse.Namespace) -> None:
    client = _client(args)
    last = client.get_last_block()
    try:
        candidate = last.generate_next(args.message)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    try:
        confirmed = client.send_block(candidate)
    except InvalidBlockError as exc:
        rejection = encode_block_error(exc)
        print(json.dumps({"ok": False, **rejection.to_dict()}, indent=2))
        raise SystemExit(1) from exc
    print(json.dumps({"ok": True, "block": confirmed.to_dict(), "hash": confirmed.hash()}, indent=2))


def cmd_peers(args: argparse.Namespace) -> None:
    print(json.dumps([entry.peer for entry in _client(args).list_peers()], indent=2))


def cmd_add_peer(args: argparse.Namespace) -> None:
    try:
        entry = _client(args).add_peer(args.peer)
    except EntryRejectedError as exc:
        rejection = encode_entry_error(exc)
        print(json.dumps({"ok": False, **rejection.to_dict()}, indent=2))
        raise SystemExit(1) from exc
    print(json.dumps({"ok": True, "peer": entry.peer}, indent=2))


def _add_node_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--node", default="http://127.0.0.1:8080", help="Node URL")
    parser.add_argument("--timeout", type=float, default=4.0, help="Request timeout in seconds")


def build_parser() -> argparse.ArgumentParser:
    defaults = NodeConfig()
    parser = argparse.ArgumentParser(
        prog="linkchain",
        description="In-memory hash-linked chain node and client.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: config/env)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    node_run = subparsers.add_parser("node-run", help="Run a chain node")
    node_run.add_argument("--host", default=defaults.host, help="Bind host")
    node_run.add_argument("--port", type=int, default=defaults.port, help="Bind port")
    node_run.add_argument("--genesis-message", default=defaults.genesis_message, help="Genesis block message")
    node_run.add_argument("--peer", action="append", help="Peer URL to register at startup (repeatable)")
    node_run.add_argument(
        "--max-request-body-bytes",
        type=int,
        default=defaults.max_request_body_bytes,
        help="Largest accepted request body",
    )
    node_run.add_argument(
        "--max-listing-items",
        type=int,
        default=defaults.max_listing_items,
        help="Cap on blocks returned by GET /blocks (0 = no cap)",
    )
    node_run.set_defaults(func=cmd_node_run)

    node_status = subparsers.add_parser("node-status", help="Show node status")
    _add_node_args(node_status)
    node_status.set_defaults(func=cmd_node_status)

    blocks = subparsers.add_parser("blocks", help="List blocks from an index")
    _add_node_args(blocks)
    blocks.add_argument("--from-index", type=int, default=0, help="First block index to list")
    blocks.set_defaults(func=cmd_blocks)

    last_block = subparsers.add_parser("last-block", help="Show the tail block")
    _add_node_args(last_block)
    last_block.set_defaults(func=cmd_last_block)

    send = subparsers.add_parser("send", help="Append a message block after the node's tail")
    _add_node_args(send)
    send.add_argument("--message", required=True, help="Message stored in the block data")
    send.set_defaults(func=cmd_send)

    peers = subparsers.add_parser("peers", help="List registered peers")
    _add_node_args(peers)
    peers.set_defaults(func=cmd_peers)

    add_peer = subparsers.add_parser("add-peer", help="Register a peer URL on a node")
    _add_node_args(add_peer)
    add_peer.add_argument("--peer", required=True, help="Peer URL (e.g. http://127.0.0.1:8081)")
    add_peer.set_defaults(func=cmd_add_peer)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(NodeConfig.from_env(), level=args.log_level)

    try:
        args.func(args)
    except ValidationError as exc:
        print(f"Validation error: {exc}")
        raise SystemExit(1) from exc
    except NetworkError as exc:
        print(f"Network error: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
