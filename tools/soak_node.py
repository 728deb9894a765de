from __future__ import annotations

import argparse
import sys
import threading
import time
from dataclasses import replace
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from linkchain.chain import Chain, InvalidBlockError
from linkchain.client import APIClient, NetworkError
from linkchain.config import CONFIG, setup_logging
from linkchain.node import ChainNode


def _start_node(node: ChainNode) -> threading.Thread:
    thread = threading.Thread(target=node.serve_forever, name=f"node-{node.port}", daemon=True)
    thread.start()
    return thread


def _writer(client: APIClient, name: str, deadline: float, counters: dict[str, int], lock: threading.Lock) -> None:
    # Each writer races the others for the next index; losers see a rejection and retry.
    seq = 0
    while time.time() < deadline:
        try:
            last = client.get_last_block()
            client.send_block(last.generate_next(f"{name}-{seq}"))
            key = "accepted"
            seq += 1
        except InvalidBlockError:
            key = "rejected"
        except NetworkError:
            key = "network_errors"
        with lock:
            counters[key] = counters.get(key, 0) + 1


def run_soak(args: argparse.Namespace) -> int:
    setup_logging(CONFIG, level=args.log_level)
    node = ChainNode(replace(CONFIG, host="127.0.0.1", port=int(args.port)))
    thread = _start_node(node)
    client_count = max(1, int(args.clients))
    counters: dict[str, int] = {}
    counters_lock = threading.Lock()

    try:
        deadline = time.time() + float(args.duration_seconds)
        writers = [
            threading.Thread(
                target=_writer,
                args=(APIClient(node.node_url, timeout=4.0), f"w{i}", deadline, counters, counters_lock),
                name=f"writer-{i}",
                daemon=True,
            )
            for i in range(client_count)
        ]
        print(f"[soak] {client_count} writers against {node.node_url} for {args.duration_seconds}s", flush=True)
        for writer in writers:
            writer.start()
        for writer in writers:
            writer.join()

        blocks = APIClient(node.node_url).get_all_blocks()
        # Replaying the served blocks must reproduce the same chain.
        replayed = Chain.from_blocks(blocks)

        print("[soak] summary", flush=True)
        print(f"  accepted: {counters.get('accepted', 0)}", flush=True)
        print(f"  rejected: {counters.get('rejected', 0)}", flush=True)
        print(f"  network_errors: {counters.get('network_errors', 0)}", flush=True)
        print(f"  height: {replayed.height()}", flush=True)
        ok = replayed.height() == counters.get("accepted", 0) + 1
        print(f"  consistent: {ok}", flush=True)
        return 0 if ok else 1
    finally:
        node.shutdown()
        thread.join(timeout=2.0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hammer a local chain node with concurrent appends.")
    parser.add_argument("--port", type=int, default=0, help="Bind port (0 picks a free one)")
    parser.add_argument("--clients", type=int, default=4, help="Concurrent writer threads")
    parser.add_argument("--duration-seconds", type=float, default=10.0, help="Soak duration")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    exit_code = run_soak(args)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
