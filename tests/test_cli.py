from __future__ import annotations

import io
import json
import unittest
from contextlib import redirect_stdout
from unittest import mock

import linkchain_cli
from linkchain.chain import NotCorrelatedError
from linkchain.client import NetworkError
from linkchain.models import Block, message_as_json
from linkchain.peers import MemberEntry

GENESIS = Block(index=0, previous_hash="", timestamp=1_000, data=message_as_json("Genesis block"))


class CliTest(unittest.TestCase):
    def _run(self, argv: list[str]) -> tuple[int, str]:
        out = io.StringIO()
        code = 0
        with mock.patch("linkchain_cli.setup_logging"), redirect_stdout(out):
            try:
                linkchain_cli.main(argv)
            except SystemExit as exc:
                code = int(exc.code or 0)
        return code, out.getvalue()

    def test_parser_requires_command(self) -> None:
        with self.assertRaises(SystemExit):
            linkchain_cli.build_parser().parse_args([])

    def test_blocks_prints_hashes(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client_cls.return_value.get_blocks.return_value = [GENESIS]
            code, output = self._run(["blocks", "--node", "http://n:1", "--from-index", "0"])
        self.assertEqual(code, 0)
        client_cls.assert_called_once_with("http://n:1", timeout=4.0)
        rows = json.loads(output)
        self.assertEqual(rows[0]["hash"], GENESIS.hash())

    def test_send_builds_next_block(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client = client_cls.return_value
            client.get_last_block.return_value = GENESIS
            client.send_block.side_effect = lambda block: block
            code, output = self._run(["send", "--message", "hello"])
        self.assertEqual(code, 0)
        sent = client.send_block.call_args.args[0]
        self.assertEqual(sent.index, 1)
        self.assertEqual(sent.previous_hash, GENESIS.hash())
        self.assertEqual(sent.data, {"message": "hello"})
        self.assertTrue(json.loads(output)["ok"])

    def test_send_unencodable_message_is_a_validation_error(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client = client_cls.return_value
            client.get_last_block.return_value = GENESIS
            code, output = self._run(["send", "--message", "bad \udcff byte"])
        self.assertEqual(code, 1)
        self.assertTrue(output.startswith("Validation error:"))
        client.send_block.assert_not_called()

    def test_send_rejection_prints_wire_pair(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client = client_cls.return_value
            client.get_last_block.return_value = GENESIS
            client.send_block.side_effect = NotCorrelatedError(1, 4)
            code, output = self._run(["send", "--message", "late"])
        self.assertEqual(code, 1)
        body = json.loads(output)
        self.assertEqual(body["error"], "New block index is not correlative")
        self.assertEqual(body["reason"], "expected index 4 but received 1 which is not inmediate next")

    def test_add_peer(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client_cls.return_value.add_peer.return_value = MemberEntry("http://p:2")
            code, output = self._run(["add-peer", "--peer", "http://p:2"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output), {"ok": True, "peer": "http://p:2"})

    def test_network_error_exits_nonzero(self) -> None:
        with mock.patch("linkchain_cli.APIClient") as client_cls:
            client_cls.return_value.status.side_effect = NetworkError("Timeout calling http://n:1/status")
            code, output = self._run(["node-status", "--node", "http://n:1"])
        self.assertEqual(code, 1)
        self.assertIn("Network error", output)


if __name__ == "__main__":
    unittest.main()
