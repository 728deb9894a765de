from __future__ import annotations

import unittest
from dataclasses import replace
from unittest import mock

from linkchain.models import (
    Block,
    canonical_json,
    genesis_block,
    message_as_json,
    now_ms,
    format_float,
    serialize_data,
)

VECTOR_GENESIS_HASH = "ffd175853d16c15f4a97051c906bdb60fafd2e67a6ed6e179a66cdc91876156f"
VECTOR_GENESIS_BYTES = (
    b'{"data":"{\\"message\\":\\"not important\\"}","index":0,"previous_hash":"","timestamp":"0"}'
)


def _vector_block() -> Block:
    return Block(index=0, previous_hash="", timestamp=0, data=message_as_json("not important"))


class BlockHashingTest(unittest.TestCase):
    def test_hash_matches_known_vector(self) -> None:
        block = _vector_block()
        self.assertEqual(block.hash_bytes(), VECTOR_GENESIS_BYTES)
        self.assertEqual(block.hash(), VECTOR_GENESIS_HASH)

    def test_hash_is_lowercase_hex_sha256(self) -> None:
        digest = _vector_block().hash()
        self.assertEqual(len(digest), 64)
        self.assertEqual(digest, digest.lower())
        int(digest, 16)

    def test_hash_is_deterministic(self) -> None:
        block = _vector_block()
        self.assertEqual(block.hash(), block.hash())
        self.assertEqual(block.hash(), _vector_block().hash())

    def test_each_field_changes_hash(self) -> None:
        base = Block(index=4, previous_hash="ab" * 32, timestamp=1_700_000_000_000, data={"message": "m"})
        variants = [
            replace(base, index=5),
            replace(base, previous_hash="cd" * 32),
            replace(base, timestamp=1_700_000_000_001),
            replace(base, data={"message": "n"}),
        ]
        hashes = {base.hash()} | {variant.hash() for variant in variants}
        self.assertEqual(len(hashes), 5)

    def test_timestamp_is_hashed_as_decimal_string(self) -> None:
        block = Block(index=1, previous_hash="x", timestamp=2**100, data={})
        self.assertIn(f'"timestamp":"{2**100}"', block.hash_bytes().decode("utf-8"))

    def test_payload_keeps_insertion_order(self) -> None:
        self.assertEqual(serialize_data({"b": 1, "a": 2}), '{"b":1,"a":2}')
        first = Block(index=1, previous_hash="", timestamp=0, data={"b": 1, "a": 2})
        second = Block(index=1, previous_hash="", timestamp=0, data={"a": 2, "b": 1})
        self.assertNotEqual(first.hash(), second.hash())

    def test_envelope_keys_are_sorted(self) -> None:
        self.assertEqual(canonical_json({"z": 1, "a": "é"}), '{"a":"é","z":1}')

    def test_equality_is_structural(self) -> None:
        self.assertEqual(_vector_block(), _vector_block())
        self.assertNotEqual(_vector_block(), replace(_vector_block(), index=1))
        self.assertNotEqual(_vector_block(), replace(_vector_block(), previous_hash="0" * 15))
        self.assertNotEqual(_vector_block(), replace(_vector_block(), timestamp=123456789))
        self.assertNotEqual(_vector_block(), replace(_vector_block(), data=message_as_json("other")))

    def test_generate_next_links_to_parent(self) -> None:
        genesis = _vector_block()
        nxt = genesis.generate_next("New data", timestamp=100)
        self.assertEqual(nxt.index, 1)
        self.assertEqual(nxt.previous_hash, genesis.hash())
        self.assertEqual(nxt.timestamp, 100)
        self.assertEqual(nxt.data, {"message": "New data"})

    def test_generate_next_defaults_to_wall_clock(self) -> None:
        with mock.patch("linkchain.models.time.time_ns", return_value=1_700_000_000_123_456_789):
            nxt = _vector_block().generate_next("later")
            self.assertEqual(now_ms(), 1_700_000_000_123)
        self.assertEqual(nxt.timestamp, 1_700_000_000_123)

    def test_genesis_block_shape(self) -> None:
        genesis = genesis_block("Genesis block sample", timestamp=42)
        self.assertEqual(genesis.index, 0)
        self.assertEqual(genesis.previous_hash, "")
        self.assertEqual(genesis.timestamp, 42)
        self.assertEqual(genesis.data, {"message": "Genesis block sample"})

    def test_block_owns_its_payload(self) -> None:
        payload = {"message": "m", "tags": ["a"]}
        block = Block(index=1, previous_hash="", timestamp=0, data=payload)
        before = block.hash()
        payload["message"] = "changed"
        payload["tags"].append("b")
        block.to_dict()["data"]["tags"].append("c")
        self.assertEqual(block.hash(), before)
        self.assertEqual(block.data, {"message": "m", "tags": ["a"]})

    def test_unhashable_payload_is_rejected(self) -> None:
        for payload in ({"m": "\ud800"}, {"\udfff": "x"}, {"n": float("nan")}, {"n": float("inf")}, {"s": {1, 2}}):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    Block(index=1, previous_hash="", timestamp=0, data=payload)

    def test_unhashable_previous_hash_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Block(index=1, previous_hash="\ud800", timestamp=0, data={})


class FloatRenderingTest(unittest.TestCase):
    def test_matches_serde_json_layout(self) -> None:
        cases = [
            (0.0, "0.0"),
            (-0.0, "-0.0"),
            (1.0, "1.0"),
            (2.5, "2.5"),
            (0.1, "0.1"),
            (-123.45, "-123.45"),
            (1e15, "1000000000000000.0"),
            (1e16, "1e16"),
            (1.5e16, "1.5e16"),
            (1e-5, "0.00001"),
            (1.25e-5, "0.0000125"),
            (1e-6, "1e-6"),
            (1.5e-7, "1.5e-7"),
            (-2.5e-300, "-2.5e-300"),
            (1.7976931348623157e308, "1.7976931348623157e308"),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(format_float(value), expected)

    def test_payload_floats_use_serde_layout(self) -> None:
        self.assertEqual(
            serialize_data({"big": 1e16, "small": [1.5e-7, True, None], "n": 3}),
            '{"big":1e16,"small":[1.5e-7,true,null],"n":3}',
        )

    def test_non_finite_is_rejected(self) -> None:
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    format_float(value)



class BlockWireFormatTest(unittest.TestCase):
    def test_to_dict_and_back(self) -> None:
        block = Block(index=3, previous_hash="ff" * 32, timestamp=99, data={"message": "x", "n": [1, 2]})
        raw = block.to_dict()
        self.assertEqual(set(raw), {"index", "previous_hash", "timestamp", "data"})
        self.assertEqual(Block.from_dict(raw), block)

    def test_from_dict_rejects_missing_field(self) -> None:
        with self.assertRaises(ValueError):
            Block.from_dict({"index": 1, "previous_hash": "", "timestamp": 0})

    def test_from_dict_rejects_bad_types(self) -> None:
        good = {"index": 1, "previous_hash": "", "timestamp": 0, "data": {}}
        for key, bad in [
            ("index", "1"),
            ("index", True),
            ("index", -1),
            ("index", 2**64),
            ("timestamp", 1.5),
            ("timestamp", 2**128),
            ("previous_hash", 7),
            ("data", ["not", "an", "object"]),
            ("data", {"message": "\ud800"}),
        ]:
            with self.subTest(key=key, value=bad):
                with self.assertRaises(ValueError):
                    Block.from_dict({**good, key: bad})

    def test_from_dict_accepts_range_limits(self) -> None:
        block = Block.from_dict({"index": 2**64 - 1, "previous_hash": "", "timestamp": 2**128 - 1, "data": {}})
        self.assertEqual(block.index, 2**64 - 1)
        self.assertEqual(block.timestamp, 2**128 - 1)


if __name__ == "__main__":
    unittest.main()
