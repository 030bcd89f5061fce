"""
Unit tests for identifier allocation.
"""

import uuid

from docblob.ids import max_id, mint_uid, next_id, parse_id


class TestParseId:
    def test_decimal_strings(self):
        assert parse_id("42") == 42
        assert parse_id(" 7 ") == 7

    def test_integers(self):
        assert parse_id(5) == 5

    def test_non_numeric_is_zero(self):
        assert parse_id("abc") == 0
        assert parse_id("3.5") == 0
        assert parse_id(None) == 0
        assert parse_id(True) == 0
        assert parse_id({"id": 3}) == 0

    def test_only_plain_ascii_decimals(self):
        assert parse_id("1_000") == 0
        assert parse_id("+5") == 0
        assert parse_id("\u0663") == 0
        assert parse_id("-4") == -4


class TestNextId:
    def test_empty_collection(self):
        assert next_id([]) == "1"

    def test_max_plus_one(self):
        records = [{"id": "3"}, {"id": "10"}, {"id": "2"}]
        assert next_id(records) == "11"

    def test_gaps_are_not_filled(self):
        """Deleting the highest record does not matter; deleting others leaves gaps."""
        assert next_id([{"id": "1"}, {"id": "5"}]) == "6"

    def test_garbage_ids_ignored(self):
        records = [{"id": "x"}, {"name": "no id"}, {"id": "-4"}]
        assert next_id(records) == "1"

    def test_max_id_floor(self):
        assert max_id([{"id": "-9"}]) == 0


class TestMintUid:
    def test_uuid4_format(self):
        uid = mint_uid()
        assert uuid.UUID(uid).version == 4

    def test_unique(self):
        uids = {mint_uid() for _ in range(1000)}
        assert len(uids) == 1000

    def test_never_looks_like_an_id(self):
        """uids and ids come from disjoint formats."""
        assert not mint_uid().isdigit()
