"""Unit tests for party codes and join links."""

import random
import re

import pytest

from songclash.party.codes import (
    PartyCodeGenerator,
    parse_join_code,
    share_link,
    synthesize_member_id,
)


class TestPartyCodeGenerator:
    """Test code generation."""

    def test_default_format(self):
        generator = PartyCodeGenerator()
        for _ in range(50):
            code = generator.generate()
            assert re.fullmatch(r"[1-9]{6}", code)
            assert generator.is_valid(code)

    def test_custom_alphabet_and_length(self):
        generator = PartyCodeGenerator(length=8, alphabet="ABCDEF")
        code = generator.generate()
        assert len(code) == 8
        assert set(code) <= set("ABCDEF")

    def test_seeded_rng_is_deterministic(self):
        a = PartyCodeGenerator(rng=random.Random(7)).generate()
        b = PartyCodeGenerator(rng=random.Random(7)).generate()
        assert a == b

    def test_from_config(self):
        generator = PartyCodeGenerator.from_config({"code_length": 4, "code_alphabet": "xy"})
        assert generator.length == 4
        assert generator.alphabet == "xy"

    def test_rejects_bad_settings(self):
        with pytest.raises(ValueError):
            PartyCodeGenerator(length=0)
        with pytest.raises(ValueError):
            PartyCodeGenerator(alphabet="aaaa")

    def test_is_valid_rejects_wrong_codes(self):
        generator = PartyCodeGenerator()
        assert not generator.is_valid("12345")
        assert not generator.is_valid("12345A")
        assert not generator.is_valid("012345")


class TestJoinLinks:
    """Test share links and join-code parsing."""

    def test_share_link(self):
        assert share_link("https://songclash.app/", "123456") == "https://songclash.app/?join=123456"

    def test_parse_link(self):
        assert parse_join_code("https://songclash.app/?join=654321") == "654321"

    def test_parse_link_with_other_params(self):
        assert parse_join_code("https://songclash.app/?utm=x&join=777777#top") == "777777"

    def test_parse_bare_code(self):
        assert parse_join_code("  123456 ") == "123456"

    def test_parse_link_without_join(self):
        assert parse_join_code("https://songclash.app/?utm=x") is None

    def test_parse_empty(self):
        assert parse_join_code("   ") is None

    def test_round_trip(self):
        assert parse_join_code(share_link("https://songclash.app", "ab-9_")) == "ab-9_"


def test_synthesized_member_id():
    member_id = synthesize_member_id()
    assert re.fullmatch(r"user_[a-z0-9]{9}", member_id)
    assert synthesize_member_id() != member_id
