"""Tests for invoice2storage.user."""

from __future__ import annotations

import pytest

from invoice2storage.parser import ParsedEmail
from invoice2storage.user import extract_user


def _message(**headers: str) -> ParsedEmail:
    return ParsedEmail(headers=[(k.capitalize(), v) for k, v in headers.items()])


class TestPlusAddressing:
    @pytest.mark.parametrize(
        "to_addr, expected",
        [
            ("office+user1@example.com", "user1"),
            ("anything+tag@other.org", "tag"),
            ("Office <office+Jane@example.com>", "Jane"),
            ("office+user1@example.com, other@example.com", "user1"),
        ],
    )
    def test_tag_from_to(self, to_addr: str, expected: str):
        assert extract_user(_message(to=to_addr, **{"from": "x@elsewhere.net"})) == expected

    def test_tag_wins_over_domain_match(self):
        msg = _message(to="office+user1@example.com", **{"from": "boss@example.com"})
        assert extract_user(msg) == "user1"

    def test_two_plus_signs_fall_through(self):
        msg = _message(to="a+b+c@example.com", **{"from": "x@elsewhere.net"})
        assert extract_user(msg) is None


class TestDomainMatch:
    def test_same_domain_uses_sender(self):
        msg = _message(to="office@example.com", **{"from": "test@example.com"})
        assert extract_user(msg) == "test"

    def test_same_domain_strips_sender_tag(self):
        msg = _message(to="office@example.com", **{"from": "foo+user1@example.com"})
        assert extract_user(msg) == "foo"

    def test_different_domains(self):
        msg = _message(to="office@example.com", **{"from": "test@test.com"})
        assert extract_user(msg) is None

    def test_sender_tag_ignored_on_different_domains(self):
        msg = _message(to="office@example.com", **{"from": "test+user1@test.com"})
        assert extract_user(msg) is None


class TestMissingHeaders:
    def test_no_to(self):
        assert extract_user(_message(**{"from": "test@example.com"})) is None

    def test_no_from(self):
        assert extract_user(_message(to="office@example.com")) is None

    def test_empty_addresses(self):
        assert extract_user(_message(to="", **{"from": ""})) is None

    def test_header_lookup_is_case_insensitive(self):
        msg = ParsedEmail(headers=[("TO", "office+user1@example.com")])
        assert extract_user(msg) == "user1"
