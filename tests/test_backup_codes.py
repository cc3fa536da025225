"""Tests for the single-use backup code ledger."""

from __future__ import annotations

from twofactor.security import backup_codes
from twofactor.security.backup_codes import consume, normalize_code

CODES = frozenset({"ABC123", "XYZ789", "QWERTY"})


def test_consume_removes_matched_code():
    result = consume(CODES, "ABC123")
    assert result.matched
    assert result.remaining == CODES - {"ABC123"}


def test_consume_is_case_insensitive():
    result = consume(CODES, "  xyz789 ")
    assert result.matched
    assert "XYZ789" not in result.remaining


def test_miss_leaves_codes_unchanged():
    result = consume(CODES, "NOPE00")
    assert not result.matched
    assert result.remaining == CODES


def test_second_consumption_of_same_code_fails():
    first = consume(CODES, "QWERTY")
    second = consume(first.remaining, "QWERTY")
    assert first.matched
    assert not second.matched
    assert second.remaining == first.remaining


def test_empty_ledger_looks_like_a_miss():
    empty = consume(frozenset(), "ABC123")
    miss = consume(CODES, "ZZZZZZ")
    assert (empty.matched, type(empty.remaining)) == (miss.matched, type(miss.remaining))
    assert empty.remaining == frozenset()


def test_blank_submission_never_matches():
    assert not consume(CODES, "").matched
    assert not consume(CODES, None).matched
    assert not consume({""}, "").matched


def test_accepts_plain_sets_and_lists():
    assert consume({"ABC123"}, "abc123").matched
    assert consume(["ABC123"], "ABC123").remaining == frozenset()


def test_normalize_code():
    assert normalize_code(" ab12cd ") == "AB12CD"
    assert normalize_code(None) == ""


def test_compares_equal_length_values_whatever_the_input(monkeypatch):
    seen = []
    real = backup_codes.hmac.compare_digest

    def recording(a, b):
        seen.append((len(a), len(b)))
        return real(a, b)

    monkeypatch.setattr(backup_codes.hmac, "compare_digest", recording)

    consume(CODES, "A")
    consume(CODES, "ABC123" * 10)

    assert len(seen) == 2 * len(CODES)
    assert all(a == b for a, b in seen)
