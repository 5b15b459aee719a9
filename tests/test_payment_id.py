"""Ödeme kimliği normalizasyonu: her girdi kanonik pay_ + 22 alfanümerik formata çevrilir."""
import re

import pytest

from plantbid.services.payment_id import (
    generate_payment_id,
    is_canonical_payment_id,
    is_legacy_uuid,
    looks_like_merchant_order_number,
    normalize_payment_id,
)

CANONICAL = re.compile(r"^pay_[A-Za-z0-9]{22}$")

SAMPLES = [
    "",
    None,
    "   ",
    "pay_01HXABCDEF0123456789AB",
    "0196ae8c-5856-6faf-9053-88714a044a7d",
    "ORD-2024-0001",
    "ord_abc123",
    "pay_abc",
    "pay_" + "a" * 11 + "X" * 10 + "b" * 11,
    "pay_ab-cd_ef!gh",
    "한글주문번호",
    "🌱🌿",
    "plantbid-주문-42",
    "x" * 500,
    "pay_01HXABCDEF0123456789AB\n",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_always_canonical(raw):
    assert CANONICAL.fullmatch(normalize_payment_id(raw))


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_idempotent(raw):
    once = normalize_payment_id(raw)
    assert normalize_payment_id(once) == once


def test_canonical_is_unchanged():
    assert normalize_payment_id("pay_01HXABCDEF0123456789AB") == "pay_01HXABCDEF0123456789AB"


def test_uuid_reduction():
    raw = "0196ae8c-5856-6faf-9053-88714a044a7d"
    hexes = raw.replace("-", "")
    expected = "pay_" + hexes[:8] + hexes[8:14] + hexes[-8:]
    assert expected == "pay_0196ae8c58566f4a044a7d"
    assert normalize_payment_id(raw) == expected
    assert len(normalize_payment_id(raw)) == 26
    # Aynı UUID her seferinde aynı sonucu verir
    assert {normalize_payment_id(raw) for _ in range(5)} == {expected}


def test_prefixed_short_is_zero_padded():
    assert normalize_payment_id("pay_abc") == "pay_abc" + "0" * 19


def test_prefixed_long_keeps_head_and_tail():
    raw = "pay_" + "a" * 11 + "X" * 10 + "b" * 11
    assert normalize_payment_id(raw) == "pay_" + "a" * 11 + "b" * 11


def test_prefixed_with_symbols_is_filtered():
    assert normalize_payment_id("pay_ab-cd_ef!gh") == "pay_abcdefgh" + "0" * 14


def test_arbitrary_string_is_filtered_and_padded():
    assert normalize_payment_id("ORD-2024-0001") == "pay_ORD20240001" + "0" * 11


def test_arbitrary_long_string_keeps_head_and_tail():
    raw = "order_" + "1" * 20 + "_" + "2" * 20
    result = normalize_payment_id(raw)
    suffix = result[len("pay_"):]
    assert suffix == "order11111122222222222"


def test_unicode_only_falls_back_to_fresh_id():
    first = normalize_payment_id("한글주문번호")
    second = normalize_payment_id("한글주문번호")
    assert CANONICAL.fullmatch(first)
    assert CANONICAL.fullmatch(second)
    assert first != second


def test_empty_input_generates_unique_ids():
    assert normalize_payment_id("") != normalize_payment_id(None)


def test_generate_payment_id():
    ids = {generate_payment_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(CANONICAL.fullmatch(i) for i in ids)


def test_classifiers():
    assert is_canonical_payment_id("pay_01HXABCDEF0123456789AB")
    assert not is_canonical_payment_id("pay_01HXABCDEF0123456789AB\n")
    assert not is_canonical_payment_id("pay_short")
    assert is_legacy_uuid("0196ae8c-5856-6faf-9053-88714a044a7d")
    assert not is_legacy_uuid("0196ae8c58566faf905388714a044a7d")
    assert looks_like_merchant_order_number("ord_abc123")
    assert not looks_like_merchant_order_number("pay_01HXABCDEF0123456789AB")
    assert not looks_like_merchant_order_number("0196ae8c-5856-6faf-9053-88714a044a7d")
    assert not looks_like_merchant_order_number("")
