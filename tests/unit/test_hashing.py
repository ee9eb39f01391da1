"""Canonical JSON and payload hashing."""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from payroll_kernel.domain.values import SettlementKind
from payroll_kernel.utils.hashing import canonicalize_json, hash_payload


class TestCanonicalJson:
    def test_keys_sorted_without_whitespace(self):
        assert canonicalize_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_decimal_normalized(self):
        assert canonicalize_json({"x": Decimal("12000.00")}) == '{"x":"12000"}'
        assert canonicalize_json({"x": Decimal("0.50")}) == '{"x":"0.5"}'

    def test_known_types(self):
        payload = {
            "d": date(2024, 1, 31),
            "k": SettlementKind.BONUS,
            "u": UUID("00000000-0000-0000-0000-000000000001"),
        }
        assert canonicalize_json(payload) == (
            '{"d":"2024-01-31","k":"bonus","u":"00000000-0000-0000-0000-000000000001"}'
        )

    def test_unknown_type_raises(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})


class TestHashPayload:
    def test_stable_across_key_order(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_differs_on_content(self):
        assert hash_payload({"a": 1}) != hash_payload({"a": 2})
