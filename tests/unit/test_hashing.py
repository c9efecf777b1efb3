from __future__ import annotations

from decimal import Decimal

import pytest

from offlinepay.store.hashing import canonical_amount, derive_transfer_id, integrity_hash


def _hash(**overrides) -> str:
    fields = {
        "sender_id": "user-s",
        "receiver_id": "user-r",
        "amount": Decimal("100"),
        "created_at_ms": 1714560000000,
        "device_id": "device-1",
    }
    fields.update(overrides)
    return integrity_hash(**fields)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("100"), "100"),
        (Decimal("100.00"), "100"),
        (100, "100"),
        ("25.50", "25.5"),
        (Decimal("1E+2"), "100"),
        (Decimal("0.05"), "0.05"),
    ],
)
def test_canonical_amount(amount, expected) -> None:
    assert canonical_amount(amount) == expected


def test_integrity_hash_is_deterministic_sha256() -> None:
    first = _hash()
    assert first == _hash()
    assert len(first) == 64
    int(first, 16)


def test_integrity_hash_ignores_amount_formatting() -> None:
    assert _hash(amount=Decimal("100.00")) == _hash(amount=Decimal("100"))


@pytest.mark.parametrize(
    "overrides",
    [
        {"sender_id": "user-x"},
        {"receiver_id": "user-x"},
        {"amount": Decimal("100.01")},
        {"created_at_ms": 1714560000001},
        {"device_id": "device-2"},
    ],
)
def test_integrity_hash_changes_with_each_defining_field(overrides) -> None:
    assert _hash(**overrides) != _hash()


def test_derive_transfer_id_uses_timestamp_and_hash_prefix() -> None:
    digest = _hash()
    assert derive_transfer_id(1714560000000, digest) == f"tx-1714560000000-{digest[:8]}"


def test_canonical_amount_is_exact_beyond_context_precision() -> None:
    assert canonical_amount(Decimal("1e30")) == "1" + "0" * 30
    precise = "1234567890123456789012345678901.25"
    assert canonical_amount(Decimal(precise)) == precise
    assert canonical_amount(Decimal("1234567890123456789012345678901.50")) == (
        "1234567890123456789012345678901.5"
    )
