from __future__ import annotations

import pytest

from proxygeo.core.errors import SizeGuardError
from proxygeo.services.sync.upsert import chunked, dedupe_last, ensure_plausible_size


def test_chunked_yields_offsets_and_tail() -> None:
    chunks = list(chunked(list(range(7)), 3))
    assert chunks == [(0, [0, 1, 2]), (3, [3, 4, 5]), (6, [6])]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_dedupe_last_keeps_latest_value_in_first_seen_order() -> None:
    rows = [
        {"k": "a", "v": 1},
        {"k": "b", "v": 2},
        {"k": "a", "v": 3},
    ]
    assert dedupe_last(rows, lambda row: row["k"]) == [{"k": "a", "v": 3}, {"k": "b", "v": 2}]


def test_size_guard_raises_below_minimum() -> None:
    ensure_plausible_size("mobile", 1000, 1000)
    with pytest.raises(SizeGuardError) as excinfo:
        ensure_plausible_size("mobile", 999, 1000)
    assert excinfo.value.domain == "mobile"
    assert excinfo.value.count == 999
    assert excinfo.value.minimum == 1000
