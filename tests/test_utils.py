from __future__ import annotations

from datetime import datetime

import pytest

from cramr.utils import isoformat, parse_datetime, to_naive_utc, with_id, without_id


def test_parse_datetime_normalises_to_naive_utc():
    assert parse_datetime("2024-03-10T18:30:00Z") == datetime(2024, 3, 10, 18, 30)
    assert parse_datetime("2024-03-10T11:30:00-07:00") == datetime(2024, 3, 10, 18, 30)
    assert parse_datetime("2024-03-10T18:30:00") == datetime(2024, 3, 10, 18, 30)
    assert parse_datetime("") is None
    assert parse_datetime(None) is None
    with pytest.raises(ValueError):
        parse_datetime("next tuesday")


def test_to_naive_utc_and_isoformat():
    assert to_naive_utc(None) is None
    naive = datetime(2024, 1, 1, 9, 0)
    assert to_naive_utc(naive) is naive
    assert isoformat(naive) == "2024-01-01T09:00:00"
    assert isoformat(None) is None


def test_id_list_helpers_return_new_lists():
    original = ["a", "b"]
    added = with_id(original, "c")
    assert added == ["a", "b", "c"]
    assert added is not original
    assert with_id(added, "a") == ["a", "b", "c"]
    assert without_id(["a", "b", "a"], "a") == ["b"]
    assert without_id(None, "a") == []
