# tests/unit/test_location_range.py
from app.services.location_range import in_location_range, natural_key


def test_natural_key_orders_numeric_chunks_as_integers():
    locs = ["A-01-10", "B-01-1", "A-01-2", "a-02-1"]
    assert sorted(locs, key=natural_key) == ["A-01-2", "A-01-10", "a-02-1", "B-01-1"]


def test_range_is_inclusive_on_both_ends():
    assert in_location_range("A-01-2", "A-01-2", "A-02-1")
    assert in_location_range("A-02-1", "A-01-2", "A-02-1")
    assert in_location_range("A-01-10", "A-01-2", "A-02-1")
    assert not in_location_range("A-01-1", "A-01-2", "A-02-1")
    assert not in_location_range("B-01-1", "A-01-2", "A-02-1")


def test_open_ended_bounds():
    assert in_location_range("Z-99-9", "A-01-1", None)
    assert in_location_range("A-00-1", None, "A-01-1")
    assert in_location_range("anything", None, None)
    assert not in_location_range("", "A-01-1", None)
