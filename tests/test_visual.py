import pytest

from accountmap.encode.visual import (
    bounds,
    circle_style,
    color_from_revenue,
    id_hash,
    parse_revenue,
    radius_from_revenue,
    revenue_label,
)
from accountmap.storage.models import Coordinate


@pytest.mark.parametrize(
    ("account_id", "expected"),
    [
        ("", "hsl(0, 70%, 50%)"),
        ("a", "hsl(97, 70%, 50%)"),
        ("ab", "hsl(225, 70%, 50%)"),
        ("00000000-0000-0000-0000-000000000001", "hsl(201, 70%, 50%)"),
        ("3f2504e0-4f89-11d3-9a0c-0305e82c3301", "hsl(35, 70%, 50%)"),
        ("Contoso Ltd", "hsl(299, 70%, 50%)"),
        ("é😀", "hsl(252, 70%, 50%)"),
    ],
)
def test_color_matches_reference_hash(account_id, expected):
    assert color_from_revenue(account_id) == expected


def test_hash_does_not_wrap_arithmetic():
    assert id_hash("00000000-0000-0000-0000-000000000001") == 10018902081
    assert id_hash("Contoso Ltd") == -2594191979
    assert id_hash("zzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzz") == 1577242880


def test_color_is_stable():
    first = color_from_revenue("acc-42")
    assert all(color_from_revenue("acc-42") == first for _ in range(5))


def test_radius_clamps_large_revenue_at_low_zoom():
    assert radius_from_revenue(parse_revenue("15000000"), 3) == 100000


@pytest.mark.parametrize(
    ("revenue", "zoom", "expected"),
    [
        (0, 5, 12000),
        (2_000_000, 4, 27000),
        (2_000_000, 5, 12000),
        (50_000_000, 8, 37500),
        (50_000_000, 20, 750),
        (500_000, 2, 8250),
    ],
)
def test_radius_formula(revenue, zoom, expected):
    assert radius_from_revenue(revenue, zoom) == pytest.approx(expected)


def test_radius_bounded_for_all_inputs():
    for revenue in (0, 1, 999_999, 5_000_000, 10_000_000, 10**9, 10**12):
        for zoom in range(1, 21):
            radius = radius_from_revenue(revenue, zoom)
            assert 0 <= radius <= 100000


@pytest.mark.parametrize("revenue", [1_000_000, 5_000_000, 10_000_000, 75_000_000, 10**10])
def test_radius_does_not_grow_when_zooming_in(revenue):
    radii = [radius_from_revenue(revenue, zoom) for zoom in range(1, 14)]
    assert all(later <= earlier for earlier, later in zip(radii, radii[1:]))


@pytest.mark.parametrize("revenue", [0, 100_000, 800_000])
def test_radius_monotonic_within_zoom_bands_for_small_revenue(revenue):
    low = [radius_from_revenue(revenue, zoom) for zoom in range(1, 5)]
    high = [radius_from_revenue(revenue, zoom) for zoom in range(5, 14)]
    for band in (low, high):
        assert all(later <= earlier for earlier, later in zip(band, band[1:]))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 0.0),
        ("", 0.0),
        (0, 0.0),
        ("15000000", 15_000_000.0),
        (2500.5, 2500.5),
        ("12abc", 12.0),
        ("  3.5e2x", 350.0),
        ("-40", 0.0),
        ("Infinity", 0.0),
        ("n/a", 0.0),
        (float("nan"), 0.0),
    ],
)
def test_parse_revenue(raw, expected):
    assert parse_revenue(raw) == expected


def test_circle_style_uses_account_colour():
    style = circle_style("ab")
    assert style["color"] == style["fill_color"] == "hsl(225, 70%, 50%)"
    assert style["fill_opacity"] == 0.6
    assert style["weight"] == 2


def test_revenue_label():
    assert revenue_label(0) is None
    assert revenue_label(1_234_567) == "Revenue: $1.2M"


def test_bounds():
    assert bounds([]) is None
    box = bounds([Coordinate(lat=40.7, lng=-74.0), Coordinate(lat=39.8, lng=-89.6)])
    assert box == [[39.8, -89.6], [40.7, -74.0]]
