import math

import pytest

from fridgemind.core.quantity import parse_quantity, round_display


@pytest.mark.parametrize("value,expected", [
    (2, 2.0),
    (1.5, 1.5),
    ("3", 3.0),
    ("2 cups", 2.0),
    ("1.5kg", 1.5),
    (" .5", 0.5),
    ("1/2", 1.0),
    ("a pinch", None),
    ("", None),
    (None, None),
    (True, None),
    (-2, None),
    ("-1", None),
    (math.inf, None),
    (float("nan"), None),
])
def test_parse_quantity(value, expected):
    assert parse_quantity(value) == expected


@pytest.mark.parametrize("value,expected", [
    (2.25, 2.3),
    (2.24, 2.2),
    (0.05, 0.1),
    (3.0, 3.0),
    (1 / 3, 0.3),
])
def test_round_display_half_up(value, expected):
    assert round_display(value) == expected


def test_round_display_does_not_drift():
    # 0.1 ten times is 0.9999999999999999 as a float
    total = sum([0.1] * 10)
    assert round_display(total) == 1.0
