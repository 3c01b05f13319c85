import pytest

from importers._similarity import levenshtein_distance, levenshtein_ratio, sequence_ratio


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("", "", 0),
        ("abc", "", 3),
        ("", "abcd", 4),
        ("kitten", "sitting", 3),
        ("henderson", "henderson", 0),
        ("flaw", "lawn", 2),
    ],
)
def test_levenshtein_distance(a, b, expected):
    assert levenshtein_distance(a, b) == expected


def test_levenshtein_ratio_is_case_insensitive():
    assert levenshtein_ratio("Henderson", "HENDERSON") == 1.0


def test_levenshtein_ratio_of_two_empty_strings_is_one():
    assert levenshtein_ratio("", "") == 1.0
    assert levenshtein_ratio(None, "") == 1.0


def test_levenshtein_ratio_scales_by_longest_string():
    # kitten -> sitting: 3 edits over 7 characters
    assert levenshtein_ratio("kitten", "sitting") == pytest.approx(4 / 7)


def test_ratios_stay_within_unit_interval():
    for a, b in [("main st", "reno virginia"), ("x", "completely different"), ("same", "same")]:
        assert 0.0 <= levenshtein_ratio(a, b) <= 1.0
        assert 0.0 <= sequence_ratio(a, b) <= 1.0
