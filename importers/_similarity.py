"""
_similarity.py
--------------
String similarity strategies used by the location resolver.

Every strategy takes two strings and returns a ratio in [0, 1]; the resolver
receives one as a plain callable so the algorithm can be swapped without
touching the match stages.
"""

from difflib import SequenceMatcher


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def levenshtein_ratio(a: str, b: str) -> float:
    """(longest - distance) / longest over lowercase strings."""
    a = (a or "").lower()
    b = (b or "").lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def sequence_ratio(a: str, b: str) -> float:
    """difflib ratio, kept as an alternative strategy."""
    return SequenceMatcher(None, (a or "").lower(), (b or "").lower()).ratio()
