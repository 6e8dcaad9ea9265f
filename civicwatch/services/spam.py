# civicwatch/services/spam.py
"""
Heuristic spam check applied to incident titles and descriptions.

A text is spam when any of these hold:
  - shorter than MIN_LENGTH characters,
  - longer than RATIO_MIN_LENGTH characters with a vowel ratio below MIN_VOWEL_RATIO
    (keyboard-mash such as "xkcbldf"),
  - contains a run of MAX_RUN or more identical consecutive characters.
"""
from typing import Optional

VOWELS = frozenset("aeiouAEIOU")

MIN_LENGTH = 3
RATIO_MIN_LENGTH = 5
MIN_VOWEL_RATIO = 0.10
MAX_RUN = 5


def vowel_ratio(text: str) -> float:
    if not text:
        return 0.0
    return sum(1 for ch in text if ch in VOWELS) / len(text)


def longest_run(text: str) -> int:
    best = run = 0
    prev = None
    for ch in text:
        run = run + 1 if ch == prev else 1
        prev = ch
        best = max(best, run)
    return best


def is_spam(text: Optional[str]) -> bool:
    # surrounding whitespace is not counted; the stripped value is what gets measured
    value = (text or "").strip()
    if len(value) < MIN_LENGTH:
        return True
    if len(value) > RATIO_MIN_LENGTH and vowel_ratio(value) < MIN_VOWEL_RATIO:
        return True
    return longest_run(value) >= MAX_RUN
