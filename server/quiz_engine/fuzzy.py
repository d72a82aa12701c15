"""
Fuzzy answer matching for Arabic and Latin text.

Pure functions only: no state, no I/O.
"""
import re


_LETTER_VARIANTS = str.maketrans({
    "أ": "ا",
    "إ": "ا",
    "آ": "ا",
    "ة": "ه",
    "ى": "ي",
})
_DIACRITICS = re.compile(r"[\u064B-\u065F\u0670]")
_WHITESPACE = re.compile(r"\s+")

# Words shorter than this are ignored by word-level matching
MIN_WORD_LENGTH = 3
# Only strings longer than this are compared by edit distance
MIN_FUZZY_LENGTH = 5
FUZZY_RATIO = 0.25


def normalize(text: str) -> str:
    """Fold letter variants, strip diacritics, collapse whitespace, lowercase."""
    if not text:
        return ""
    text = text.translate(_LETTER_VARIANTS)
    text = _DIACRITICS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text.lower()


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute)."""
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
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def _contains(a: str, b: str) -> bool:
    """Either string contains the other."""
    return a in b or b in a


def _significant_words(text: str) -> list[str]:
    return [word for word in text.split(" ") if len(word) >= MIN_WORD_LENGTH]


def _within_edit_threshold(a: str, b: str) -> bool:
    threshold = max(1, int(max(len(a), len(b)) * FUZZY_RATIO))
    return levenshtein(a, b) <= threshold


def _matches_candidate(guess: str, candidate: str) -> bool:
    """Exact, containment and word-level checks against one normalized candidate."""
    if not candidate:
        return False
    if _contains(guess, candidate):
        return True
    return any(_contains(guess, word) for word in _significant_words(candidate))


def _fuzzy_candidate(guess: str, candidate: str) -> bool:
    """Edit-distance check against the whole candidate and its long words."""
    if len(candidate) >= MIN_FUZZY_LENGTH and _within_edit_threshold(guess, candidate):
        return True
    return any(
        _within_edit_threshold(guess, word)
        for word in _significant_words(candidate)
        if len(word) >= MIN_FUZZY_LENGTH
    )


def matches_answer(guess: str, answer: str, alternates: list[str] | tuple[str, ...] = ()) -> bool:
    """
    Decide whether a typed guess counts as the answer.

    Checks, in order: exact match, containment either way, word-level
    matches against the answer and every alternate, then edit distance
    within 25% of the longer string (minimum 1) against each whole
    candidate and each of its long words.
    """
    normalized_guess = normalize(guess)
    if not normalized_guess:
        return False

    candidates = [normalize(answer)] + [normalize(alt) for alt in alternates]
    candidates = [c for c in candidates if c]

    if any(_matches_candidate(normalized_guess, c) for c in candidates):
        return True
    return any(_fuzzy_candidate(normalized_guess, c) for c in candidates)
