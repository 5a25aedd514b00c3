"""
Rule-based phrase extraction for mood reasons.

Reasons are at most 30 characters long, so instead of a language model this
uses a curated list of common phrases, a stopword list (English and Italian)
and a simple adjacent-word heuristic. The output is deterministic, which keeps
the ranked phrase tables stable between requests.
"""

import re

STOPWORDS = frozenset({
    # English
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "should",
    "could", "can", "may", "might", "must", "i", "me", "my", "mine", "we",
    "our", "ours", "you", "your", "yours", "he", "him", "his", "she", "her",
    "hers", "it", "its", "they", "them", "their", "theirs", "this", "that",
    "these", "those", "am", "for", "of", "to", "in", "on", "at", "by", "with",
    "from", "as", "but", "or", "and", "because", "so", "very", "too", "much",
    "more", "most", "some", "any", "no", "not", "only", "just", "all", "both",
    "each", "every", "few", "many", "such", "who", "what", "where", "when",
    "why", "how", "which",
    # Italian
    "di", "da", "per", "con", "su", "tra", "fra", "il", "lo", "la", "gli",
    "le", "un", "uno", "una", "e", "o", "ma", "se", "come", "anche", "più",
    "molto", "poco", "troppo", "tanto", "così",
})

COMMON_PHRASES = (
    "good weather", "bad weather", "nice day", "long day", "hard day",
    "great news", "bad news", "good news", "family time", "work stress",
    "feeling tired", "feeling good", "feeling bad", "sunny day", "rainy day",
    "stressful work", "beautiful day", "busy day", "quiet day", "productive day",
    "late night", "early morning", "quality time", "me time", "free time",
    "weekend plans", "monday blues", "friday feeling", "tough day", "amazing day",
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    text = _NON_ALNUM.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def keywords(normalized: str) -> list[str]:
    """Split normalized text, dropping short words and stopwords."""
    return [
        word
        for word in normalized.split(" ")
        if len(word) > 2 and word not in STOPWORDS
    ]


def extract_phrases(text: str) -> list[str]:
    """
    Extract candidate phrases from a reason.

    Known phrases are matched as plain substrings of the normalized text, so
    "good weathers" still yields "good weather". A word can appear in several
    bigrams; each of them is counted.

    Args:
        text: The raw reason text

    Returns:
        Candidate phrases in the order they were found
    """
    normalized = normalize_text(text)
    results: list[str] = [phrase for phrase in COMMON_PHRASES if phrase in normalized]

    words = keywords(normalized)

    for first, second in zip(words, words[1:]):
        bigram = f"{first} {second}"
        if bigram in COMMON_PHRASES or bigram in results:
            continue
        if len(first) > 3 and len(second) > 3:
            results.append(bigram)

    for word in words:
        if not any(word in phrase for phrase in results):
            results.append(word)

    return results
