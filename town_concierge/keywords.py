import re
from typing import List

STOP_WORDS = frozenset({
    'el', 'la', 'los', 'las', 'un', 'una', 'unos', 'unas',
    'de', 'del', 'en', 'con', 'por', 'para', 'a', 'al',
    'y', 'o', 'pero', 'si', 'no', 'que', 'qué', 'como', 'cómo',
    'es', 'son', 'está', 'están', 'hay', 'tiene', 'tienen',
    'me', 'te', 'se', 'nos', 'les', 'le', 'lo',
    'quiero', 'quiere', 'queremos', 'quieren',
    'busco', 'busca', 'buscamos', 'buscan',
})

MIN_TOKEN_LENGTH = 2
MIN_PHRASE_TOKEN_LENGTH = 3

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"^\d+$")


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation (accented letters survive) and collapse whitespace."""
    if not text:
        return ""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str) -> List[str]:
    normalized = normalize_text(text)
    if not normalized:
        return []
    return [
        word for word in normalized.split(" ")
        if len(word) >= MIN_TOKEN_LENGTH
        and word not in STOP_WORDS
        and not _DIGITS.match(word)
    ]


def _phrases(tokens: List[str]) -> List[str]:
    phrases = []
    for i in range(len(tokens) - 1):
        pair = tokens[i:i + 2]
        if all(len(t) >= MIN_PHRASE_TOKEN_LENGTH for t in pair):
            phrases.append(" ".join(pair))
        triple = tokens[i:i + 3]
        if len(triple) == 3 and all(len(t) >= MIN_PHRASE_TOKEN_LENGTH for t in triple):
            phrases.append(" ".join(triple))
    return phrases


def extract_keywords(text: str) -> List[str]:
    """
    Extract search keywords from free text.

    Returns single tokens plus 2- and 3-word adjacent phrases, deduplicated
    and sorted longest first, so the most specific candidates lead.
    """
    tokens = tokenize(text)
    if not tokens:
        return []

    seen = set()
    keywords = []
    for candidate in _phrases(tokens) + tokens:
        if candidate not in seen:
            seen.add(candidate)
            keywords.append(candidate)

    # sorted() is stable, equal lengths keep phrase-then-token order
    return sorted(keywords, key=len, reverse=True)
