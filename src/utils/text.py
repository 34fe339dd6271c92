"""Small text utilities used by the chunker and the document loaders.

Three concerns live here:

1. **Whitespace tokenisation** -- the chunker's token unit is a
   whitespace-delimited word; :func:`tokenize` also keeps each word's
   character span so chunk text can be sliced straight out of the source.

2. **Sentence splitting** -- an abbreviation-aware splitter used by the
   recursive chunking strategy ("Dr. Smith" is not two sentences).

3. **Language guessing** -- a stop-word vote good enough to tag chunks with
   ``en``/``de``/``fr``/... for filtering; anything inconclusive is
   ``"unknown"``.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import NamedTuple

_TOKEN_RE = re.compile(r"\S+")
_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")

# Periods after these words do not end a sentence.
_ABBREVIATIONS = (
    "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "St", "Ave", "Blvd", "Vol",
    "No", "vs", "etc", "approx", "dept", "est", "govt", "inc", "ltd", "co",
    "ft", "e.g", "i.e", "Fig", "Inc", "Ltd", "Co",
)
_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(set(_ABBREVIATIONS), key=len, reverse=True)) + r")\."
)

_STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset({"the", "and", "of", "to", "in", "is", "that", "it", "for", "with", "as", "was", "on", "are", "this"}),
    "de": frozenset({"der", "die", "und", "das", "ist", "nicht", "mit", "den", "von", "zu", "ein", "eine", "auf", "sich", "für"}),
    "fr": frozenset({"le", "la", "les", "et", "des", "est", "une", "du", "dans", "que", "pour", "pas", "sur", "avec", "qui"}),
    "es": frozenset({"el", "los", "las", "y", "del", "que", "en", "una", "por", "con", "para", "es", "se", "como", "su"}),
    "it": frozenset({"il", "di", "che", "e", "della", "per", "non", "sono", "gli", "una", "del", "con", "nel", "alla", "questo"}),
    "nl": frozenset({"de", "het", "een", "en", "van", "niet", "dat", "op", "te", "zijn", "voor", "met", "ook", "maar", "deze"}),
    "pt": frozenset({"o", "os", "as", "do", "da", "que", "em", "um", "uma", "para", "com", "não", "por", "mais", "dos"}),
}


class Token(NamedTuple):
    """A whitespace-delimited word and its ``[start, end)`` character span."""

    value: str
    start: int
    end: int


def tokenize(text: str) -> list[Token]:
    """Split *text* into whitespace-delimited tokens with character offsets."""
    return [Token(m.group(0), m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]


def count_words(text: str) -> int:
    """Return the number of whitespace-delimited words in *text*."""
    return len(_TOKEN_RE.findall(text))


def split_sentences(text: str) -> list[str]:
    """Split *text* at ``.``/``!``/``?`` boundaries, ignoring known abbreviations.

    Periods after abbreviations are masked with ``\\x00`` (same length, so
    indices into the original text stay valid) before scanning for sentence
    ends.  Returns ``[text.strip()]`` when no boundary is found.
    """
    masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else ([text.strip()] if text.strip() else [])


def detect_language(text: str, min_hits: int = 2) -> str:
    """Guess the ISO 639-1 language of *text* by counting stop words.

    Returns ``"unknown"`` when fewer than *min_hits* stop words match or two
    languages tie for first place.
    """
    words = [w.lower() for w in _WORD_RE.findall(text[:5000])]
    if not words:
        return "unknown"

    votes: Counter[str] = Counter()
    for word in words:
        for language, stopwords in _STOPWORDS.items():
            if word in stopwords:
                votes[language] += 1

    ranked = votes.most_common(2)
    if not ranked or ranked[0][1] < min_hits:
        return "unknown"
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return "unknown"
    return ranked[0][0]
