"""Lexical scorer: TF-IDF with phrase and heading boosts, plus query typing.

Scoring per candidate (IDF is computed over the candidate set itself):

    term score   = (1 + ln(count)) * ln(N / (1 + df))   [* heading_boost]
    phrase score = phrase_boost * words                  [+ phrase_boost / 2 in heading]
    final        = sum / (#terms + 2 * #phrases)

Quoted (``"..."``) and backtick phrases are pulled out of the query before
the remainder is tokenised.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

_SPLIT_RE = re.compile(r"[\s\-.,;:!?()\[\]{}\"'`<>/\\|@#$%^&*+=~]+")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_PHRASE_RE = re.compile(r'"([^"]+)"|`([^`]+)`')

_MIN_TOKEN_LEN = 2


# ------------------------------------------------------------------
# Tokenisation
# ------------------------------------------------------------------


def tokenize(text: str) -> list[str]:
    """Lowercased tokens, keeping compound tokens and their parts.

    ``getUserName`` yields ``getusername, get, user, name``; ``max_tokens``
    yields ``max_tokens, max, tokens``. Duplicates are kept (they are term
    counts). Tokens shorter than two characters are dropped.
    """
    tokens: list[str] = []
    for raw in _SPLIT_RE.split(text):
        if not raw:
            continue
        token = raw.lower()
        tokens.append(token)

        camel = [p.lower() for p in _CAMEL_RE.split(raw) if p]
        if len(camel) > 1:
            tokens.extend(camel)

        if "_" in token:
            snake = [p for p in token.split("_") if p]
            if len(snake) > 1:
                tokens.extend(snake)

    return [t for t in tokens if len(t) >= _MIN_TOKEN_LEN]


def extract_phrases(query: str) -> tuple[list[str], str]:
    """Split *query* into lowercased quoted phrases and the remaining text."""
    phrases: list[str] = []
    for match in _PHRASE_RE.finditer(query):
        phrase = (match.group(1) or match.group(2) or "").strip().lower()
        if phrase:
            phrases.append(phrase)
    remaining = _PHRASE_RE.sub(" ", query).strip()
    return phrases, remaining


@dataclass
class ParsedQuery:
    terms: list[str]
    phrases: list[str]

    @property
    def is_empty(self) -> bool:
        return not self.terms and not self.phrases


def parse_query(query: str) -> ParsedQuery:
    phrases, remaining = extract_phrases(query)
    terms = list(dict.fromkeys(tokenize(remaining)))
    return ParsedQuery(terms=terms, phrases=phrases)


# ------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------


@dataclass
class LexicalDocument:
    """One candidate: *text* is searched, *heading* earns the boosts."""

    key: str
    text: str
    heading: str = ""


@dataclass
class LexicalMatch:
    key: str
    score: float
    matched_terms: list[str] = field(default_factory=list)
    term_frequencies: dict[str, float] = field(default_factory=dict)


class LexicalScorer:
    """TF-IDF scorer over an in-memory candidate set.

    Args:
        heading_boost: Multiplier for a term that also appears in the heading.
        phrase_boost: Boost per word of a matched phrase.
        min_score: Matches below this normalised score are dropped.
    """

    def __init__(
        self,
        heading_boost: float = 1.5,
        phrase_boost: float = 2.0,
        min_score: float = 0.01,
    ) -> None:
        self.heading_boost = heading_boost
        self.phrase_boost = phrase_boost
        self.min_score = min_score

    def score(self, query: str, documents: list[LexicalDocument]) -> list[LexicalMatch]:
        """Score *documents* against *query*; best first, below min_score dropped."""
        parsed = parse_query(query)
        if not documents or parsed.is_empty:
            return []

        counts: dict[str, dict[str, int]] = {}
        for doc in documents:
            tally: dict[str, int] = {}
            for token in tokenize(doc.text):
                tally[token] = tally.get(token, 0) + 1
            counts[doc.key] = tally

        total = len(documents)
        idf = {
            term: math.log(total / (1 + sum(1 for t in counts.values() if term in t)))
            for term in parsed.terms
        }
        normaliser = len(parsed.terms) + 2 * len(parsed.phrases)

        matches: list[LexicalMatch] = []
        for doc in documents:
            tally = counts[doc.key]
            text_lower = doc.text.lower()
            heading_lower = doc.heading.lower()

            score = 0.0
            matched: list[str] = []
            frequencies: dict[str, float] = {}

            for term in parsed.terms:
                count = tally.get(term, 0)
                if not count:
                    continue
                tf = 1 + math.log(count)
                term_score = tf * idf[term]
                if term in heading_lower:
                    term_score *= self.heading_boost
                score += term_score
                matched.append(term)
                frequencies[term] = tf

            for phrase in parsed.phrases:
                if phrase not in text_lower:
                    continue
                score += self.phrase_boost * len(phrase.split())
                if phrase in heading_lower:
                    score += self.phrase_boost * 0.5
                matched.append(f'"{phrase}"')

            normalised = score / normaliser
            if normalised >= self.min_score:
                matches.append(
                    LexicalMatch(
                        key=doc.key,
                        score=normalised,
                        matched_terms=matched,
                        term_frequencies=frequencies,
                    )
                )

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches


# ------------------------------------------------------------------
# Query typing
# ------------------------------------------------------------------


class QueryType(str, Enum):
    EXACT = "exact"
    SEMANTIC = "semantic"
    MIXED = "mixed"


class SearchWeights(NamedTuple):
    semantic: float
    lexical: float


_WEIGHTS: dict[QueryType, SearchWeights] = {
    QueryType.EXACT: SearchWeights(0.3, 0.7),
    QueryType.SEMANTIC: SearchWeights(0.85, 0.15),
    QueryType.MIXED: SearchWeights(0.6, 0.4),
}

_QUOTE_RE = re.compile(r'["`]')
_ALL_CAPS_RE = re.compile(r"[A-Z][A-Z0-9_]+")
_ERROR_CODE_RE = re.compile(r"E[A-Z]+|[A-Z]{2,}_[A-Z_]+")
_FILE_EXT_RE = re.compile(
    r"\.(js|ts|tsx|jsx|md|py|go|rs|json|yaml|yml|toml|css|html)$", re.IGNORECASE
)
_SHORT_TERM_RE = re.compile(r"[a-z0-9_-]{1,15}", re.IGNORECASE)
_CAMEL_CASE_RE = re.compile(r"[a-z]+[A-Z][a-zA-Z0-9]*")
_QUESTION_RE = re.compile(
    r"(what|how|why|when|where|who|which|can|does|is|are|should|would|could)\b",
    re.IGNORECASE,
)


def detect_query_type(query: str) -> QueryType:
    """Classify *query* as exact, semantic or mixed.

    Rules, first match wins: quotes/backticks, ALL_CAPS, error codes and file
    extensions are exact; a single short term (≤15 chars) is mixed, so
    ``useState`` is mixed while a longer camelCase identifier is exact;
    question words or four or more words are semantic; anything else mixed.
    """
    q = query.strip()
    if not q:
        return QueryType.MIXED
    if _QUOTE_RE.search(q):
        return QueryType.EXACT
    if _ALL_CAPS_RE.fullmatch(q) or _ERROR_CODE_RE.fullmatch(q):
        return QueryType.EXACT
    if _FILE_EXT_RE.search(q):
        return QueryType.EXACT

    words = q.split()
    if len(words) == 1:
        if _SHORT_TERM_RE.fullmatch(q):
            return QueryType.MIXED
        if _CAMEL_CASE_RE.fullmatch(q):
            return QueryType.EXACT

    if _QUESTION_RE.match(q) or len(words) >= 4:
        return QueryType.SEMANTIC
    return QueryType.MIXED


def search_weights(query_type: QueryType) -> SearchWeights:
    """Recommended (semantic, lexical) weights for weighted fusion."""
    return _WEIGHTS[query_type]
