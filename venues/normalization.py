"""
Venue name normalization for fuzzy matching.

Turns scraped, informally-written venue names ("Yorba Linda ICE (Rink 2) 2025",
"YLICE", "Toyota Sports Ctr.") into a canonical comparison key. The rink/sheet
identifier and season year are pulled out first and returned as side-channel
metadata; they never take part in matching.

Provides:
- normalize(): raw name -> NormalizedName
- normalize_text(): raw name -> normalized string only
- trigram_similarity(): pg_trgm-compatible similarity in [0, 1]
- name_similarity(): Jaro similarity of two normalized names in [0, 1]
"""

import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from rapidfuzz.distance import Jaro

# Rink/sheet/pad identifier, e.g. "Rink 2", "Sheet B", "Pad #3", "Rnk-1", "Ice 2"
RINK_PATTERN = re.compile(
    r'\b(rink|rnk|sheet|pad|ice|arena)(?:[\s#-]+|(?=\d))([a-z]|\d{1,2})\b',
    re.IGNORECASE,
)

# Facility words that are usually part of the name itself ("Anaheim ICE 2")
NAME_FACILITY_WORDS = {'ice', 'arena'}

YEAR_PATTERN = re.compile(r'\b((?:19|20)\d{2})\b')

# Facility-type abbreviations, matched on word boundaries only
ABBREVIATIONS = {
    'ctr': 'center',
    'sc': 'sports center',
    'cntr': 'center',
    'centre': 'center',
    'rnk': 'rink',
    'ip': 'ice palace',
    'arn': 'arena',
    'spts': 'sports',
    'fac': 'facility',
    'intl': 'international',
    'mt': 'mount',
    'ft': 'fort',
}

# Compass directions -> USPS single-letter form
DIRECTIONS = {
    'north': 'n',
    'south': 's',
    'east': 'e',
    'west': 'w',
    'northeast': 'ne',
    'northwest': 'nw',
    'southeast': 'se',
    'southwest': 'sw',
}

# Sponsor/brand variants -> single canonical spelling. Outputs must never be keys.
SPONSOR_ALIASES = {
    'ylice': 'yorba linda ice',
    'yl ice': 'yorba linda ice',
    'yorbalinda ice': 'yorba linda ice',
    'tspc': 'toyota sports performance center',
    'toyota sports center': 'toyota sports performance center',
    'toyota sports complex': 'toyota sports performance center',
    'toyota center': 'toyota sports performance center',
    'la kings iceland': 'kings iceland',
    'los angeles kings iceland': 'kings iceland',
    'la kings valley ice center': 'kings valley ice center',
    'lakers valley ice center': 'kings valley ice center',
    'kvic': 'kings valley ice center',
    'gpi': 'great park ice fivepoint arena',
    'great park ice and fivepoint arena': 'great park ice fivepoint arena',
    'great park ice and five point arena': 'great park ice fivepoint arena',
    'great park ice five point arena': 'great park ice fivepoint arena',
    'lfip': 'lake forest ice palace',
    'avi': 'aliso viejo ice',
}

STOP_WORDS = {'the', 'a', 'an', 'at', 'in', 'on'}

# Bound on rewrite passes; the tables converge in two or three.
MAX_PASSES = 8


@dataclass(frozen=True)
class NormalizedName:
    """Normalized comparison key plus side-channel metadata."""
    normalized: str
    rink_identifier: Optional[str] = None
    year_context: Optional[str] = None


def _table_pattern(table: dict) -> re.Pattern:
    """Compile a word-boundary alternation for a rewrite table, longest keys first."""
    keys = sorted(table, key=len, reverse=True)
    parts = [r'[\W_]+'.join(re.escape(word) for word in key.split()) for key in keys]
    return re.compile(r'\b(' + '|'.join(parts) + r')\b')


def _table_lookup(table: dict, matched: str) -> str:
    return table[re.sub(r'[\W_]+', ' ', matched)]


ABBREVIATION_RE = _table_pattern(ABBREVIATIONS)
DIRECTION_RE = _table_pattern(DIRECTIONS)
SPONSOR_RE = _table_pattern(SPONSOR_ALIASES)


def _extract_context(text: str) -> tuple[str, Optional[str], Optional[str]]:
    """Pull the rink identifier and year out of text. Returns (text, rink, year)."""
    rink = None
    year = None

    year_match = YEAR_PATTERN.search(text)
    if year_match:
        year = year_match.group(1)
        text = YEAR_PATTERN.sub(' ', text)

    # Repeat until no identifier is left; a kept facility word can expose another.
    while True:
        rink_match = RINK_PATTERN.search(text)
        if not rink_match:
            break
        kind = rink_match.group(1).lower()
        if kind == 'rnk':
            kind = 'rink'
        if rink is None:
            rink = f"{kind} {rink_match.group(2).lower()}"
        replacement = f" {rink_match.group(1)} " if kind in NAME_FACILITY_WORDS else ' '
        text = text[:rink_match.start()] + replacement + text[rink_match.end():]

    return text, rink, year


def _strip_unprintable(text: str) -> str:
    """Drop emoji, symbols, control, format and private-use code points."""
    kept = []
    for char in text:
        category = unicodedata.category(char)
        if category[0] in ('S', 'C') and not char.isspace():
            continue
        kept.append(char)
    return ''.join(kept)


def _rewrite(text: str) -> str:
    """One pass of steps 2-8."""
    text = text.lower()
    text = re.sub(r'\s+', ' ', text).strip()

    text = _strip_unprintable(text)
    text = re.sub(r'[()\[\]{}]', ' ', text)
    text = re.sub(r'[/\\_]', ' ', text)
    text = re.sub(r"['’`]", '', text)

    text = ABBREVIATION_RE.sub(lambda m: _table_lookup(ABBREVIATIONS, m.group(1)), text)
    text = DIRECTION_RE.sub(lambda m: _table_lookup(DIRECTIONS, m.group(1)), text)

    text = SPONSOR_RE.sub(lambda m: _table_lookup(SPONSOR_ALIASES, m.group(1)), text)

    text = re.sub(r'[\W_]+', ' ', text)
    text = re.sub(r'\s+', ' ', text).strip()

    words = [word for word in text.split(' ') if word and word not in STOP_WORDS]
    return ' '.join(words)


@lru_cache(maxsize=4096)
def normalize(raw: Optional[str]) -> NormalizedName:
    """
    Normalize a raw venue name.

    Examples:
        "Yorba Linda ICE (Rink 2) 2025" -> ("yorba linda ice", "rink 2", "2025")
        "YLICE" -> ("yorba linda ice", None, None)
        "The Rinks - Anaheim ICE" -> ("rinks anaheim ice", None, None)
    """
    if not raw:
        return NormalizedName(normalized="")

    text, rink, year = _extract_context(raw)

    for _ in range(MAX_PASSES):
        rewritten = _rewrite(text)
        rewritten, extra_rink, extra_year = _extract_context(rewritten)
        rewritten = re.sub(r'\s+', ' ', rewritten).strip()
        rink = rink or extra_rink
        year = year or extra_year
        if rewritten == text:
            break
        text = rewritten

    return NormalizedName(normalized=text, rink_identifier=rink, year_context=year)


def normalize_text(raw: Optional[str]) -> str:
    """Shortcut returning only the normalized comparison key."""
    return normalize(raw).normalized


def _trigrams(text: str) -> set:
    """Trigram set the way pg_trgm builds it: per word, padded '  word '."""
    grams = set()
    for word in re.split(r'[\W_]+', text.lower()):
        if not word:
            continue
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return grams


def trigram_similarity(a: str, b: str) -> float:
    """Shared-trigram ratio of two strings, matching pg_trgm's similarity()."""
    left = _trigrams(a or "")
    right = _trigrams(b or "")
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def name_similarity(a: str, b: str) -> float:
    """Jaro similarity of the normalized forms of two names."""
    left = normalize_text(a)
    right = normalize_text(b)
    if not left or not right:
        return 0.0
    return float(Jaro.normalized_similarity(left, right))
