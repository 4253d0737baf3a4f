"""
Name matching between a license and a reservation.

Licenses print names in several orders ("DOE JOHN A", "DOE, JOHN A",
"JOHN A DOE") and OCR garbles single glyphs, so matching runs an ordered
cascade of strategies and stops at the first that succeeds.
"""

import re
import unicodedata
from typing import Callable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from config import NAME_SIMILARITY_THRESHOLD, NAME_SUFFIXES
from .schemas import NameComparisonResult, ParsedName

Tokens = List[str]

# Glyph sequences OCR commonly produces for a single letter
OCR_CONFUSIONS = (("rn", "m"), ("ni", "m"), ("vv", "w"), ("cl", "d"))


def _fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, letters only, single spaces."""
    if not name:
        return ""
    text = _fold_accents(name).lower()
    text = re.sub(r"[^a-z\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def tokenize(name: Optional[str]) -> Tokens:
    return normalize_name(name).split()


def is_suffix(token: str) -> bool:
    return normalize_name(token) in NAME_SUFFIXES


def strip_suffixes(tokens: Tokens) -> Tokens:
    stripped = [t for t in tokens if not is_suffix(t)]
    return stripped or tokens


def _comma_reordered(name: Optional[str]) -> Optional[Tokens]:
    """'Last, First Middle' -> [first, middle, last]"""
    if not name or "," not in name:
        return None
    last, rest = name.split(",", 1)
    last_tokens, rest_tokens = tokenize(last), tokenize(rest)
    if not last_tokens or not rest_tokens:
        return None
    return rest_tokens + last_tokens


def parse_name(name: Optional[str]) -> ParsedName:
    """
    Split a name into first / middle / last, keeping the original casing.

    Comma form is treated as "Last, First Middle"; otherwise the name is read
    in natural order. Generational suffixes are dropped.
    """
    if not name or not name.strip():
        return ParsedName(raw=name or "")

    def words(text: str) -> List[str]:
        cleaned = (re.sub(r"[^\w\s'-]|\d|_", "", w) for w in text.split())
        return [w for w in cleaned if w and not is_suffix(w)]

    if "," in name:
        last, rest = name.split(",", 1)
        parts = words(rest) + words(last)
    else:
        parts = words(name)

    if not parts:
        return ParsedName(raw=name)
    if len(parts) == 1:
        return ParsedName(first=parts[0], raw=name)
    return ParsedName(first=parts[0], middle=" ".join(parts[1:-1]), last=parts[-1], raw=name)


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity, counting a known OCR glyph swap as one edit."""
    plain = Levenshtein.normalized_similarity(a, b)
    folded_a, folded_b = a, b
    for pattern, replacement in OCR_CONFUSIONS:
        folded_a = folded_a.replace(pattern, replacement)
        folded_b = folded_b.replace(pattern, replacement)
    if folded_a == a and folded_b == b:
        return plain
    # Score the folded pair against the longer unfolded token so a fold never
    # counts as more than the single edit it replaces.
    distance = Levenshtein.distance(folded_a, folded_b)
    folds = int(folded_a != a) + int(folded_b != b)
    folded = 1.0 - (distance + folds) / max(len(a), len(b))
    return max(plain, folded)


# ------------------------
# Strategies
# ------------------------
def _natural_order(doc: Tokens, booking: Tokens) -> bool:
    return (
        len(doc) >= 2 and len(booking) >= 2
        and doc[0] == booking[0] and doc[-1] == booking[-1]
    )


def _legacy_order(doc: Tokens, booking: Tokens) -> bool:
    return (
        len(doc) >= 2 and len(booking) >= 2
        and doc[0] == booking[-1] and doc[1] == booking[0]
    )


def _middle_tolerant(doc: Tokens, booking: Tokens) -> bool:
    if not len(doc) > len(booking) >= 2:
        return False
    forward = doc[0] == booking[0] and doc[-1] == booking[-1]
    reversed_ = doc[0] == booking[-1] and doc[-1] == booking[0]
    return forward or reversed_


def _subset(doc: Tokens, booking: Tokens) -> bool:
    return len(booking) >= 2 and all(t in doc for t in booking)


def _fuzzy(doc: Tokens, booking: Tokens) -> bool:
    if len(doc) < 2 or len(booking) < 2:
        return False
    # (first, last) readings of the document: forward, reversed, legacy
    orientations = [(doc[0], doc[-1]), (doc[-1], doc[0]), (doc[1], doc[0])]
    return any(
        similarity(first, booking[0]) >= NAME_SIMILARITY_THRESHOLD
        and similarity(last, booking[-1]) >= NAME_SIMILARITY_THRESHOLD
        for first, last in orientations
    )


def _cascade(document_name: str, doc: Tokens, booking: Tokens) -> List[Tuple[str, Callable[[], bool]]]:
    comma = _comma_reordered(document_name)
    doc_core = strip_suffixes(comma or doc)
    booking_core = strip_suffixes(booking)
    return [
        ("exact", lambda: doc == booking),
        ("natural_order", lambda: _natural_order(doc, booking)),
        ("legacy_order", lambda: _legacy_order(doc, booking)),
        ("comma_separated", lambda: comma is not None and _natural_order(comma, booking)),
        ("middle_tolerant", lambda: _middle_tolerant(doc_core, booking_core)),
        ("subset", lambda: _subset(doc_core, booking_core)),
        ("fuzzy", lambda: _fuzzy(doc_core, booking_core)),
    ]


def compare_names(document_name: Optional[str], booking_name: Optional[str]) -> NameComparisonResult:
    """Decide whether a license name and a reservation name are the same person."""
    doc = tokenize(document_name)
    booking = tokenize(booking_name)
    document_parsed = parse_name(document_name)
    booking_parsed = parse_name(booking_name)

    if not doc or not booking:
        return NameComparisonResult(
            match=False,
            document_parsed=document_parsed,
            booking_parsed=booking_parsed,
            mismatch_details="Missing name: document=%r booking=%r" % (document_name, booking_name),
        )

    for strategy, check in _cascade(document_name, doc, booking):
        if check():
            return NameComparisonResult(
                match=True,
                document_parsed=document_parsed,
                booking_parsed=booking_parsed,
                strategy=strategy,
            )

    return NameComparisonResult(
        match=False,
        document_parsed=document_parsed,
        booking_parsed=booking_parsed,
        mismatch_details=(
            f"No strategy matched: document tokens [{', '.join(doc)}] "
            f"vs booking tokens [{', '.join(booking)}]"
        ),
    )
