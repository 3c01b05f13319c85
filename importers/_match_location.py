"""
_match_location.py
------------------
Staged resolver that turns a platform's free-text store name into a
canonical location.

Stages, first hit wins:
1. ``store_id_exact``  parenthesized store code (e.g. "(NV067)") or an explicit
   store code column, exact-matched against location identifiers.
   ``known_name``      the platform name equals a display name already
   recorded on the location or a name an operator linked to it.
2. ``address_city``    additive city / street keyword / name similarity score.
3. ``crossref``        secondary export keyed by an external store code.
4. ``unmatched``       nothing matched; callers route to the unmapped bucket.

The resolver does no I/O. It scores an immutable snapshot of the owner's
locations handed in by the caller, so identical inputs always produce the
identical ``MatchCandidate``.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, fields
from typing import Callable, Iterable, Optional, Sequence

from django.conf import settings

from deliveryMetrics.models import (
    UNMAPPED_BUCKET_TAG,
    CanonicalLocation,
    UnmappedLocation,
    normalize_location_label,
)
from importers._similarity import levenshtein_ratio

logger = logging.getLogger(__name__)

METHOD_STORE_ID = "store_id_exact"
METHOD_KNOWN_NAME = "known_name"
METHOD_ADDRESS_CITY = "address_city"
METHOD_CROSSREF = "crossref"
METHOD_UNMATCHED = "unmatched"

STORE_CODE_RE = re.compile(r"\(([A-Z]{2}\d+)\)", re.IGNORECASE)
MASTER_CODE_RE = re.compile(r"[A-Z]{2}\d+\s*", re.IGNORECASE)
PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
CITY_AFTER_DASH_RE = re.compile(r"-\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
CITY_AT_END_RE = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)$")
WORD_SPLIT_RE = re.compile(r"[\s\-,]+")

STREET_SUFFIXES = frozenset(
    {
        "dr", "drive",
        "rd", "road",
        "st", "street",
        "ave", "avenue",
        "blvd", "boulevard",
        "pkwy", "parkway",
        "hwy", "highway",
        "way",
        "ln", "lane",
    }
)
STOP_WORDS = frozenset({"and", "the", "of", "suite", "ste", "unit"})

SimilarityFn = Callable[[str, str], float]


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocationRecord:
    """Read-only view of a CanonicalLocation as the resolver sees it."""

    id: int
    canonical_name: str
    store_code: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    ubereats_store_id: str = ""
    doordash_store_id: str = ""
    grubhub_store_id: str = ""
    ubereats_name: str = ""
    doordash_name: str = ""
    grubhub_name: str = ""
    tag: str = ""
    owner_id: Optional[int] = None
    # (platform, normalized name) pairs linked by operators
    aliases: tuple[tuple[str, str], ...] = ()

    def identifier_for(self, platform: str) -> str:
        return (getattr(self, f"{platform}_store_id", "") or "").strip().upper()

    def known_names_for(self, platform: str) -> frozenset[str]:
        names = {alias for alias_platform, alias in self.aliases if alias_platform == platform}
        display = normalize_location_label(getattr(self, f"{platform}_name", ""))
        if display:
            names.add(display)
        return frozenset(names)

    @property
    def is_unmapped_bucket(self) -> bool:
        return self.tag == UNMAPPED_BUCKET_TAG


@dataclass(frozen=True)
class CrossReferenceEntry:
    """One row of a platform's own store export (code, name, city)."""

    external_code: str
    name: str = ""
    city: str = ""


@dataclass(frozen=True)
class ResolveContext:
    store_code: str = ""
    crossref: tuple[CrossReferenceEntry, ...] = ()


@dataclass(frozen=True)
class MatchCandidate:
    platform_name: str
    platform: str
    extracted_code: Optional[str]
    matched_location_id: Optional[int]
    match_method: str
    confidence: float

    @property
    def is_match(self) -> bool:
        return self.matched_location_id is not None


@dataclass(frozen=True)
class ResolverConfig:
    accept_threshold: float = 0.4
    name_similarity_floor: float = 0.3
    name_weight: float = 0.3
    city_weight: float = 0.5
    keyword_weight: float = 0.25
    keyword_cap: float = 0.5
    crossref_confidence: float = 0.85
    crossref_override_below: float = 0.9
    brand_pattern: str = r"capriotti'?s?\s*(sandwich\s*shop)?"

    @classmethod
    def from_settings(cls, **overrides) -> "ResolverConfig":
        known = {f.name for f in fields(cls)}
        values = {
            key: value
            for key, value in getattr(settings, "LOCATION_RESOLVER", {}).items()
            if key in known
        }
        values.update(overrides)
        return cls(**values)

    @property
    def brand_re(self) -> re.Pattern:
        return re.compile(self.brand_pattern, re.IGNORECASE)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _as_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def extract_store_code(platform_name) -> Optional[str]:
    match = STORE_CODE_RE.search(_as_text(platform_name))
    return match.group(1).upper() if match else None


def _strip_brand_and_parens(text: str, brand_re: re.Pattern) -> str:
    stripped = brand_re.sub(" ", text)
    stripped = PARENTHETICAL_RE.sub(" ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def extract_cities(platform_name, brand_re: re.Pattern) -> list[str]:
    """Candidate cities: text after a dash, then trailing capitalized words."""
    text = _strip_brand_and_parens(_as_text(platform_name), brand_re)
    cities: list[str] = []

    dash = CITY_AFTER_DASH_RE.search(text)
    if dash:
        cities.append(dash.group(1).lower())

    end = CITY_AT_END_RE.search(text)
    if end and "Shop" not in end.group(1):
        city = end.group(1).lower()
        if city not in cities:
            cities.append(city)
    return cities


def extract_street_keywords(platform_name, brand_re: re.Pattern) -> list[str]:
    """Street-type words plus the word before them, and other long words."""
    text = _strip_brand_and_parens(_as_text(platform_name).lower(), brand_re)
    words = [w for w in WORD_SPLIT_RE.split(text) if len(w) > 2]

    keywords: list[str] = []
    for index, word in enumerate(words):
        if word in STOP_WORDS:
            continue
        if word in STREET_SUFFIXES:
            keywords.append(word)
            if index > 0:
                keywords.append(words[index - 1])
        elif len(word) > 3 and not word.isdigit():
            keywords.append(word)

    return list(dict.fromkeys(keywords))


def _clean_platform_name(platform_name, brand_re: re.Pattern) -> str:
    text = _strip_brand_and_parens(_as_text(platform_name).lower(), brand_re)
    return re.sub(r"\s*-\s*", " ", text).strip()


def _clean_master_name(name: str, brand_re: re.Pattern) -> str:
    text = MASTER_CODE_RE.sub("", _as_text(name).lower())
    return brand_re.sub("", text).strip()


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class LocationResolver:
    """Resolve platform store names against a snapshot of canonical locations."""

    def __init__(
        self,
        config: ResolverConfig | None = None,
        similarity: SimilarityFn = levenshtein_ratio,
    ):
        self.config = config or ResolverConfig.from_settings()
        self.similarity = similarity
        self._brand_re = self.config.brand_re

    def resolve(
        self,
        platform_name,
        platform: str,
        master_list: Sequence[LocationRecord],
        context: ResolveContext | None = None,
    ) -> MatchCandidate:
        context = context or ResolveContext()
        name = _as_text(platform_name).strip()
        candidates = [loc for loc in master_list if not loc.is_unmapped_bucket]
        extracted = extract_store_code(name)

        # Stage 1
        exact = self._match_code(extracted, platform, candidates)
        if exact is None and context.store_code:
            exact = self._match_code(
                _as_text(context.store_code).strip().upper(),
                platform,
                candidates,
            )
        if exact is not None:
            return MatchCandidate(name, platform, extracted, exact.id, METHOD_STORE_ID, 1.0)

        known = self._match_known_name(name, platform, candidates)
        if known is not None:
            return MatchCandidate(name, platform, extracted, known.id, METHOD_KNOWN_NAME, 1.0)

        if not name:
            return self._unmatched(name, platform, extracted)

        # Stage 2
        best, best_score = None, 0.0
        for location, score in self.score_candidates(name, candidates):
            if score > best_score:
                best, best_score = location, score

        # Stage 3
        if context.crossref and best_score < self.config.crossref_override_below:
            crossref_hit = self._match_crossref(name, platform, candidates, context.crossref)
            if crossref_hit is not None:
                return MatchCandidate(
                    name,
                    platform,
                    extracted,
                    crossref_hit.id,
                    METHOD_CROSSREF,
                    self.config.crossref_confidence,
                )

        if best is not None and best_score >= self.config.accept_threshold:
            return MatchCandidate(
                name,
                platform,
                extracted,
                best.id,
                METHOD_ADDRESS_CITY,
                round(min(best_score, 1.0), 4),
            )

        # Stage 4
        return self._unmatched(name, platform, extracted)

    def score_candidates(
        self,
        platform_name,
        master_list: Iterable[LocationRecord],
    ) -> list[tuple[LocationRecord, float]]:
        """Stage 2 score for every location, in snapshot order."""
        cfg = self.config
        cities = extract_cities(platform_name, self._brand_re)
        keywords = extract_street_keywords(platform_name, self._brand_re)
        clean_name = _clean_platform_name(platform_name, self._brand_re)

        scored: list[tuple[LocationRecord, float]] = []
        for location in master_list:
            if location.is_unmapped_bucket:
                continue
            score = 0.0

            location_city = (location.city or "").strip().lower()
            if location_city and any(
                city in location_city or location_city in city for city in cities
            ):
                score += cfg.city_weight

            address = (location.address or "").lower()
            if address:
                hits = sum(1 for keyword in keywords if keyword in address)
                score += min(hits * cfg.keyword_weight, cfg.keyword_cap)

            ratio = self.similarity(clean_name, _clean_master_name(location.canonical_name, self._brand_re))
            if ratio >= cfg.name_similarity_floor:
                score += ratio * cfg.name_weight

            scored.append((location, score))
        return scored

    def rank_candidates(
        self,
        platform_name,
        master_list: Iterable[LocationRecord],
        limit: int = 3,
    ) -> list[tuple[LocationRecord, float]]:
        """Highest-scoring locations first; stable for equal scores."""
        scored = [item for item in self.score_candidates(platform_name, master_list) if item[1] > 0]
        scored.sort(key=lambda item: -item[1])
        return scored[:limit]

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _match_code(
        code: Optional[str],
        platform: str,
        candidates: Sequence[LocationRecord],
    ) -> Optional[LocationRecord]:
        if not code:
            return None
        for location in candidates:
            if location.identifier_for(platform) == code:
                return location
        # The bare code is also the brand's own store number in every export.
        for location in candidates:
            if (location.store_code or "").strip().upper() == code:
                return location
        return None

    @staticmethod
    def _match_known_name(
        name: str,
        platform: str,
        candidates: Sequence[LocationRecord],
    ) -> Optional[LocationRecord]:
        normalized = normalize_location_label(name)
        if not normalized:
            return None
        for location in candidates:
            if normalized in location.known_names_for(platform):
                return location
        return None

    def _match_crossref(
        self,
        name: str,
        platform: str,
        candidates: Sequence[LocationRecord],
        entries: Iterable[CrossReferenceEntry],
    ) -> Optional[LocationRecord]:
        lowered = name.lower()
        for entry in entries:
            entry_name = (entry.name or "").lower()
            entry_city = (entry.city or "").strip().lower()
            hit = bool(entry_name and lowered in entry_name) or bool(entry_city and entry_city in lowered)
            if not hit:
                continue
            location = self._match_code(
                _as_text(entry.external_code).strip().upper(),
                platform,
                candidates,
            )
            if location is not None:
                logger.debug("Cross-reference %s matched %r", entry.external_code, name)
                return location
        return None

    @staticmethod
    def _unmatched(name: str, platform: str, extracted: Optional[str]) -> MatchCandidate:
        return MatchCandidate(name, platform, extracted, None, METHOD_UNMATCHED, 0.0)


def resolve(
    platform_name,
    platform: str,
    master_list: Sequence[LocationRecord],
    context: ResolveContext | None = None,
) -> MatchCandidate:
    """Resolve with the configured defaults."""
    return LocationResolver().resolve(platform_name, platform, master_list, context)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def to_location_record(
    location: CanonicalLocation,
    aliases: tuple[tuple[str, str], ...] = (),
) -> LocationRecord:
    return LocationRecord(
        id=location.pk,
        canonical_name=location.canonical_name,
        store_code=location.store_code or "",
        address=location.address or "",
        city=location.city or "",
        state=location.state or "",
        ubereats_store_id=location.ubereats_store_id or "",
        doordash_store_id=location.doordash_store_id or "",
        grubhub_store_id=location.grubhub_store_id or "",
        ubereats_name=location.ubereats_name or "",
        doordash_name=location.doordash_name or "",
        grubhub_name=location.grubhub_name or "",
        tag=location.tag or "",
        owner_id=location.owner_id,
        aliases=aliases,
    )


def build_location_snapshot(owner) -> tuple[LocationRecord, ...]:
    """Immutable resolver input for one owner, in creation order."""
    aliases: dict[int, list[tuple[str, str]]] = defaultdict(list)
    links = (
        UnmappedLocation.objects.filter(owner=owner, resolved=True, linked_location__isnull=False)
        .order_by("pk")
        .values_list("linked_location_id", "platform", "normalized_name")
    )
    for location_id, platform, normalized_name in links:
        aliases[location_id].append((platform, normalized_name))
    return tuple(
        to_location_record(loc, tuple(aliases.get(loc.pk, ())))
        for loc in CanonicalLocation.objects.for_owner(owner)
    )
