"""Item name normalization for the English/Kiswahili product vocabulary.

Every product spelling a trader might type ("Nyanya", "tomato", "Tomatoes")
resolves to one canonical name ("tomatoes") so stock and sales records for
the same goods line up regardless of language or plural form.

The vocabulary lives in an immutable, versioned ``MultilingualDictionary``.
``DictionaryRegistry`` holds the current snapshot for the process; runtime
additions swap in a new snapshot under a lock, so a normalization call that
already holds a snapshot keeps seeing a consistent map.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

PRODUCT_TERMS: dict[str, str] = {
    # Vegetables
    "nyanya": "tomatoes",
    "tomato": "tomatoes",
    "tomatoe": "tomatoes",
    "vitunguu": "onions",
    "onion": "onions",
    "karoti": "carrots",
    "carrot": "carrots",
    "cabichi": "cabbage",
    "kabichi": "cabbage",
    "sukumawiki": "kale",
    "sukuma": "kale",
    "maharagwe": "beans",
    "kunde": "beans",
    "bean": "beans",
    "viazi": "potatoes",
    "potato": "potatoes",
    "muhogo": "cassava",
    "cassavas": "cassava",
    "pilipili": "pepper",
    "peppers": "pepper",
    "spinachi": "spinach",
    "lettuces": "lettuce",
    # Fruits
    "embe": "mangoes",
    "mango": "mangoes",
    "maembe": "mangoes",
    "ndizi": "bananas",
    "banana": "bananas",
    "chungwa": "oranges",
    "orange": "oranges",
    "machungwa": "oranges",
    "parachichi": "avocado",
    "avocados": "avocado",
    "papai": "papaya",
    "papayas": "papaya",
    "nanasi": "pineapple",
    "pineapples": "pineapple",
    # Grains & staples
    "mahindi": "maize",
    "maize": "maize",
    "corn": "maize",
    "mchele": "rice",
    "uchunga": "flour",
    "unga": "flour",
    "ngano": "wheat",
    # Meat & protein
    "nyama": "meat",
    "kuku": "chicken",
    "chickens": "chicken",
    "samaki": "fish",
    "fishes": "fish",
    "mayai": "eggs",
    "egg": "eggs",
    # Dairy
    "maziwa": "milk",
    "siagi": "butter",
    "jibini": "cheese",
    # Others
    "sukari": "sugar",
    "chumvi": "salt",
    "chumuvi": "salt",
    "mafuta": "oil",
    "chai": "tea",
    "kahawa": "coffee",
    "maji": "water",
    "soda": "soda",
    "sodas": "soda",
    "mkate": "bread",
    "sabuni": "soap",
}

UNIT_TERMS: dict[str, str] = {
    "kilo": "kg",
    "kilos": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "kgs": "kg",
    "lita": "liters",
    "liter": "liters",
    "litre": "liters",
    "litres": "liters",
    "piece": "pieces",
    "pcs": "pieces",
    "pc": "pieces",
    "bundle": "bundles",
    "bag": "bags",
    "sack": "sacks",
    "crate": "crates",
    "packet": "packets",
    "gram": "grams",
    "gramme": "grams",
    "unit": "units",
}

UNIT_NAMES = frozenset(UNIT_TERMS.values())

# Ordered most specific first; each rewrite is tried on the cleaned name.
PLURAL_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"ies$"), "y"),  # berries -> berry
    (re.compile(r"ves$"), "f"),  # leaves -> leaf
    (re.compile(r"oes$"), "o"),  # tomatoes -> tomato
    (re.compile(r"ses$"), "s"),  # glasses -> glass
    (re.compile(r"es$"), ""),  # boxes -> box
    (re.compile(r"s$"), ""),  # apples -> apple
)

_DISALLOWED_CHARS = re.compile(r"[^\w\s-]|_")
_WHITESPACE = re.compile(r"\s+")
_LEADING_ARTICLE = re.compile(r"^the\s+")


def clean_item_name(raw: str) -> str:
    """Lowercase, trim, keep letters/digits/hyphens/spaces, collapse spaces."""
    cleaned = _DISALLOWED_CHARS.sub("", raw.lower().strip())
    return _WHITESPACE.sub(" ", cleaned).strip()


@dataclass(frozen=True)
class MultilingualDictionary:
    """Immutable surface-form -> canonical-name map.

    The map is kept closed: every canonical name resolves to itself, so
    normalizing a canonical name never moves it again.
    """

    entries: Mapping[str, str]
    version: int = 1
    canonical_names: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))
        object.__setattr__(self, "canonical_names", frozenset(self.entries.values()))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str], *, version: int = 1) -> MultilingualDictionary:
        resolved: dict[str, str] = {}
        for term, canonical in mapping.items():
            resolved = _insert_mapping(resolved, clean_item_name(term), clean_item_name(canonical))
        return cls(resolved, version=version)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, term: object) -> bool:
        return term in self.entries

    def get(self, term: str) -> Optional[str]:
        return self.entries.get(term)

    def resolve(self, term: str) -> Optional[str]:
        """Canonical name for *term* if it is a key or already canonical."""
        hit = self.entries.get(term)
        if hit is not None:
            return hit
        if term in self.canonical_names:
            return term
        return None

    def is_product(self, name: str) -> bool:
        return name in self.canonical_names and name not in UNIT_NAMES

    def with_mapping(self, term: str, canonical: str) -> MultilingualDictionary:
        """Return a new dictionary (next version) with *term* -> *canonical*."""
        cleaned_term = clean_item_name(term)
        cleaned_canonical = clean_item_name(canonical)
        if not cleaned_term or not cleaned_canonical:
            raise ValueError("term and canonical must contain letters or digits")
        updated = _insert_mapping(dict(self.entries), cleaned_term, cleaned_canonical)
        return MultilingualDictionary(updated, version=self.version + 1)


def _insert_mapping(entries: dict[str, str], term: str, canonical: str) -> dict[str, str]:
    # Point at the end of any existing chain, and drag along keys that
    # used *term* as their canonical name.
    target = entries.get(canonical, canonical)
    if target == term:
        target = canonical
    for key, value in list(entries.items()):
        if value == term:
            entries[key] = target
    entries[term] = target
    return entries


class DictionaryRegistry:
    """Process-wide holder of the current dictionary snapshot.

    Readers take ``current()`` once per call; writers replace the snapshot
    under a single lock.
    """

    def __init__(self, initial: MultilingualDictionary) -> None:
        self._initial = initial
        self._current = initial
        self._lock = Lock()

    def current(self) -> MultilingualDictionary:
        return self._current

    def add_mapping(self, term: str, canonical: str) -> MultilingualDictionary:
        with self._lock:
            self._current = self._current.with_mapping(term, canonical)
            logger.info(
                "Added item mapping %r -> %r (dictionary v%d)",
                term,
                canonical,
                self._current.version,
            )
            return self._current

    def reset(self) -> None:
        with self._lock:
            self._current = self._initial


DEFAULT_DICTIONARY = MultilingualDictionary.from_mapping({**PRODUCT_TERMS, **UNIT_TERMS})

dictionary_registry = DictionaryRegistry(DEFAULT_DICTIONARY)


def normalize_item_name(item_name: str, dictionary: MultilingualDictionary | None = None) -> str:
    """Normalize an item name to its canonical form.

    Unknown names come back cleaned but otherwise unchanged; that cleaned
    form is the canonical name for goods the dictionary has not seen.
    """
    if not item_name or not isinstance(item_name, str):
        return ""

    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    normalized = clean_item_name(item_name)
    if not normalized:
        return ""

    # Exact key, or already one of the canonical names.
    hit = vocab.resolve(normalized)
    if hit is not None:
        return hit

    without_the = _LEADING_ARTICLE.sub("", normalized)
    if without_the != normalized:
        hit = vocab.resolve(without_the)
        if hit is not None:
            return hit

    for pattern, replacement in PLURAL_RULES:
        if not pattern.search(normalized):
            continue
        hit = vocab.resolve(pattern.sub(replacement, normalized))
        if hit is not None:
            return hit

    return normalized


def normalize_item_names(item_names: Iterable[str], dictionary: MultilingualDictionary | None = None) -> list[str]:
    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    return [normalize_item_name(name, vocab) for name in item_names]


def get_item_variations(item_name: str, dictionary: MultilingualDictionary | None = None) -> list[str]:
    """All spellings that resolve to the same canonical name as *item_name*."""
    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    normalized = normalize_item_name(item_name, vocab)
    if not normalized:
        return []

    variations = {normalized, item_name.lower().strip()}
    for key, value in vocab.entries.items():
        if value == normalized or key == normalized:
            variations.add(key)
            variations.add(value)
    return sorted(variations)


def add_multilingual_mapping(term: str, canonical: str) -> MultilingualDictionary:
    """Register *term* as a surface form of *canonical* for this process."""
    return dictionary_registry.add_mapping(term, canonical)


T = TypeVar("T")


class InventoryCatalog(Protocol[T]):
    """Read access to an owner's stored inventory records."""

    def find_by_owner_and_name(self, owner_id: str, name: str) -> Optional[T]: ...

    def list_by_owner(self, owner_id: str) -> Iterable[T]: ...

    def stored_name(self, record: T) -> str: ...


def find_inventory_by_normalized_name(
    item_name: str,
    catalog: InventoryCatalog[T],
    owner_id: str,
    dictionary: MultilingualDictionary | None = None,
) -> Optional[T]:
    """Find the owner's stored record for *item_name*, across spellings.

    Order: exact stored name equal to the normalized form, then a scan of
    the owner's records comparing normalized names, then the raw
    lowercase name (records saved before normalization existed).
    """
    vocab = dictionary if dictionary is not None else dictionary_registry.current()
    normalized_name = normalize_item_name(item_name, vocab)

    if normalized_name:
        record = catalog.find_by_owner_and_name(owner_id, normalized_name)
        if record is not None:
            return record

        for current in catalog.list_by_owner(owner_id):
            if normalize_item_name(catalog.stored_name(current), vocab) == normalized_name:
                return current

    raw_name = (item_name or "").lower().strip()
    if not raw_name:
        return None
    return catalog.find_by_owner_and_name(owner_id, raw_name)
