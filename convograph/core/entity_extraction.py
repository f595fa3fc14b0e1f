"""
Rule-based entity extraction from transcript text.

Produces graph node candidates without any external calls. The output is a
pure function of the input text: sentence keyword hits first, then key
phrases, deduplicated by case-insensitive label with first occurrence kept.
"""

import hashlib
import re

from convograph.core.schemas_graph import Entity, EntityKind

MIN_TEXT_CHARS = 20
MIN_SENTENCE_CHARS = 10
MAX_ENTITIES = 20
MAX_PHRASES = 10
LABEL_EXCERPT_CHARS = 30
STARTUP_DESCRIPTION_CHARS = 100

KEYWORDS: dict[EntityKind, frozenset[str]] = {
    EntityKind.STARTUP: frozenset(
        [
            "startup",
            "company",
            "business",
            "venture",
            "enterprise",
            "platform",
            "app",
            "application",
            "service",
        ]
    ),
    EntityKind.FEATURE: frozenset(
        [
            "feature",
            "functionality",
            "capability",
            "tool",
            "system",
            "integration",
            "api",
            "dashboard",
            "analytics",
        ]
    ),
    EntityKind.MARKET: frozenset(
        [
            "market",
            "industry",
            "sector",
            "niche",
            "audience",
            "customer",
            "user",
            "demand",
        ]
    ),
    EntityKind.CONCEPT: frozenset(
        [
            "idea",
            "concept",
            "solution",
            "problem",
            "opportunity",
            "strategy",
            "approach",
            "method",
            "model",
        ]
    ),
}

# Substrings used to classify free-floating phrases
PHRASE_HINTS: list[tuple[EntityKind, tuple[str, ...]]] = [
    (EntityKind.STARTUP, ("startup", "company", "business")),
    (EntityKind.FEATURE, ("feature", "tool", "function")),
    (EntityKind.MARKET, ("market", "industry", "customer")),
]

KIND_WEIGHTS: dict[EntityKind, float] = {
    EntityKind.STARTUP: 10.0,
    EntityKind.FEATURE: 8.0,
    EntityKind.MARKET: 9.0,
    EntityKind.CONCEPT: 12.0,
}
PHRASE_WEIGHT = 7.0

SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
CAPITALIZED_RE = re.compile(r"\b[A-Z][a-z]+\b")
WORD_RE = re.compile(r"[a-z0-9][a-z0-9'&+-]*")


def normalize_label(label: str) -> str:
    """Case-insensitive, whitespace-collapsed form used for identity."""
    return re.sub(r"\s+", " ", str(label or "")).strip().lower()


def entity_id_for(label: str) -> str:
    """Deterministic id from the normalized label."""
    norm = normalize_label(label)
    slug = re.sub(r"[^a-z0-9]+", "-", norm).strip("-")[:40] or "entity"
    digest = hashlib.md5(norm.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


def split_sentences(text: str) -> list[str]:
    parts = (s.strip() for s in SENTENCE_SPLIT_RE.split(text))
    return [s for s in parts if len(s) > MIN_SENTENCE_CHARS]


def _make_entity(
    label: str,
    kind: EntityKind,
    weight: float,
    description: str | None = None,
) -> Entity:
    return Entity(
        id=entity_id_for(label),
        label=label,
        kind=kind,
        weight=weight,
        description=description,
    )


def _sentence_entities(sentence: str) -> list[Entity]:
    tokens = set(sentence.lower().split())
    out: list[Entity] = []

    if tokens & KEYWORDS[EntityKind.STARTUP]:
        for word in CAPITALIZED_RE.findall(sentence):
            if len(word) > 3:
                out.append(
                    _make_entity(
                        word,
                        EntityKind.STARTUP,
                        KIND_WEIGHTS[EntityKind.STARTUP],
                        sentence[:STARTUP_DESCRIPTION_CHARS],
                    )
                )

    excerpt = sentence[:LABEL_EXCERPT_CHARS]
    for kind in (EntityKind.FEATURE, EntityKind.MARKET, EntityKind.CONCEPT):
        if tokens & KEYWORDS[kind]:
            out.append(
                _make_entity(
                    f"{kind.value.capitalize()}: {excerpt}",
                    kind,
                    KIND_WEIGHTS[kind],
                    sentence,
                )
            )
    return out


def extract_key_phrases(text: str, limit: int = MAX_PHRASES) -> list[str]:
    """First distinct 2-grams then 3-grams over the whole text."""
    words = WORD_RE.findall(text.lower())
    phrases: list[str] = []
    seen: set[str] = set()

    for size, min_len in ((2, 5), (3, 8)):
        for i in range(len(words) - size + 1):
            phrase = " ".join(words[i : i + size])
            if len(phrase) > min_len and phrase not in seen:
                seen.add(phrase)
                phrases.append(phrase)

    return phrases[:limit]


def classify_phrase(phrase: str) -> EntityKind:
    lower = phrase.lower()
    for kind, hints in PHRASE_HINTS:
        if any(h in lower for h in hints):
            return kind
    return EntityKind.CONCEPT


def extract_entities(text: str, max_entities: int = MAX_ENTITIES) -> list[Entity]:
    """
    Extract typed entities from transcript text.

    Args:
        text: Accumulated transcript text
        max_entities: Output cap (first-seen order is kept)

    Returns:
        Entities deduplicated by case-insensitive label; empty for short text
    """
    if not text or len(text.strip()) < MIN_TEXT_CHARS:
        return []

    candidates: list[Entity] = []
    for sentence in split_sentences(text):
        candidates.extend(_sentence_entities(sentence))

    for phrase in extract_key_phrases(text):
        if 5 < len(phrase) < 50:
            candidates.append(_make_entity(phrase, classify_phrase(phrase), PHRASE_WEIGHT))

    unique: list[Entity] = []
    seen: set[str] = set()
    for entity in candidates:
        key = normalize_label(entity.label)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entity)
        if len(unique) >= max_entities:
            break

    return unique
