"""
Citation Grounding for Legal Search

Ties a generated answer back to literal source sentences so the UI can
highlight verifiable citations.

Each candidate sentence is scored as the sum of:
1. Entity matches: answer entities found in the sentence, weighted by type
2. Quoted spans: text the answer quotes verbatim (strongest signal)
3. Token overlap: shared meaningful words between sentence and answer

Grounding never raises; no matches simply means no grounded sentences.
"""

import re
import logging
from typing import Optional
from dataclasses import dataclass

from .entities import extract_entities
from .models import AnswerEntity, EntityType, RelevantSentence, SearchResult

logger = logging.getLogger(__name__)


ENTITY_WEIGHTS = {
    EntityType.NAME: 0.5,
    EntityType.REFERENCE: 0.45,
    EntityType.AGE: 0.4,
    EntityType.DATE: 0.4,
    EntityType.AMOUNT: 0.35,
    EntityType.NUMBER: 0.25,
}

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "about", "into", "through", "during", "before",
    "after", "above", "below", "up", "down", "out", "off", "over", "under",
    "again", "further", "then", "once", "here", "there", "when", "where", "why",
    "how", "all", "any", "both", "each", "few", "more", "most", "other", "some",
    "such", "no", "nor", "not", "only", "own", "same", "so", "than", "too",
    "very", "can", "will", "just", "should", "now", "document", "documents",
    "contract", "agreement", "case", "legal",
})

SECTION_PATTERNS = [
    (re.compile(r"\b(?:Section|SECTION)\s*(\d+(?:\.\d+)*)\s*:?\s*([^.\n]+)"), "Section"),
    (re.compile(r"\b(?:Article|ARTICLE)\s+(\d+(?:\.\d+)*|[IVXLC]+)\b\s*[:-]?\s*([^.\n]+)"), "Article"),
    (re.compile(r"\b(?:Part|PART)\s+(\w+)\s*[:-]?\s*([^.\n]+)"), "Part"),
    (re.compile(r"^\s*(\d+\.\s*[A-Z][^.\n]+)", re.MULTILINE), None),
]

SENTENCE_SPLIT = re.compile(r"[.!?]+(?:\s+|$)")
WHITESPACE = re.compile(r"\s+")
QUOTE_PATTERN = re.compile(r"[\"“]([^\"“”]+)[\"”]")


@dataclass
class GroundingConfig:
    """Tunable thresholds for sentence grounding."""
    min_sentence_length: int = 30
    acceptance_threshold: float = 0.6
    min_entity_matches: int = 2
    quote_bonus: float = 1.0
    min_quote_length: int = 10
    overlap_weight: float = 0.3
    similarity_floor: float = 0.7


def normalize_whitespace(text: str) -> str:
    return WHITESPACE.sub(" ", text).strip()


def split_sentences(text: str, min_length: int) -> list[str]:
    """
    Split on sentence terminators, keeping sentences longer than ``min_length``.

    Line breaks and runs of whitespace inside a sentence collapse to one space.
    """
    sentences = (normalize_whitespace(s) for s in SENTENCE_SPLIT.split(text or ""))
    return [s for s in sentences if len(s) > min_length]


def meaningful_tokens(text: str) -> set[str]:
    """Lowercase words longer than two characters, minus stop words."""
    tokens = set()
    for raw in text.lower().split():
        word = re.sub(r"[^\w]", "", raw)
        if len(word) > 2 and word not in STOP_WORDS:
            tokens.add(word)
    return tokens


def token_overlap(sentence: str, answer_text: str) -> float:
    """Shared meaningful tokens over the larger of the two token sets."""
    sentence_tokens = meaningful_tokens(sentence)
    answer_tokens = meaningful_tokens(answer_text)
    if not sentence_tokens or not answer_tokens:
        return 0.0
    shared = sentence_tokens & answer_tokens
    return len(shared) / max(len(sentence_tokens), len(answer_tokens))


def quoted_spans(answer_text: str, min_length: int = 10) -> list[str]:
    """Double-quoted substrings of the answer longer than ``min_length``."""
    spans = []
    for match in QUOTE_PATTERN.finditer(answer_text or ""):
        span = normalize_whitespace(match.group(1)).rstrip(".!?").strip()
        if len(span) > min_length:
            spans.append(span)
    return spans


def detect_section(text: str) -> Optional[str]:
    """Best-effort section label such as "Section 4.2: Termination"."""
    for pattern, label in SECTION_PATTERNS:
        match = pattern.search(text or "")
        if not match:
            continue
        if label is None:
            return match.group(1).strip()
        return f"{label} {match.group(1)}: {match.group(2).strip()}"
    return None


def _unique_entities(entities: list[AnswerEntity]) -> list[AnswerEntity]:
    seen = set()
    unique = []
    for entity in entities:
        key = (entity.type, entity.value.lower())
        if key not in seen:
            seen.add(key)
            unique.append(entity)
    return unique


def _quote_matches(sentence_lower: str, quotes: list[str]) -> int:
    matches = 0
    for quote in quotes:
        quote_lower = quote.lower()
        if quote_lower in sentence_lower or sentence_lower in quote_lower:
            matches += 1
    return matches


def ground_sentences(
    chunks: list[SearchResult],
    query: str,
    answer_text: str,
    max_sentences: int = 3,
    config: Optional[GroundingConfig] = None,
) -> list[RelevantSentence]:
    """
    Select the source sentences that best ground ``answer_text``.

    Args:
        chunks: Search hits for one or more documents
        query: The user's question (for tracing; scoring is answer-driven)
        answer_text: Generated answer to ground
        max_sentences: Maximum sentences returned
        config: Grounding thresholds

    Returns:
        Accepted sentences, quoted-span matches first, then by descending score.
    """
    cfg = config or GroundingConfig()
    if not answer_text or not isinstance(answer_text, str):
        return []

    entities = _unique_entities(extract_entities(answer_text))
    quotes = quoted_spans(answer_text, cfg.min_quote_length)
    answer_tokens = meaningful_tokens(answer_text)

    logger.debug(
        f"Grounding answer for query {str(query or '')[:80]!r}: "
        f"{len(entities)} entities, {len(quotes)} quoted spans"
    )

    candidates = []
    for chunk in chunks:
        if chunk.similarity <= cfg.similarity_floor:
            continue

        section = detect_section(chunk.content)

        for sentence in split_sentences(chunk.content, cfg.min_sentence_length):
            sentence_lower = sentence.lower()
            score = 0.0
            matched = []

            for entity in entities:
                if entity.value.lower() in sentence_lower:
                    matched.append(entity)
                    score += ENTITY_WEIGHTS[entity.type]

            quote_hits = _quote_matches(sentence_lower, quotes)
            score += quote_hits * cfg.quote_bonus

            sentence_tokens = meaningful_tokens(sentence)
            if sentence_tokens and answer_tokens:
                shared = len(sentence_tokens & answer_tokens)
                score += cfg.overlap_weight * shared / max(len(sentence_tokens), len(answer_tokens))

            if score > cfg.acceptance_threshold or len(matched) >= cfg.min_entity_matches:
                candidates.append((quote_hits > 0, score, RelevantSentence(
                    text=sentence,
                    relevance_score=min(score, 1.0),
                    matched_entities=matched,
                    page=chunk.page,
                    lines=chunk.lines,
                    section=section,
                )))

    candidates.sort(key=lambda c: (c[0], c[1]), reverse=True)
    selected = [sentence for _, _, sentence in candidates[:max_sentences]]

    logger.info(f"Grounded {len(selected)} of {len(candidates)} candidate sentences")
    return selected
