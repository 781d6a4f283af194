"""
Result Consolidation

Groups chunk-level search hits into one entry per source document with an
aggregate relevance label and up to three highlighted excerpts.

Excerpts come from citation grounding when a generated answer is
available; otherwise (or when grounding finds nothing) the first sentences
of the document's best chunk are used.
"""

import re
import logging
import threading
from typing import Optional

from .errors import OperationCancelled
from .grounding import GroundingConfig, detect_section, ground_sentences
from .models import ConsolidatedDocument, Excerpt, Relevance, SearchResult

logger = logging.getLogger(__name__)

MAX_EXCERPTS = 3
UNKNOWN = "Unknown"


def relevance_level(similarities: list[float]) -> Relevance:
    """Mean similarity above 0.6 is High, above 0.3 Medium, otherwise Low."""
    if not similarities:
        return Relevance.LOW
    mean = sum(similarities) / len(similarities)
    if mean > 0.6:
        return Relevance.HIGH
    if mean > 0.3:
        return Relevance.MEDIUM
    return Relevance.LOW


def key_phrases(text: str, limit: int = 2, min_length: int = 20) -> list[str]:
    """First ``limit`` sentences of ``text`` longer than ``min_length`` characters."""
    phrases = [s.strip() for s in re.split(r"[.!?]+", text or "")]
    return [p for p in phrases if len(p) > min_length][:limit]


def _group_by_document(results: list[SearchResult]) -> dict[str, list[SearchResult]]:
    groups: dict[str, list[SearchResult]] = {}
    for result in results:
        groups.setdefault(result.document_id, []).append(result)
    return groups


def _fallback_excerpts(first: SearchResult) -> list[Excerpt]:
    section = detect_section(first.content)
    return [
        Excerpt(text=phrase, page=first.page, lines=first.lines, section=section)
        for phrase in key_phrases(first.content)
    ]


def consolidate(
    results: list[SearchResult],
    query: Optional[str] = None,
    answer_text: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    grounding_config: Optional[GroundingConfig] = None,
) -> list[ConsolidatedDocument]:
    """
    Consolidate search hits into per-document entries.

    Args:
        results: Ranked search hits
        query: The user's question
        answer_text: Generated answer; grounding runs only when both
            query and answer are given
        cancel_event: Checked between documents
        grounding_config: Optional grounding thresholds

    Returns:
        One ConsolidatedDocument per distinct document, in order of first
        appearance in ``results``.

    Raises:
        OperationCancelled: ``cancel_event`` was set
    """
    consolidated = []

    for document_id, group in _group_by_document(results).items():
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Consolidation cancelled at document {document_id}")

        first = group[0]
        excerpts = []
        if query and answer_text:
            excerpts = [
                Excerpt(
                    text=sentence.text,
                    page=sentence.page,
                    lines=sentence.lines,
                    section=sentence.section,
                    query_relevance=sentence.relevance_score,
                )
                for sentence in ground_sentences(
                    group, query, answer_text, max_sentences=MAX_EXCERPTS, config=grounding_config,
                )
            ]
        if not excerpts:
            excerpts = _fallback_excerpts(first)

        consolidated.append(ConsolidatedDocument(
            document_id=document_id,
            title=first.document_title or first.file_name,
            file_name=first.file_name,
            client=first.client or UNKNOWN,
            matter=first.matter or UNKNOWN,
            relevance=relevance_level([r.similarity for r in group]),
            excerpts=excerpts[:MAX_EXCERPTS],
            total_pages=first.metadata.get("total_pages"),
        ))

    logger.info(f"Consolidated {len(results)} results into {len(consolidated)} documents")
    return consolidated
