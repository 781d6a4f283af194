"""
Answer Generation for Legal Search

Wraps an OpenAI-compatible chat completion client to answer a query from
the retrieved chunks. The model is asked to append two machine-readable
sections after its answer:

    RELEVANT_SPANS:
    Document 1: "exact text from document 1 that answers the query"
    Document 2: null

    METADATA:
    Document 1: {"entities": [...], "dates": [...], "section": "...", "legal_concept": "..."}

parse_answer() splits the completion back into the answer text, the
per-document spans and the per-document metadata. Malformed lines are
skipped.
"""

import os
import re
import json
import logging
from typing import Optional
from dataclasses import dataclass, field

from .errors import ProviderError, RateLimited, is_rate_limit_error
from .models import SearchResult

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Configuration for answer generation."""
    model: str = "gpt-4o-mini"
    simple_model: str = "gpt-3.5-turbo"  # short factual lookups
    base_url: Optional[str] = None  # None = api.openai.com
    api_key: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 800
    timeout: float = 60.0
    simple_query_max_chars: int = 50


SIMPLE_QUERY_MARKERS = (
    "what is", "when", "who", "how much", "number", "client number", "case number",
)


def is_simple_query(query: str, max_chars: int = 50) -> bool:
    """Short factual questions can be answered by the cheaper model."""
    lowered = query.lower()
    return len(query) < max_chars and any(marker in lowered for marker in SIMPLE_QUERY_MARKERS)


# =============================================================================
# Client context
# =============================================================================

@dataclass
class ClientProfile:
    """The client (case) a search is scoped to."""
    name: str
    matter_type: Optional[str] = None
    case_number: Optional[str] = None
    email: Optional[str] = None


def format_client_context(profile: ClientProfile, folders: Optional[list[str]] = None) -> str:
    """Render a client profile and its folders as prompt context."""
    folders = folders or []
    if folders:
        folder_lines = "\n".join(f"- {name}: Legal documents and files" for name in folders)
    else:
        folder_lines = "- No folders created yet"

    return (
        "Client Information:\n"
        f"- Name: {profile.name}\n"
        f"- Case Type: {profile.matter_type or 'Not specified'}\n"
        f"- Case Number: {profile.case_number or 'Not assigned'}\n"
        f"- Email: {profile.email or 'Not provided'}\n"
        "\n"
        "Available Folders:\n"
        f"{folder_lines}\n"
        "\n"
        f"Total Folders: {len(folders)}\n"
    )


# =============================================================================
# Prompts
# =============================================================================

SYSTEM_PROMPT = """You are a legal document assistant helping attorneys manage client cases.
{client_block}
CRITICAL INSTRUCTIONS FOR DOCUMENT REFERENCES:
1. You MUST base your answer EXACTLY on the document content provided
2. When citing specific information, quote the EXACT text from the documents
3. Use this EXACT format when referencing documents: "Document: [filename] | Section: [section] | Lines: [range]"
4. NEVER make up information not found in the provided documents
5. If asked about specific details (names, ages, dates, amounts), quote them EXACTLY as they appear

RESPONSE REQUIREMENTS:
1. SCAN for the EXACT answer in the documents
2. Give the MOST DIRECT answer possible, usually 1-2 sentences
3. Do NOT add boilerplate phrases like "If you require further details..."
4. For list questions, format as bullet points
5. Stay consistent with the client context: this is a {case_type} case

Examples:
Q: "What were the ages of the two minors?"
A: "EMMA JOHNSON, age 7 - JACOB JOHNSON, age 5"

Q: "What is the contract amount?"
A: "$50,000 as stated in Section 3.2"

CRITICAL: After your main answer, add these two sections EXACTLY as shown:

RELEVANT_SPANS:
Document 1: "exact text from document 1 that answers the query"
Document 2: null

METADATA:
Document 1: {{"entities": ["TechVentures LLC"], "dates": ["January 15, 2025"], "section": "Payment Terms", "legal_concept": "compensation"}}

SPAN EXTRACTION RULES:
- Extract the EXACT sentence/line that directly answers the user's query
- If a document doesn't contain a direct answer, write null
- Prefer specific facts over general statements

METADATA EXTRACTION:
- entities: People, companies, amounts mentioned
- dates: Any dates found
- section: What part of document (Facts, Terms, Procedures, etc.)
- legal_concept: Main legal topic (compensation, custody, breach, etc.)"""

CASE_TYPE_PATTERN = re.compile(r"Case Type:\s*([^\n]+)")


def build_system_prompt(client_context: str = "") -> str:
    client_block = ""
    case_type = "legal"
    if client_context and client_context.strip():
        client_block = f"\nCurrent Client Context:\n{client_context.strip()}\n"
        match = CASE_TYPE_PATTERN.search(client_context)
        if match and match.group(1).strip() != "Not specified":
            case_type = match.group(1).strip()
    return SYSTEM_PROMPT.format(client_block=client_block, case_type=case_type)


def build_document_context(results: list[SearchResult]) -> str:
    """Numbered document blocks with title, file and location."""
    blocks = []
    for i, result in enumerate(results, start=1):
        page_info = f"Page {result.page}" if result.page else "Unknown page"
        line_info = f"Lines {result.lines}" if result.lines else f"Chunk {result.chunk_index}"
        blocks.append(
            f"Document {i}:\n"
            f"Title: {result.document_title}\n"
            f"File: {result.file_name}\n"
            f"Location: {page_info} | {line_info}\n"
            f'Content: "{result.content}"\n'
            "---"
        )
    return "\n\n".join(blocks)


def build_user_prompt(query: str, document_context: str) -> str:
    return (
        f"Query: {query}\n\n"
        f"Document Excerpts:\n{document_context}\n\n"
        "Provide a direct, concise answer based on these documents. When citing information, "
        "use the EXACT format: Document: [filename] | Section: [section] | Lines: [range]"
    )


# =============================================================================
# Completion parsing
# =============================================================================

SECTION_MARKER = re.compile(r"(RELEVANT_SPANS:|METADATA:)")
SPAN_LINE = re.compile(r"Document\s+(\d+):\s*(.+)")
METADATA_LINE = re.compile(r"Document\s+(\d+):\s*(\{.*\})")
BOLD_TEXT = re.compile(r"\*\*([^*]+)\*\*")


@dataclass
class AnswerResult:
    """Parsed completion. Span and metadata keys are 0-based result positions."""
    answer_text: str
    relevant_spans: dict[int, Optional[str]] = field(default_factory=dict)
    metadata: dict[int, dict] = field(default_factory=dict)


def _parse_spans(section: str) -> dict[int, Optional[str]]:
    spans = {}
    for line in section.strip().splitlines():
        match = SPAN_LINE.search(line)
        if not match:
            continue
        position = int(match.group(1)) - 1
        span = match.group(2).strip()
        if span.lower() == "null" or span in ('""', "''"):
            spans[position] = None
        else:
            spans[position] = re.sub(r"^[\"']|[\"']$", "", span)
    return spans


def _parse_metadata(section: str) -> dict[int, dict]:
    metadata = {}
    for line in section.strip().splitlines():
        match = METADATA_LINE.search(line)
        if not match:
            continue
        try:
            metadata[int(match.group(1)) - 1] = json.loads(match.group(2))
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse metadata line: {line[:100]}")
    return metadata


def parse_answer(completion: str, result_count: int = 0) -> AnswerResult:
    """
    Split a completion into answer text, relevant spans and metadata.

    When the model omitted RELEVANT_SPANS, bold (**...**) phrases in the
    answer are used as spans for the first ``result_count`` documents.
    """
    parts = SECTION_MARKER.split(completion or "")
    answer_text = parts[0].strip()

    spans: dict[int, Optional[str]] = {}
    metadata: dict[int, dict] = {}
    for marker, body in zip(parts[1::2], parts[2::2]):
        if marker == "RELEVANT_SPANS:":
            spans.update(_parse_spans(body))
        else:
            metadata.update(_parse_metadata(body))

    if not spans:
        logger.debug("No RELEVANT_SPANS section found, falling back to bold phrases")
        for position, phrase in enumerate(BOLD_TEXT.findall(answer_text)):
            if position >= result_count:
                break
            spans[position] = phrase.strip()

    return AnswerResult(answer_text=answer_text, relevant_spans=spans, metadata=metadata)


# =============================================================================
# Generator
# =============================================================================

class AnswerGenerator:
    """Generates a cited answer from search results via chat completions."""

    def __init__(self, config: Optional[LLMConfig] = None, client=None):
        self.config = config or LLMConfig()
        self._client = client

    def _get_client(self):
        """Get or create cached OpenAI-compatible client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self.config.base_url,
                api_key=self.config.api_key or os.getenv("OPENAI_API_KEY"),
                timeout=self.config.timeout,
            )
        return self._client

    def select_model(self, query: str) -> str:
        if is_simple_query(query, self.config.simple_query_max_chars):
            return self.config.simple_model
        return self.config.model

    def generate(
        self,
        query: str,
        results: list[SearchResult],
        client_context: str = "",
    ) -> AnswerResult:
        """
        Answer ``query`` from ``results``.

        Raises:
            RateLimited: Provider returned 429
            ProviderError: Any other provider failure
        """
        model = self.select_model(query)
        logger.info(f"Generating answer with {model} from {len(results)} chunks")

        try:
            response = self._get_client().chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": build_system_prompt(client_context)},
                    {"role": "user", "content": build_user_prompt(query, build_document_context(results))},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as e:
            if is_rate_limit_error(e):
                raise RateLimited(f"LLM rate limit: {e}", provider="llm", status_code=429) from e
            logger.error(f"LLM generation failed: {type(e).__name__}: {e}")
            raise ProviderError(
                f"LLM generation failed: {e}",
                provider="llm",
                status_code=getattr(e, "status_code", None),
            ) from e

        completion = response.choices[0].message.content or ""
        return parse_answer(completion, result_count=len(results))
