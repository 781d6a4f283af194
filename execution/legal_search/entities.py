"""
Answer Entity Extraction

Parses a generated answer into typed factual entities (names, ages, dates,
amounts, case numbers) using a bounded set of regex matchers. This is
deliberately heuristic: each matcher is independent and may overlap with
the others (a case number is both a Reference and a Number).

Extraction never raises. Empty or malformed input yields no entities.
"""

import re
import logging

from .models import AnswerEntity, EntityType

logger = logging.getLogger(__name__)


# =============================================================================
# Patterns
# =============================================================================

# "Emma JOHNSON" or "Emma JOHNSON, age 7" (the age clause is stripped from the value)
NAME_PATTERN = re.compile(r"\b([A-Z][a-z]{2,}\s+[A-Z][A-Z]+(?:\s*,?\s*(?:age|aged)?\s*\d+)?)\b")
NAME_AGE_CLAUSE = re.compile(r"\s*,?\s*(?:age|aged)?\s*\d+", re.IGNORECASE)

AGE_PATTERN = re.compile(
    r"\b(?:age|aged)\s*:?\s*(\d+)|\b(\d+)\s*years?\s*old\b",
    re.IGNORECASE,
)

MONTHS = (
    "January|February|March|April|May|June|July|August|"
    "September|October|November|December"
)
DATE_PATTERN = re.compile(
    rf"\b(?:{MONTHS})\s+\d{{1,2}},?\s+\d{{4}}\b"
    r"|\b\d{1,2}/\d{1,2}/\d{2,4}\b"
    r"|\b\d{4}-\d{2}-\d{2}\b",
    re.IGNORECASE,
)

AMOUNT_PATTERN = re.compile(r"\$[\d,]+(?:\.\d{2})?")

REFERENCE_PATTERN = re.compile(
    r"\b(?:case|client|matter|file)\s*(?:number|#|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9-]*)",
    re.IGNORECASE,
)

# Weaker fallback: keyword-associated identifiers or any bare run of 4+ digits
NUMBER_PATTERN = re.compile(
    r"\b(?:contract|case|client|matter)\s*(?:number|#|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9-]*)"
    r"|\b(\d{4,})\b",
    re.IGNORECASE,
)

# Capitalized words that look like names but almost never are
COMMON_CAPITALIZED = frozenset({
    "THE", "AND", "FOR", "ARE", "BUT", "NOT", "YOU", "ALL", "CAN", "HER", "WAS",
    "ONE", "OUR", "HAD", "BY", "WORD", "WHAT", "SOME", "IS", "IT", "OR", "OF",
    "TO", "A", "IN", "THAT", "HE", "ON", "AS", "WITH", "HIS", "THEY", "I", "AT",
    "BE", "THIS", "HAVE", "FROM", "WERE", "WE", "WHEN", "YOUR", "SAID", "THERE",
    "EACH", "WHICH", "SHE", "DO", "HOW", "THEIR", "IF", "WILL", "UP", "OTHER",
    "ABOUT", "OUT", "MANY", "THEN", "THEM", "THESE", "SO", "WOULD", "MAKE",
    "LIKE", "INTO", "HIM", "HAS", "TWO", "MORE", "GO", "NO", "WAY", "COULD",
    "MY", "THAN", "FIRST", "BEEN", "CALL", "WHO", "ITS", "NOW", "FIND", "LONG",
    "DOWN", "DAY", "DID", "GET", "COME", "MADE", "MAY", "PART",
})

# Common words that are also given names ("May JOHNSON", "Will SMITH")
GIVEN_NAME_WORDS = frozenset({"MAY", "WILL"})


# =============================================================================
# Matchers
# =============================================================================

def is_common_word(word: str) -> bool:
    return word.upper() in COMMON_CAPITALIZED


def looks_like_identifier(value: str) -> bool:
    # "case no longer applies" must not yield "longer"; "SMITH-ESTATE" is kept
    if any(ch.isdigit() for ch in value):
        return True
    return value.isupper() and not is_common_word(value)


def is_rejected_name(name: str) -> bool:
    first, *rest = name.split()
    if first.upper() in COMMON_CAPITALIZED and first.upper() not in GIVEN_NAME_WORDS:
        return True
    return any(is_common_word(word) for word in rest)


def match_names(text: str) -> list[AnswerEntity]:
    entities = []
    for match in NAME_PATTERN.finditer(text):
        context = match.group(1)
        name = NAME_AGE_CLAUSE.sub("", context).strip()
        if len(name) <= 3:
            continue
        if is_rejected_name(name):
            continue
        entities.append(AnswerEntity(EntityType.NAME, name, context))
    return entities


def match_ages(text: str) -> list[AnswerEntity]:
    entities = []
    for match in AGE_PATTERN.finditer(text):
        value = match.group(1) or match.group(2)
        if 0 < int(value) < 150:
            entities.append(AnswerEntity(EntityType.AGE, value, match.group(0)))
    return entities


def match_dates(text: str) -> list[AnswerEntity]:
    return [
        AnswerEntity(EntityType.DATE, match.group(0), match.group(0))
        for match in DATE_PATTERN.finditer(text)
    ]


def match_amounts(text: str) -> list[AnswerEntity]:
    entities = []
    for match in AMOUNT_PATTERN.finditer(text):
        raw = match.group(0)
        try:
            amount = float(raw.replace("$", "").replace(",", ""))
        except ValueError:
            continue
        if amount > 0:
            entities.append(AnswerEntity(EntityType.AMOUNT, raw, raw))
    return entities


def match_references(text: str) -> list[AnswerEntity]:
    entities = []
    for match in REFERENCE_PATTERN.finditer(text):
        value = match.group(1).rstrip("-")
        if len(value) >= 3 and looks_like_identifier(value):
            entities.append(AnswerEntity(EntityType.REFERENCE, value, match.group(0)))
    return entities


def match_numbers(text: str) -> list[AnswerEntity]:
    entities = []
    for match in NUMBER_PATTERN.finditer(text):
        value = (match.group(1) or match.group(2)).rstrip("-")
        if len(value) >= 4 and looks_like_identifier(value):
            entities.append(AnswerEntity(EntityType.NUMBER, value, match.group(0)))
    return entities


MATCHERS = (
    match_names,
    match_ages,
    match_dates,
    match_amounts,
    match_numbers,
    match_references,
)


def extract_entities(answer_text: str) -> list[AnswerEntity]:
    """
    Extract typed factual entities from a generated answer.

    Args:
        answer_text: Free-text answer from the LLM

    Returns:
        Entities in matcher order (Name, Age, Date, Amount, Number, Reference).
        Each carries the normalized ``value`` and the full matched ``context``.
    """
    if not isinstance(answer_text, str) or not answer_text.strip():
        return []

    entities = []
    for matcher in MATCHERS:
        entities.extend(matcher(answer_text))

    logger.debug(f"Extracted {len(entities)} entities from answer")
    return entities
