"""Section extraction for markdown documents.

A document is split into sections wherever a line matches the configured
delimiter regex. Each section becomes one ``InputRow``: the unit that gets
embedded and searched.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Union
import structlog

from vaultsearch.rag.cleaner import clean_text

logger = structlog.get_logger()

FALLBACK_DELIMITER = "."


@dataclass(frozen=True)
class InputRow:
    """One extracted section, ready for embedding."""

    document_name: str
    modified_at: str
    section_label: str
    body: str


@dataclass(frozen=True)
class Delimiter:
    """Compiled delimiter, flagged when the configured one was unusable."""

    pattern: Pattern[str]
    fallback: bool = False


def compile_delimiter(expression: str) -> Delimiter:
    """Compile a section delimiter regex.

    An invalid expression falls back to ``.`` so that every non-empty line
    becomes its own section.
    """
    try:
        return Delimiter(pattern=re.compile(expression))
    except re.error as e:
        logger.warning(
            "invalid_section_delimiter",
            delimiter=expression,
            error=str(e),
            fallback=FALLBACK_DELIMITER,
        )
        return Delimiter(pattern=re.compile(FALLBACK_DELIMITER), fallback=True)


def _make_row(
    document_name: str, modified_at: str, label: str, body: str
) -> Optional[InputRow]:
    section_label = clean_text(label)
    section_body = clean_text(body)
    if not section_label and not section_body:
        return None
    return InputRow(
        document_name=document_name,
        modified_at=modified_at,
        section_label=section_label,
        body=section_body,
    )


def extract_sections(
    document_name: str,
    modified_at: str,
    text: str,
    delimiter: Union[str, Delimiter],
) -> List[InputRow]:
    """Split document text into sections.

    A line matching the delimiter closes the running section and starts a
    new one, seeding both its label and its body. Other lines are cleaned and
    appended to the body with a single space. Until the first delimiter
    match, the first line of the document acts as the label.

    Args:
        document_name: Document identity (file name)
        modified_at: Document modification time, as stored in the caches
        text: Raw document text
        delimiter: Regex string or pre-compiled ``Delimiter``

    Returns:
        Sections in document order
    """
    if isinstance(delimiter, str):
        delimiter = compile_delimiter(delimiter)
    pattern = delimiter.pattern

    rows: List[InputRow] = []
    label = ""
    body = ""

    def flush() -> None:
        if label.strip() or body.strip():
            row = _make_row(document_name, modified_at, label, body)
            if row is not None:
                rows.append(row)

    for line in text.splitlines():
        if pattern.search(line):
            flush()
            label = line
            body = line
        else:
            if not label:
                label = line
            cleaned = clean_text(line)
            if cleaned:
                body = f"{body} {cleaned}"

    flush()

    logger.debug(
        "sections_extracted",
        document=document_name,
        section_count=len(rows),
    )

    return rows

