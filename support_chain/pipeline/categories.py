"""Support categories: the fixed vocabulary, category-name extraction and validation of stage 3 output."""
import logging
import re
from typing import Literal

from pydantic import BaseModel, Field

from support_chain.errors import CategoryNotRecognizedError

logger = logging.getLogger(__name__)

Category = Literal[
    "Account Opening",
    "Billing Issue",
    "Account Access",
    "Transaction Inquiry",
    "Card Services",
    "Account Statement",
    "Loan Inquiry",
    "General Information",
]

# Order matters: it is the order shown to the model in stage 2.
CATEGORIES: tuple[str, ...] = (
    "Account Opening",
    "Billing Issue",
    "Account Access",
    "Transaction Inquiry",
    "Card Services",
    "Account Statement",
    "Loan Inquiry",
    "General Information",
)

_LOOKUP = {c.lower(): c for c in CATEGORIES}
_DECORATION = " \t\r\n*_`\"'#"


class CategorySelection(BaseModel):
    """Structured form of the stage 3 output."""
    category: Category = Field(..., description="One of the eight support categories")
    rationale: str = Field(default="", description="Why this category was chosen (text after the first colon)")


def extract_category_name(selected_category: str) -> str:
    """Text before the first ':' trimmed; the whole trimmed text when there is no colon."""
    return (selected_category or "").split(":", 1)[0].strip()


def _rationale(selected_category: str) -> str:
    parts = (selected_category or "").split(":", 1)
    return parts[1].strip() if len(parts) == 2 else ""


def match_category(name: str) -> str | None:
    """Map a free-text name to a vocabulary label.

    Exact case-insensitive match after stripping markdown and quotes first; otherwise the
    label mentioned earliest inside the name. None when no label appears.
    """
    cleaned = re.sub(r"\s+", " ", (name or "").strip(_DECORATION)).lower()
    if not cleaned:
        return None
    if cleaned in _LOOKUP:
        return _LOOKUP[cleaned]
    hits = [(cleaned.find(key), label) for key, label in _LOOKUP.items() if key in cleaned]
    if not hits:
        return None
    return min(hits)[1]


def parse_selection(selected_category: str) -> CategorySelection:
    """Resolve stage 3 text into a CategorySelection or raise CategoryNotRecognizedError."""
    name = extract_category_name(selected_category)
    label = match_category(name)
    if label is None:
        raise CategoryNotRecognizedError(selected_category, name)
    return CategorySelection(category=label, rationale=_rationale(selected_category))
