"""Stage names for the chain, in execution order. Used as context keys, in errors and in traces."""

INTENT = "intent"
CATEGORY_MAPPING = "categories"
CATEGORY_SELECTION = "selected_category"
DETAIL_EXTRACTION = "details"
RESPONSE = "response"

STAGES = [INTENT, CATEGORY_MAPPING, CATEGORY_SELECTION, DETAIL_EXTRACTION, RESPONSE]

STAGE_LABELS = {
    INTENT: "Intent Interpretation",
    CATEGORY_MAPPING: "Category Mapping",
    CATEGORY_SELECTION: "Category Selection",
    DETAIL_EXTRACTION: "Detail Extraction",
    RESPONSE: "Response Generation",
}


def ordinal(stage: str) -> int:
    """1-based position of a stage."""
    return STAGES.index(stage) + 1
