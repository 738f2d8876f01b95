"""Prompt templates for the five stages and the builders that fill them from a ChainContext."""
from dataclasses import dataclass
from typing import Callable

from support_chain.pipeline.categories import CATEGORIES
from support_chain.pipeline.context import ChainContext
from support_chain.pipeline.stages import (
    CATEGORY_MAPPING,
    CATEGORY_SELECTION,
    DETAIL_EXTRACTION,
    INTENT,
    RESPONSE,
)

NO_DETAILS_MARKER = "No additional details provided."

INTENT_TEMPLATE = (
    "Analyze the following customer query and identify the primary intent. "
    "What is the customer trying to accomplish or what problem are they reporting?\n\n"
    "Customer Query: {query}\n\n"
    "Provide a clear, one-sentence summary of the customer's intent. "
    "Focus on the underlying need or goal, not just the literal words used."
)

CATEGORIES_TEMPLATE = (
    "Based on the customer's intent, suggest 1-3 possible categories that could apply from this list:\n"
    "{category_list}\n\n"
    "Customer Intent: {intent}\n\n"
    "List the categories in order of relevance (most relevant first). "
    "For each category, provide a brief reason why it might apply."
)

SELECTION_TEMPLATE = (
    "Review the suggested categories and select the single most appropriate category for this customer query.\n\n"
    "Customer Intent: {intent}\n"
    "Original Query: {query}\n"
    "Suggested Categories: {categories}\n\n"
    "Choose exactly ONE category from the suggestions and explain your choice in 1-2 sentences. "
    "Consider which category would lead to the most effective resolution of the customer's issue.\n"
    "Answer in the form \"<Category Name>: <explanation>\", using the category name exactly as listed.\n\n"
    "Selected Category:"
)

DETAILS_TEMPLATE = (
    "Identify any additional details from the customer's query that would be relevant for addressing "
    "their request in the \"{category_name}\" category.\n\n"
    "Original Query: {query}\n\n"
    "Extract the following types of information if present:\n"
    "- Specific amounts (transaction amounts, fees, etc.)\n"
    "- Dates or time periods\n"
    "- Account types or numbers (last 4 digits only)\n"
    "- Card types (credit/debit)\n"
    "- Transaction descriptions or merchant names\n"
    "- Any error messages or specific symptoms\n\n"
    "List each detail found with its type. If no additional details are present, "
    "state \"" + NO_DETAILS_MARKER + "\""
)

RESPONSE_TEMPLATE = (
    "Generate a professional, helpful response to the customer based on all the information gathered.\n\n"
    "Category: {selected_category}\n"
    "Customer Intent: {intent}\n"
    "Additional Details: {details}\n"
    "Original Query: {query}\n\n"
    "Your response should:\n"
    "- Acknowledge the customer's concern\n"
    "- Provide relevant next steps or information\n"
    "- Be concise (2-4 sentences)\n"
    "- Use a friendly, professional tone\n"
    "- Include any relevant details extracted from their query\n\n"
    "Response:"
)


def category_list() -> str:
    return "\n".join(f"- {c}" for c in CATEGORIES)


def build_intent_prompt(ctx: ChainContext) -> str:
    return INTENT_TEMPLATE.format(query=ctx.query)


def build_categories_prompt(ctx: ChainContext) -> str:
    return CATEGORIES_TEMPLATE.format(category_list=category_list(), intent=ctx.get(INTENT))


def build_selection_prompt(ctx: ChainContext) -> str:
    return SELECTION_TEMPLATE.format(
        intent=ctx.get(INTENT),
        query=ctx.query,
        categories=ctx.get(CATEGORY_MAPPING),
    )


def build_details_prompt(ctx: ChainContext) -> str:
    if ctx.category_name is None:
        raise ValueError("category name has not been derived from the selected category")
    return DETAILS_TEMPLATE.format(category_name=ctx.category_name, query=ctx.query)


def build_response_prompt(ctx: ChainContext) -> str:
    return RESPONSE_TEMPLATE.format(
        selected_category=ctx.get(CATEGORY_SELECTION),
        intent=ctx.get(INTENT),
        details=ctx.get(DETAIL_EXTRACTION),
        query=ctx.query,
    )


@dataclass(frozen=True)
class StageSpec:
    """Static definition of one stage: prompt rule, generation parameters and declared inputs."""
    name: str
    temperature: float
    max_output_tokens: int
    inputs: tuple[str, ...]
    build_prompt: Callable[[ChainContext], str]


# Low temperature for the classification stages, more variability for the customer reply.
STAGE_SPECS: tuple[StageSpec, ...] = (
    StageSpec(INTENT, 0.3, 150, ("query",), build_intent_prompt),
    StageSpec(CATEGORY_MAPPING, 0.3, 250, (INTENT,), build_categories_prompt),
    StageSpec(CATEGORY_SELECTION, 0.3, 150, (INTENT, "query", CATEGORY_MAPPING), build_selection_prompt),
    StageSpec(DETAIL_EXTRACTION, 0.3, 200, ("query", "category_name"), build_details_prompt),
    StageSpec(RESPONSE, 0.5, 300, (CATEGORY_SELECTION, INTENT, DETAIL_EXTRACTION, "query"), build_response_prompt),
)
