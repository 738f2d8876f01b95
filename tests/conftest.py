"""Shared fakes for chain tests: completion providers that never touch the network."""
import pytest

from support_chain.errors import CompletionError
from support_chain.services.llm_provider import LLMProvider

CHARGE_QUERY = "I was charged $50 fee yesterday and I don't know why"

CHARGE_RESPONSES = [
    "The customer wants to understand why they were charged an unexpected $50 fee yesterday.",
    "1. Billing Issue - the customer is questioning a fee.\n2. Transaction Inquiry - the fee appeared as a transaction.",
    "Billing Issue: The customer is disputing an unexplained $50 fee, which is a billing concern.",
    "- Amount: $50 (fee)\n- Date: yesterday",
    "I'm sorry for the confusion about the $50 fee charged to your account yesterday. "
    "I'll review the charge and explain what it was for, and if it was applied in error we will refund it.",
]


class ScriptedProvider(LLMProvider):
    """Returns canned texts in call order and records every call. fail_at: 1-based call index that raises."""

    name = "scripted"

    def __init__(self, responses, fail_at=None, error=None):
        self.responses = list(responses)
        self.fail_at = fail_at
        self.error = error or CompletionError("service unavailable", status_code=503)
        self.calls = []

    async def complete(self, prompt, temperature, max_output_tokens):
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_output_tokens": max_output_tokens})
        if self.fail_at is not None and len(self.calls) == self.fail_at:
            raise self.error
        return self.responses[len(self.calls) - 1]


class EchoProvider(LLMProvider):
    """Answers from the prompt itself so concurrent or batched chains can be told apart.

    Stage 3 always selects Billing Issue; other stages return "<max_tokens>|<query line>".
    A prompt containing FAIL raises CompletionError.
    """

    name = "echo"

    def __init__(self):
        self.calls = []

    async def complete(self, prompt, temperature, max_output_tokens):
        self.calls.append(prompt)
        if "FAIL" in prompt:
            raise CompletionError("rejected prompt")
        if prompt.rstrip().endswith("Selected Category:"):
            return "Billing Issue: fee related"
        query = ""
        for line in prompt.splitlines():
            if line.startswith("Customer Query: ") or line.startswith("Original Query: "):
                query = line.split(": ", 1)[1]
        return f"{max_output_tokens}|{query}"


@pytest.fixture
def scripted_provider():
    """Factory: scripted_provider(responses=None, fail_at=None, error=None)."""

    def make(responses=None, fail_at=None, error=None):
        return ScriptedProvider(responses or CHARGE_RESPONSES, fail_at=fail_at, error=error)

    return make


@pytest.fixture
def echo_provider():
    return EchoProvider()


@pytest.fixture
def charge_query():
    return CHARGE_QUERY


@pytest.fixture
def charge_responses():
    return list(CHARGE_RESPONSES)
