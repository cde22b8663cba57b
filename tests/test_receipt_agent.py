"""Tests for the receipt parsers and their registry."""

from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from receipt_insights.agents import AgentRegistry, PlaceholderReceiptParser, ReceiptAgent
from receipt_insights.core.db import MerchantCategory
from receipt_insights.core.errors import ReceiptParseError
from receipt_insights.core.settings import Settings

RECEIPT_TEXT = "BLUE BOTTLE COFFEE\n2025-04-03 09:12\nLATTE 5.50\nCROISSANT 7.00\nTOTAL 12.50\nVISA"


class FakeLLM:
    """Mimics the streaming chat completion API of the Groq client."""

    def __init__(self, output: str | Exception) -> None:
        self.output = output
        self.requests: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

    def create(self, **kwargs: object) -> list:
        self.requests.append(kwargs)
        if isinstance(self.output, Exception):
            raise self.output
        half = len(self.output) // 2
        pieces = [self.output[:half], self.output[half:], None]
        return [SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=p))]) for p in pieces]


def make_agent(output: str | Exception, session_factory: sessionmaker | None = None) -> ReceiptAgent:
    return ReceiptAgent(Settings(), session_factory, llm_client=FakeLLM(output))


LLM_JSON = (
    'Here you go: {"date": "2025-04-03", "merchant": "Blue Bottle", "amount": "12.50", '
    '"category": "Food", "notes": "Paid by card"}'
)


def test_agent_extracts_expense_from_llm_json(session_factory: sessionmaker) -> None:
    record = make_agent(LLM_JSON, session_factory).parse_receipt(RECEIPT_TEXT, "user-1")
    got = (record.owner_id, record.date, record.merchant, record.amount, record.category, record.notes, record.status)
    expected = ("user-1", "2025-04-03", "Blue Bottle", 12.5, "Food", "Paid by card", "New")
    if got != expected:
        msg = f"Expected {expected}, got {got}"
        raise AssertionError(msg)


def test_agent_remembers_new_merchant_category(session_factory: sessionmaker) -> None:
    agent = make_agent(LLM_JSON, session_factory)
    agent.parse_receipt(RECEIPT_TEXT, "user-1")
    if agent.lookup_category("blue bottle") != "Food":
        msg = "Expected the merchant category to be remembered"
        raise AssertionError(msg)
    if agent.known_categories() != ["Food"]:
        msg = f"Unexpected known categories {agent.known_categories()}"
        raise AssertionError(msg)


def test_agent_prefers_remembered_category(session_factory: sessionmaker) -> None:
    with session_factory() as session:
        session.add(MerchantCategory(merchant="BLUE BOTTLE", category="Coffee"))
        session.commit()
    agent = make_agent(LLM_JSON, session_factory)
    record = agent.parse_receipt(RECEIPT_TEXT, "user-1")
    if record.category != "Coffee":
        msg = f"Expected remembered category Coffee, got {record.category}"
        raise AssertionError(msg)
    prompt = agent.llm_client.requests[0]["messages"][1]["content"]
    if "Coffee" not in prompt:
        msg = "Expected known categories in the prompt"
        raise AssertionError(msg)


def test_agent_falls_back_to_placeholder_without_json() -> None:
    record = make_agent("I could not read this receipt.").parse_receipt(RECEIPT_TEXT, "user-1")
    got = (record.amount, record.category, record.merchant, record.notes)
    if got != (0.0, "Uncategorized", "Unknown", RECEIPT_TEXT):
        msg = f"Unexpected fallback draft {got}"
        raise AssertionError(msg)


def test_agent_normalizes_bad_date_and_negative_total() -> None:
    output = '{"date": "03/04/2025", "merchant": null, "amount": -8, "category": "", "notes": null}'
    record = make_agent(output).parse_receipt(RECEIPT_TEXT, "user-1")
    if record.amount != 8 or record.merchant != "Unknown" or record.category != "Uncategorized":
        msg = f"Unexpected normalized draft {record}"
        raise AssertionError(msg)
    if record.date != record.created_at:
        msg = f"Expected an unreadable date to default to now, got {record.date}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    "output",
    [
        '{"date": "2025-04-03", "merchant": "X", "amount": 1}',
        '{"date": "2025-04-03", "merchant": "X", "amount": "lots", "category": "", "notes": ""}',
        RuntimeError("rate limited"),
    ],
)
def test_agent_errors_raise_receipt_parse_error(output: str | Exception) -> None:
    with pytest.raises(ReceiptParseError):
        make_agent(output).parse_receipt(RECEIPT_TEXT, "user-1")


def test_placeholder_keeps_ocr_text() -> None:
    record = PlaceholderReceiptParser(Settings()).parse_receipt("TOTAL 3.00", "user-9")
    if (record.owner_id, record.notes, record.status) != ("user-9", "TOTAL 3.00", "New"):
        msg = f"Unexpected placeholder draft {record}"
        raise AssertionError(msg)


def test_registry_lists_parsers() -> None:
    if AgentRegistry.available() != ["groq", "placeholder"]:
        msg = f"Unexpected registry content {AgentRegistry.available()}"
        raise AssertionError(msg)
    if AgentRegistry.get("placeholder") is not PlaceholderReceiptParser:
        msg = "Expected the placeholder parser class"
        raise AssertionError(msg)
    with pytest.raises(KeyError):
        AgentRegistry.get("tesseract")
