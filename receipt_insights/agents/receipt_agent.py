"""Receipt agents: turn OCR text into expense drafts.

``ReceiptAgent`` asks a language model (Groq) to extract the date, merchant,
total, category and notes of a receipt, and remembers the category chosen for
each merchant so repeated merchants stay consistent. ``PlaceholderReceiptParser``
produces an editable draft that carries the raw OCR text in its notes and is
also the fallback when the model output holds no JSON object.
"""

import json
import math
import re
import uuid

from groq import Groq
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from receipt_insights.agents.base import BaseReceiptParser
from receipt_insights.agents.prompts import SYSTEM_PROMPT, USER_PROMPT_TEMPLATE
from receipt_insights.agents.registry import AgentRegistry
from receipt_insights.core.db import MerchantCategory
from receipt_insights.core.errors import ReceiptParseError
from receipt_insights.core.models import ExpenseRecord
from receipt_insights.core.settings import Settings
from receipt_insights.core.utils import get_logger, utcnow_iso

logger = get_logger("receipt-insights.agent")

REQUIRED_FIELDS = ("date", "merchant", "amount", "category", "notes")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MAX_TEXT_LOG_LEN = 300

DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_MERCHANT = "Unknown"
DEFAULT_STATUS = "New"


class PlaceholderReceiptParser(BaseReceiptParser):
    """Parser that keeps the OCR text for manual editing."""

    def parse_receipt(self, text: str, owner_id: str) -> ExpenseRecord:
        """Return a zero-amount draft with the OCR text as notes."""
        now = utcnow_iso()
        return ExpenseRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            date=now,
            amount=0.0,
            category=DEFAULT_CATEGORY,
            status=DEFAULT_STATUS,
            merchant=DEFAULT_MERCHANT,
            notes=text,
            created_at=now,
        )


class ReceiptAgent(BaseReceiptParser):
    """Agent responsible for LLM-based extraction of receipt data."""

    def __init__(
        self, settings: Settings, session_factory: sessionmaker | None = None, llm_client: object | None = None
    ) -> None:
        """Initialize the agent with settings, a DB session factory and an LLM client."""
        super().__init__(settings, session_factory)
        self.llm_client = llm_client or Groq(api_key=settings.groq_api_key)
        self.fallback = PlaceholderReceiptParser(settings, session_factory)

    def parse_receipt(self, text: str, owner_id: str) -> ExpenseRecord:
        """Use the LLM to extract an expense, then apply the remembered merchant category."""
        logged_text = text if len(text) <= MAX_TEXT_LOG_LEN else text[: MAX_TEXT_LOG_LEN - 3] + "..."
        logger.info(f"INPUT: {logged_text!r}")
        raw_output = self._complete(text)
        logger.info(f"OUTPUT: {raw_output}")
        data = self._extract_json(raw_output)
        if data is None:
            logger.warning("No JSON object in LLM output, falling back to placeholder draft")
            return self.fallback.parse_receipt(text, owner_id)
        merchant = data["merchant"] or DEFAULT_MERCHANT
        category = data["category"] or DEFAULT_CATEGORY
        remembered = self.lookup_category(merchant)
        if remembered:
            logger.info(f"Category for merchant '{merchant}' found in DB: '{remembered}'")
            category = remembered
        elif data["category"]:
            self.remember_category(merchant, category)
        now = utcnow_iso()
        return ExpenseRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            date=data["date"] or now,
            amount=data["amount"],
            category=category,
            status=DEFAULT_STATUS,
            merchant=merchant,
            notes=data["notes"] or None,
            created_at=now,
        )

    def known_categories(self) -> list[str]:
        """Return the distinct remembered categories."""
        if self.session_factory is None:
            return []
        with self.session_factory() as session:
            rows = session.execute(select(MerchantCategory.category).distinct()).scalars().all()
        return sorted(c for c in rows if c)

    def lookup_category(self, merchant: str) -> str | None:
        """Look up the remembered category for a merchant (case-insensitive)."""
        if self.session_factory is None:
            return None
        with self.session_factory() as session:
            row = session.execute(
                select(MerchantCategory).where(MerchantCategory.merchant == merchant.upper())
            ).scalar_one_or_none()
            return row.category if row else None

    def remember_category(self, merchant: str, category: str) -> None:
        """Store a merchant-category pair if the merchant is not known yet."""
        if self.session_factory is None:
            return
        with self.session_factory() as session:
            key = merchant.upper()
            exists = session.execute(
                select(MerchantCategory).where(MerchantCategory.merchant == key)
            ).scalar_one_or_none()
            if not exists:
                session.add(MerchantCategory(merchant=key, category=category))
                session.commit()
                logger.info(f"Added new merchant-category to DB: '{key}' -> '{category}'")

    def _complete(self, text: str) -> str:
        """Call the LLM and collect the streamed output."""
        categories = ", ".join(self.known_categories()) or "none yet"
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT_TEMPLATE.format(categories=categories, text=text)},
        ]
        try:
            completion = self.llm_client.chat.completions.create(
                model=self.settings.llm_model,
                messages=messages,
                temperature=self.settings.llm_temperature,
                max_completion_tokens=self.settings.llm_max_completion_tokens,
                top_p=self.settings.llm_top_p,
                stream=True,
            )
            return "".join(chunk.choices[0].delta.content or "" for chunk in completion)
        except Exception as exc:
            msg = f"Groq API call failed: {exc}"
            logger.exception(msg)
            raise ReceiptParseError(msg) from exc

    def _extract_json(self, raw_output: str) -> dict | None:
        """Extract and normalize the first valid JSON object from the LLM output."""
        for match in re.finditer(r"\{.*?\}", raw_output, re.DOTALL):
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError as exc:
                logger.warning(f"Failed to parse JSON: {exc}")
                continue
            if not isinstance(data, dict):
                continue
            missing = [f for f in REQUIRED_FIELDS if f not in data]
            if missing:
                msg = f"Missing field(s) {missing} in LLM JSON output: {data}"
                raise ReceiptParseError(msg)
            for key in ("date", "merchant", "category", "notes"):
                data[key] = "" if data[key] is None else str(data[key]).strip()
            if not DATE_PATTERN.match(data["date"]):
                data["date"] = ""
            try:
                amount = float(data["amount"])
            except (TypeError, ValueError) as exc:
                msg = f"Could not convert 'amount' to float: {data['amount']}"
                raise ReceiptParseError(msg) from exc
            if not math.isfinite(amount):
                msg = f"Non-finite amount in LLM output: {data['amount']}"
                raise ReceiptParseError(msg)
            data["amount"] = abs(amount)
            return data
        return None


AgentRegistry.register("placeholder", PlaceholderReceiptParser)
AgentRegistry.register("groq", ReceiptAgent)
