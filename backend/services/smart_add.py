"""
Smart Add - parses a spoken or typed sentence into item drafts

The drafts come back already corrected and structured, so they are enqueued
with normalization skipped.
"""
import json
from typing import List, Optional

import httpx
from pydantic import ValidationError

from config import settings
from dependencies import call_llm, clean_llm_json
from models import ItemDraft, SmartAddDraft
from services.normalization import CATEGORY_LIST, LLMCall
from utils.debug import Loggers, debug_async
from utils.errors import LLMServiceError, NormalizationError

SYSTEM_PROMPT = f"""You are a shopping list assistant. The user gives you voice input and you extract the items to add to the shopping list.
Respond ONLY with a JSON array. Each element has:
- "name": the item name in the user's language, spelling corrected
- "canonicalName": the standardized English name of the item
- "qty": the quantity as a number (use conservative quantities, 1 when not stated)
- "unit": the unit if one was stated, otherwise omit it
- "category": one of {', '.join(CATEGORY_LIST)}
- "urgent": true only if the user says the item is urgent
- "icon": a single emoji for the item"""


class SmartAddParser:
    def __init__(self, http_client: httpx.AsyncClient, llm: LLMCall = call_llm,
                 timeout: Optional[float] = None):
        self._http_client = http_client
        self._llm = llm
        self._timeout = timeout or settings.normalization_timeout

    @debug_async
    async def parse(self, voice_input: str) -> List[ItemDraft]:
        """Return the drafts found in the utterance, in spoken order.

        Raises NormalizationError if the answer cannot be understood.
        """
        try:
            raw = await self._llm(self._http_client, SYSTEM_PROMPT, voice_input, timeout=self._timeout)
        except LLMServiceError as e:
            raise NormalizationError(str(e)) from e

        try:
            data = json.loads(clean_llm_json(raw or ""))
        except ValueError as e:
            raise NormalizationError(f"Malformed response: {e}") from e

        # Some models wrap the array in an object
        if isinstance(data, dict):
            data = data.get("items", [])
        if not isinstance(data, list):
            raise NormalizationError("Malformed response: expected a JSON array")

        drafts = []
        for entry in data:
            try:
                parsed = SmartAddDraft.model_validate(entry)
                drafts.append(ItemDraft(
                    name=parsed.name,
                    canonical_name=(parsed.canonical_name or "").strip() or None,
                    category=parsed.category if parsed.category in CATEGORY_LIST else None,
                    icon=parsed.icon,
                    qty=parsed.qty if parsed.qty and parsed.qty > 0 else 1,
                    unit=parsed.unit or "",
                    urgent=bool(parsed.urgent),
                ))
            except ValidationError:
                Loggers.ai.warning("Skipping unparseable smart add entry", entry=entry)

        Loggers.ai.info("Smart add parsed", items=len(drafts))
        return drafts
