"""
Normalization Client - turns a free-text item name into a canonical record via the LLM

The item name may be misspelled or in any language. The service answers with
the corrected original-language name, a canonical English name used as the
matching key, a category from a fixed list, an emoji icon, and the quantity
converted to a base unit where that is possible.
"""
import json
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from config import settings
from dependencies import call_llm, clean_llm_json
from models import NormalizedItem
from utils.debug import Loggers
from utils.errors import LLMServiceError, NormalizationError

CATEGORY_LIST = [
    'Fruits', 'Vegetables', 'Dairy & Eggs', 'Meat & Seafood', 'Bakery', 'Pantry',
    'Frozen Foods', 'Beverages', 'Snacks', 'Household', 'Personal Care',
    'Baby', 'Pets', 'Other'
]

SYSTEM_PROMPT = f"""You are an expert shopping list assistant. Given an item name, quantity and unit, respond with a single JSON object.
The item name might be misspelled or in a language other than English.

Your task is to:
1. Keep the original language in "name", with the spelling corrected if necessary.
2. Give a standardized English name in "canonicalName". For example, if the input is "מלפפון" or "cucumbr", canonicalName is "Cucumber".
3. Set "category" to exactly one of: {', '.join(CATEGORY_LIST)}.
4. Set "icon" to a single emoji that represents the item.
5. If the unit is a standard convertible unit (cup, oz, lb, kg, tbsp, tsp, l, ...), convert the quantity to grams ("g") for solids or milliliters ("ml") for liquids and return them in "qty" and "unit". Otherwise return "qty" and "unit" unchanged. Omit "unit" when the input has none.

Respond ONLY with the JSON object, with the keys name, canonicalName, category, icon, qty, unit."""


LLMCall = Callable[..., Awaitable[str]]


def fallback_record(name: str, qty: float, unit: Optional[str] = None) -> NormalizedItem:
    """Degraded record used when the normalization service cannot help"""
    return NormalizedItem(
        name=name,
        canonical_name=name,
        category=settings.default_category,
        icon=settings.default_icon,
        qty=qty,
        unit=unit or None,
    )


class NormalizationClient:
    """Stateless adapter around the LLM normalization prompt"""

    def __init__(self, http_client: httpx.AsyncClient, llm: LLMCall = call_llm,
                 timeout: Optional[float] = None):
        self._http_client = http_client
        self._llm = llm
        self._timeout = timeout or settings.normalization_timeout

    async def normalize(self, name: str, qty: float = 1, unit: Optional[str] = None) -> NormalizedItem:
        """Resolve one item. Raises NormalizationError on any failure."""
        user_prompt = json.dumps({"name": name, "qty": qty, "unit": unit or None}, ensure_ascii=False)

        try:
            raw = await self._llm(self._http_client, SYSTEM_PROMPT, user_prompt, timeout=self._timeout)
        except LLMServiceError as e:
            raise NormalizationError(str(e)) from e

        try:
            data = json.loads(clean_llm_json(raw or ""))
        except ValueError as e:
            Loggers.ai.warning("Normalization answer is not JSON", item=name, answer=raw)
            raise NormalizationError(f"Malformed response: {e}") from e

        if not isinstance(data, dict):
            raise NormalizationError("Malformed response: expected a JSON object")

        if data.get("unit") == "":
            data["unit"] = None
        if data.get("category") not in CATEGORY_LIST:
            data["category"] = "Other"

        try:
            normalized = NormalizedItem.model_validate(data)
        except ValidationError as e:
            Loggers.ai.warning("Normalization answer failed validation", item=name, errors=e.error_count())
            raise NormalizationError(f"Invalid record: {e.error_count()} errors") from e

        Loggers.ai.debug("Item normalized", item=name, canonical=normalized.canonical_name,
                         category=normalized.category)
        return normalized
