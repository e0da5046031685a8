"""Suggests subject/category for material items through an LLM, with model fallback."""
from __future__ import annotations
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from supplylist.core.config import (
    CLASSIFICATION_FAILURE_THRESHOLD,
    CLASSIFICATION_MODELS,
    CLASSIFICATION_RESET_SECONDS,
    CLASSIFICATION_TIMEOUT,
    OPENROUTER_API_KEY,
    OPENROUTER_API_URL,
)
from supplylist.domain.common.errors import ClassificationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You classify school supply list items. You output only a JSON object, no prose."
)

_FIELD_ALIASES = {
    "category": ("category", "categoria"),
    "subject": ("subject", "asignatura"),
}

Suggestions = Dict[str, Dict[str, Optional[str]]]


def build_prompt(items: Sequence[Mapping[str, str]]) -> str:
    lines = "\n".join(f'- id "{item["id"]}": {item["name"]}' for item in items)
    return f"""
    Below is a list of materials from a Chilean school supply list. For each item,
    suggest the school subject it belongs to (e.g. "Lenguaje", "Matemática",
    "Ciencias", "Artes", "Música", "Inglés", "General") and a product category
    (e.g. "Cuadernos", "Libros", "Escritura", "Arte", "Útiles de aseo", "Otros").

    OUTPUT FORMAT:
    Return ONLY valid JSON mapping every item id to its suggestion:
    {{"<id>": {{"subject": "...", "category": "..."}}}}
    Use null when you cannot tell.

    ITEMS:
    {lines}
    """


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` span, ignoring any prose or code fences around it."""
    if not text:
        raise ValueError("empty response")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in response")
    parsed = json.loads(text[start:end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("response JSON is not an object")
    return parsed


def _suggestion_from(raw: Any) -> Optional[Dict[str, Optional[str]]]:
    if not isinstance(raw, dict):
        return None
    suggestion: Dict[str, Optional[str]] = {}
    for field_name, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            value = raw.get(alias)
            if isinstance(value, str) and value.strip():
                suggestion[field_name] = value.strip()
                break
    return suggestion or None


def parse_suggestions(payload: Dict[str, Any], known_ids: set[str]) -> Suggestions:
    """Accepts ``{id: {...}}`` or ``{"items"|"suggestions": [{id, ...}]}``; drops unknown ids."""
    entries: List[tuple[str, Any]] = []
    listed = payload.get("items", payload.get("suggestions"))
    if isinstance(listed, list):
        for raw in listed:
            if isinstance(raw, dict) and raw.get("id") is not None:
                entries.append((str(raw["id"]), raw))
    else:
        entries = [(str(key), value) for key, value in payload.items()]

    result: Suggestions = {}
    for item_id, raw in entries:
        if item_id not in known_ids:
            logger.debug("Dropping suggestion for unknown item id %r", item_id)
            continue
        suggestion = _suggestion_from(raw)
        if suggestion:
            result[item_id] = suggestion
    return result


def _default_client_factory():
    from openai import OpenAI

    return OpenAI(api_key=OPENROUTER_API_KEY, base_url=OPENROUTER_API_URL)


class ClassificationClient:
    """One batched request per call; the first model that answers parseable JSON wins."""

    def __init__(
        self,
        models: Optional[Sequence[str]] = None,
        client: Any = None,
        timeout: float = CLASSIFICATION_TIMEOUT,
        client_factory: Callable[[], Any] = _default_client_factory,
    ):
        self.models = list(models if models is not None else CLASSIFICATION_MODELS)
        self._client = client
        self._client_factory = client_factory
        self._timeout = timeout

    def _get_client(self):
        if self._client is None:
            if not OPENROUTER_API_KEY:
                raise ClassificationError("Classification is not configured (OPENROUTER_API_KEY missing).")
            self._client = self._client_factory()
        return self._client

    def _ask(self, model: str, prompt: str) -> str:
        response = self._get_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0,
            timeout=self._timeout,
        )
        return response.choices[0].message.content or ""

    def classify(self, items: Sequence[Mapping[str, str]]) -> Suggestions:
        if not items:
            return {}
        if not self.models:
            raise ClassificationError("No classification models configured.")

        known_ids = {str(item["id"]) for item in items}
        prompt = build_prompt(items)
        failures: List[str] = []
        for model in self.models:
            try:
                content = self._ask(model, prompt)
                suggestions = parse_suggestions(extract_json_object(content), known_ids)
            except ClassificationError:
                raise
            except Exception as exc:
                logger.warning("Classification model %s failed: %s", model, exc)
                failures.append(f"{model}: {exc}")
                continue
            logger.info(
                "Model %s classified %d of %d items", model, len(suggestions), len(known_ids)
            )
            return suggestions

        raise ClassificationError(
            f"All {len(self.models)} classification models failed.", failures=failures
        )


class CircuitBreaker:
    """
    Wraps a classifier. After ``failure_threshold`` consecutive failures the
    breaker opens and calls fail fast until ``reset_seconds`` have passed;
    then one trial call is let through.
    """

    def __init__(
        self,
        classifier: ClassificationClient,
        failure_threshold: int = CLASSIFICATION_FAILURE_THRESHOLD,
        reset_seconds: float = CLASSIFICATION_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._classifier = classifier
        self._failure_threshold = max(1, failure_threshold)
        self._reset_seconds = reset_seconds
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._opened_at is not None and self._clock() - self._opened_at < self._reset_seconds

    def classify(self, items: Sequence[Mapping[str, str]]) -> Suggestions:
        if self.is_open:
            raise ClassificationError("Classification temporarily disabled after repeated failures.")
        try:
            result = self._classifier.classify(items)
        except ClassificationError:
            with self._lock:
                self._failures += 1
                if self._failures >= self._failure_threshold:
                    self._opened_at = self._clock()
                    logger.error("Classification circuit opened after %d failures", self._failures)
            raise
        with self._lock:
            self._failures = 0
            self._opened_at = None
        return result
