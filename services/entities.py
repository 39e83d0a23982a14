import json
import logging
from typing import Any, List, Optional

import pydantic
import requests
from pydantic import BaseModel

from models.document import Entity, EntityType
from utils.errors import ExtractionError

logger = logging.getLogger("services.entities")

PROMPT_TEMPLATE = (
    "Extract named entities (PERSON, ORG, LOCATION) from the following text.\n"
    "Provide the output as a JSON array where each object has 'text' (the entity name)\n"
    "and 'type' (one of PERSON, ORG, LOCATION). If no entities are found, return an empty array.\n\n"
    'Text: "{text}"'
)

RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "text": {"type": "STRING"},
            "type": {"type": "STRING", "enum": [t.value for t in EntityType]},
        },
        "propertyOrdering": ["text", "type"],
    },
}


class _Part(BaseModel):
    text: str


class _Content(BaseModel):
    parts: List[_Part]


class _Candidate(BaseModel):
    content: _Content


class GenerateContentResponse(BaseModel):
    candidates: List[_Candidate]

    def first_text(self) -> str:
        if not self.candidates or not self.candidates[0].content.parts:
            raise ExtractionError("Model returned no candidates or content")
        return self.candidates[0].content.parts[0].text


def parse_entities(payload: str) -> List[Entity]:
    """Parse the model's JSON text into entities.

    A payload that is not a JSON array is malformed and raises ``ExtractionError``.
    Array items that are not valid entities are dropped.
    """
    try:
        items = json.loads(payload)
    except ValueError as exc:
        raise ExtractionError("Model returned malformed JSON") from exc
    if not isinstance(items, list):
        raise ExtractionError("Model response was not a JSON array")

    entities: List[Entity] = []
    for item in items:
        try:
            entities.append(Entity.model_validate(item))
        except pydantic.ValidationError:
            continue
    return entities


class EntityExtractor:
    """Named-entity extraction backed by the Gemini ``generateContent`` API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        api_url: str = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        max_chars: int = 10_000,
        session: Any = requests,
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.max_chars = max_chars
        self.session = session

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, text: str) -> dict:
        prompt = PROMPT_TEMPLATE.format(text=text[: self.max_chars])
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def extract(self, cleaned_text: str) -> List[Entity]:
        if not self.enabled:
            logger.warning("entity_extraction_skipped", extra={"reason": "missing_api_key"})
            return []

        url = self.api_url.format(model=self.model)
        try:
            response = self.session.post(
                url,
                params={"key": self.api_key},
                json=self.build_payload(cleaned_text),
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as exc:
            raise ExtractionError(f"Entity extraction request failed: {exc}") from exc

        if response.status_code != 200:
            raise ExtractionError(f"Entity extraction API returned status {response.status_code}")

        try:
            body = GenerateContentResponse.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as exc:
            raise ExtractionError("Entity extraction API returned an unexpected body") from exc

        entities = parse_entities(body.first_text())
        logger.info("entities_extracted", extra={"count": len(entities), "chars_sent": min(len(cleaned_text), self.max_chars)})
        return entities
