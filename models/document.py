from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

PREVIEW_CHARS = 100


class EntityType(str, Enum):
    PERSON = "PERSON"
    ORG = "ORG"
    LOCATION = "LOCATION"


class Entity(BaseModel):
    text: StrictStr
    type: EntityType


class _CamelModel(BaseModel):
    # Stored and served with camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentDraft(_CamelModel):
    """A document assembled by the pipeline, before the repository assigns id and timestamps."""

    title: str
    storage_url: str
    storage_id: str
    raw_text: Optional[str] = None
    cleaned_text: Optional[str] = None
    entities: List[Entity] = Field(default_factory=list)
    owner: str


class Document(DocumentDraft):
    id: str
    created_at: datetime
    updated_at: datetime


def _preview(text: Optional[str]) -> str:
    text = text or ""
    return text[:PREVIEW_CHARS] + ("..." if len(text) > PREVIEW_CHARS else "")


class DocumentSummary(_CamelModel):
    id: str
    title: str
    storage_url: str
    raw_text_preview: str
    cleaned_text_preview: str
    entities_count: int
    owner: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentSummary":
        return cls(
            id=document.id,
            title=document.title,
            storage_url=document.storage_url,
            raw_text_preview=_preview(document.raw_text),
            cleaned_text_preview=_preview(document.cleaned_text) if document.cleaned_text else "N/A",
            entities_count=len(document.entities),
            owner=document.owner,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )
