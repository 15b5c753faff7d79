from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime


def _blank_if_none(v):
    if v is None:
        return ""
    return v


# Shopping Item Models
class CandidateItem(BaseModel):
    """A fully resolved item that has not been committed to a list yet"""
    name: str = Field(..., min_length=1)
    canonical_name: str = Field(..., min_length=1)
    category: str = "Other"
    icon: str = "🛒"
    qty: float = Field(1, gt=0)
    unit: str = ""
    notes: str = ""
    store: str = ""
    urgent: bool = False
    gf: bool = False

    @field_validator('unit', 'notes', 'store', mode='before')
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)


class Item(CandidateItem):
    id: str
    checked: bool = False


class ItemDraft(BaseModel):
    """Raw add/update request for one item, as typed or spoken by a user"""
    name: str = Field(..., min_length=1)
    canonical_name: Optional[str] = None
    category: Optional[str] = None
    icon: Optional[str] = None
    qty: float = Field(1, gt=0)
    unit: Optional[str] = ""
    notes: Optional[str] = ""
    store: Optional[str] = ""
    urgent: bool = False
    gf: bool = False

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator('unit', 'notes', 'store', mode='before')
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)


class NormalizedItem(BaseModel):
    """Record returned by the normalization service"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    canonical_name: str = Field(..., min_length=1, alias="canonicalName")
    category: str
    icon: str
    qty: float = Field(..., gt=0)
    unit: Optional[str] = None

    @field_validator('name', 'canonical_name')
    @classmethod
    def strip_names(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class SmartAddDraft(BaseModel):
    """One item parsed out of a free-form utterance"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    canonical_name: Optional[str] = Field(None, alias="canonicalName")
    qty: Optional[float] = None
    unit: Optional[str] = None
    category: Optional[str] = None
    urgent: Optional[bool] = False
    icon: Optional[str] = None


# Shopping List Models
class ShoppingListCreate(BaseModel):
    name: str = Field(..., min_length=1)
    icon: Optional[str] = "🛒"
    owner_id: str
    collaborators: Optional[List[str]] = []


class ShoppingListResponse(BaseModel):
    id: str
    name: str
    icon: str = "🛒"
    owner_id: str
    collaborators: List[str] = []
    items: List[Item] = []
    created_at: str
    updated_at: str

    @field_validator('created_at', 'updated_at', mode='before')
    @classmethod
    def convert_datetime_to_string(cls, v):
        if isinstance(v, datetime):
            return v.isoformat()
        return v


# Ingestion Models
class EnqueueAddRequest(ItemDraft):
    skip_normalization: bool = False


class SmartAddRequest(BaseModel):
    voice_input: str = Field(..., min_length=1)


class SmartAddResponse(BaseModel):
    status: str = "queued"
    list_id: str
    items: List[ItemDraft]


class EnqueueResponse(BaseModel):
    status: str = "queued"
    list_id: str
    pending: bool


class MergeProposalResponse(BaseModel):
    list_id: str
    existing_item: Item
    candidate_item: CandidateItem


class ResolveProposalRequest(BaseModel):
    accept: bool
    keep_separate: bool = False


class IngestionStatusResponse(BaseModel):
    busy: bool
    pending: bool
    proposal: Optional[MergeProposalResponse] = None
