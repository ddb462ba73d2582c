"""
Resource snapshot and optimization suggestion schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Any
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceSnapshot(BaseModel):
    """
    Current state of one inventory resource, as seen by the rule engine.
    `id` is opaque: a local UUID or a provider-native identifier such as i-0abc123.
    """
    id: Optional[str] = None
    name: str
    type: str
    status: str
    provider: Optional[str] = None
    region: Optional[str] = None
    tags: Dict[str, Any] = Field(default_factory=dict)
    cost: Decimal = Decimal("0")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return None if v is None else str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, v):
        return v or {}

    @field_validator("cost", mode="before")
    @classmethod
    def _none_cost(cls, v):
        return Decimal("0") if v is None else v


class SuggestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    resource_id: Optional[UUID] = None
    resource_name: Optional[str] = None
    resource_type: Optional[str] = None
    title: str
    description: str
    suggested_action: str
    potential_savings: float
    confidence: float
    implementation_difficulty: str
    status: str
    created_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None


class SuggestionList(BaseModel):
    suggestions: List[SuggestionOut]
    total_potential_savings: float
    count: int


class SuggestionStatusUpdate(BaseModel):
    status: str
