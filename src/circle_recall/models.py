from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field, field_validator

RecordType = Literal["health", "location", "voice", "photo", "memory", "shared_activity"]
DataCategory = Literal["health", "location", "activities", "diary", "voice_notes", "photos"]
IndexName = Literal["semantic", "visual"]

RECORD_TYPES: tuple = get_args(RecordType)
DATA_CATEGORIES: tuple = get_args(DataCategory)

# Each sharing category governs exactly one record type
CATEGORY_RECORD_TYPES: Dict[str, str] = {
    "health": "health",
    "location": "location",
    "activities": "shared_activity",
    "diary": "memory",
    "voice_notes": "voice",
    "photos": "photo",
}

OWNER_KEY = "owner_id"

MetadataValue = Union[str, int, float, bool, List[str]]


class VectorRecord(BaseModel):
    """A vector plus the metadata stored alongside it in an index."""

    id: str = Field(..., min_length=1, description="Caller-assigned, unique per index")
    values: List[float]
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def _require_owner(cls, metadata: Dict[str, MetadataValue]) -> Dict[str, MetadataValue]:
        owner = metadata.get(OWNER_KEY)
        if not isinstance(owner, str) or not owner:
            raise ValueError(f"metadata.{OWNER_KEY} is required")
        return metadata

    @property
    def owner_id(self) -> str:
        return str(self.metadata[OWNER_KEY])


class VectorMatch(BaseModel):
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def owner_id(self) -> Optional[str]:
        return self.metadata.get(OWNER_KEY)

    @property
    def type(self) -> Optional[str]:
        return self.metadata.get("type")


class SharingFlags(BaseModel):
    """One boolean per data category."""

    health: bool = True
    location: bool = True
    activities: bool = True
    diary: bool = True
    voice_notes: bool = True
    photos: bool = True

    def allows(self, category: str) -> bool:
        if category not in DATA_CATEGORIES:
            raise ValueError(f"Unknown data category: {category}")
        return bool(getattr(self, category))


class CircleSharingPolicy(SharingFlags):
    """What a circle is willing to expose to its members."""


class RelationshipPrivacySettings(SharingFlags):
    """What an owner is willing to expose to one specific counterpart.

    Defaults are maximally open; the owner narrows them later.
    """


class EffectiveSharingPolicy(SharingFlags):
    """Derived intersection of a circle policy and relationship settings. Never stored."""

    model_config = {"frozen": True}


class UsageEvent(BaseModel):
    user_id: str
    operation: Literal["embedding", "vector_query", "vector_upsert", "vector_delete"]
    provider: str
    quantity: int = Field(..., ge=0, description="Tokens for embeddings, vectors otherwise")
    endpoint: str
    estimated_cost_usd: float = 0.0
    model: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class RelationshipFetchReport(BaseModel):
    """Outcome of a relationship settings fan-out.

    Only ``settings`` grants anything. Counterparts that were never configured
    and counterparts whose fetch failed are both excluded, but reported apart.
    """

    settings: Dict[str, RelationshipPrivacySettings] = Field(default_factory=dict)
    not_configured: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


class ExcludedCounterpart(BaseModel):
    counterpart_id: str
    reason: Literal["not_configured", "fetch_failed"]
    detail: Optional[str] = None


class RetrievalResult(BaseModel):
    matches: List[VectorMatch] = Field(default_factory=list)
    owner_scopes: Dict[str, List[str]] = Field(
        default_factory=dict, description="Category -> identities searched for it"
    )
    excluded: List[ExcludedCounterpart] = Field(default_factory=list)
    restricted: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Counterpart -> categories the circle allows but the relationship hides",
    )


class OwnerScopeResolution(BaseModel):
    """Who may be searched for each category, before any vector is touched."""

    owner_scopes: Dict[str, List[str]] = Field(default_factory=dict)
    policies: Dict[str, EffectiveSharingPolicy] = Field(
        default_factory=dict, description="Counterpart -> circle AND relationship"
    )
    excluded: List[ExcludedCounterpart] = Field(default_factory=list)
    restricted: Dict[str, List[str]] = Field(default_factory=dict)
