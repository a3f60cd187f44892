"""Pydantic models for request/response validation."""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class HeaderItem(BaseModel):
    """A single response header as captured by the proxy."""
    name: str = Field(..., min_length=1)
    value: str
    
    @field_validator("name", "value")
    @classmethod
    def validate_latin1(cls, v: str) -> str:
        """Header text must be representable on the wire (ISO-8859-1)."""
        try:
            v.encode("latin-1")
        except UnicodeEncodeError:
            raise ValueError("header text must be ISO-8859-1")
        return v


class ExchangeRequest(BaseModel):
    """Request model for POST /exchanges."""
    uri: str = Field(..., min_length=1)
    status_code: Optional[int] = None
    headers: List[HeaderItem] = Field(default_factory=list)
    elapsed_ms: int = 0
    body: Optional[str] = None
    
    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Require an absolute URI so a site can be derived."""
        if "://" not in v:
            raise ValueError("uri must be absolute (scheme://host/...)")
        return v


class ObserveResponse(BaseModel):
    """Response model for POST /exchanges."""
    status: str
    site: str


class SiteStatsResponse(BaseModel):
    """Counters of one site in GET /stats responses."""
    site: str
    counters: Dict[str, int]


class StatsResponse(BaseModel):
    """Response model for GET /stats."""
    global_: Dict[str, int] = Field(..., alias="global")
    sites: List[SiteStatsResponse]
    
    class Config:
        populate_by_name = True


class ClearResponse(BaseModel):
    """Response model for DELETE /stats."""
    status: str
    site: Optional[str] = None
    prefix: Optional[str] = None
