"""Settings-related Pydantic models."""
from pydantic import BaseModel, Field
from typing import Optional


class CentralRepoPath(BaseModel):
    """Location of the central skill repository."""

    path: str = Field(..., min_length=1, description="Absolute path of the central repository")


class GitCacheSettings(BaseModel):
    """Git clone cache knobs."""

    ttl_secs: int = Field(..., ge=0, description="Reuse a cached clone fetched within this many seconds")
    cleanup_days: int = Field(..., ge=0, description="Remove clones unused for this many days (0 = keep forever)")


class GitCacheSettingsRequest(BaseModel):
    """Request model for updating git cache settings."""

    ttl_secs: Optional[int] = Field(default=None, ge=0)
    cleanup_days: Optional[int] = Field(default=None, ge=0)


class ClearCacheResponse(BaseModel):
    removed: int = Field(..., description="Number of cached clones removed")
