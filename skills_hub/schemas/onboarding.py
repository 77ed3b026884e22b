"""Onboarding (adoption of pre-existing skills) models."""
from pydantic import BaseModel, Field

from skills_hub.schemas.skill import BatchResult, ManagedSkill


class OnboardingVariant(BaseModel):
    """One tool's copy of a skill that is not yet managed."""

    tool: str
    name: str
    path: str
    fingerprint: str | None = None
    is_link: bool = False
    link_target: str | None = None


class OnboardingGroup(BaseModel):
    name: str
    variants: list[OnboardingVariant]
    has_conflict: bool = False


class OnboardingPlan(BaseModel):
    total_tools_scanned: int = 0
    total_skills_found: int = 0
    groups: list[OnboardingGroup] = Field(default_factory=list)


class AdoptRequest(BaseModel):
    name: str
    tool: str | None = Field(default=None, description="Variant to adopt; defaults to the first one")


class AdoptBatchRequest(BaseModel):
    selections: list[AdoptRequest] = Field(..., min_length=1)


class ImportExistingRequest(BaseModel):
    source_path: str
    name: str | None = None


class AdoptResult(BaseModel):
    skill: ManagedSkill
    sync: BatchResult
