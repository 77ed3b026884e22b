"""Onboarding API endpoints: adopt skills that already exist in tool directories."""
import logging

from fastapi import APIRouter, Depends

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.onboarding import (
    AdoptBatchRequest,
    AdoptRequest,
    AdoptResult,
    ImportExistingRequest,
    OnboardingPlan,
)
from skills_hub.schemas.skill import BatchResult, ManagedSkill

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/plan", response_model=OnboardingPlan)
async def get_onboarding_plan(hub: SkillHub = Depends(get_hub)):
    """Scan installed tools for skills that are not managed yet.

    Read-only: nothing is moved or linked until a group is adopted.
    """
    return await hub.get_onboarding_plan()


@router.post("/adopt", response_model=AdoptResult, status_code=201)
async def adopt_group(request: AdoptRequest, hub: SkillHub = Depends(get_hub)):
    return await hub.adopt_onboarding_group(request.name, request.tool)


@router.post("/adopt-batch", response_model=BatchResult)
async def adopt_groups(request: AdoptBatchRequest, hub: SkillHub = Depends(get_hub)):
    result = await hub.adopt_onboarding_groups(request.selections)
    logger.info(f"Adopted {result.success_count} groups ({result.error_count} failed)")
    return result


@router.post("/import", response_model=ManagedSkill, status_code=201)
async def import_existing_skill(request: ImportExistingRequest, hub: SkillHub = Depends(get_hub)):
    """Manage an existing skill folder and link it back in place."""
    return await hub.import_existing_skill(request.source_path, request.name)
