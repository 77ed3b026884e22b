"""Local folder import API endpoints."""
from fastapi import APIRouter, Depends

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.skill import (
    InstallLocalRequest,
    InstallLocalSelectionRequest,
    ListLocalCandidatesRequest,
    ManagedSkill,
    SkillCandidate,
)

router = APIRouter()


@router.post("/candidates", response_model=list[SkillCandidate])
async def list_local_candidates(request: ListLocalCandidatesRequest, hub: SkillHub = Depends(get_hub)):
    """List skills found in a folder, including invalid ones with the reason."""
    return await hub.list_local_candidates(request.base_path)


@router.post("/install", response_model=ManagedSkill, status_code=201)
async def install_local(request: InstallLocalRequest, hub: SkillHub = Depends(get_hub)):
    return await hub.install_local(request.source_path, request.name)


@router.post("/install-selection", response_model=ManagedSkill, status_code=201)
async def install_local_selection(request: InstallLocalSelectionRequest, hub: SkillHub = Depends(get_hub)):
    return await hub.install_local_selection(request.base_path, request.subpath, request.name)
