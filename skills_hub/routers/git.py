"""Git repository install API endpoints."""
import logging

from fastapi import APIRouter, Depends

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.skill import (
    BatchResult,
    InstallGitRequest,
    InstallGitSelectionRequest,
    InstallGitSelectionsRequest,
    InstallRegistryRequest,
    ListGitCandidatesRequest,
    ManagedSkill,
    SkillCandidate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/candidates", response_model=list[SkillCandidate])
async def list_git_candidates(request: ListGitCandidatesRequest, hub: SkillHub = Depends(get_hub)):
    """Clone (or reuse the cached clone of) a repository and list the skills in it."""
    return await hub.list_git_candidates(request.repo_url)


@router.post("/install", response_model=ManagedSkill, status_code=201)
async def install_git(request: InstallGitRequest, hub: SkillHub = Depends(get_hub)):
    """Install a single-skill repository.

    Repositories with several skills are rejected with MULTI_SKILLS; the
    response lists the candidates to pick from.
    """
    return await hub.install_git(request.repo_url, request.name)


@router.post("/install-selection", response_model=ManagedSkill, status_code=201)
async def install_git_selection(request: InstallGitSelectionRequest, hub: SkillHub = Depends(get_hub)):
    return await hub.install_git_selection(request.repo_url, request.subpath, request.name)


@router.post("/install-batch", response_model=BatchResult)
async def install_git_selections(request: InstallGitSelectionsRequest, hub: SkillHub = Depends(get_hub)):
    result = await hub.install_git_selections(request.repo_url, request.selections)
    logger.info(f"Installed {result.success_count} skills from {request.repo_url} ({result.error_count} failed)")
    return result


@router.post("/registry", response_model=ManagedSkill, status_code=201)
async def install_from_registry(request: InstallRegistryRequest, hub: SkillHub = Depends(get_hub)):
    """Install a registry package (owner/repo@skill)."""
    return await hub.install_from_registry(request.package, request.name)
