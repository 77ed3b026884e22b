"""Settings API endpoints."""
import logging

from fastapi import APIRouter, Depends

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.settings import (
    CentralRepoPath,
    ClearCacheResponse,
    GitCacheSettings,
    GitCacheSettingsRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/central-repo", response_model=CentralRepoPath)
async def get_central_repo_path(hub: SkillHub = Depends(get_hub)):
    return CentralRepoPath(path=await hub.get_central_repo_path())


@router.put("/central-repo", response_model=CentralRepoPath)
async def set_central_repo_path(request: CentralRepoPath, hub: SkillHub = Depends(get_hub)):
    """Change where newly installed skills are stored.

    Skills installed earlier keep their current location.
    """
    return CentralRepoPath(path=await hub.set_central_repo_path(request.path))


@router.get("/git-cache", response_model=GitCacheSettings)
async def get_git_cache_settings(hub: SkillHub = Depends(get_hub)):
    return await hub.get_git_cache_settings()


@router.put("/git-cache", response_model=GitCacheSettings)
async def update_git_cache_settings(request: GitCacheSettingsRequest, hub: SkillHub = Depends(get_hub)):
    result = await hub.set_git_cache_settings(request.ttl_secs, request.cleanup_days)
    logger.info(f"Git cache settings updated: ttl={result.ttl_secs}s cleanup={result.cleanup_days}d")
    return result


@router.post("/git-cache/clear", response_model=ClearCacheResponse)
async def clear_git_cache(hub: SkillHub = Depends(get_hub)):
    """Delete every cached clone now."""
    return ClearCacheResponse(removed=await hub.clear_git_cache_now())


@router.post("/git-cache/cleanup", response_model=ClearCacheResponse)
async def cleanup_git_cache(hub: SkillHub = Depends(get_hub)):
    """Delete cached clones older than the retention period."""
    return ClearCacheResponse(removed=await hub.cleanup_git_cache())
