"""Managed skill API endpoints."""
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.skill import (
    BatchResult,
    ManagedSkill,
    SyncAllRequest,
    SyncTarget,
    SyncToToolRequest,
    UpdateResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ManagedSkill])
async def list_skills(hub: SkillHub = Depends(get_hub)):
    """List managed skills with their sync targets, most recently updated first."""
    return await hub.get_managed_skills()


@router.get("/content", response_class=PlainTextResponse)
async def read_skill_content(
    central_path: str = Query(..., description="central_path of a managed skill"),
    hub: SkillHub = Depends(get_hub),
):
    """Return the SKILL.md of a managed skill."""
    return await hub.read_skill_content(central_path)


@router.get("/{skill_id}", response_model=ManagedSkill)
async def get_skill(skill_id: str, hub: SkillHub = Depends(get_hub)):
    return await hub.get_managed_skill(skill_id)


@router.post("/{skill_id}/sync", response_model=SyncTarget)
async def sync_skill_to_tool(skill_id: str, request: SyncToToolRequest, hub: SkillHub = Depends(get_hub)):
    """Link (or copy) a skill into one tool's skills directory."""
    return await hub.sync_skill_to_tool(
        skill_id,
        request.tool,
        source_path=request.source_path,
        name=request.name,
        overwrite=request.overwrite,
    )


@router.delete("/{skill_id}/sync/{tool}")
async def unsync_skill_from_tool(skill_id: str, tool: str, hub: SkillHub = Depends(get_hub)):
    removed = await hub.unsync_skill_from_tool(skill_id, tool)
    return {"status": "success", "removed_tools": removed}


@router.post("/{skill_id}/sync-all", response_model=BatchResult)
async def sync_all_tools(skill_id: str, request: SyncAllRequest, hub: SkillHub = Depends(get_hub)):
    """Sync or unsync a skill across every installed tool, reporting each tool's outcome."""
    result = await hub.sync_all(skill_id, request.sync, request.tools)
    logger.info(f"Sync-all for {skill_id}: {result.success_count} ok, {result.error_count} failed")
    return result


@router.post("/{skill_id}/update", response_model=UpdateResult)
async def update_skill(skill_id: str, hub: SkillHub = Depends(get_hub)):
    """Re-fetch a skill from its source; copied targets are refreshed when content changed."""
    return await hub.update_managed_skill(skill_id)


@router.delete("/{skill_id}", status_code=204)
async def delete_skill(skill_id: str, hub: SkillHub = Depends(get_hub)):
    """Remove a skill from every tool, then from the central repository."""
    await hub.delete_managed_skill(skill_id)
