"""Tool detection API endpoints."""
from fastapi import APIRouter, Depends

from skills_hub.core.skill_hub import SkillHub
from skills_hub.dependencies import get_hub
from skills_hub.schemas.tool import ToolStatus

router = APIRouter()


@router.get("/status", response_model=ToolStatus)
async def get_tool_status(hub: SkillHub = Depends(get_hub)):
    """Detect installed tools and report the ones installed since the last check."""
    return await hub.get_tool_status()
