"""FastAPI dependencies."""
from fastapi import Request

from skills_hub.core.skill_hub import SkillHub


def get_hub(request: Request) -> SkillHub:
    """The SkillHub created at application startup."""
    return request.app.state.hub
