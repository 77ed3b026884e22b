"""Tool status models."""
from pydantic import BaseModel, Field


class ToolInfo(BaseModel):
    key: str
    label: str
    installed: bool
    skills_dir: str


class ToolStatus(BaseModel):
    tools: list[ToolInfo]
    installed: list[str] = Field(default_factory=list)
    newly_installed: list[str] = Field(
        default_factory=list,
        description="Installed tools that were not installed at the previous check"
    )
