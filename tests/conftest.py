"""Shared fixtures: a throwaway home directory, central repository and index per test."""
from pathlib import Path
from typing import Optional

import pytest

from skills_hub.config import Settings
from skills_hub.core.skill_hub import SkillHub
from skills_hub.core.tool_catalog import ToolCatalog
from skills_hub.database import create_database


def write_skill(
    path: Path,
    name: str,
    description: str = "A test skill",
    body: str = "Use this skill for tests.\n",
    files: Optional[dict[str, str]] = None,
) -> Path:
    """Create a skill folder with a SKILL.md and optional extra files."""
    path.mkdir(parents=True, exist_ok=True)
    (path / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {description}\n---\n\n# {name}\n\n{body}",
        encoding="utf-8",
    )
    for rel, content in (files or {}).items():
        target = path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return path


def target_of(skill, tool: str):
    """The skill's sync target for tool, or None."""
    return next((t for t in skill.targets if t.tool == tool), None)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def home(tmp_path) -> Path:
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    return home_dir


@pytest.fixture
def install_tools(home):
    """Make tools look installed by creating their detect directories."""
    catalog = ToolCatalog(home)

    def _install(*keys: str) -> None:
        for key in keys:
            catalog.detect_dir(catalog.resolve(key)).mkdir(parents=True, exist_ok=True)

    return _install


@pytest.fixture
def app_settings(tmp_path, home) -> Settings:
    return Settings(
        _env_file=None,
        home_dir=str(home),
        data_dir=str(tmp_path / "data"),
        central_repo_path=str(tmp_path / "central"),
        git_cache_ttl_secs=60,
        git_cache_cleanup_days=30,
    )


@pytest.fixture
async def hub(app_settings, anyio_backend) -> SkillHub:
    skill_hub = SkillHub(create_database(app_settings), app_settings)
    await skill_hub.initialize()
    return skill_hub
