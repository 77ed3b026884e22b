"""Tests for installing, updating and deleting managed skills."""
import os
from pathlib import Path

import pytest

from skills_hub.core import link_engine
from skills_hub.core.exceptions import (
    AlreadyExistsException,
    InvalidSkillException,
    SkillNotFoundException,
    StorageException,
)
from skills_hub.core.content_hash import hash_dir
from skills_hub.schemas.skill import SourceType, SyncMode
from tests.conftest import target_of, write_skill

pytestmark = pytest.mark.anyio


class TestInstall:
    async def test_install_local_selection(self, hub, tmp_path):
        """A folder of skills: list, pick one, install it under a new name."""
        base = tmp_path / "skills"
        write_skill(base / "skill-1", "skill-1")

        candidates = await hub.list_local_candidates(str(base))
        assert [c.name for c in candidates] == ["skill-1"]

        skill = await hub.install_local_selection(str(base), "skill-1", "My Skill")

        assert skill.name == "My Skill"
        assert skill.source_type == SourceType.LOCAL
        assert skill.targets == []
        assert Path(skill.central_path) == tmp_path / "central" / "My Skill"
        assert (Path(skill.central_path) / "SKILL.md").is_file()
        assert skill.content_hash == hash_dir(Path(skill.central_path))
        assert [s.id for s in await hub.get_managed_skills()] == [skill.id]

    async def test_metadata_recorded(self, hub, tmp_path):
        source = write_skill(tmp_path / "src", "pdf-tools", description="Work with PDFs")
        skill = await hub.install_local(str(source))
        assert skill.metadata.description == "Work with PDFs"
        assert skill.description == "Work with PDFs"

    async def test_duplicate_name_is_case_insensitive(self, hub, tmp_path):
        await hub.install_local(str(write_skill(tmp_path / "a", "pdf-tools")))
        with pytest.raises(AlreadyExistsException):
            await hub.install_local(str(write_skill(tmp_path / "b", "PDF-Tools")))
        assert len(await hub.get_managed_skills()) == 1

    async def test_invalid_skill_writes_nothing(self, hub, tmp_path):
        source = tmp_path / "empty"
        source.mkdir()
        with pytest.raises(InvalidSkillException) as exc_info:
            await hub.install_local(str(source))
        assert exc_info.value.reason == "missing_skill_md"
        assert await hub.get_managed_skills() == []
        assert os.listdir(tmp_path / "central") == []

    async def test_central_repo_change_applies_to_new_installs(self, hub, tmp_path):
        first = await hub.install_local(str(write_skill(tmp_path / "a", "first")))
        new_root = tmp_path / "elsewhere"
        assert await hub.set_central_repo_path(str(new_root)) == str(new_root)

        second = await hub.install_local(str(write_skill(tmp_path / "b", "second")))

        assert Path(second.central_path).parent == new_root
        assert Path(first.central_path).is_dir()

    async def test_read_skill_content(self, hub, tmp_path):
        skill = await hub.install_local(str(write_skill(tmp_path / "a", "reader", body="Read me\n")))
        content = await hub.read_skill_content(skill.central_path)
        assert "Read me" in content

    async def test_read_content_outside_repository(self, hub, tmp_path):
        with pytest.raises(SkillNotFoundException):
            await hub.read_skill_content(str(tmp_path))


class TestUpdate:
    async def test_unchanged_source_is_a_noop(self, hub, tmp_path, install_tools):
        install_tools("cursor")
        source = write_skill(tmp_path / "src", "pdf-tools")
        skill = await hub.install_local(str(source))
        target = await hub.sync_skill_to_tool(skill.id, "cursor")
        central_mtime = os.stat(skill.central_path).st_mtime_ns

        result = await hub.update_managed_skill(skill.id)

        assert result.changed is False
        assert result.updated_targets == []
        assert result.content_hash == skill.content_hash
        assert os.stat(skill.central_path).st_mtime_ns == central_mtime
        refreshed = await hub.get_managed_skill(skill.id)
        assert target_of(refreshed, "cursor").synced_at == target.synced_at

    async def test_changed_source_refreshes_copies(self, hub, home, tmp_path, install_tools):
        install_tools("cursor", "claude_code")
        source = write_skill(tmp_path / "src", "pdf-tools", body="v1\n")
        skill = await hub.install_local(str(source))
        await hub.sync_skill_to_tool(skill.id, "cursor")
        await hub.sync_skill_to_tool(skill.id, "claude_code")

        write_skill(source, "pdf-tools", body="v2\n")
        result = await hub.update_managed_skill(skill.id)

        assert result.changed is True
        assert result.content_hash != skill.content_hash
        assert result.updated_targets == ["cursor"]
        assert "v2" in (home / ".cursor" / "skills" / "pdf-tools" / "SKILL.md").read_text()
        link = home / ".claude" / "skills" / "pdf-tools"
        assert link.is_symlink()
        assert "v2" in (link / "SKILL.md").read_text()
        assert not any(p.name.startswith(".skills-hub-update-") for p in (tmp_path / "central").iterdir())

    async def test_copy_targets_of_uninstalled_tools_skipped(self, hub, home, tmp_path, install_tools):
        install_tools("cursor")
        source = write_skill(tmp_path / "src", "pdf-tools", body="v1\n")
        skill = await hub.install_local(str(source))
        await hub.sync_skill_to_tool(skill.id, "cursor")
        os.rename(home / ".cursor", tmp_path / "cursor-uninstalled")

        write_skill(source, "pdf-tools", body="v2\n")
        result = await hub.update_managed_skill(skill.id)

        assert result.changed is True
        assert result.updated_targets == []
        assert not (home / ".cursor").exists()
        kept = tmp_path / "cursor-uninstalled" / "skills" / "pdf-tools" / "SKILL.md"
        assert "v1" in kept.read_text()

    async def test_missing_skill(self, hub):
        with pytest.raises(SkillNotFoundException):
            await hub.update_managed_skill("nope")


class TestDelete:
    async def test_delete_removes_targets_then_central(self, hub, home, tmp_path, install_tools):
        install_tools("claude_code", "cursor")
        skill = await hub.install_local(str(write_skill(tmp_path / "src", "pdf-tools")))
        await hub.sync_all(skill.id)

        await hub.delete_managed_skill(skill.id)

        assert not os.path.lexists(home / ".claude" / "skills" / "pdf-tools")
        assert not os.path.lexists(home / ".cursor" / "skills" / "pdf-tools")
        assert not os.path.exists(skill.central_path)
        assert await hub.get_managed_skills() == []

    async def test_failed_target_removal_keeps_record(self, hub, tmp_path, install_tools, monkeypatch):
        install_tools("cursor")
        skill = await hub.install_local(str(write_skill(tmp_path / "src", "pdf-tools")))
        await hub.sync_skill_to_tool(skill.id, "cursor")

        def locked(path):
            raise StorageException(message="Failed to remove skill from tool directory", detail=str(path))

        monkeypatch.setattr(link_engine, "unlink_or_remove", locked)
        with pytest.raises(StorageException):
            await hub.delete_managed_skill(skill.id)

        refreshed = await hub.get_managed_skill(skill.id)
        assert target_of(refreshed, "cursor").mode == SyncMode.COPY
        assert os.path.isdir(skill.central_path)

        monkeypatch.undo()
        await hub.delete_managed_skill(skill.id)
        assert await hub.get_managed_skills() == []
