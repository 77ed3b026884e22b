"""Tests for syncing managed skills into tool directories."""
import os
from pathlib import Path

import pytest

from skills_hub.core.exceptions import TargetExistsException, ToolNotFoundException
from skills_hub.schemas.skill import SyncMode
from tests.conftest import write_skill

pytestmark = pytest.mark.anyio


@pytest.fixture
async def skill(hub, tmp_path):
    source = write_skill(tmp_path / "src" / "pdf-tools", "pdf-tools")
    return await hub.install_local(str(source))


class TestSyncToTool:
    async def test_symlink_target_recorded(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        target = await hub.sync_skill_to_tool(skill.id, "claude_code")

        path = home / ".claude" / "skills" / "pdf-tools"
        assert target.mode == SyncMode.SYMLINK
        assert target.target_path == str(path)
        assert path.is_symlink()
        assert path.resolve() == Path(skill.central_path).resolve()

        refreshed = await hub.get_managed_skill(skill.id)
        assert [t.tool for t in refreshed.targets] == ["claude_code"]
        assert refreshed.last_sync_at is not None

    async def test_cursor_always_copies(self, hub, home, skill, install_tools):
        install_tools("cursor")
        target = await hub.sync_skill_to_tool(skill.id, "cursor")
        path = home / ".cursor" / "skills" / "pdf-tools"
        assert target.mode == SyncMode.COPY
        assert path.is_dir() and not path.is_symlink()
        assert (path / "SKILL.md").is_file()

    async def test_shared_directory_records_every_tool(self, hub, home, skill, install_tools):
        install_tools("amp", "kimi_cli")
        await hub.sync_skill_to_tool(skill.id, "amp")

        path = home / ".config" / "agents" / "skills" / "pdf-tools"
        assert path.is_symlink()
        refreshed = await hub.get_managed_skill(skill.id)
        assert sorted(t.tool for t in refreshed.targets) == ["amp", "kimi_cli"]
        assert {t.target_path for t in refreshed.targets} == {str(path)}

    async def test_unsync_shared_directory_removes_all_records(self, hub, home, skill, install_tools):
        install_tools("amp", "kimi_cli")
        await hub.sync_skill_to_tool(skill.id, "amp")

        removed = await hub.unsync_skill_from_tool(skill.id, "kimi_cli")

        assert sorted(removed) == ["amp", "kimi_cli"]
        assert not os.path.lexists(home / ".config" / "agents" / "skills" / "pdf-tools")
        assert (await hub.get_managed_skill(skill.id)).targets == []

    async def test_foreign_entry_rejected_without_record(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        foreign = home / ".claude" / "skills" / "pdf-tools"
        foreign.mkdir(parents=True)
        (foreign / "notes.txt").write_text("user data")

        with pytest.raises(TargetExistsException):
            await hub.sync_skill_to_tool(skill.id, "claude_code")

        assert (foreign / "notes.txt").read_text() == "user data"
        assert (await hub.get_managed_skill(skill.id)).targets == []

    async def test_overwrite_replaces_foreign_entry(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        foreign = home / ".claude" / "skills" / "pdf-tools"
        foreign.mkdir(parents=True)
        target = await hub.sync_skill_to_tool(skill.id, "claude_code", overwrite=True)
        assert target.mode == SyncMode.SYMLINK
        assert foreign.is_symlink()

    async def test_resync_is_idempotent(self, hub, home, skill, install_tools):
        install_tools("claude_code", "cursor")
        for _ in range(2):
            await hub.sync_skill_to_tool(skill.id, "claude_code")
            await hub.sync_skill_to_tool(skill.id, "cursor")
        refreshed = await hub.get_managed_skill(skill.id)
        assert sorted(t.tool for t in refreshed.targets) == ["claude_code", "cursor"]

    async def test_symlink_round_trip(self, hub, home, skill, install_tools):
        """Sync then unsync leaves the tool directory as it was."""
        install_tools("claude_code")
        skills_dir = home / ".claude" / "skills"
        skills_dir.mkdir()
        await hub.sync_skill_to_tool(skill.id, "claude_code")
        await hub.unsync_skill_from_tool(skill.id, "claude_code")
        assert os.listdir(skills_dir) == []
        assert os.path.isdir(skill.central_path)

    async def test_unsync_without_record_leaves_folder(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        foreign = home / ".claude" / "skills" / "pdf-tools"
        foreign.mkdir(parents=True)
        assert await hub.unsync_skill_from_tool(skill.id, "claude_code") == []
        assert foreign.is_dir()

    async def test_recorded_path_taken_over_by_user_folder(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        await hub.sync_skill_to_tool(skill.id, "claude_code")
        path = home / ".claude" / "skills" / "pdf-tools"
        path.unlink()
        path.mkdir()
        (path / "notes.txt").write_text("user data")

        with pytest.raises(TargetExistsException):
            await hub.sync_skill_to_tool(skill.id, "claude_code")

        assert not path.is_symlink()
        assert (path / "notes.txt").read_text() == "user data"

        target = await hub.sync_skill_to_tool(skill.id, "claude_code", overwrite=True)
        assert target.mode == SyncMode.SYMLINK
        assert path.is_symlink()

    async def test_recorded_link_removed_by_user_is_recreated(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        await hub.sync_skill_to_tool(skill.id, "claude_code")
        path = home / ".claude" / "skills" / "pdf-tools"
        path.unlink()

        await hub.sync_skill_to_tool(skill.id, "claude_code")

        assert path.is_symlink()

    async def test_resync_under_new_name_moves_entry(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        skills_dir = home / ".claude" / "skills"
        await hub.sync_skill_to_tool(skill.id, "claude_code", name="alpha")

        target = await hub.sync_skill_to_tool(skill.id, "claude_code", name="beta")

        assert target.target_path == str(skills_dir / "beta")
        assert os.listdir(skills_dir) == ["beta"]
        refreshed = await hub.get_managed_skill(skill.id)
        assert [t.target_path for t in refreshed.targets] == [str(skills_dir / "beta")]

        await hub.unsync_skill_from_tool(skill.id, "claude_code")
        assert os.listdir(skills_dir) == []

    async def test_rename_keeps_user_folder_at_old_path(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        skills_dir = home / ".claude" / "skills"
        await hub.sync_skill_to_tool(skill.id, "claude_code", name="alpha")
        (skills_dir / "alpha").unlink()
        (skills_dir / "alpha").mkdir()

        await hub.sync_skill_to_tool(skill.id, "claude_code", name="beta")

        assert sorted(os.listdir(skills_dir)) == ["alpha", "beta"]
        assert not (skills_dir / "alpha").is_symlink()

    async def test_unsync_leaves_user_folder_at_recorded_path(self, hub, home, skill, install_tools):
        install_tools("claude_code")
        await hub.sync_skill_to_tool(skill.id, "claude_code")
        path = home / ".claude" / "skills" / "pdf-tools"
        path.unlink()
        path.mkdir()
        (path / "notes.txt").write_text("user data")

        removed = await hub.unsync_skill_from_tool(skill.id, "claude_code")

        assert removed == ["claude_code"]
        assert (path / "notes.txt").read_text() == "user data"
        assert (await hub.get_managed_skill(skill.id)).targets == []

    async def test_unknown_tool(self, hub, skill):
        with pytest.raises(ToolNotFoundException):
            await hub.sync_skill_to_tool(skill.id, "notepad")


class TestSyncAll:
    async def test_syncs_every_installed_tool(self, hub, home, skill, install_tools):
        install_tools("claude_code", "codex", "cursor")
        result = await hub.sync_all(skill.id)
        assert result.success_count == 3
        assert result.error_count == 0
        assert (home / ".codex" / "skills" / "pdf-tools").is_symlink()

    async def test_one_failure_does_not_stop_the_rest(self, hub, home, skill, install_tools):
        install_tools("claude_code", "codex", "cursor")
        (home / ".codex" / "skills" / "pdf-tools").mkdir(parents=True)

        result = await hub.sync_all(skill.id)

        assert result.success_count == 2
        assert result.error_count == 1
        failed = [r for r in result.results if not r.success]
        assert failed[0].key == "codex"
        assert failed[0].code == "TARGET_EXISTS"
        assert (home / ".claude" / "skills" / "pdf-tools").is_symlink()

    async def test_shared_directory_counted_once_per_tool(self, hub, home, skill, install_tools):
        install_tools("amp", "kimi_cli")
        result = await hub.sync_all(skill.id)
        assert sorted(r.key for r in result.results) == ["amp", "kimi_cli"]
        assert result.success_count == 2

    async def test_unsync_all(self, hub, home, skill, install_tools):
        install_tools("claude_code", "cursor")
        await hub.sync_all(skill.id)
        result = await hub.sync_all(skill.id, sync=False)
        assert result.error_count == 0
        assert (await hub.get_managed_skill(skill.id)).targets == []
        assert not os.path.lexists(home / ".cursor" / "skills" / "pdf-tools")
