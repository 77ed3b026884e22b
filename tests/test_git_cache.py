"""Tests for git URL parsing, the clone cache and git installs."""
import asyncio
import json
import shutil
import subprocess

import pytest

from skills_hub.core.exceptions import MultipleSkillsException, ValidationException
from skills_hub.core.git_cache import CACHE_META_FILE, REPO_DIR_NAME, parse_git_url, repo_cache_key
from skills_hub.core.registry import parse_registry_package
from skills_hub.schemas.skill import GitSelection, SourceType
from tests.conftest import write_skill

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class TestParseGitUrl:
    @pytest.mark.parametrize("url", [
        "https://github.com/acme/skills",
        "https://github.com/acme/skills/",
        "https://github.com/acme/skills.git",
        "http://github.com/acme/skills",
        "github.com/acme/skills",
        "acme/skills",
    ])
    def test_github_forms(self, url):
        parsed = parse_git_url(url)
        assert parsed.clone_url == "https://github.com/acme/skills.git"
        assert parsed.branch is None
        assert parsed.subpath is None

    def test_tree_url(self):
        parsed = parse_git_url("https://github.com/acme/skills/tree/main/skills/pdf")
        assert parsed.clone_url == "https://github.com/acme/skills.git"
        assert parsed.branch == "main"
        assert parsed.subpath == "skills/pdf"

    def test_blob_url_drops_file(self):
        parsed = parse_git_url("https://github.com/acme/skills/blob/dev/skills/pdf/SKILL.md")
        assert parsed.branch == "dev"
        assert parsed.subpath == "skills/pdf"

    @pytest.mark.parametrize("url", [
        "git@github.com:acme/skills.git",
        "https://gitlab.com/acme/skills.git",
        "file:///srv/repos/skills",
    ])
    def test_other_urls_verbatim(self, url):
        assert parse_git_url(url).clone_url == url

    def test_empty_url(self):
        with pytest.raises(ValidationException):
            parse_git_url("  ")

    def test_cache_key_depends_on_branch(self):
        url = "https://github.com/acme/skills.git"
        assert repo_cache_key(url, None) != repo_cache_key(url, "dev")
        assert repo_cache_key(url, None) == repo_cache_key(url, None)


class TestRegistryPackage:
    def test_parse(self):
        pkg = parse_registry_package("acme/skills@pdf-tools")
        assert (pkg.owner, pkg.repo, pkg.skill) == ("acme", "skills", "pdf-tools")
        assert pkg.repo_url == "https://github.com/acme/skills"
        assert str(pkg) == "acme/skills@pdf-tools"

    @pytest.mark.parametrize("package", ["acme/skills", "pdf-tools", "acme@x", "a/b@c d"])
    def test_invalid(self, package):
        with pytest.raises(ValidationException):
            parse_registry_package(package)


def _git(cwd, *args):
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def origin_repo(tmp_path):
    repo = tmp_path / "origin"
    for name in ("a", "b", "c"):
        write_skill(repo / "skills" / name, f"skill-{name}")
    _git(tmp_path, "init", str(repo))
    _git(repo, "add", "-A")
    _git(repo, "commit", "-m", "initial")
    return repo


@requires_git
@pytest.mark.anyio
class TestGitInstall:
    async def test_list_candidates(self, hub, origin_repo):
        candidates = await hub.list_git_candidates(origin_repo.as_uri())
        assert [c.name for c in candidates] == ["skill-a", "skill-b", "skill-c"]
        assert [c.subpath for c in candidates] == ["skills/a", "skills/b", "skills/c"]

    async def test_one_shot_install_needs_selection(self, hub, origin_repo):
        with pytest.raises(MultipleSkillsException) as exc_info:
            await hub.install_git(origin_repo.as_uri())
        assert exc_info.value.code == "MULTI_SKILLS"
        assert len(exc_info.value.candidates) == 3
        assert await hub.get_managed_skills() == []

    async def test_install_selections(self, hub, origin_repo):
        url = origin_repo.as_uri()
        result = await hub.install_git_selections(url, [
            GitSelection(subpath="skills/a"),
            GitSelection(subpath="skills/b", name="second"),
        ])
        assert result.success_count == 2
        skills = {s.name: s for s in await hub.get_managed_skills()}
        assert set(skills) == {"skill-a", "second"}
        assert skills["skill-a"].id != skills["second"].id
        assert skills["skill-a"].content_hash != skills["second"].content_hash
        assert skills["second"].source_type == SourceType.GIT
        assert skills["second"].source.subpath == "skills/b"
        assert skills["second"].source.revision

    async def test_single_skill_repo(self, hub, tmp_path):
        repo = write_skill(tmp_path / "solo", "solo-skill")
        _git(tmp_path, "init", str(repo))
        _git(repo, "add", "-A")
        _git(repo, "commit", "-m", "initial")

        skill = await hub.install_git(repo.as_uri())

        assert skill.name == "solo-skill"
        assert skill.source.subpath is None

    async def test_cache_layout_and_freshness(self, hub, origin_repo):
        url = origin_repo.as_uri()
        await hub.list_git_candidates(url)
        entry_dir = hub.git_cache.entry_dir(repo_cache_key(url, None))
        meta = json.loads((entry_dir / CACHE_META_FILE).read_text())
        assert meta["repo_url"] == url
        assert (entry_dir / REPO_DIR_NAME / "skills" / "a" / "SKILL.md").is_file()

        await hub.list_git_candidates(url)
        assert json.loads((entry_dir / CACHE_META_FILE).read_text())["last_fetched_ms"] == meta["last_fetched_ms"]

    async def test_update_pulls_new_revision(self, hub, origin_repo):
        url = origin_repo.as_uri()
        skill = await hub.install_git_selection(url, "skills/a")

        write_skill(origin_repo / "skills" / "a", "skill-a", body="New instructions\n")
        _git(origin_repo, "commit", "-am", "update a")
        result = await hub.update_managed_skill(skill.id)

        assert result.changed is True
        assert result.source_revision != skill.source.revision
        content = await hub.read_skill_content(skill.central_path)
        assert "New instructions" in content

    async def test_clear_and_cleanup(self, hub, origin_repo):
        await hub.list_git_candidates(origin_repo.as_uri())
        assert await hub.cleanup_git_cache() == 0
        assert await hub.clear_git_cache_now() == 1
        assert hub.git_cache.list_entries() == []

    async def test_concurrent_reads_share_one_clone(self, hub, origin_repo, monkeypatch):
        commands = []
        run_git = hub.git_cache._run_git_command

        async def recording(args, cwd=None):
            commands.append(args[0])
            return await run_git(args, cwd=cwd)

        monkeypatch.setattr(hub.git_cache, "_run_git_command", recording)
        url = origin_repo.as_uri()
        results = await asyncio.gather(*(hub.list_git_candidates(url) for _ in range(3)))

        assert commands.count("clone") == 1
        assert "fetch" not in commands
        assert all([c.name for c in r] == ["skill-a", "skill-b", "skill-c"] for r in results)

    async def test_clear_waits_for_reader(self, hub, origin_repo):
        url = origin_repo.as_uri()
        async with hub.git_cache.checked_out(url) as (base, _, _):
            clearing = asyncio.create_task(hub.clear_git_cache_now())
            await asyncio.sleep(0.05)
            assert not clearing.done()
            assert (base / "skills" / "a" / "SKILL.md").is_file()
        assert await clearing == 1
        assert hub.git_cache.list_entries() == []

    async def test_update_and_install_from_one_repository(self, hub, origin_repo):
        url = origin_repo.as_uri()
        first = await hub.install_git_selection(url, "skills/a")
        write_skill(origin_repo / "skills" / "a", "skill-a", body="New instructions\n")
        _git(origin_repo, "commit", "-am", "update a")

        result, second = await asyncio.gather(
            hub.update_managed_skill(first.id),
            hub.install_git_selection(url, "skills/b"),
        )

        assert result.changed is True
        assert second.name == "skill-b"
        assert "New instructions" in await hub.read_skill_content(first.central_path)
        assert "skill-b" in await hub.read_skill_content(second.central_path)
