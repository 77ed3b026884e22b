"""Shallow git clone cache shared by git installs, registry installs and updates.

Cache layout:
    {cache_root}/
    └── {sha256(clone_url + branch)}/
        ├── .skills-hub-cache.json   <- {repo_url, branch, last_fetched_ms, head}
        └── repo/                    <- shallow working tree

Each entry is guarded by its own asyncio lock, held from the fetch until
the caller has finished reading the tree. Concurrent requests for the same
repository share one fetch while different repositories proceed in
parallel.
"""
import asyncio
import hashlib
import json
import logging
import os
import re
import shutil
import subprocess
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional
from uuid import uuid4

from skills_hub.core.exceptions import NetworkException, StorageException, ValidationException
from skills_hub.core.locks import KeyedLocks

logger = logging.getLogger(__name__)

CACHE_META_FILE = ".skills-hub-cache.json"
REPO_DIR_NAME = "repo"

_GITHUB_PREFIXES = ("https://github.com/", "http://github.com/", "github.com/")
_SHORTHAND = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*/[A-Za-z0-9_.-]+(/.*)?$")
_CACHE_KEY = re.compile(r"^[0-9a-f]{64}$")


@dataclass
class ParsedGitSource:
    """Where to clone from and which part of the tree is wanted."""
    clone_url: str
    branch: Optional[str] = None
    subpath: Optional[str] = None


@dataclass
class GitCacheEntry:
    key: str
    path: Path
    repo_url: Optional[str] = None
    branch: Optional[str] = None
    last_fetched_ms: Optional[int] = None
    head: Optional[str] = None


def parse_git_url(url: str) -> ParsedGitSource:
    """Normalize a user-supplied repository reference.

    GitHub URLs (https, http, scheme-less and `owner/repo` shorthand) are
    turned into clone URLs, with `/tree/<branch>/<path>` and
    `/blob/<branch>/<file>` mapped to a branch and subpath. Anything else
    (ssh, file://, other hosts, local paths) is cloned verbatim.
    """
    raw = url.strip()
    if not raw:
        raise ValidationException(
            message="Repository URL is required",
            suggested_action="Enter a git URL or a GitHub owner/repo"
        )
    trimmed = raw.rstrip("/")

    rest = None
    for prefix in _GITHUB_PREFIXES:
        if trimmed.startswith(prefix):
            rest = trimmed[len(prefix):]
            break
    if rest is None and "://" not in trimmed and "@" not in trimmed and _SHORTHAND.match(trimmed):
        rest = trimmed
    if rest is None:
        return ParsedGitSource(clone_url=raw)

    parts = [p for p in rest.split("/") if p]
    if len(parts) < 2:
        return ParsedGitSource(clone_url=raw)

    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[:-4]
    clone_url = f"https://github.com/{owner}/{repo}.git"

    if len(parts) >= 4 and parts[2] in ("tree", "blob"):
        branch = parts[3]
        sub_parts = parts[4:]
        if parts[2] == "blob" and sub_parts:
            # A blob link names a file inside the skill folder
            sub_parts = sub_parts[:-1]
        return ParsedGitSource(clone_url=clone_url, branch=branch, subpath="/".join(sub_parts) or None)

    return ParsedGitSource(clone_url=clone_url)


def repo_cache_key(clone_url: str, branch: Optional[str]) -> str:
    return hashlib.sha256(f"{clone_url}\n{branch or ''}".encode("utf-8")).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


class GitCacheManager:
    """Clones repositories once and reuses them while they are fresh."""

    def __init__(self, cache_root: Path, ttl_secs: int = 60, timeout_secs: int = 120):
        self.cache_root = Path(cache_root)
        self.ttl_secs = ttl_secs
        self.timeout_secs = timeout_secs
        self._locks = KeyedLocks()

    async def _run_git_command(
        self,
        args: list[str],
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """Run a git command asynchronously, never prompting for credentials."""
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "GCM_INTERACTIVE": "never"}
        try:
            return await asyncio.to_thread(
                subprocess.run,
                ["git"] + args,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout_secs,
                env=env,
            )
        except FileNotFoundError as e:
            raise NetworkException(
                message="Git is not installed",
                detail=str(e),
                suggested_action="Install Git and try again"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise NetworkException(
                message="Git operation timed out",
                detail=f"git {args[0]} did not finish within {self.timeout_secs}s",
                suggested_action="Check your network connection and try again"
            ) from e
        except subprocess.CalledProcessError as e:
            raise NetworkException(
                message=f"git {args[0]} failed",
                detail=(e.stderr or str(e)).strip(),
                suggested_action="Check the repository URL and your access to it"
            ) from e

    async def find_origin(self, path: Path) -> Optional[tuple[str, Optional[str]]]:
        """(origin URL, HEAD) if path is the root of a git checkout with an origin remote."""
        if not (Path(path) / ".git").exists():
            return None
        try:
            origin = await self._run_git_command(["remote", "get-url", "origin"], cwd=path)
            head = await self._run_git_command(["rev-parse", "HEAD"], cwd=path)
        except NetworkException as e:
            logger.debug(f"No usable origin for {path}: {e}")
            return None
        url = origin.stdout.strip()
        if not url:
            return None
        return url, head.stdout.strip() or None

    def entry_dir(self, key: str) -> Path:
        return self.cache_root / key

    def read_entry(self, key: str) -> Optional[GitCacheEntry]:
        entry_dir = self.entry_dir(key)
        if not entry_dir.is_dir():
            return None
        entry = GitCacheEntry(key=key, path=entry_dir / REPO_DIR_NAME)
        meta_path = entry_dir / CACHE_META_FILE
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return entry
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache metadata {meta_path}: {e}")
            return entry
        entry.repo_url = meta.get("repo_url")
        entry.branch = meta.get("branch")
        entry.last_fetched_ms = meta.get("last_fetched_ms")
        entry.head = meta.get("head")
        return entry

    def _write_meta(self, entry: GitCacheEntry) -> None:
        meta = {
            "repo_url": entry.repo_url,
            "branch": entry.branch,
            "last_fetched_ms": entry.last_fetched_ms,
            "head": entry.head,
        }
        (self.entry_dir(entry.key) / CACHE_META_FILE).write_text(json.dumps(meta, indent=2), encoding="utf-8")

    def _is_fresh(self, entry: GitCacheEntry) -> bool:
        if self.ttl_secs <= 0 or not entry.head or entry.last_fetched_ms is None:
            return False
        if not (entry.path / ".git").exists():
            return False
        return _now_ms() - entry.last_fetched_ms < self.ttl_secs * 1000

    async def _clone(self, clone_url: str, branch: Optional[str], repo_dir: Path) -> None:
        """Clone into a temporary sibling and move it into place."""
        repo_dir.parent.mkdir(parents=True, exist_ok=True)
        tmp_dir = repo_dir.parent / f".clone-{uuid4().hex[:12]}"
        args = ["clone", "--depth", "1"]
        if branch:
            args += ["--branch", branch]
        args += [clone_url, str(tmp_dir)]
        try:
            await self._run_git_command(args)
            if repo_dir.exists():
                shutil.rmtree(repo_dir)
            os.replace(tmp_dir, repo_dir)
        finally:
            if tmp_dir.exists():
                shutil.rmtree(tmp_dir, ignore_errors=True)

    async def _pull(self, branch: Optional[str], repo_dir: Path) -> None:
        await self._run_git_command(["fetch", "--depth", "1", "origin", branch or "HEAD"], cwd=repo_dir)
        await self._run_git_command(["reset", "--hard", "FETCH_HEAD"], cwd=repo_dir)
        await self._run_git_command(["clean", "-fd"], cwd=repo_dir)

    async def _refresh(self, entry: GitCacheEntry, clone_url: str, branch: Optional[str], force: bool) -> GitCacheEntry:
        """Fetch or clone entry unless it is fresh. The caller holds the entry's lock.

        A failed fetch of an existing clone is retried once from a fresh clone.

        Raises:
            NetworkException: clone or fetch failed or timed out
        """
        if not force and self._is_fresh(entry):
            logger.debug(f"Using cached clone of {clone_url} ({entry.head})")
            return entry

        if (entry.path / ".git").exists():
            try:
                await self._pull(branch, entry.path)
            except NetworkException as e:
                logger.warning(f"Fetch of cached {clone_url} failed ({e}), re-cloning")
                shutil.rmtree(entry.path, ignore_errors=True)
                await self._clone(clone_url, branch, entry.path)
        else:
            logger.info(f"Cloning {clone_url}" + (f" (branch {branch})" if branch else ""))
            await self._clone(clone_url, branch, entry.path)

        result = await self._run_git_command(["rev-parse", "HEAD"], cwd=entry.path)
        entry.repo_url = clone_url
        entry.branch = branch
        entry.head = result.stdout.strip()
        entry.last_fetched_ms = _now_ms()
        self._write_meta(entry)
        return entry

    def _base_dir(self, entry: GitCacheEntry, parsed: ParsedGitSource) -> Path:
        if not parsed.subpath:
            return entry.path
        base = (entry.path / parsed.subpath).resolve()
        if entry.path.resolve() not in base.parents and base != entry.path.resolve():
            raise ValidationException(
                message="Invalid repository path",
                detail=f"{parsed.subpath} escapes the repository",
            )
        if not base.is_dir():
            raise ValidationException(
                message="Path not found in repository",
                detail=f"{parsed.subpath} does not exist in {parsed.clone_url}",
                suggested_action="Check the branch and folder in the URL"
            )
        return base

    @asynccontextmanager
    async def checked_out(
        self,
        repo_url: str,
        force: bool = False,
    ) -> AsyncIterator[tuple[Path, Optional[str], ParsedGitSource]]:
        """Check out a user-facing URL and yield (base folder, revision, parsed URL).

        The clone is fetched at most once per TTL and stays locked until the
        block exits, so no fetch, re-clone or cache cleanup changes the tree
        while it is being read.

        Usage:
            async with git_cache.checked_out(url) as (base, revision, parsed):
                # read or copy from base
        """
        parsed = parse_git_url(repo_url)
        key = repo_cache_key(parsed.clone_url, parsed.branch)
        async with self._locks.hold(key):
            entry = self.read_entry(key) or GitCacheEntry(key=key, path=self.entry_dir(key) / REPO_DIR_NAME)
            entry = await self._refresh(entry, parsed.clone_url, parsed.branch, force)
            yield self._base_dir(entry, parsed), entry.head, parsed

    def list_entries(self) -> list[GitCacheEntry]:
        if not self.cache_root.is_dir():
            return []
        entries = []
        for child in sorted(self.cache_root.iterdir()):
            if child.is_dir() and _CACHE_KEY.match(child.name):
                entry = self.read_entry(child.name)
                if entry is not None:
                    entries.append(entry)
        return entries

    def _last_used_ms(self, entry: GitCacheEntry) -> int:
        if entry.last_fetched_ms is not None:
            return entry.last_fetched_ms
        try:
            return int(self.entry_dir(entry.key).stat().st_mtime * 1000)
        except OSError:
            return 0

    async def _remove_entry(self, entry: GitCacheEntry) -> bool:
        async with self._locks.hold(entry.key):
            entry_dir = self.entry_dir(entry.key)
            if not entry_dir.exists():
                return False
            try:
                await asyncio.to_thread(shutil.rmtree, entry_dir)
            except OSError as e:
                raise StorageException(
                    message="Failed to remove cached clone",
                    detail=f"{entry_dir}: {e}"
                ) from e
            return True

    async def cleanup(self, max_age_days: int) -> int:
        """Remove clones not fetched within max_age_days. 0 keeps everything."""
        if max_age_days <= 0:
            return 0
        cutoff = _now_ms() - max_age_days * 24 * 60 * 60 * 1000
        removed = 0
        for entry in self.list_entries():
            if self._last_used_ms(entry) < cutoff and await self._remove_entry(entry):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired git cache entries")
        return removed

    async def clear(self) -> int:
        """Remove every cached clone."""
        removed = 0
        for entry in self.list_entries():
            if await self._remove_entry(entry):
                removed += 1
        logger.info(f"Cleared git cache ({removed} entries)")
        return removed
