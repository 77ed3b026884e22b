"""Skill-related Pydantic models."""
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, computed_field


class SourceType(str, Enum):
    LOCAL = "local"
    GIT = "git"
    REGISTRY = "registry"


class SyncMode(str, Enum):
    """How a skill is materialized inside a tool directory."""

    SYMLINK = "symlink"
    COPY = "copy"


class LocalSource(BaseModel):
    """Skill imported from a folder on disk."""

    source_type: Literal["local"] = "local"
    path: str


class GitSource(BaseModel):
    """Skill installed from a git repository (optionally a subtree of it)."""

    source_type: Literal["git"] = "git"
    repo_url: str
    subpath: str | None = None
    revision: str | None = None


class RegistrySource(BaseModel):
    """Skill installed from a registry package reference (owner/repo@skill)."""

    source_type: Literal["registry"] = "registry"
    package: str
    subpath: str | None = None
    revision: str | None = None


SkillSource = Annotated[
    Union[LocalSource, GitSource, RegistrySource],
    Field(discriminator="source_type"),
]


def source_ref(source: SkillSource) -> str:
    if isinstance(source, LocalSource):
        return source.path
    if isinstance(source, GitSource):
        return source.repo_url
    if isinstance(source, RegistrySource):
        return source.package
    raise TypeError(f"Unsupported skill source: {source!r}")


class SkillMetadata(BaseModel):
    """Descriptive metadata from skill.yaml / skill.json or the SKILL.md frontmatter."""

    name: str = Field(..., min_length=1)
    version: str | None = None
    description: str | None = None
    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


class SyncTarget(BaseModel):
    """A materialization of a managed skill inside one tool's skills directory."""

    tool: str
    mode: SyncMode
    status: str = "ok"
    target_path: str
    synced_at: int | None = None
    last_error: str | None = None


class ManagedSkill(BaseModel):
    """A skill owned by the central repository."""

    id: str
    name: str
    source: SkillSource
    central_path: str
    content_hash: str | None = None
    metadata: SkillMetadata | None = None
    status: str = "ok"
    created_at: int
    updated_at: int
    last_sync_at: int | None = None
    targets: list[SyncTarget] = Field(default_factory=list)

    @computed_field
    @property
    def source_type(self) -> SourceType:
        return SourceType(self.source.source_type)

    @computed_field
    @property
    def source_ref(self) -> str:
        return source_ref(self.source)

    @computed_field
    @property
    def description(self) -> str | None:
        return self.metadata.description if self.metadata else None


class SkillCandidate(BaseModel):
    """A skill found inside a local folder or a cloned repository."""

    name: str
    description: str | None = None
    subpath: str = Field(..., description="Path relative to the scanned base, '.' for the base itself")
    valid: bool = True
    reason: str | None = Field(default=None, description="Why the candidate is not installable")


class UpdateResult(BaseModel):
    skill_id: str
    name: str
    content_hash: str | None = None
    source_revision: str | None = None
    changed: bool
    updated_targets: list[str] = Field(default_factory=list)


class BatchItemResult(BaseModel):
    key: str = Field(..., description="Tool key or skill name the item refers to")
    success: bool
    error: str | None = None
    code: str | None = None


class BatchResult(BaseModel):
    """Outcome of a multi-item operation. One item failing never aborts the others."""

    results: list[BatchItemResult] = Field(default_factory=list)
    success_count: int = 0
    error_count: int = 0

    def add_success(self, key: str) -> None:
        self.results.append(BatchItemResult(key=key, success=True))
        self.success_count += 1

    def add_failure(self, key: str, error: str, code: str | None = None) -> None:
        self.results.append(BatchItemResult(key=key, success=False, error=error, code=code))
        self.error_count += 1

    @property
    def partial(self) -> bool:
        return self.error_count > 0 and self.success_count > 0


# Requests

class ListLocalCandidatesRequest(BaseModel):
    base_path: str


class InstallLocalRequest(BaseModel):
    source_path: str
    name: str | None = None


class InstallLocalSelectionRequest(BaseModel):
    base_path: str
    subpath: str
    name: str | None = None


class ListGitCandidatesRequest(BaseModel):
    repo_url: str


class InstallGitRequest(BaseModel):
    repo_url: str
    name: str | None = None


class InstallGitSelectionRequest(BaseModel):
    repo_url: str
    subpath: str
    name: str | None = None


class GitSelection(BaseModel):
    subpath: str
    name: str | None = None


class InstallGitSelectionsRequest(BaseModel):
    repo_url: str
    selections: list[GitSelection] = Field(..., min_length=1)


class InstallRegistryRequest(BaseModel):
    package: str = Field(..., description="owner/repo@skill")
    name: str | None = None


class SyncToToolRequest(BaseModel):
    tool: str
    source_path: str | None = None
    name: str | None = None
    overwrite: bool = False


class SyncAllRequest(BaseModel):
    sync: bool = True
    tools: list[str] | None = Field(default=None, description="Tools to reconcile; defaults to every installed tool")
