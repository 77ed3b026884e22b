"""Registry package references (`owner/repo@skill`).

A registry package names a skill inside a GitHub repository. It resolves
through the git clone cache like any other git install; only the recorded
provenance differs.
"""
import re
from dataclasses import dataclass
from pathlib import Path

from skills_hub.core.exceptions import NotFoundException, ValidationException
from skills_hub.core.local_importer import discover_candidates
from skills_hub.schemas.skill import SkillCandidate

_PACKAGE = re.compile(r"^([A-Za-z0-9_-][A-Za-z0-9_.-]*)/([A-Za-z0-9_.-]+)@([^\s/@]+)$")


@dataclass(frozen=True)
class RegistryPackage:
    owner: str
    repo: str
    skill: str

    @property
    def repo_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.skill}"


def parse_registry_package(package: str) -> RegistryPackage:
    match = _PACKAGE.match(package.strip())
    if not match:
        raise ValidationException(
            message="Invalid registry package",
            detail=f"'{package}' is not of the form owner/repo@skill",
            suggested_action="Use a package reference like owner/repo@skill-name"
        )
    return RegistryPackage(*match.groups())


def find_package_skill(base: Path, package: RegistryPackage) -> SkillCandidate:
    """The candidate in a cloned repository matching the package's skill name or folder."""
    wanted = package.skill.casefold()
    candidates = [c for c in discover_candidates(base) if c.valid]
    for candidate in candidates:
        if candidate.name.casefold() == wanted:
            return candidate
    for candidate in candidates:
        if candidate.subpath.rsplit("/", 1)[-1].casefold() == wanted:
            return candidate
    raise NotFoundException(
        message="Skill not found in package",
        detail=f"{package.repo_url} has no skill named '{package.skill}'",
        suggested_action="Check the skill name after '@'"
    )
