"""Application exceptions.

Every error surfaced to the UI carries a short message, an optional detail
and a suggested action, plus a stable machine-readable code. The FastAPI
handler in main.py turns them into ErrorResponse bodies.
"""
from pathlib import Path
from typing import Optional


class AppException(Exception):
    """Base class for errors reported to the UI."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Unexpected error"

    def __init__(
        self,
        message: Optional[str] = None,
        detail: Optional[str] = None,
        suggested_action: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.detail = detail
        self.suggested_action = suggested_action
        if code:
            self.code = code
        super().__init__(self.message if not detail else f"{self.message}: {detail}")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
            "suggested_action": self.suggested_action,
        }


class ValidationException(AppException):
    """Input rejected before anything was written (bad manifest, bad URL, bad selection)."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidSkillException(ValidationException):
    """A directory is not a valid skill. `reason` is one of the manifest reason codes."""

    code = "SKILL_INVALID"
    default_message = "Invalid skill"

    def __init__(self, reason: str, path: Optional[Path] = None, **kwargs):
        self.reason = reason
        self.path = path
        kwargs.setdefault("detail", f"{reason}" + (f" ({path})" if path else ""))
        kwargs.setdefault("suggested_action", "Make sure the folder contains a SKILL.md with a name in its frontmatter")
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["reason"] = self.reason
        return result


class MultipleSkillsException(ValidationException):
    """A one-shot install found more than one skill; the caller must pick candidates."""

    code = "MULTI_SKILLS"
    default_message = "Repository contains multiple skills"

    def __init__(self, candidates: Optional[list] = None, **kwargs):
        self.candidates = candidates or []
        kwargs.setdefault("detail", f"{len(self.candidates)} skills found")
        kwargs.setdefault("suggested_action", "List the candidates and install the ones you want")
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["candidates"] = [
            c.model_dump() if hasattr(c, "model_dump") else c for c in self.candidates
        ]
        return result


class ConflictException(AppException):
    """Something already exists at the destination."""

    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"

    def __init__(self, path: Optional[Path] = None, **kwargs):
        self.path = path
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["path"] = str(self.path) if self.path else None
        return result


class TargetExistsException(ConflictException):
    """A tool directory already holds an entry with the skill's name."""

    code = "TARGET_EXISTS"
    default_message = "Target already exists"

    def __init__(self, path: Path, **kwargs):
        kwargs.setdefault("detail", f"{path} already exists")
        kwargs.setdefault("suggested_action", "Retry with overwrite to replace the existing entry")
        super().__init__(path=path, **kwargs)


class AlreadyExistsException(ConflictException):
    """A managed skill with the same name (or central folder) already exists."""

    code = "ALREADY_EXISTS"
    default_message = "Skill already exists"

    def __init__(self, name: str, path: Optional[Path] = None, **kwargs):
        self.name = name
        kwargs.setdefault("detail", f"A skill named '{name}' is already managed")
        kwargs.setdefault("suggested_action", "Choose a different name or delete the existing skill first")
        super().__init__(path=path, **kwargs)


class NotFoundException(AppException):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class SkillNotFoundException(NotFoundException):
    code = "SKILL_NOT_FOUND"
    default_message = "Skill not found"


class ToolNotFoundException(NotFoundException):
    code = "TOOL_NOT_FOUND"
    default_message = "Unknown tool"


class StorageException(AppException):
    """A filesystem or index operation failed."""

    status_code = 500
    code = "IO_ERROR"
    default_message = "Storage operation failed"


class NetworkException(AppException):
    """A git operation failed or timed out."""

    status_code = 502
    code = "NETWORK_ERROR"
    default_message = "Git operation failed"
