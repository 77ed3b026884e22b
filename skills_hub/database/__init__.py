"""Skill index storage.

The index lives in a single SQLite file under the application data
directory. It records managed skills, their per-tool sync targets and the
settings a user changed at runtime.

Usage:
    from skills_hub.database import create_database

    db = create_database(settings)
    await db.initialize()

    skills = await db.skills.list()
    targets = await db.skill_targets.list_by_skill(skills[0]["id"])
"""
from skills_hub.config import Settings
from skills_hub.database.base import BaseDatabase, BaseTable
from skills_hub.database.sqlite import SQLiteDatabase, now_ms


def create_database(app_settings: Settings) -> SQLiteDatabase:
    """Create the index database for the given settings (schema not yet initialized)."""
    return SQLiteDatabase(db_path=app_settings.get_db_path())


__all__ = [
    "BaseDatabase",
    "BaseTable",
    "SQLiteDatabase",
    "create_database",
    "now_ms",
]
