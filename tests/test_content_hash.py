"""Tests for directory content hashing."""
import os

from skills_hub.core.content_hash import fingerprint, hash_dir


class TestHashDir:
    def test_independent_of_creation_order(self, tmp_path):
        """Same files written in a different order hash the same."""
        a = tmp_path / "a"
        b = tmp_path / "b"
        for root, order in ((a, ["x.txt", "sub/y.txt"]), (b, ["sub/y.txt", "x.txt"])):
            for rel in order:
                path = root / rel
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(f"content of {rel}")
        assert hash_dir(a) == hash_dir(b)

    def test_content_change_changes_hash(self, tmp_path):
        (tmp_path / "SKILL.md").write_text("one")
        before = hash_dir(tmp_path)
        (tmp_path / "SKILL.md").write_text("two")
        assert hash_dir(tmp_path) != before

    def test_rename_changes_hash(self, tmp_path):
        (tmp_path / "a.txt").write_text("same")
        before = hash_dir(tmp_path)
        (tmp_path / "a.txt").rename(tmp_path / "b.txt")
        assert hash_dir(tmp_path) != before

    def test_git_directory_ignored(self, tmp_path):
        (tmp_path / "SKILL.md").write_text("skill")
        before = hash_dir(tmp_path)
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/main")
        assert hash_dir(tmp_path) == before

    def test_symlink_hashed_by_link_text(self, tmp_path):
        """A link contributes where it points, not the content behind it."""
        target = tmp_path / "target.txt"
        target.write_text("one")
        skill = tmp_path / "skill"
        skill.mkdir()
        os.symlink(target, skill / "link")
        before = hash_dir(skill)
        target.write_text("two")
        assert hash_dir(skill) == before

    def test_fingerprint_matches_hash_dir(self, tmp_path):
        (tmp_path / "SKILL.md").write_text("skill")
        assert fingerprint(tmp_path) == hash_dir(tmp_path)
