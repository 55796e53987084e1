"""Safety tests to ensure the test suite doesn't touch local data.

These tests verify that running the test suite does NOT touch:
- ./data/config (the checked-in app and plan configuration)
- ./db (the default SQLite database location)

All tests MUST use in-memory databases or temporary directories.
"""

import hashlib
import os
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
TESTS_DIR = Path(__file__).resolve().parent


def _hash_directory(path: Path) -> str | None:
    """Create a hash of directory structure and file sizes/mtimes.

    Returns None if directory doesn't exist.
    """
    if not path.exists():
        return None

    hasher = hashlib.sha256()

    for root, dirs, files in os.walk(path):
        dirs.sort()
        files.sort()

        for filename in files:
            filepath = Path(root) / filename
            hasher.update(str(filepath.relative_to(path)).encode())
            stat = filepath.stat()
            hasher.update(str(stat.st_size).encode())
            hasher.update(str(int(stat.st_mtime)).encode())

    return hasher.hexdigest()


# Snapshot taken at collection time, before any test runs
CONFIG_STATE = _hash_directory(REPO_ROOT / "data" / "config")
DB_EXISTED = (REPO_ROOT / "db").exists()


class TestLocalStateSafety:
    """Tests ensuring ./data/config and ./db are left alone."""

    def test_config_directory_not_modified(self):
        if _hash_directory(REPO_ROOT / "data" / "config") != CONFIG_STATE:
            pytest.fail(
                "./data/config was modified during test run. "
                "Write test configuration under tmp_path only."
            )

    def test_db_directory_not_created(self):
        """Test suite should not create ./db if it didn't exist."""
        if not DB_EXISTED and (REPO_ROOT / "db").exists():
            pytest.fail(
                "./db directory was created during test run. "
                "All tests MUST use in-memory or temporary databases."
            )


class TestTestIsolation:
    """Meta-tests ensuring test files pick an explicit database."""

    def test_no_default_database(self):
        """init_db() and create_app() are always given a database URL."""
        violations = []

        for test_file in sorted(TESTS_DIR.glob("test_*.py")):
            if test_file.name == "test_safety.py":
                continue
            content = test_file.read_text(encoding="utf-8")

            if "init_db()" in content:
                violations.append(f"{test_file.name}: calls init_db() without a URL")
            if "create_app()" in content:
                violations.append(f"{test_file.name}: calls create_app() without database_url")

        if violations:
            pytest.fail(
                "Test files may not be properly isolated:\n" +
                "\n".join(f"  - {v}" for v in violations)
            )
