"""
Pytest configuration and shared fixtures.
"""

import io
import json
import tarfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pytest

from cratefill.database import Crate, Version, get_session, init_database
from cratefill.inspector import artifact_path
from cratefill.logger import StructuredLogger


def write_crate(
    root: Path,
    name: str,
    version: str,
    manifest: str,
    files: Optional[Dict[str, str]] = None,
) -> Path:
    """Build a `.crate` tarball under the index layout and return its path."""
    path = artifact_path(root, name, version)
    path.parent.mkdir(parents=True, exist_ok=True)
    pkgname = f"{name}-{version}"
    contents = {"Cargo.toml": manifest, **(files or {})}
    with tarfile.open(path, mode="w:gz") as tar:
        for rel, text in contents.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(f"{pkgname}/{rel}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def package_manifest(name: str, version: str, **fields) -> str:
    """Minimal Cargo.toml with extra [package] string fields."""
    lines = ["[package]", f'name = "{name}"', f'version = "{version}"']
    for key, value in fields.items():
        # JSON strings and arrays are valid TOML values
        lines.append(f"{key} = {json.dumps(value)}")
    return "\n".join(lines) + "\n"


@pytest.fixture
def crates_path(tmp_path) -> Path:
    root = tmp_path / "all-crates"
    root.mkdir()
    return root


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Empty registry database."""
    path = tmp_path / "registry.db"
    init_database(path)
    return path


@pytest.fixture
def add_version(db_path):
    """Insert a version (creating its crate on demand) and return its id."""

    def _add(name: str, num: str, **fields) -> int:
        session = get_session(db_path)
        try:
            crate = session.query(Crate).filter_by(name=name).first()
            if crate is None:
                crate = Crate(name=name)
                session.add(crate)
                session.flush()
            fields.setdefault("created_at", datetime(2017, 1, 1))
            version = Version(crate_id=crate.id, num=num, **fields)
            session.add(version)
            session.commit()
            return version.id
        finally:
            session.close()

    return _add


@pytest.fixture
def fetch_version(db_path):
    def _fetch(version_id: int) -> Version:
        session = get_session(db_path)
        try:
            version = session.get(Version, version_id)
            session.expunge(version)
            return version
        finally:
            session.close()

    return _fetch


@pytest.fixture
def logger(tmp_path):
    log = StructuredLogger(
        name="cratefill-test",
        log_dir=tmp_path / "logs",
        enable_console=False,
    )
    yield log
    log.close()
