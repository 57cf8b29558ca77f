"""
Artifact location and inspection.

Artifacts are `.crate` files (gzip-compressed tarballs) laid out on disk the
same way the registry index lays out crate names. The inspector reads the
`Cargo.toml` of an artifact and reports the targets it declares.
"""

import gzip
import tarfile
import tomllib
import zlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from .errors import ArtifactNotFound, ArtifactParseError, ArtifactTooLarge


def relative_index_path(name: str) -> Path:
    """Directory of a crate relative to the artifact root, e.g. `se/rd/serde`."""
    name = name.lower()
    if len(name) == 1:
        return Path("1") / name
    if len(name) == 2:
        return Path("2") / name
    if len(name) == 3:
        return Path("3") / name[0] / name
    return Path(name[0:2]) / name[2:4] / name


def artifact_path(root: Path, name: str, version: str) -> Path:
    return root / relative_index_path(name) / f"{name}-{version}.crate"


def local_value(value: Any) -> Any:
    """Drop workspace-inherited values (`{workspace = true}`)."""
    if isinstance(value, dict) and value.get("workspace") is True:
        return None
    return value


@dataclass
class Manifest:
    """The parts of a parsed Cargo.toml the backfill tasks read."""

    package: Dict[str, Any] = field(default_factory=dict)
    features: Dict[str, List[str]] = field(default_factory=dict)
    has_lib: bool = False
    bin_names: List[str] = field(default_factory=list)

    def get(self, key: str) -> Any:
        return local_value(self.package.get(key))


class ArtifactInspector:
    """
    Reads artifacts from disk.

    Safe to share between worker threads: every call opens its own file
    handle and keeps no state.
    """

    def __init__(self, max_size: Optional[int] = None):
        """
        Args:
            max_size: Reject artifacts larger than this many bytes (None = unlimited)
        """
        self.max_size = max_size

    def size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError as e:
            raise ArtifactNotFound(f"Failed to fetch metadata for file: {e}") from e
        except OSError as e:
            raise ArtifactNotFound(f"Failed to stat file: {e}") from e

    def inspect(self, path: Path) -> Manifest:
        """
        Parse the manifest of a `.crate` artifact.

        Raises:
            ArtifactNotFound: file is missing or unreadable
            ArtifactTooLarge: file exceeds max_size
            ArtifactParseError: not a tarball, no Cargo.toml, invalid TOML,
                or a manifest whose tables have the wrong shape
        """
        size = self.size(path)
        if self.max_size is not None and size > self.max_size:
            raise ArtifactTooLarge(f"File is too large ({size} > {self.max_size} bytes)")

        pkgname = path.name[: -len(".crate")] if path.name.endswith(".crate") else path.stem
        try:
            with tarfile.open(path, mode="r:gz") as tar:
                members = [PurePosixPath(m.name) for m in tar.getmembers() if m.isfile()]
                manifest_member = tar.extractfile(f"{pkgname}/Cargo.toml")
                if manifest_member is None:
                    raise ArtifactParseError(f"Cargo.toml in {pkgname} is not a regular file")
                raw = manifest_member.read()
        except KeyError as e:
            raise ArtifactParseError(f"Missing {pkgname}/Cargo.toml") from e
        except (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError) as e:
            raise ArtifactParseError(f"Failed to process tarball: {e}") from e
        except OSError as e:
            raise ArtifactNotFound(f"Failed to open file: {e}") from e

        try:
            data = tomllib.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            raise ArtifactParseError(f"Failed to parse Cargo.toml: {e}") from e

        package = data.get("package") or data.get("project") or {}
        _check_shapes(data, package)

        files = {str(m.relative_to(pkgname)) for m in members if m.parts[:1] == (pkgname,)}
        return Manifest(
            package=package,
            features=data.get("features") or {},
            has_lib=_detect_lib(data, package, files),
            bin_names=_detect_bins(data, package, files),
        )


def _check_shapes(data: Dict[str, Any], package: Any) -> None:
    """Reject valid TOML that Cargo would not accept as a manifest."""
    if not isinstance(package, dict):
        raise ArtifactParseError("Cargo.toml [package] is not a table")
    if "name" in package and not isinstance(package["name"], str):
        raise ArtifactParseError("Cargo.toml package.name is not a string")
    if "features" in data and not isinstance(data["features"], dict):
        raise ArtifactParseError("Cargo.toml [features] is not a table")
    if "lib" in data and not isinstance(data["lib"], dict):
        raise ArtifactParseError("Cargo.toml [lib] is not a table")
    bins = data.get("bin", [])
    if not isinstance(bins, list) or not all(isinstance(t, dict) for t in bins):
        raise ArtifactParseError("Cargo.toml [[bin]] is not an array of tables")
    for target in bins:
        if "name" in target and not isinstance(target["name"], str):
            raise ArtifactParseError("Cargo.toml [[bin]] name is not a string")


def _detect_lib(data: Dict[str, Any], package: Dict[str, Any], files: set) -> bool:
    if "lib" in data:
        return True
    if package.get("autolib") is False:
        return False
    return "src/lib.rs" in files


def _detect_bins(data: Dict[str, Any], package: Dict[str, Any], files: set) -> List[str]:
    names = []
    for target in data.get("bin", []):
        name = target.get("name")
        if name and name not in names:
            names.append(name)

    if package.get("autobins") is False:
        return names

    # Auto-discovered targets
    pkg_name = package.get("name")
    if pkg_name and "src/main.rs" in files and pkg_name not in names:
        names.append(pkg_name)
    for f in sorted(files):
        p = PurePosixPath(f)
        if p.parent == PurePosixPath("src/bin") and p.suffix == ".rs":
            if p.stem not in names:
                names.append(p.stem)
        elif p.parent.parent == PurePosixPath("src/bin") and p.name == "main.rs":
            if p.parent.name not in names:
                names.append(p.parent.name)
    return names
