"""Directory-backed artifact store shared by the capture loop and the server.

The content directory is flat. The capture loop publishes artifacts
atomically (temp file in the same directory, then `os.replace`), the server
only lists and opens them, and the lifecycle owner purges them at teardown.
No lock is shared between the roles; the atomic rename is the contract.
"""

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional, Tuple

from .errors import NotFoundError
from .log import get_logger

log = get_logger(__name__)

ARTIFACT_SUFFIX = ".png"
TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
_TEMP_SUFFIX = ".tmp"


def artifact_name(when: Optional[datetime] = None) -> str:
    """Name for an artifact captured at `when` (default: now), e.g. `2024-01-01-10-00-00.png`."""
    return (when or datetime.now()).strftime(TIMESTAMP_FORMAT) + ARTIFACT_SUFFIX


def is_artifact_name(name: str) -> bool:
    """Return True if `name` is a plain artifact filename in the flat namespace.

    Rejects separators, NUL, `..`, hidden files (which includes in-flight temp
    files) and anything without the `.png` suffix.
    """
    if not name or name != name.strip():
        return False
    if "/" in name or "\\" in name or "\x00" in name or ".." in name:
        return False
    if name.startswith("."):
        return False
    if os.path.basename(name) != name:
        return False
    return name.lower().endswith(ARTIFACT_SUFFIX)


@dataclass
class PurgeReport:
    """Outcome of a bulk delete: names removed and names that failed with the reason."""

    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class ArtifactStore:
    """Flat directory of captured images with an atomic publish contract."""

    def __init__(self, root: str) -> None:
        """Create a store rooted at `root`, creating the directory if needed."""
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, name: str) -> str:
        """Absolute path of an artifact name (not checked for existence)."""
        return os.path.join(self.root, name)

    def publish(self, name: str, data: bytes) -> str:
        """Atomically create or replace the artifact `name` with `data`.

        The bytes are written to a hidden temp file in the same directory,
        flushed to disk, then renamed over the final name, so readers see
        either the previous file or the complete new one. Same-name
        publishes are last-write-wins.

        Returns:
          The absolute path of the published artifact.

        Raises:
          ValueError: If `name` is not a valid artifact name.
          OSError: If writing or renaming fails; the temp file is removed.
        """
        if not is_artifact_name(name):
            raise ValueError(f"invalid artifact name {name!r}")
        fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=_TEMP_SUFFIX, dir=self.root)
        try:
            with os.fdopen(fd, "wb") as out:
                out.write(data)
                out.flush()
                os.fsync(out.fileno())
            os.chmod(tmp_path, 0o644)  # mkstemp creates 0600
            final = self.path_for(name)
            os.replace(tmp_path, final)
        except BaseException:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise
        return final

    def list_artifacts(self) -> List[str]:
        """Names of the artifacts currently on disk, sorted (oldest first).

        Scans the directory on every call; nothing is cached.
        """
        try:
            entries = os.listdir(self.root)
        except FileNotFoundError:
            return []
        names = [n for n in entries if self.resolve(n) is not None]
        names.sort()
        return names

    def resolve(self, name: str) -> Optional[str]:
        """Return the real path of artifact `name` if it exists inside the root.

        The path is canonicalized, so a symlink pointing outside the content
        directory does not resolve.
        """
        if not is_artifact_name(name):
            return None
        root = os.path.realpath(self.root)
        path = os.path.realpath(self.path_for(name))
        if os.path.dirname(path) != root:
            return None
        if not os.path.isfile(path):
            return None
        return path

    def open(self, name: str) -> Tuple[BinaryIO, int]:
        """Open artifact `name` for reading.

        The returned handle pins the published file, so a concurrent replace
        or purge does not affect a response already being streamed.

        Returns:
          `(file, size_in_bytes)`; the caller closes the file.

        Raises:
          NotFoundError: If the name is invalid or no such artifact exists.
        """
        path = self.resolve(name)
        if path is None:
            raise NotFoundError(name)
        try:
            f = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            # Purged between resolve() and open()
            raise NotFoundError(name) from e
        return f, os.fstat(f.fileno()).st_size

    def purge_all(self) -> PurgeReport:
        """Delete every artifact (and leftover temp file), best effort per file.

        A failure on one file does not stop the others. Failures are logged
        and collected in the report; nothing is raised.
        """
        report = PurgeReport()
        try:
            entries = os.listdir(self.root)
        except FileNotFoundError:
            return report
        except OSError as e:
            log.error("Cannot list content directory %s: %s", self.root, e)
            report.failed[self.root] = str(e)
            return report
        for n in sorted(entries):
            is_temp = n.startswith(".") and n.endswith(_TEMP_SUFFIX)
            if not (is_artifact_name(n) or is_temp):
                continue
            try:
                os.remove(self.path_for(n))
            except FileNotFoundError:
                continue
            except OSError as e:
                log.error("Failed to delete %s: %s", n, e)
                report.failed[n] = str(e)
                continue
            if not is_temp:
                report.deleted.append(n)
        log.info("Purged %d artifact(s), %d failure(s)", len(report.deleted), len(report.failed))
        return report
