import io
import logging
import shutil
import uuid
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def package_key(package_id: str, version: str) -> Tuple[str, str]:
    """Store key for a package version. Ids and versions are case-insensitive on the feed."""
    return package_id.lower(), version.lower()


class PackageStore(ABC):
    """
    Abstract base class for the local package cache.

    Holds two things per ``(package_id, version)``: the raw ``.nupkg`` archive
    bytes and, once requested, the archive extracted to a directory.
    """

    @abstractmethod
    async def read_archive(self, package_id: str, version: str) -> Optional[bytes]:
        """Return the cached archive bytes, or None if not cached."""
        pass

    @abstractmethod
    async def write_archive(self, package_id: str, version: str, data: bytes) -> None:
        """Cache the archive bytes."""
        pass

    @abstractmethod
    def get_extracted(self, package_id: str, version: str) -> Optional[Path]:
        """Return the extraction directory if the package was already extracted."""
        pass

    @abstractmethod
    def extract(self, package_id: str, version: str, data: bytes) -> Path:
        """
        Extract the archive and return its directory.

        Must be safe when two callers extract the same package at once: both
        get the same directory back and neither sees a half-written tree.
        """
        pass


def extract_archive_into(data: bytes, target: Path) -> Path:
    """
    Extract ``data`` (a zip archive) so that ``target`` appears complete or not at all.

    The archive is unpacked into a temporary sibling directory that is then
    renamed onto ``target``. If another writer got there first, our copy is
    discarded and the existing directory is returned.
    """
    if target.is_dir():
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    staging = target.parent / f".{target.name}.{uuid.uuid4().hex}.tmp"
    try:
        with zipfile.ZipFile(io.BytesIO(data), "r") as zip_ref:
            zip_ref.extractall(staging)
        try:
            staging.rename(target)
        except OSError:
            if not target.is_dir():
                raise
            logger.debug(f"{target.name} was extracted concurrently; using existing copy")
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
    return target
