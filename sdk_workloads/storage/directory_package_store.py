import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import aiofiles

from sdk_workloads.storage.package_store import PackageStore, extract_archive_into, package_key

logger = logging.getLogger(__name__)


class DirectoryPackageStore(PackageStore):
    """
    Package cache on disk.

    Layout::

        <root>/archives/<id>.<version>.nupkg
        <root>/packages/<id>.<version>/...
    """

    def __init__(self, root: Path):
        self._root = root
        self._archives_dir = root / "archives"
        self._packages_dir = root / "packages"
        self._archives_dir.mkdir(parents=True, exist_ok=True)
        self._packages_dir.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _name(self, package_id: str, version: str) -> str:
        pid, ver = package_key(package_id, version)
        return f"{pid}.{ver}"

    def _archive_path(self, package_id: str, version: str) -> Path:
        return self._archives_dir / f"{self._name(package_id, version)}.nupkg"

    async def read_archive(self, package_id: str, version: str) -> Optional[bytes]:
        path = self._archive_path(package_id, version)
        if not path.is_file():
            return None
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def write_archive(self, package_id: str, version: str, data: bytes) -> None:
        path = self._archive_path(package_id, version)
        # Write to a temp file first so readers never see a partial archive.
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
        logger.debug(f"Cached archive {path.name} ({len(data)} bytes)")

    def get_extracted(self, package_id: str, version: str) -> Optional[Path]:
        path = self._packages_dir / self._name(package_id, version)
        return path if path.is_dir() else None

    def extract(self, package_id: str, version: str, data: bytes) -> Path:
        target = self._packages_dir / self._name(package_id, version)
        extracted = extract_archive_into(data, target)
        logger.info(f"Extracted {package_id} {version} to {extracted}")
        return extracted
