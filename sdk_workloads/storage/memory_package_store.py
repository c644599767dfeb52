import tempfile
from pathlib import Path
from typing import Dict, Optional, Tuple

from sdk_workloads.storage.package_store import PackageStore, extract_archive_into, package_key


class MemoryPackageStore(PackageStore):
    """
    Keeps archives in memory for the lifetime of the process.

    Extracted packages still need a real directory; they go under
    ``extract_root`` (a fresh temp dir when not given).
    """

    def __init__(self, extract_root: Optional[Path] = None):
        self._archives: Dict[Tuple[str, str], bytes] = {}
        self._extracted: Dict[Tuple[str, str], Path] = {}
        self._extract_root = extract_root

    async def read_archive(self, package_id: str, version: str) -> Optional[bytes]:
        return self._archives.get(package_key(package_id, version))

    async def write_archive(self, package_id: str, version: str, data: bytes) -> None:
        self._archives[package_key(package_id, version)] = data

    def get_extracted(self, package_id: str, version: str) -> Optional[Path]:
        path = self._extracted.get(package_key(package_id, version))
        if path is not None and path.is_dir():
            return path
        return None

    def extract(self, package_id: str, version: str, data: bytes) -> Path:
        if self._extract_root is None:
            self._extract_root = Path(tempfile.mkdtemp(prefix="sdk-workloads-"))
        key = package_key(package_id, version)
        path = extract_archive_into(data, self._extract_root / f"{key[0]}.{key[1]}")
        self._extracted[key] = path
        return path
