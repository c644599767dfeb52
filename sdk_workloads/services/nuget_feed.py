"""
Read-only client for a NuGet V3 package feed.

Only the flat-container resource (``PackageBaseAddress/3.0.0``) is used:

* ``{base}/{id}/index.json`` lists every published version of a package;
* ``{base}/{id}/{version}/{id}.{version}.nupkg`` is the package archive.

Ids and versions are lower-cased in those URLs.
"""
from __future__ import annotations

import asyncio
import io
import logging
import tempfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import httpx

from sdk_workloads.domain.errors import FeedError, PackageNotFoundError, raise_if_cancelled
from sdk_workloads.domain.models import FeedSettings
from sdk_workloads.domain.versions import is_prerelease, version_sort_key
from sdk_workloads.storage.directory_package_store import DirectoryPackageStore
from sdk_workloads.storage.package_store import PackageStore

logger = logging.getLogger(__name__)

PACKAGE_BASE_ADDRESS_TYPE = "PackageBaseAddress/3.0.0"


class PackageFeedClient(ABC):
    """
    Abstract read access to a package feed.

    Every method takes an optional ``cancel_event``; it is checked before each
    network call and raises OperationCancelledError once set.
    """

    @abstractmethod
    async def list_versions(
        self,
        package_id: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        """Published versions, newest first. Unknown package -> empty list."""
        pass

    @abstractmethod
    async def get_file_content(
        self,
        package_id: str,
        version: str,
        path: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[str]:
        """Text of one file inside the package, or None if the package or file doesn't exist."""
        pass

    @abstractmethod
    async def download(
        self,
        package_id: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Path:
        """Extract the package locally (once) and return the directory."""
        pass


def find_zip_entry(zip_ref: zipfile.ZipFile, path: str) -> Optional[zipfile.ZipInfo]:
    """Exact name, then with path separators swapped, then case-insensitively."""
    swapped = path.replace("/", "\\") if "/" in path else path.replace("\\", "/")
    for candidate in (path, swapped):
        try:
            return zip_ref.getinfo(candidate)
        except KeyError:
            continue

    wanted = {path.casefold(), swapped.casefold()}
    for info in zip_ref.infolist():
        if info.filename.casefold() in wanted:
            return info
    return None


def _normalize_version(version: str) -> str:
    return version.split("+", 1)[0].strip().lower()


class NuGetFeedClient(PackageFeedClient):
    def __init__(
        self,
        settings: Optional[FeedSettings] = None,
        store: Optional[PackageStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or FeedSettings()
        if store is None:
            cache_dir = self._settings.cache_dir or Path(tempfile.gettempdir()) / "sdk-workloads"
            store = DirectoryPackageStore(cache_dir)
        self._store = store
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            follow_redirects=True, timeout=self._settings.timeout_seconds
        )
        self._base_address: Optional[str] = None
        self._base_lock = asyncio.Lock()

    @property
    def settings(self) -> FeedSettings:
        return self._settings

    @property
    def store(self) -> PackageStore:
        return self._store

    async def __aenter__(self) -> "NuGetFeedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _get(self, url: str, cancel_event: Optional[asyncio.Event]) -> Optional[httpx.Response]:
        """GET ``url``; None on 404, FeedError on any other failure."""
        raise_if_cancelled(cancel_event)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise FeedError(f"Request to {url} failed: {e}") from e

        if response.status_code == 404:
            logger.debug(f"404 for {url}")
            return None
        if response.status_code >= 400:
            raise FeedError(
                f"Feed returned HTTP {response.status_code} for {url}",
                status_code=response.status_code,
            )
        return response

    async def _get_base_address(self, cancel_event: Optional[asyncio.Event]) -> str:
        if self._base_address is not None:
            return self._base_address

        async with self._base_lock:
            if self._base_address is not None:
                return self._base_address

            source = self._settings.source_url
            response = await self._get(source, cancel_event)
            if response is None:
                raise FeedError(f"Service index not found at {source}", status_code=404)
            try:
                index = response.json()
            except ValueError as e:
                raise FeedError(f"Service index at {source} is not JSON: {e}") from e

            for resource in index.get("resources", []) if isinstance(index, dict) else []:
                types = resource.get("@type")
                types = types if isinstance(types, list) else [types]
                if PACKAGE_BASE_ADDRESS_TYPE in types and resource.get("@id"):
                    self._base_address = resource["@id"].rstrip("/") + "/"
                    logger.debug(f"Package base address: {self._base_address}")
                    return self._base_address

            raise FeedError(f"Service index at {source} has no {PACKAGE_BASE_ADDRESS_TYPE} resource")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_versions(
        self,
        package_id: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        base = await self._get_base_address(cancel_event)
        response = await self._get(f"{base}{package_id.lower()}/index.json", cancel_event)
        if response is None:
            return []

        try:
            versions = response.json().get("versions", [])
        except (ValueError, AttributeError) as e:
            raise FeedError(f"Version index for {package_id} is not valid: {e}") from e
        if not isinstance(versions, list):
            raise FeedError(f"Version index for {package_id} has no version list")

        # 1.0, 1.0.0 and 1.0.0+build are the same version; the first spelling wins.
        seen = set()
        result: List[str] = []
        for v in versions:
            if not isinstance(v, str):
                continue
            key = version_sort_key(v)
            if key in seen:
                continue
            if not include_prerelease and is_prerelease(v):
                continue
            seen.add(key)
            result.append(v)

        result.sort(key=version_sort_key, reverse=True)
        logger.debug(f"{package_id}: {len(result)} versions")
        return result

    async def _fetch_archive(
        self,
        package_id: str,
        version: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[bytes]:
        cached = await self._store.read_archive(package_id, version)
        if cached is not None:
            return cached

        base = await self._get_base_address(cancel_event)
        pid = package_id.lower()
        ver = _normalize_version(version)
        url = f"{base}{pid}/{ver}/{pid}.{ver}.nupkg"

        logger.info(f"Downloading {package_id} {version}")
        response = await self._get(url, cancel_event)
        if response is None:
            return None

        data = response.content
        await self._store.write_archive(package_id, version, data)
        return data

    async def get_file_content(
        self,
        package_id: str,
        version: str,
        path: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[str]:
        raise_if_cancelled(cancel_event)
        data = await self._fetch_archive(package_id, version, cancel_event)
        if data is None:
            return None

        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zip_ref:
                info = find_zip_entry(zip_ref, path)
                if info is None:
                    return None
                raw = zip_ref.read(info)
        except zipfile.BadZipFile as e:
            raise FeedError(f"{package_id} {version} is not a valid package archive: {e}") from e

        return raw.decode("utf-8-sig", errors="replace")

    async def download(
        self,
        package_id: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Path:
        raise_if_cancelled(cancel_event)
        existing = self._store.get_extracted(package_id, version)
        if existing is not None:
            return existing

        data = await self._fetch_archive(package_id, version, cancel_event)
        if data is None:
            raise PackageNotFoundError(f"Package {package_id} {version} not found on the feed")

        try:
            return self._store.extract(package_id, version, data)
        except zipfile.BadZipFile as e:
            raise FeedError(f"{package_id} {version} is not a valid package archive: {e}") from e
