from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from sdk_workloads.domain.dependencies_parser import parse_workload_dependencies
from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import WorkloadDependencies, WorkloadManifest
from sdk_workloads.domain.parsing import load_json_object, parse_workload_manifest
from sdk_workloads.services.nuget_feed import PackageFeedClient

logger = logging.getLogger(__name__)

MANIFEST_PATHS = (
    "data/WorkloadManifest.json",
    "data/workloadmanifest.json",
    "WorkloadManifest.json",
    "workloadmanifest.json",
)

DEPENDENCIES_PATHS = (
    "data/WorkloadDependencies.json",
    "data/workloaddependencies.json",
    "WorkloadDependencies.json",
    "workloaddependencies.json",
)


def manifest_package_id(manifest_id: str, band: str) -> str:
    """``microsoft.net.sdk.maui`` + ``9.0.100`` -> ``microsoft.net.sdk.maui.Manifest-9.0.100``."""
    return f"{manifest_id}.Manifest-{band}"


class ManifestCatalog:
    """
    Workload manifests published on the feed, one package per manifest id and
    feature band.

    Feed errors propagate; a missing or unparsable document is reported as None.
    """

    def __init__(self, feed: PackageFeedClient):
        self._feed = feed

    async def _first_content(
        self,
        package_id: str,
        version: str,
        paths: Sequence[str],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[str]:
        for path in paths:
            content = await self._feed.get_file_content(package_id, version, path, cancel_event)
            if content is not None:
                return content
        return None

    async def list_manifest_versions(
        self,
        manifest_id: str,
        band: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        return await self._feed.list_versions(
            manifest_package_id(manifest_id, band), include_prerelease, cancel_event
        )

    async def get_manifest(
        self,
        manifest_id: str,
        band: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[WorkloadManifest]:
        package_id = manifest_package_id(manifest_id, band)
        content = await self._first_content(package_id, version, MANIFEST_PATHS, cancel_event)
        if content is None:
            logger.debug(f"No manifest file in {package_id} {version}")
            return None
        try:
            return parse_workload_manifest(content, source=f"{package_id} {version}")
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse manifest in {package_id} {version}: {e}")
            return None

    async def get_raw_manifest(
        self,
        manifest_id: str,
        band: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[Dict[str, Any]]:
        package_id = manifest_package_id(manifest_id, band)
        content = await self._first_content(package_id, version, MANIFEST_PATHS, cancel_event)
        if content is None:
            return None
        try:
            return load_json_object(content, source=f"{package_id} {version}")
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse manifest in {package_id} {version}: {e}")
            return None

    async def get_latest_manifest(
        self,
        manifest_id: str,
        band: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[WorkloadManifest]:
        versions = await self.list_manifest_versions(manifest_id, band, include_prerelease, cancel_event)
        if not versions:
            return None
        return await self.get_manifest(manifest_id, band, versions[0], cancel_event)

    async def get_dependencies(
        self,
        manifest_id: str,
        band: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[WorkloadDependencies]:
        package_id = manifest_package_id(manifest_id, band)
        content = await self._first_content(package_id, version, DEPENDENCIES_PATHS, cancel_event)
        if content is None:
            return None
        try:
            return parse_workload_dependencies(content, source=f"{package_id} {version}")
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse dependencies in {package_id} {version}: {e}")
            return None

    async def get_raw_dependencies(
        self,
        manifest_id: str,
        band: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[Dict[str, Any]]:
        package_id = manifest_package_id(manifest_id, band)
        content = await self._first_content(package_id, version, DEPENDENCIES_PATHS, cancel_event)
        if content is None:
            return None
        try:
            return load_json_object(content, source=f"{package_id} {version}")
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse dependencies in {package_id} {version}: {e}")
            return None
