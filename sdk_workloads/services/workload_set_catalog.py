from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import WorkloadSet
from sdk_workloads.domain.parsing import parse_workload_set
from sdk_workloads.services.nuget_feed import PackageFeedClient

logger = logging.getLogger(__name__)

WORKLOAD_SET_PATHS = (
    "data/microsoft.net.workloads.workloadset.json",
    "data/WorkloadSet.json",
    "data/workloadset.json",
    "WorkloadSet.json",
    "workloadset.json",
)


def workload_set_package_id(band: str) -> str:
    return f"Microsoft.NET.Workloads.{band}"


class WorkloadSetCatalog:
    """Workload sets published on the feed as ``Microsoft.NET.Workloads.{band}``."""

    def __init__(self, feed: PackageFeedClient):
        self._feed = feed

    async def list_set_versions(
        self,
        band: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        return await self._feed.list_versions(workload_set_package_id(band), include_prerelease, cancel_event)

    async def get_workload_set(
        self,
        band: str,
        version: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[WorkloadSet]:
        package_id = workload_set_package_id(band)
        for path in WORKLOAD_SET_PATHS:
            content = await self._feed.get_file_content(package_id, version, path, cancel_event)
            if content is None:
                continue
            try:
                return parse_workload_set(content, band, version, source=f"{package_id} {version}/{path}")
            except MalformedDocumentError as e:
                logger.warning(f"Could not parse workload set {package_id} {version}: {e}")
                return None

        logger.debug(f"No workload set file in {package_id} {version}")
        return None

    async def get_latest_workload_set(
        self,
        band: str,
        include_prerelease: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[WorkloadSet]:
        versions = await self.list_set_versions(band, include_prerelease, cancel_event)
        if not versions:
            return None
        return await self.get_workload_set(band, versions[0], cancel_event)
