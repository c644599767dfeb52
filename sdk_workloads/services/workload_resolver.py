"""
Batch lookups over a workload set, and pack closure over ``extends``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from sdk_workloads.domain.errors import (
    FeedError,
    MalformedDocumentError,
    OperationCancelledError,
    WorkloadCycleError,
    WorkloadNotFoundError,
)
from sdk_workloads.domain.models import WorkloadDependencies, WorkloadManifest, WorkloadSet
from sdk_workloads.services.manifest_catalog import ManifestCatalog

logger = logging.getLogger(__name__)


class ResolvedManifest(BaseModel):
    """
    Outcome of looking up one workload set entry.

    ``error`` is set when the lookup failed; ``manifest`` and ``error`` both
    None means the package or file does not exist.
    """

    model_config = ConfigDict(frozen=True)

    manifest_id: str
    manifest_version: str
    feature_band: str
    manifest: Optional[WorkloadManifest] = None
    error: Optional[str] = None


class ResolvedDependencies(BaseModel):
    model_config = ConfigDict(frozen=True)

    manifest_id: str
    manifest_version: str
    feature_band: str
    dependencies: Optional[WorkloadDependencies] = None
    error: Optional[str] = None


class WorkloadSetResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    workload_set_version: str
    feature_band: str
    manifests: List[ResolvedManifest] = Field(default_factory=list)
    cancelled: bool = Field(
        default=False,
        description="True when resolution stopped early; ``manifests`` holds what completed.",
    )


class DependenciesResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    workload_set_version: str
    feature_band: str
    dependencies: List[ResolvedDependencies] = Field(default_factory=list)
    cancelled: bool = False


class WorkloadResolver:
    def __init__(self, manifests: ManifestCatalog):
        self._manifests = manifests

    async def resolve_workload_set_manifests(
        self,
        workload_set: WorkloadSet,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkloadSetResolution:
        """Fetch the manifest of every entry, one lookup per entry, in set order."""
        results: List[ResolvedManifest] = []
        cancelled = False

        for manifest_id, entry in workload_set.workloads.items():
            band = entry.manifest_feature_band or workload_set.feature_band
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            try:
                manifest = await self._manifests.get_manifest(
                    manifest_id, band, entry.manifest_version, cancel_event
                )
                results.append(
                    ResolvedManifest(
                        manifest_id=manifest_id,
                        manifest_version=entry.manifest_version,
                        feature_band=band,
                        manifest=manifest,
                    )
                )
            except OperationCancelledError:
                cancelled = True
                break
            except (FeedError, MalformedDocumentError) as e:
                logger.warning(f"Failed to resolve {manifest_id} {entry.manifest_version}: {e}")
                results.append(
                    ResolvedManifest(
                        manifest_id=manifest_id,
                        manifest_version=entry.manifest_version,
                        feature_band=band,
                        error=str(e),
                    )
                )

        if cancelled:
            logger.info(f"Workload set {workload_set.version} resolution cancelled after {len(results)} manifests")
        return WorkloadSetResolution(
            workload_set_version=workload_set.version,
            feature_band=workload_set.feature_band,
            manifests=results,
            cancelled=cancelled,
        )

    async def resolve_dependencies(
        self,
        workload_set: WorkloadSet,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DependenciesResolution:
        results: List[ResolvedDependencies] = []
        cancelled = False

        for manifest_id, entry in workload_set.workloads.items():
            band = entry.manifest_feature_band or workload_set.feature_band
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            try:
                deps = await self._manifests.get_dependencies(
                    manifest_id, band, entry.manifest_version, cancel_event
                )
                results.append(
                    ResolvedDependencies(
                        manifest_id=manifest_id,
                        manifest_version=entry.manifest_version,
                        feature_band=band,
                        dependencies=deps,
                    )
                )
            except OperationCancelledError:
                cancelled = True
                break
            except (FeedError, MalformedDocumentError) as e:
                logger.warning(f"Failed to resolve dependencies of {manifest_id} {entry.manifest_version}: {e}")
                results.append(
                    ResolvedDependencies(
                        manifest_id=manifest_id,
                        manifest_version=entry.manifest_version,
                        feature_band=band,
                        error=str(e),
                    )
                )

        return DependenciesResolution(
            workload_set_version=workload_set.version,
            feature_band=workload_set.feature_band,
            dependencies=results,
            cancelled=cancelled,
        )

    @staticmethod
    def pack_closure(manifest: WorkloadManifest, workload_id: str) -> List[str]:
        """
        Every pack a workload needs: its own, then those of each workload it
        extends (depth-first, in declaration order), without duplicates.

        Raises:
            WorkloadNotFoundError: ``workload_id`` or an extended id is not in the manifest.
            WorkloadCycleError: ``extends`` loops back on itself.
        """
        packs: List[str] = []
        seen_packs: Set[str] = set()
        done: Set[str] = set()
        stack: List[str] = []

        def visit(wid: str) -> None:
            workload = manifest.get_workload(wid)
            if workload is None:
                raise WorkloadNotFoundError(f"Workload '{wid}' is not defined in the manifest")
            key = workload.id.lower()
            if key in (s.lower() for s in stack):
                raise WorkloadCycleError(
                    f"Workload extends cycle: {' -> '.join(stack + [workload.id])}",
                    path=stack + [workload.id],
                )
            if key in done:
                return

            stack.append(workload.id)
            for pack in workload.packs:
                if pack.lower() not in seen_packs:
                    seen_packs.add(pack.lower())
                    packs.append(pack)
            for base in workload.extends:
                visit(base)
            stack.pop()
            done.add(key)

        visit(workload_id)
        return packs
