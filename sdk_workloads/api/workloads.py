"""
Read-only HTTP endpoints over the workload engine.

Nothing here installs or changes anything; every route discovers and reports.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sdk_workloads.core.dependencies import (
    get_local_inventory,
    get_manifest_catalog,
    get_sdk_release_catalog,
    get_settings,
    get_workload_resolver,
    get_workload_set_catalog,
)
from sdk_workloads.domain.dependencies_parser import dependencies_summary
from sdk_workloads.domain.errors import (
    FeedError,
    OperationCancelledError,
    WorkloadCycleError,
    WorkloadNotFoundError,
)
from sdk_workloads.domain.models import FeedSettings
from sdk_workloads.domain.versions import feature_band
from sdk_workloads.services import global_json
from sdk_workloads.services.local_inventory import LocalInventory
from sdk_workloads.services.manifest_catalog import ManifestCatalog
from sdk_workloads.services.sdk_releases import SdkReleaseCatalog
from sdk_workloads.services.workload_resolver import WorkloadResolver
from sdk_workloads.services.workload_set_catalog import WorkloadSetCatalog

logger = logging.getLogger(__name__)
router = APIRouter()


@contextmanager
def _feed_errors() -> Iterator[None]:
    try:
        yield
    except FeedError as e:
        logger.error(f"Feed request failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except OperationCancelledError as e:
        raise HTTPException(status_code=503, detail=str(e))


def _prerelease(
    include_prerelease: Optional[bool] = Query(None, description="Defaults to the configured setting."),
    settings: FeedSettings = Depends(get_settings),
) -> bool:
    if include_prerelease is None:
        return settings.include_prerelease
    return include_prerelease


# ---------------------------------------------------------------------------
# Local SDKs
# ---------------------------------------------------------------------------

@router.get("/sdks/installed")
async def installed_sdks(inventory: LocalInventory = Depends(get_local_inventory)) -> dict:
    root = inventory.sdk_root()
    return {
        "dotnetPath": str(root) if root else None,
        "sdks": [
            {
                "version": s.version,
                "featureBand": s.feature_band,
                "isPreview": s.is_preview,
                "runtimeVersion": s.runtime_version,
            }
            for s in inventory.installed_versions()
        ],
    }


@router.get("/sdks/summary")
async def installed_summary(
    details: bool = Query(True, description="Include every workload and pack of each manifest."),
    inventory: LocalInventory = Depends(get_local_inventory),
) -> dict:
    return await inventory.build_summary(include_manifest_details=details)


@router.get("/sdks/available")
async def available_sdks(
    include_preview: bool = False,
    runtime: Optional[str] = Query(None, description="Only SDKs for this runtime's major.minor."),
    releases: SdkReleaseCatalog = Depends(get_sdk_release_catalog),
) -> dict:
    with _feed_errors():
        if runtime:
            try:
                versions = await releases.sdk_versions_for_runtime(runtime, include_preview)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
        else:
            versions = await releases.available_sdk_versions(include_preview)
    return {"versions": [v.version for v in versions]}


@router.get("/feature-band/{sdk_version}")
async def get_feature_band(sdk_version: str) -> dict:
    try:
        return {"version": sdk_version, "featureBand": feature_band(sdk_version)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/global-json")
async def get_global_json(start_dir: Optional[str] = None) -> dict:
    info = global_json.get_global_json(start_dir)
    if info is None:
        raise HTTPException(status_code=404, detail="No global.json found")
    return info.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Manifests on the feed
# ---------------------------------------------------------------------------

@router.get("/manifests/{manifest_id}/{band}/versions")
async def manifest_versions(
    manifest_id: str,
    band: str,
    include_prerelease: bool = Depends(_prerelease),
    catalog: ManifestCatalog = Depends(get_manifest_catalog),
) -> dict:
    with _feed_errors():
        versions = await catalog.list_manifest_versions(manifest_id, band, include_prerelease)
    return {"versions": versions}


@router.get("/manifests/{manifest_id}/{band}/{version}")
async def get_manifest(
    manifest_id: str,
    band: str,
    version: str,
    catalog: ManifestCatalog = Depends(get_manifest_catalog),
) -> dict:
    with _feed_errors():
        manifest = await catalog.get_manifest(manifest_id, band, version)
    if manifest is None:
        raise HTTPException(status_code=404, detail="Manifest not found")
    return manifest.model_dump(mode="json")


@router.get("/manifests/{manifest_id}/{band}/{version}/dependencies")
async def get_manifest_dependencies(
    manifest_id: str,
    band: str,
    version: str,
    catalog: ManifestCatalog = Depends(get_manifest_catalog),
) -> dict:
    with _feed_errors():
        deps = await catalog.get_dependencies(manifest_id, band, version)
    if deps is None:
        raise HTTPException(status_code=404, detail="Dependencies not found")
    return dependencies_summary(deps)


@router.get("/manifests/{manifest_id}/{band}/{version}/workloads/{workload_id}/packs")
async def get_workload_packs(
    manifest_id: str,
    band: str,
    version: str,
    workload_id: str,
    catalog: ManifestCatalog = Depends(get_manifest_catalog),
) -> dict:
    with _feed_errors():
        manifest = await catalog.get_manifest(manifest_id, band, version)
    if manifest is None:
        raise HTTPException(status_code=404, detail="Manifest not found")
    try:
        packs: List[str] = WorkloadResolver.pack_closure(manifest, workload_id)
    except WorkloadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except WorkloadCycleError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"workloadId": workload_id, "packs": packs}


# ---------------------------------------------------------------------------
# Workload sets on the feed
# ---------------------------------------------------------------------------

@router.get("/workload-sets/{band}/versions")
async def workload_set_versions(
    band: str,
    include_prerelease: bool = Depends(_prerelease),
    catalog: WorkloadSetCatalog = Depends(get_workload_set_catalog),
) -> dict:
    with _feed_errors():
        versions = await catalog.list_set_versions(band, include_prerelease)
    return {"versions": versions}


@router.get("/workload-sets/{band}/{version}")
async def get_workload_set(
    band: str,
    version: str,
    include_prerelease: bool = Depends(_prerelease),
    catalog: WorkloadSetCatalog = Depends(get_workload_set_catalog),
) -> dict:
    """``version`` may be ``latest``."""
    with _feed_errors():
        if version == "latest":
            workload_set = await catalog.get_latest_workload_set(band, include_prerelease)
        else:
            workload_set = await catalog.get_workload_set(band, version)
    if workload_set is None:
        raise HTTPException(status_code=404, detail="Workload set not found")
    return workload_set.model_dump(mode="json")


@router.get("/workload-sets/{band}/{version}/manifests")
async def resolve_workload_set(
    band: str,
    version: str,
    catalog: WorkloadSetCatalog = Depends(get_workload_set_catalog),
    resolver: WorkloadResolver = Depends(get_workload_resolver),
) -> dict:
    with _feed_errors():
        workload_set = await catalog.get_workload_set(band, version)
        if workload_set is None:
            raise HTTPException(status_code=404, detail="Workload set not found")
        resolution = await resolver.resolve_workload_set_manifests(workload_set)
    return resolution.model_dump(mode="json")
