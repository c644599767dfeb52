import json

import pytest

from sdk_workloads.services.manifest_catalog import ManifestCatalog, manifest_package_id
from sdk_workloads.services.workload_set_catalog import WorkloadSetCatalog, workload_set_package_id

MAUI = "microsoft.net.sdk.maui"
BAND = "9.0.100"

MANIFEST_JSON = json.dumps(
    {
        "version": "9.0.14",
        "workloads": {
            "maui": {"packs": ["Microsoft.Maui.Sdk"], "extends": ["maui-core"]},
            "maui-core": {"abstract": True, "packs": ["Microsoft.Maui.Core.Ref"]},
        },
        "packs": {"Microsoft.Maui.Sdk": {"kind": "sdk", "version": "9.0.14"}},
    }
)


def test_package_ids():
    assert manifest_package_id(MAUI, BAND) == "microsoft.net.sdk.maui.Manifest-9.0.100"
    assert workload_set_package_id(BAND) == "Microsoft.NET.Workloads.9.0.100"


@pytest.mark.asyncio
async def test_get_manifest_from_data_dir(fake_feed, make_client):
    fake_feed.add(manifest_package_id(MAUI, BAND), "9.0.14", {"data/WorkloadManifest.json": MANIFEST_JSON})

    async with make_client() as client:
        manifest = await ManifestCatalog(client).get_manifest(MAUI, BAND, "9.0.14")

    assert manifest.version == "9.0.14"
    assert manifest.concrete_workload_ids == ["maui"]


@pytest.mark.asyncio
async def test_get_manifest_falls_back_to_root_file(fake_feed, make_client):
    fake_feed.add(manifest_package_id(MAUI, BAND), "9.0.14", {"WorkloadManifest.json": MANIFEST_JSON})

    async with make_client() as client:
        manifest = await ManifestCatalog(client).get_manifest(MAUI, BAND, "9.0.14")

    assert manifest is not None


@pytest.mark.asyncio
async def test_get_manifest_missing_file_or_package(fake_feed, make_client):
    fake_feed.add(manifest_package_id(MAUI, BAND), "9.0.14", {"readme.md": "no manifest"})

    async with make_client() as client:
        catalog = ManifestCatalog(client)
        assert await catalog.get_manifest(MAUI, BAND, "9.0.14") is None
        assert await catalog.get_manifest(MAUI, BAND, "1.0.0") is None
        assert await catalog.get_dependencies(MAUI, BAND, "9.0.14") is None


@pytest.mark.asyncio
async def test_unparsable_manifest_is_none(fake_feed, make_client):
    fake_feed.add(manifest_package_id(MAUI, BAND), "9.0.14", {"data/WorkloadManifest.json": "{ broken"})

    async with make_client() as client:
        catalog = ManifestCatalog(client)
        assert await catalog.get_manifest(MAUI, BAND, "9.0.14") is None
        assert await catalog.get_raw_manifest(MAUI, BAND, "9.0.14") is None


@pytest.mark.asyncio
async def test_get_raw_manifest_returns_document(fake_feed, make_client):
    fake_feed.add(
        manifest_package_id(MAUI, BAND),
        "9.0.14",
        {"data/WorkloadManifest.json": '{"version": "9.0.14", "custom": [1,], }'},
    )

    async with make_client() as client:
        raw = await ManifestCatalog(client).get_raw_manifest(MAUI, BAND, "9.0.14")

    assert raw == {"version": "9.0.14", "custom": [1]}


@pytest.mark.asyncio
async def test_get_latest_manifest(fake_feed, make_client):
    package = manifest_package_id(MAUI, BAND)
    fake_feed.add(package, "9.0.10", {"data/WorkloadManifest.json": '{"version": "9.0.10"}'})
    fake_feed.add(package, "9.0.14", {"data/WorkloadManifest.json": MANIFEST_JSON})
    fake_feed.add(package, "10.0.0-rc.1", {"data/WorkloadManifest.json": '{"version": "10.0.0-rc.1"}'})

    async with make_client() as client:
        catalog = ManifestCatalog(client)
        assert await catalog.list_manifest_versions(MAUI, BAND) == ["9.0.14", "9.0.10"]
        assert (await catalog.get_latest_manifest(MAUI, BAND)).version == "9.0.14"
        assert (await catalog.get_latest_manifest(MAUI, BAND, include_prerelease=True)).version == "10.0.0-rc.1"
        assert await catalog.get_latest_manifest("microsoft.net.sdk.unknown", BAND) is None


@pytest.mark.asyncio
async def test_get_dependencies(fake_feed, make_client):
    fake_feed.add(
        manifest_package_id(MAUI, BAND),
        "9.0.14",
        {
            "data/WorkloadManifest.json": MANIFEST_JSON,
            "data/workloaddependencies.json": '{"maui": {"xcode": {"recommendedVersion": "16.2"}}}',
        },
    )

    async with make_client() as client:
        catalog = ManifestCatalog(client)
        deps = await catalog.get_dependencies(MAUI, BAND, "9.0.14")
        raw = await catalog.get_raw_dependencies(MAUI, BAND, "9.0.14")

    assert deps.get("maui").xcode.recommended_version == "16.2"
    assert raw == {"maui": {"xcode": {"recommendedVersion": "16.2"}}}


@pytest.mark.asyncio
async def test_get_workload_set(fake_feed, make_client):
    fake_feed.add(
        workload_set_package_id(BAND),
        "9.0.101",
        {
            "data/microsoft.net.workloads.workloadset.json": json.dumps(
                {
                    "microsoft.net.sdk.android": "35.0.24/9.0.100",
                    "microsoft.net.workload.emscripten.current": "9.0.0/9.0.100",
                    "microsoft.net.sdk.maui": "9.0.14",
                }
            )
        },
    )

    async with make_client() as client:
        ws = await WorkloadSetCatalog(client).get_workload_set(BAND, "9.0.101")

    assert ws.version == "9.0.101"
    assert ws.feature_band == BAND
    assert ws.workloads["microsoft.net.sdk.android"].manifest_version == "35.0.24"
    assert ws.workloads["microsoft.net.sdk.android"].manifest_feature_band == "9.0.100"
    assert ws.workloads["microsoft.net.sdk.maui"].manifest_feature_band is None


@pytest.mark.asyncio
async def test_get_workload_set_alternate_file_name(fake_feed, make_client):
    fake_feed.add(workload_set_package_id(BAND), "9.0.101", {"WorkloadSet.json": '{"a": "1.0.0"}'})

    async with make_client() as client:
        ws = await WorkloadSetCatalog(client).get_workload_set(BAND, "9.0.101")

    assert list(ws.workloads) == ["a"]


@pytest.mark.asyncio
async def test_get_workload_set_unparsable_or_missing(fake_feed, make_client):
    fake_feed.add(workload_set_package_id(BAND), "9.0.101", {"data/WorkloadSet.json": "[1]"})
    fake_feed.add(workload_set_package_id(BAND), "9.0.102", {"other.json": "{}"})

    async with make_client() as client:
        catalog = WorkloadSetCatalog(client)
        assert await catalog.get_workload_set(BAND, "9.0.101") is None
        assert await catalog.get_workload_set(BAND, "9.0.102") is None


@pytest.mark.asyncio
async def test_get_latest_workload_set(fake_feed, make_client):
    fake_feed.add(workload_set_package_id(BAND), "9.0.100", {"data/WorkloadSet.json": '{"a": "1.0.0"}'})
    fake_feed.add(workload_set_package_id(BAND), "9.0.101.1", {"data/WorkloadSet.json": '{"a": "1.0.1"}'})

    async with make_client() as client:
        catalog = WorkloadSetCatalog(client)
        assert await catalog.list_set_versions(BAND) == ["9.0.101.1", "9.0.100"]
        latest = await catalog.get_latest_workload_set(BAND)
        assert await catalog.get_latest_workload_set("7.0.100") is None

    assert latest.version == "9.0.101.1"
    assert latest.workloads["a"].manifest_version == "1.0.1"
