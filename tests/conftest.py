import io
import json
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from sdk_workloads.domain.models import FeedSettings
from sdk_workloads.services.nuget_feed import NuGetFeedClient
from sdk_workloads.storage.directory_package_store import DirectoryPackageStore
from sdk_workloads.storage.memory_package_store import MemoryPackageStore

SERVICE_INDEX_URL = "https://feed.test/v3/index.json"
FLAT_CONTAINER = "https://feed.test/v3-flatcontainer/"


def make_nupkg(files: Dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class FakeFeed:
    """
    In-memory NuGet V3 feed served through httpx.MockTransport.

    Only the service index and the flat container resource are implemented.
    """

    def __init__(self):
        self.packages: Dict[str, Dict[str, Optional[bytes]]] = {}
        self.listings: Dict[str, List[str]] = {}
        self.requests: List[str] = []
        self.fail_status: Optional[int] = None
        self.raise_transport_error = False

    def add(self, package_id: str, version: str, files: Optional[Dict[str, str]] = None) -> None:
        archive = make_nupkg(files) if files is not None else None
        self.packages.setdefault(package_id.lower(), {})[version] = archive

    def requests_for(self, suffix: str) -> List[str]:
        return [r for r in self.requests if r.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)

        if self.raise_transport_error:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status)

        if url == SERVICE_INDEX_URL:
            return httpx.Response(
                200,
                json={
                    "version": "3.0.0",
                    "resources": [
                        {"@id": "https://feed.test/query", "@type": "SearchQueryService"},
                        {"@id": FLAT_CONTAINER, "@type": "PackageBaseAddress/3.0.0"},
                    ],
                },
            )

        if not url.startswith(FLAT_CONTAINER):
            return httpx.Response(404)

        parts = url[len(FLAT_CONTAINER):].split("/")
        if len(parts) == 2 and parts[1] == "index.json" and parts[0] in self.listings:
            return httpx.Response(200, json={"versions": self.listings[parts[0]]})

        package = self.packages.get(parts[0])
        if package is None:
            return httpx.Response(404)

        if len(parts) == 2 and parts[1] == "index.json":
            return httpx.Response(200, json={"versions": list(package.keys())})

        if len(parts) == 3:
            for version, archive in package.items():
                if version.lower() == parts[1] and archive is not None:
                    return httpx.Response(200, content=archive)
        return httpx.Response(404)


@pytest.fixture
def fake_feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def make_client(fake_feed, tmp_path):
    """Factory for NuGetFeedClient instances talking to ``fake_feed``."""

    def _make(store=None) -> NuGetFeedClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_feed.handler))
        settings = FeedSettings(source_url=SERVICE_INDEX_URL, cache_dir=tmp_path / "cache")
        return NuGetFeedClient(
            settings=settings,
            store=store if store is not None else MemoryPackageStore(tmp_path / "extracted"),
            http_client=http_client,
        )

    return _make


@pytest.fixture
def directory_store(tmp_path) -> DirectoryPackageStore:
    return DirectoryPackageStore(tmp_path / "store")


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def sdk_root(tmp_path) -> Path:
    """
    A fake SDK install:

    * SDKs 8.0.404, 9.0.100, 9.0.105, 10.0.100-rc.1.25451.107 plus a junk dir
    * runtimes 8.0.11, 9.0.0, 9.0.4
    * band 9.0.100 with two manifests (one versioned, one broken) and a workload set
    """
    root = tmp_path / "dotnet"
    for v in ("8.0.404", "9.0.100", "9.0.105", "10.0.100-rc.1.25451.107", "not-a-version"):
        (root / "sdk" / v).mkdir(parents=True)
    for v in ("8.0.11", "9.0.0", "9.0.4"):
        (root / "shared" / "Microsoft.NETCore.App" / v).mkdir(parents=True)

    band = root / "sdk-manifests" / "9.0.100"
    write_json(
        band / "microsoft.net.sdk.android" / "35.0.7" / "WorkloadManifest.json",
        {
            "version": "35.0.7",
            "description": ".NET SDK Workload for building Android applications.",
            "workloads": {
                "android": {
                    "description": ".NET SDK Workload for building Android applications.",
                    "packs": ["Microsoft.Android.Sdk.net9", "Microsoft.Android.Templates"],
                    "platforms": ["win-x64", "osx-arm64"],
                    "extends": ["microsoft-net-runtime-android"],
                },
                "microsoft-net-runtime-android": {"abstract": True, "packs": []},
            },
            "packs": {
                "Microsoft.Android.Sdk.net9": {
                    "kind": "sdk",
                    "version": "35.0.7",
                    "alias-to": {"win-x64": "Microsoft.Android.Sdk.Windows"},
                },
                "Microsoft.Android.Templates": {"kind": "template", "version": "35.0.7"},
            },
        },
    )
    (band / "microsoft.net.sdk.broken").mkdir(parents=True)
    (band / "microsoft.net.sdk.broken" / "WorkloadManifest.json").write_text("{ nope", encoding="utf-8")

    write_json(
        band / "workloadsets" / "9.0.100.1" / "microsoft.net.workloads.workloadset.json",
        {"microsoft.net.sdk.android": "35.0.7/9.0.100", "microsoft.net.sdk.ios": "18.0.9617"},
    )
    (band / "workloadsets" / "junk").mkdir()
    return root
