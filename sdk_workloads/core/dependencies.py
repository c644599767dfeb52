from pathlib import Path
from typing import Optional
import logging
import os

from sdk_workloads.domain.models import DEFAULT_FEED_URL, FeedSettings
from sdk_workloads.services.local_inventory import LocalInventory
from sdk_workloads.services.manifest_catalog import ManifestCatalog
from sdk_workloads.services.nuget_feed import NuGetFeedClient, PackageFeedClient
from sdk_workloads.services.sdk_releases import SdkReleaseCatalog
from sdk_workloads.services.workload_resolver import WorkloadResolver
from sdk_workloads.services.workload_set_catalog import WorkloadSetCatalog
from sdk_workloads.storage.directory_package_store import DirectoryPackageStore
from sdk_workloads.storage.package_store import PackageStore

logger = logging.getLogger(__name__)

FEED_URL_ENV_VAR = "SDK_WORKLOADS_FEED_URL"
CACHE_DIR_ENV_VAR = "SDK_WORKLOADS_CACHE_DIR"
HTTP_TIMEOUT_ENV_VAR = "SDK_WORKLOADS_HTTP_TIMEOUT"
INCLUDE_PRERELEASE_ENV_VAR = "SDK_WORKLOADS_INCLUDE_PRERELEASE"
DOTNET_ROOT_ENV_VAR = "SDK_WORKLOADS_DOTNET_ROOT"

_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_CACHE_DIR = _REPO_ROOT / "data" / "cache"
_DEFAULT_TIMEOUT = 60.0

_settings: Optional[FeedSettings] = None
_package_store: Optional[PackageStore] = None
_feed_client: Optional[PackageFeedClient] = None
_manifest_catalog: Optional[ManifestCatalog] = None
_workload_set_catalog: Optional[WorkloadSetCatalog] = None
_workload_resolver: Optional[WorkloadResolver] = None
_local_inventory: Optional[LocalInventory] = None
_sdk_release_catalog: Optional[SdkReleaseCatalog] = None


def _timeout_from_env() -> float:
    raw = os.environ.get(HTTP_TIMEOUT_ENV_VAR)
    if not raw:
        return _DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {HTTP_TIMEOUT_ENV_VAR}={raw!r}: not a number")
        return _DEFAULT_TIMEOUT
    if value <= 0:
        logger.warning(f"Ignoring {HTTP_TIMEOUT_ENV_VAR}={raw!r}: must be positive")
        return _DEFAULT_TIMEOUT
    return value


def get_cache_dir() -> Path:
    env_path = os.environ.get(CACHE_DIR_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_CACHE_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def get_settings() -> FeedSettings:
    global _settings
    if _settings is None:
        _settings = FeedSettings(
            source_url=os.environ.get(FEED_URL_ENV_VAR) or DEFAULT_FEED_URL,
            cache_dir=get_cache_dir(),
            timeout_seconds=_timeout_from_env(),
            include_prerelease=os.environ.get(INCLUDE_PRERELEASE_ENV_VAR, "").lower() in ("1", "true", "yes"),
        )
        logger.info(f"Feed {_settings.source_url}, cache {_settings.cache_dir}")
    return _settings


def get_package_store() -> PackageStore:
    global _package_store
    if _package_store is None:
        _package_store = DirectoryPackageStore(get_settings().cache_dir or get_cache_dir())
    return _package_store


def get_feed_client() -> PackageFeedClient:
    global _feed_client
    if _feed_client is None:
        _feed_client = NuGetFeedClient(get_settings(), get_package_store())
    return _feed_client


def get_manifest_catalog() -> ManifestCatalog:
    global _manifest_catalog
    if _manifest_catalog is None:
        _manifest_catalog = ManifestCatalog(get_feed_client())
    return _manifest_catalog


def get_workload_set_catalog() -> WorkloadSetCatalog:
    global _workload_set_catalog
    if _workload_set_catalog is None:
        _workload_set_catalog = WorkloadSetCatalog(get_feed_client())
    return _workload_set_catalog


def get_workload_resolver() -> WorkloadResolver:
    global _workload_resolver
    if _workload_resolver is None:
        _workload_resolver = WorkloadResolver(get_manifest_catalog())
    return _workload_resolver


def get_local_inventory() -> LocalInventory:
    global _local_inventory
    if _local_inventory is None:
        root = os.environ.get(DOTNET_ROOT_ENV_VAR)
        _local_inventory = LocalInventory(Path(root).expanduser() if root else None)
    return _local_inventory


def get_sdk_release_catalog() -> SdkReleaseCatalog:
    global _sdk_release_catalog
    if _sdk_release_catalog is None:
        _sdk_release_catalog = SdkReleaseCatalog(timeout_seconds=get_settings().timeout_seconds)
    return _sdk_release_catalog


async def close_clients() -> None:
    """Close the HTTP clients created here and forget every cached service."""
    global _settings, _package_store, _feed_client, _manifest_catalog
    global _workload_set_catalog, _workload_resolver, _local_inventory, _sdk_release_catalog

    if isinstance(_feed_client, NuGetFeedClient):
        await _feed_client.aclose()
    if _sdk_release_catalog is not None:
        await _sdk_release_catalog.aclose()

    _settings = None
    _package_store = None
    _feed_client = None
    _manifest_catalog = None
    _workload_set_catalog = None
    _workload_resolver = None
    _local_inventory = None
    _sdk_release_catalog = None
