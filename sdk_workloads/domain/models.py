"""
Pydantic models for workload manifests, workload sets and their dependencies.

Every model here is an immutable value produced by parsing a document (a file
inside a NuGet package or a file in the local SDK tree). None of them keeps a
reference back to where it came from; asking again re-parses.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_FEED_URL = "https://api.nuget.org/v3/index.json"


# ---------------------------------------------------------------------------
# Closed kinds
# ---------------------------------------------------------------------------


class WorkloadKind(str, Enum):
    DEV = "dev"
    BUILD = "build"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: Any) -> "WorkloadKind":
        """Absent means 'dev' (the manifest default); anything unrecognised is UNKNOWN."""
        if value is None:
            return cls.DEV
        if isinstance(value, str):
            for kind in (cls.DEV, cls.BUILD):
                if value.strip().lower() == kind.value:
                    return kind
        return cls.UNKNOWN


class PackKind(str, Enum):
    SDK = "Sdk"
    FRAMEWORK = "Framework"
    LIBRARY = "Library"
    TEMPLATE = "Template"
    TOOL = "Tool"
    UNKNOWN = "Unknown"

    @classmethod
    def from_raw(cls, value: Any) -> "PackKind":
        """Absent means 'Sdk'; matching is case-insensitive."""
        if value is None:
            return cls.SDK
        if isinstance(value, str):
            for kind in cls:
                if kind is not cls.UNKNOWN and value.strip().lower() == kind.value.lower():
                    return kind
        return cls.UNKNOWN


# ---------------------------------------------------------------------------
# Workload manifests
# ---------------------------------------------------------------------------


class WorkloadDefinition(BaseModel):
    """
    A workload declared in a WorkloadManifest.json.

    Abstract workloads cannot be installed on their own; they only exist to be
    listed in another workload's ``extends``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    description: Optional[str] = None
    is_abstract: bool = False
    kind: WorkloadKind = WorkloadKind.DEV
    packs: List[str] = Field(default_factory=list)
    extends: List[str] = Field(default_factory=list)
    platforms: List[str] = Field(
        default_factory=list,
        description="RIDs this workload is restricted to. Empty means unrestricted.",
    )
    redirect_to: Optional[str] = Field(
        default=None,
        description="Id of the workload that supersedes this one.",
    )

    @property
    def is_concrete(self) -> bool:
        return not self.is_abstract

    def supports_platform(self, rid: str) -> bool:
        if not self.platforms:
            return True
        return any(p.lower() == rid.lower() for p in self.platforms)


class PackDefinition(BaseModel):
    """A pack (the payload NuGet package) declared in a WorkloadManifest.json."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str = ""
    kind: PackKind = PackKind.SDK
    alias_to: Optional[str] = Field(
        default=None,
        description="Pack id this pack is a platform-specific substitute for ('alias-to.id').",
    )
    alias_to_by_platform: Dict[str, str] = Field(
        default_factory=dict,
        description="RID -> pack id mappings from the 'alias-to' object.",
    )

    def resolve_alias(self, rid: str) -> Optional[str]:
        for key, value in self.alias_to_by_platform.items():
            if key.lower() == rid.lower():
                return value
        return self.alias_to


class WorkloadManifest(BaseModel):
    """
    A parsed WorkloadManifest.json.

    Keys keep the casing they were published with; ``get_workload`` and
    ``get_pack`` look them up case-insensitively.
    """

    model_config = ConfigDict(frozen=True)

    version: str = ""
    description: Optional[str] = None
    depends_on: Dict[str, str] = Field(
        default_factory=dict,
        description="Manifest id -> minimum manifest version.",
    )
    workloads: Dict[str, WorkloadDefinition] = Field(default_factory=dict)
    packs: Dict[str, PackDefinition] = Field(default_factory=dict)

    def get_workload(self, workload_id: str) -> Optional[WorkloadDefinition]:
        return _lookup(self.workloads, workload_id)

    def get_pack(self, pack_id: str) -> Optional[PackDefinition]:
        return _lookup(self.packs, pack_id)

    @property
    def concrete_workload_ids(self) -> List[str]:
        return [wid for wid, w in self.workloads.items() if w.is_concrete]


# ---------------------------------------------------------------------------
# Workload sets
# ---------------------------------------------------------------------------


class WorkloadSetEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    manifest_id: str
    manifest_version: str
    manifest_feature_band: Optional[str] = Field(
        default=None,
        description="Only present when the manifest's band differs from the set's band.",
    )


class WorkloadSet(BaseModel):
    """A pinned mapping of manifest ids to exact manifest versions for one feature band."""

    model_config = ConfigDict(frozen=True)

    version: str
    feature_band: str
    workloads: Dict[str, WorkloadSetEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# External dependencies (WorkloadDependencies.json)
# ---------------------------------------------------------------------------


class WorkloadInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: List[str] = Field(default_factory=list)
    version: Optional[str] = None


class VersionDependency(BaseModel):
    """
    ``version`` is an advisory range used to validate an existing install;
    ``recommended_version`` is the concrete value to install fresh.
    """

    model_config = ConfigDict(frozen=True)

    version: Optional[str] = None
    recommended_version: Optional[str] = None


class AndroidSdkPackage(BaseModel):
    """
    One Android SDK package requirement.

    Exactly one of ``id`` and ``platform_ids`` is set when the document names an
    id at all.
    """

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    id: Optional[str] = None
    platform_ids: Optional[Dict[str, str]] = None
    recommended_version: Optional[str] = None
    is_optional: bool = False

    def id_for_platform(self, rid: str) -> Optional[str]:
        """Package id for ``rid``, or None when it can't be resolved on that platform."""
        if self.id:
            return self.id
        if self.platform_ids:
            return _lookup(self.platform_ids, rid)
        return None


class AndroidSdkDependency(BaseModel):
    model_config = ConfigDict(frozen=True)

    packages: List[AndroidSdkPackage] = Field(default_factory=list)


class AppiumDriver(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    version: Optional[str] = None
    recommended_version: Optional[str] = None


class AppiumDependency(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: Optional[str] = None
    recommended_version: Optional[str] = None
    drivers: List[AppiumDriver] = Field(default_factory=list)


class WorkloadDependencyEntry(BaseModel):
    """
    Typed view of one workload's external dependencies.

    ``raw`` always holds the entry's original JSON object so fields that are not
    modelled here remain reachable.
    """

    model_config = ConfigDict(frozen=True)

    workload_id: str
    workload: Optional[WorkloadInfo] = None
    xcode: Optional[VersionDependency] = None
    sdk: Optional[VersionDependency] = None
    jdk: Optional[VersionDependency] = None
    android_sdk: Optional[AndroidSdkDependency] = None
    windows_app_sdk: Optional[VersionDependency] = None
    windows_sdk_build_tools: Optional[VersionDependency] = None
    win2d: Optional[VersionDependency] = None
    webview2: Optional[VersionDependency] = None
    appium: Optional[AppiumDependency] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    def get_raw(self, key: str) -> Any:
        """Case-insensitive access to any property of the original entry."""
        return _lookup(self.raw, key)


class WorkloadDependencies(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: Dict[str, WorkloadDependencyEntry] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict)

    def get(self, workload_id: str) -> Optional[WorkloadDependencyEntry]:
        return _lookup(self.entries, workload_id)


# ---------------------------------------------------------------------------
# global.json
# ---------------------------------------------------------------------------


class GlobalJsonInfo(BaseModel):
    """Information read from a global.json file."""

    model_config = ConfigDict(frozen=True)

    path: Path
    sdk_version: Optional[str] = None
    roll_forward: Optional[str] = None
    workload_set_version: Optional[str] = None
    msbuild_sdks: Optional[Dict[str, str]] = None

    @property
    def is_sdk_pinned(self) -> bool:
        return self.sdk_version is not None

    @property
    def is_workload_set_pinned(self) -> bool:
        return self.workload_set_version is not None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class FeedSettings(BaseModel):
    """
    Settings for talking to the package feed.

    Populated from environment variables in ``core.dependencies``.
    """

    source_url: str = Field(
        default=DEFAULT_FEED_URL,
        description="NuGet V3 service index URL.",
    )
    cache_dir: Optional[Path] = Field(
        default=None,
        description="Directory for downloaded and extracted packages. None means the temp dir.",
    )
    timeout_seconds: float = Field(default=60.0, gt=0)
    include_prerelease: bool = Field(
        default=False,
        description="Default for operations that list versions when the caller doesn't say.",
    )


def _lookup(mapping: Dict[str, Any], key: str) -> Any:
    if key in mapping:
        return mapping[key]
    folded = key.casefold()
    for k, v in mapping.items():
        if k.casefold() == folded:
            return v
    return None
