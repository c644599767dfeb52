"""
Parser for WorkloadDependencies.json, the document listing the external tools
(Xcode, JDK, Android SDK packages, Windows App SDK, Appium ...) a workload needs.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import (
    AndroidSdkDependency,
    AndroidSdkPackage,
    AppiumDependency,
    AppiumDriver,
    VersionDependency,
    WorkloadDependencies,
    WorkloadDependencyEntry,
    WorkloadInfo,
)
from sdk_workloads.domain.parsing import Document, get_ci, load_json_object

logger = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _version_dependency(raw: Any) -> Optional[VersionDependency]:
    if not isinstance(raw, dict):
        return None
    return VersionDependency(
        version=_text(get_ci(raw, "version")),
        recommended_version=_text(get_ci(raw, "recommendedVersion")),
    )


def _workload_info(raw: Any) -> Optional[WorkloadInfo]:
    if not isinstance(raw, dict):
        return None
    alias = get_ci(raw, "alias")
    return WorkloadInfo(
        alias=[a for a in alias if isinstance(a, str)] if isinstance(alias, list) else [],
        version=_text(get_ci(raw, "version")),
    )


def _android_package(raw: Dict[str, Any]) -> AndroidSdkPackage:
    package_id: Optional[str] = None
    platform_ids: Optional[Dict[str, str]] = None
    recommended: Optional[str] = None

    sdk_package = get_ci(raw, "sdkPackage")
    if isinstance(sdk_package, dict):
        id_value = get_ci(sdk_package, "id")
        if isinstance(id_value, str):
            package_id = id_value
        elif isinstance(id_value, dict):
            platform_ids = {
                rid: str(pid) for rid, pid in id_value.items() if pid is not None
            }
        recommended = _text(get_ci(sdk_package, "recommendedVersion"))

    return AndroidSdkPackage(
        description=_text(get_ci(raw, "desc")),
        id=package_id,
        platform_ids=platform_ids,
        recommended_version=recommended,
        is_optional=_is_true(get_ci(raw, "optional")),
    )


def _android_sdk(raw: Any) -> Optional[AndroidSdkDependency]:
    if not isinstance(raw, dict):
        return None
    packages = get_ci(raw, "packages")
    if not isinstance(packages, list):
        return AndroidSdkDependency()
    return AndroidSdkDependency(
        packages=[_android_package(p) for p in packages if isinstance(p, dict)]
    )


def _appium(raw: Any) -> Optional[AppiumDependency]:
    if not isinstance(raw, dict):
        return None
    drivers: List[AppiumDriver] = []
    raw_drivers = get_ci(raw, "drivers")
    if isinstance(raw_drivers, list):
        for d in raw_drivers:
            if not isinstance(d, dict):
                continue
            drivers.append(
                AppiumDriver(
                    name=_text(get_ci(d, "name")),
                    version=_text(get_ci(d, "version")),
                    recommended_version=_text(get_ci(d, "recommendedVersion")),
                )
            )
    return AppiumDependency(
        version=_text(get_ci(raw, "version")),
        recommended_version=_text(get_ci(raw, "recommendedVersion")),
        drivers=drivers,
    )


_VERSION_KEYS = {
    "xcode": "xcode",
    "sdk": "sdk",
    "jdk": "jdk",
    "windowsappsdk": "windows_app_sdk",
    "windowssdkbuildtools": "windows_sdk_build_tools",
    "win2d": "win2d",
    "webview2": "webview2",
}


def _parse_entry(workload_id: str, raw: Dict[str, Any]) -> WorkloadDependencyEntry:
    fields: Dict[str, Any] = {}
    for key, value in raw.items():
        folded = key.lower()
        if folded == "workload":
            fields["workload"] = _workload_info(value)
        elif folded in _VERSION_KEYS:
            fields[_VERSION_KEYS[folded]] = _version_dependency(value)
        elif folded == "androidsdk":
            fields["android_sdk"] = _android_sdk(value)
        elif folded == "appium":
            fields["appium"] = _appium(value)
    return WorkloadDependencyEntry(workload_id=workload_id, raw=raw, **fields)


def parse_workload_dependencies(
    document: Document, source: Optional[str] = None
) -> WorkloadDependencies:
    """
    Parse a WorkloadDependencies.json document (text or an already-loaded mapping).

    The top level is keyed by workload id. Entries that are not objects carry no
    requirements and are skipped.

    Raises:
        MalformedDocumentError: the document is not JSON or not an object.
    """
    root = load_json_object(document, source)

    entries: Dict[str, WorkloadDependencyEntry] = {}
    for workload_id, raw in root.items():
        if not isinstance(raw, dict):
            logger.debug(f"Skipping dependency entry {workload_id!r}: not an object")
            continue
        entries[workload_id] = _parse_entry(workload_id, raw)

    return WorkloadDependencies(entries=entries, raw=root)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def _version_summary(dep: Optional[VersionDependency]) -> Optional[Dict[str, Any]]:
    if dep is None:
        return None
    return {"version": dep.version, "recommendedVersion": dep.recommended_version}


def dependencies_summary(deps: WorkloadDependencies) -> Dict[str, Any]:
    """JSON-ready summary of every entry's external requirements."""
    workloads = []
    for workload_id, entry in deps.entries.items():
        android = None
        if entry.android_sdk is not None:
            android = [
                {
                    "description": p.description,
                    "id": p.id,
                    "platformIds": p.platform_ids,
                    "recommendedVersion": p.recommended_version,
                    "optional": p.is_optional,
                }
                for p in entry.android_sdk.packages
            ]

        appium = None
        if entry.appium is not None:
            appium = {
                "version": entry.appium.version,
                "recommendedVersion": entry.appium.recommended_version,
                "drivers": [
                    {"name": d.name, "version": d.version, "recommendedVersion": d.recommended_version}
                    for d in entry.appium.drivers
                ],
            }

        workloads.append(
            {
                "workloadId": workload_id,
                "xcode": _version_summary(entry.xcode),
                "sdk": _version_summary(entry.sdk),
                "jdk": _version_summary(entry.jdk),
                "androidSdk": android,
                "windowsAppSdk": _version_summary(entry.windows_app_sdk),
                "webView2": _version_summary(entry.webview2),
                "appium": appium,
            }
        )
    return {"workloads": workloads}
