"""
Inspect the .NET SDK installed on this machine.

Layout of an SDK root::

    <root>/sdk/<sdkVersion>/
    <root>/shared/Microsoft.NETCore.App/<runtimeVersion>/
    <root>/sdk-manifests/<band>/<manifestId>[/<manifestVersion>]/WorkloadManifest.json
    <root>/sdk-manifests/<band>/workloadsets/<setVersion>/*.workloadset.json

Nothing here touches the network.
"""
from __future__ import annotations

import json
import logging
import os
import platform
import shutil
import struct
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

import aiofiles

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import WorkloadManifest, WorkloadSet
from sdk_workloads.domain.parsing import parse_workload_manifest, parse_workload_set
from sdk_workloads.domain.versions import SdkVersion, parse_package_version, version_sort_key

logger = logging.getLogger(__name__)

WORKLOAD_SETS_DIR = "workloadsets"
RUNTIME_DIR = Path("shared") / "Microsoft.NETCore.App"
MANIFEST_FILE_NAMES = ("WorkloadManifest.json", "workloadmanifest.json")
WORKLOAD_SET_FILE_NAMES = (
    "WorkloadSet.json",
    "workloadset.json",
    "microsoft.net.workloads.workloadset.json",
)

_ARCH_ALIASES = {
    "x86_64": "X64",
    "amd64": "X64",
    "x64": "X64",
    "i386": "X86",
    "i686": "X86",
    "x86": "X86",
    "arm64": "ARM64",
    "aarch64": "ARM64",
    "armv7l": "ARM",
    "armv6l": "ARM",
    "arm": "ARM",
}


def process_architecture() -> Optional[str]:
    """X64 / X86 / ARM64 / ARM for the running interpreter, or None if unknown."""
    arch = _ARCH_ALIASES.get(platform.machine().lower())
    # A 32-bit interpreter on a 64-bit OS reports the OS machine.
    if struct.calcsize("P") == 4:
        if arch == "X64":
            return "X86"
        if arch == "ARM64":
            return "ARM"
    return arch


def candidate_roots(
    env: Optional[Mapping[str, str]] = None,
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Iterator[Path]:
    """
    SDK root candidates in priority order. ``shutil.which`` is not consulted here.

    The keyword arguments default to the live process values; they exist so
    other platforms can be simulated.
    """
    env = os.environ if env is None else env
    os_name = os_name or sys.platform
    arch = arch if arch is not None else process_architecture()
    is_windows = os_name.startswith("win")

    if arch and env.get(f"DOTNET_ROOT_{arch}"):
        yield Path(env[f"DOTNET_ROOT_{arch}"])
    if is_windows and arch == "X86" and env.get("DOTNET_ROOT(x86)"):
        yield Path(env["DOTNET_ROOT(x86)"])
    if env.get("DOTNET_ROOT"):
        yield Path(env["DOTNET_ROOT"])

    yield (cwd or Path.cwd()) / ".dotnet"
    yield (home or Path.home()) / ".dotnet"

    if is_windows:
        for var in ("ProgramFiles", "ProgramFiles(x86)"):
            if env.get(var):
                yield Path(env[var]) / "dotnet"
        if env.get("LOCALAPPDATA"):
            yield Path(env["LOCALAPPDATA"]) / "Microsoft" / "dotnet"
    elif os_name == "darwin":
        yield Path("/usr/local/share/dotnet")
        yield Path("/opt/homebrew/opt/dotnet/libexec")
    else:
        yield Path("/usr/share/dotnet")
        yield Path("/usr/local/share/dotnet")


def discover_sdk_root() -> Optional[Path]:
    for candidate in candidate_roots():
        if (candidate / "sdk").is_dir():
            return candidate

    dotnet = shutil.which("dotnet")
    if dotnet:
        root = Path(dotnet).resolve().parent
        if (root / "sdk").is_dir():
            return root
    return None


def _subdirs(path: Path) -> List[Path]:
    try:
        return [p for p in path.iterdir() if p.is_dir()]
    except OSError:
        return []


async def _read_text(path: Path) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8-sig") as f:
        return await f.read()


class LocalInventory:
    def __init__(self, dotnet_root: Optional[Path] = None):
        self._explicit_root = Path(dotnet_root) if dotnet_root else None

    def sdk_root(self) -> Optional[Path]:
        if self._explicit_root is not None:
            return self._explicit_root
        return discover_sdk_root()

    def _manifests_dir(self, band: str) -> Optional[Path]:
        root = self.sdk_root()
        if root is None:
            return None
        return root / "sdk-manifests" / band

    # ------------------------------------------------------------------
    # SDKs
    # ------------------------------------------------------------------

    def _runtime_versions(self, root: Path) -> List[str]:
        return [p.name for p in _subdirs(root / RUNTIME_DIR)]

    def installed_versions(self) -> List[SdkVersion]:
        """Installed SDKs, newest first, each tagged with its matching runtime when found."""
        root = self.sdk_root()
        if root is None:
            return []

        runtimes = [r for r in map(SdkVersion.parse, self._runtime_versions(root)) if r is not None]
        versions: List[SdkVersion] = []
        for d in _subdirs(root / "sdk"):
            sdk = SdkVersion.parse(d.name)
            if sdk is None:
                continue
            matching = [r.version for r in runtimes if (r.major, r.minor) == (sdk.major, sdk.minor)]
            if matching:
                sdk = sdk.with_runtime(max(matching, key=version_sort_key))
            versions.append(sdk)

        versions.sort(key=lambda v: v.sort_key, reverse=True)
        return versions

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def installed_manifest_ids(self, band: str) -> List[str]:
        manifests_dir = self._manifests_dir(band)
        if manifests_dir is None:
            return []
        return sorted(
            d.name for d in _subdirs(manifests_dir) if d.name.lower() != WORKLOAD_SETS_DIR
        )

    def _find_manifest_file(self, manifest_dir: Path) -> Optional[Path]:
        for name in MANIFEST_FILE_NAMES:
            if (manifest_dir / name).is_file():
                return manifest_dir / name

        for sub in sorted(_subdirs(manifest_dir), key=lambda p: version_sort_key(p.name), reverse=True):
            for name in MANIFEST_FILE_NAMES:
                if (sub / name).is_file():
                    return sub / name
        return None

    async def installed_manifest(self, band: str, manifest_id: str) -> Optional[WorkloadManifest]:
        manifests_dir = self._manifests_dir(band)
        if manifests_dir is None:
            return None

        manifest_dir = manifests_dir / manifest_id
        if not manifest_dir.is_dir():
            manifest_dir = manifests_dir / manifest_id.lower()
            if not manifest_dir.is_dir():
                return None

        manifest_file = self._find_manifest_file(manifest_dir)
        if manifest_file is None:
            return None

        try:
            text = await _read_text(manifest_file)
            return parse_workload_manifest(text, source=str(manifest_file))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {manifest_file}: {e}")
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse {manifest_file}: {e}")
        return None

    # ------------------------------------------------------------------
    # Workload sets
    # ------------------------------------------------------------------

    async def installed_workload_set(self, band: str) -> Optional[WorkloadSet]:
        manifests_dir = self._manifests_dir(band)
        if manifests_dir is None:
            return None

        set_dirs = [
            d for d in _subdirs(manifests_dir / WORKLOAD_SETS_DIR)
            if parse_package_version(d.name) is not None
        ]
        if not set_dirs:
            logger.debug(f"No installed workload set for band {band}")
            return None
        latest = max(set_dirs, key=lambda d: version_sort_key(d.name))

        set_file = next(
            (latest / name for name in WORKLOAD_SET_FILE_NAMES if (latest / name).is_file()),
            None,
        )
        if set_file is None:
            logger.debug(f"No workload set file found in {latest}")
            return None

        try:
            text = await _read_text(set_file)
            workload_set = parse_workload_set(text, band, latest.name, source=str(set_file))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {set_file}: {e}")
            return None
        except MalformedDocumentError as e:
            logger.warning(f"Could not parse {set_file}: {e}")
            return None

        logger.info(f"Installed workload set for {band}: {workload_set.version}")
        return workload_set

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @staticmethod
    def _manifest_summary(manifest_id: str, manifest: WorkloadManifest, details: bool) -> Dict[str, Any]:
        if not details:
            return {
                "id": manifest_id,
                "version": manifest.version,
                "workloadCount": len(manifest.workloads),
                "concreteWorkloads": manifest.concrete_workload_ids,
                "packCount": len(manifest.packs),
            }

        return {
            "id": manifest_id,
            "version": manifest.version,
            "description": manifest.description,
            "dependsOn": dict(manifest.depends_on) or None,
            "workloads": [
                {
                    "id": wid,
                    "description": w.description,
                    "isAbstract": w.is_abstract,
                    "kind": w.kind.value,
                    "packs": list(w.packs),
                    "extends": list(w.extends),
                    "platforms": list(w.platforms) or None,
                    "redirectTo": w.redirect_to,
                }
                for wid, w in manifest.workloads.items()
            ],
            "packs": [
                {"id": pid, "version": p.version, "kind": p.kind.value, "aliasTo": p.alias_to}
                for pid, p in manifest.packs.items()
            ],
        }

    @staticmethod
    def _workload_set_summary(workload_set: Optional[WorkloadSet]) -> Optional[Dict[str, Any]]:
        if workload_set is None:
            return None
        return {
            "version": workload_set.version,
            "workloads": {
                wid: {
                    "manifestId": e.manifest_id,
                    "manifestVersion": e.manifest_version,
                    "manifestFeatureBand": e.manifest_feature_band,
                }
                for wid, e in workload_set.workloads.items()
            },
        }

    async def build_summary(self, include_manifest_details: bool = True) -> Dict[str, Any]:
        """
        Snapshot of the installed SDKs: one entry per major version (its newest
        SDK), with that band's workload set and manifests.
        """
        root = self.sdk_root()
        installed = self.installed_versions()

        newest_per_major: Dict[int, SdkVersion] = {}
        for sdk in installed:
            current = newest_per_major.get(sdk.major)
            if current is None or sdk.sort_key > current.sort_key:
                newest_per_major[sdk.major] = sdk

        entries = []
        for major in sorted(newest_per_major, reverse=True):
            sdk = newest_per_major[major]
            band = sdk.feature_band

            manifests = []
            for manifest_id in self.installed_manifest_ids(band):
                manifest = await self.installed_manifest(band, manifest_id)
                if manifest is None:
                    manifests.append({"id": manifest_id, "error": "Could not parse manifest"})
                    continue
                manifests.append(self._manifest_summary(manifest_id, manifest, include_manifest_details))

            entries.append(
                {
                    "majorVersion": sdk.major,
                    "featureBand": band,
                    "latestInstalledVersion": sdk.version,
                    "runtimeVersion": sdk.runtime_version,
                    "isPreview": sdk.is_preview,
                    "workloadSet": self._workload_set_summary(await self.installed_workload_set(band)),
                    "manifests": manifests,
                }
            )

        return {
            "dotnetPath": str(root) if root is not None else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "totalInstalledSdks": len(installed),
            "allInstalledVersions": [s.version for s in installed],
            "sdksByMajorVersion": entries,
        }

    async def build_summary_json(
        self, include_manifest_details: bool = True, indent: Optional[int] = None
    ) -> str:
        return json.dumps(await self.build_summary(include_manifest_details), indent=indent)
