"""
global.json discovery: which SDK and workload set a directory tree is pinned to.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import GlobalJsonInfo
from sdk_workloads.domain.parsing import get_ci, load_json_object

logger = logging.getLogger(__name__)

GLOBAL_JSON = "global.json"

PathLike = Union[str, Path]


def find_global_json(start_dir: Optional[PathLike] = None) -> Optional[Path]:
    """Closest global.json at or above ``start_dir`` (default: cwd), or None."""
    current = Path(start_dir).resolve() if start_dir else Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / GLOBAL_JSON
        if candidate.is_file():
            return candidate
    return None


def _section_str(root: dict, section: str, key: str) -> Optional[str]:
    value = get_ci(root, section)
    if not isinstance(value, dict):
        return None
    item = get_ci(value, key)
    return item if isinstance(item, str) else None


def parse_global_json(path: PathLike) -> Optional[GlobalJsonInfo]:
    """Read ``path``; None when it is missing, unreadable or not a JSON object."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
        root = load_json_object(text, source=str(path))
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
        return None
    except (MalformedDocumentError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring malformed {path}: {e}")
        return None

    msbuild_sdks: Optional[Dict[str, str]] = None
    raw_sdks = get_ci(root, "msbuild-sdks")
    if isinstance(raw_sdks, dict):
        msbuild_sdks = {k: v for k, v in raw_sdks.items() if isinstance(v, str)}

    return GlobalJsonInfo(
        path=path,
        sdk_version=_section_str(root, "sdk", "version"),
        roll_forward=_section_str(root, "sdk", "rollForward"),
        workload_set_version=_section_str(root, "workloadSet", "version"),
        msbuild_sdks=msbuild_sdks,
    )


def get_global_json(start_dir: Optional[PathLike] = None) -> Optional[GlobalJsonInfo]:
    path = find_global_json(start_dir)
    if path is None:
        return None
    return parse_global_json(path)


def is_sdk_pinned(start_dir: Optional[PathLike] = None) -> bool:
    info = get_global_json(start_dir)
    return info is not None and info.is_sdk_pinned


def pinned_sdk_version(start_dir: Optional[PathLike] = None) -> Optional[str]:
    info = get_global_json(start_dir)
    return info.sdk_version if info else None


def is_workload_set_pinned(start_dir: Optional[PathLike] = None) -> bool:
    info = get_global_json(start_dir)
    return info is not None and info.is_workload_set_pinned


def pinned_workload_set_version(start_dir: Optional[PathLike] = None) -> Optional[str]:
    info = get_global_json(start_dir)
    return info.workload_set_version if info else None
