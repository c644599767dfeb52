"""
Shared document parsing: tolerant JSON plus the manifest and workload-set readers.

Workload documents shipped in SDK packages are hand-edited and routinely carry
``//`` comments and trailing commas, so everything here goes through
:func:`load_json`, which removes both before handing the text to ``json``.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import (
    PackDefinition,
    PackKind,
    WorkloadDefinition,
    WorkloadKind,
    WorkloadManifest,
    WorkloadSet,
    WorkloadSetEntry,
)

logger = logging.getLogger(__name__)

Document = Union[str, bytes, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Tolerant JSON
# ---------------------------------------------------------------------------


def _strip_comments(text: str) -> str:
    out: List[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif ch == "/" and i + 1 < n and text[i + 1] == "/":
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif ch == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            if end == -1:
                raise MalformedDocumentError("Unterminated block comment")
            # Keep a space so tokens on either side don't merge.
            out.append(" ")
            i = end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: List[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j] in " \t\r\n":
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def load_json(text: Union[str, bytes], source: Optional[str] = None) -> Any:
    """
    Parse JSON that may contain comments and trailing commas.

    Raises:
        MalformedDocumentError: the text is not JSON even after cleanup.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedDocumentError(f"Document is not UTF-8: {e}", source) from e
    text = text.lstrip("\ufeff")

    try:
        cleaned = _strip_trailing_commas(_strip_comments(text))
        return json.loads(cleaned)
    except MalformedDocumentError as e:
        raise MalformedDocumentError(str(e), source) from e
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(f"Invalid JSON: {e}", source) from e


def load_json_object(document: Document, source: Optional[str] = None) -> Dict[str, Any]:
    """Like :func:`load_json` but the top level must be an object."""
    if isinstance(document, Mapping):
        return dict(document)
    value = load_json(document, source)
    if not isinstance(value, dict):
        raise MalformedDocumentError(
            f"Expected a JSON object, got {type(value).__name__}", source
        )
    return value


def get_ci(obj: Mapping[str, Any], key: str) -> Any:
    """Case-insensitive property lookup; exact match wins."""
    if key in obj:
        return obj[key]
    folded = key.casefold()
    for k, v in obj.items():
        if isinstance(k, str) and k.casefold() == folded:
            return v
    return None


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _opt_str(obj: Mapping[str, Any], key: str, where: str, source: Optional[str]) -> Optional[str]:
    value = get_ci(obj, key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedDocumentError(f"{where}: '{key}' must be a string", source)
    return value


def _str_list(obj: Mapping[str, Any], key: str, where: str, source: Optional[str]) -> List[str]:
    value = get_ci(obj, key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedDocumentError(f"{where}: '{key}' must be a list of strings", source)
    return list(value)


def _object(obj: Mapping[str, Any], key: str, where: str, source: Optional[str]) -> Dict[str, Any]:
    value = get_ci(obj, key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedDocumentError(f"{where}: '{key}' must be an object", source)
    return value


# ---------------------------------------------------------------------------
# WorkloadManifest.json
# ---------------------------------------------------------------------------


def _parse_workload(workload_id: str, raw: Any, source: Optional[str]) -> WorkloadDefinition:
    where = f"workload '{workload_id}'"
    if not isinstance(raw, dict):
        raise MalformedDocumentError(f"{where} must be an object", source)

    is_abstract = get_ci(raw, "abstract")
    if is_abstract is not None and not isinstance(is_abstract, bool):
        raise MalformedDocumentError(f"{where}: 'abstract' must be a boolean", source)

    return WorkloadDefinition(
        id=workload_id,
        description=_opt_str(raw, "description", where, source),
        is_abstract=bool(is_abstract),
        kind=WorkloadKind.from_raw(get_ci(raw, "kind")),
        packs=_str_list(raw, "packs", where, source),
        extends=_str_list(raw, "extends", where, source),
        platforms=_str_list(raw, "platforms", where, source),
        redirect_to=_opt_str(raw, "redirect-to", where, source),
    )


def _parse_pack(pack_id: str, raw: Any, source: Optional[str]) -> PackDefinition:
    where = f"pack '{pack_id}'"
    if not isinstance(raw, dict):
        raise MalformedDocumentError(f"{where} must be an object", source)

    alias_to: Optional[str] = None
    by_platform: Dict[str, str] = {}
    alias = get_ci(raw, "alias-to")
    if alias is not None:
        if not isinstance(alias, dict):
            raise MalformedDocumentError(f"{where}: 'alias-to' must be an object", source)
        for rid, target in alias.items():
            if rid == "id":
                alias_to = target if isinstance(target, str) else None
            elif target is not None:
                by_platform[rid] = str(target)

    return PackDefinition(
        id=pack_id,
        version=_opt_str(raw, "version", where, source) or "",
        kind=PackKind.from_raw(get_ci(raw, "kind")),
        alias_to=alias_to,
        alias_to_by_platform=by_platform,
    )


def parse_workload_manifest(document: Document, source: Optional[str] = None) -> WorkloadManifest:
    """
    Parse a WorkloadManifest.json document.

    Property names are matched case-insensitively. Missing optional sections
    default to empty.

    Raises:
        MalformedDocumentError: not JSON, not an object, or a section has the
            wrong shape.
    """
    root = load_json_object(document, source)

    depends_on: Dict[str, str] = {}
    for manifest_id, min_version in _object(root, "depends-on", "manifest", source).items():
        if not isinstance(min_version, str):
            raise MalformedDocumentError(
                f"manifest: depends-on '{manifest_id}' must be a version string", source
            )
        depends_on[manifest_id] = min_version

    workloads = {
        wid: _parse_workload(wid, raw, source)
        for wid, raw in _object(root, "workloads", "manifest", source).items()
    }
    packs = {
        pid: _parse_pack(pid, raw, source)
        for pid, raw in _object(root, "packs", "manifest", source).items()
    }

    version = get_ci(root, "version")
    if version is not None and not isinstance(version, (str, int, float)):
        raise MalformedDocumentError("manifest: 'version' must be a string", source)

    try:
        return WorkloadManifest(
            version="" if version is None else str(version),
            description=_opt_str(root, "description", "manifest", source),
            depends_on=depends_on,
            workloads=workloads,
            packs=packs,
        )
    except ValidationError as e:
        raise MalformedDocumentError(f"manifest: {e}", source) from e


# ---------------------------------------------------------------------------
# Workload set documents
# ---------------------------------------------------------------------------


def split_workload_set_value(value: Any) -> Optional[WorkloadSetEntry]:
    """
    Turn ``"35.0.7/9.0.100"`` into a version plus band; returns None for values
    that can't be an entry (empty or not a string). The caller fills in the id.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    parts = value.strip().split("/")
    version = parts[0].strip()
    if not version:
        return None
    band = parts[1].strip() if len(parts) > 1 and parts[1].strip() else None
    return WorkloadSetEntry(manifest_id="", manifest_version=version, manifest_feature_band=band)


def parse_workload_set(
    document: Document,
    feature_band: str,
    version: str,
    source: Optional[str] = None,
) -> WorkloadSet:
    """
    Parse a flat workload set document ``{manifestId: "version[/band]"}``.

    Entries whose value is empty or not a string are skipped.

    Raises:
        MalformedDocumentError: not JSON or not an object.
    """
    root = load_json_object(document, source)

    entries: Dict[str, WorkloadSetEntry] = {}
    for manifest_id, value in root.items():
        entry = split_workload_set_value(value)
        if entry is None:
            logger.debug(f"Skipping workload set entry {manifest_id!r}: unusable value {value!r}")
            continue
        entries[manifest_id] = entry.model_copy(update={"manifest_id": manifest_id})

    return WorkloadSet(version=version, feature_band=feature_band, workloads=entries)
