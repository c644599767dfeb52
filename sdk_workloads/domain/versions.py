"""
Version parsing and ordering for .NET SDK and NuGet package versions.

Two kinds of version text flow through the engine:

* SDK versions (``9.0.105``, ``10.0.100-rc.1.25451.107``) which are always three
  numeric components plus an optional prerelease label, and which map onto a
  feature band.
* NuGet package versions (``35.0.7``, ``9.0.100.1``, ``9.0.0-preview.7.24407.12``)
  which may have one to four numeric components and are only ever ordered.
"""
from __future__ import annotations

import re
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

_SDK_VERSION_RE = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<preview>[0-9A-Za-z][0-9A-Za-z.\-]*))?"
    r"(?:\+[0-9A-Za-z.\-]+)?$"
)

_PACKAGE_VERSION_RE = re.compile(
    r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z][0-9A-Za-z.\-]*))?"
    r"(?:\+[0-9A-Za-z.\-]+)?$"
)


class SdkVersion(BaseModel):
    """
    A parsed .NET SDK version.

    Instances are immutable and only produced by :meth:`parse`, which returns
    ``None`` instead of raising for text that is not an SDK version.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(description="The version text exactly as it was parsed.")
    major: int
    minor: int
    patch: int
    preview: Optional[str] = Field(
        default=None,
        description="Prerelease label (e.g. 'rc.1.24452.12'), None for stable SDKs.",
    )
    runtime_version: Optional[str] = Field(
        default=None,
        description="Matching Microsoft.NETCore.App runtime version, when known.",
    )

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["SdkVersion"]:
        """Parse ``text`` or return None when it is not an SDK version."""
        if not text:
            return None
        match = _SDK_VERSION_RE.match(text.strip())
        if not match:
            return None
        return cls(
            version=text.strip(),
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            preview=match.group("preview"),
        )

    @property
    def is_preview(self) -> bool:
        return self.preview is not None

    @property
    def feature_band(self) -> str:
        return f"{self.major}.{self.minor}.{(self.patch // 100) * 100}"

    @property
    def sort_key(self) -> tuple:
        """(major, minor, patch) first; a release outranks its own previews."""
        return version_sort_key(self.version)

    def with_runtime(self, runtime_version: Optional[str]) -> "SdkVersion":
        return self.model_copy(update={"runtime_version": runtime_version})

    def __str__(self) -> str:
        return self.version


def parse_sdk_version(text: Optional[str]) -> Optional[SdkVersion]:
    return SdkVersion.parse(text)


def feature_band(version: Union[str, SdkVersion]) -> str:
    """
    Return the feature band for an SDK version.

    ``9.0.105`` -> ``9.0.100``; ``9.0.100`` -> ``9.0.100``.

    Raises:
        ValueError: if ``version`` is text that does not parse as an SDK version.
    """
    if isinstance(version, SdkVersion):
        return version.feature_band
    parsed = SdkVersion.parse(version)
    if parsed is None:
        raise ValueError(f"Not an SDK version: {version!r}")
    return parsed.feature_band


def parse_package_version(text: Optional[str]) -> Optional[tuple]:
    """
    Convert a NuGet version string into a comparable tuple, or None if invalid.

    Numeric parts are padded to four components so ``1.0`` and ``1.0.0.0`` are
    equal. A release outranks any prerelease with the same numbers; prerelease
    identifiers compare numerically when both are digits, and digits sort
    below alphanumerics.
    """
    if not text:
        return None
    match = _PACKAGE_VERSION_RE.match(text.strip())
    if not match:
        return None

    numbers = tuple(int(g) if g else 0 for g in match.groups()[:4])
    label = match.group(5)
    if label is None:
        return numbers + ((1,),)

    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in label.split(".")
    )
    return numbers + ((0,) + identifiers,)


def version_sort_key(text: str) -> tuple:
    """Sort key for NuGet versions; unparsable text sorts below everything."""
    parsed = parse_package_version(text)
    if parsed is None:
        return (-1, -1, -1, -1, (-1, (text or "").lower()))
    return parsed


def is_prerelease(text: str) -> bool:
    return "-" in (text or "").split("+", 1)[0]
