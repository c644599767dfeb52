"""
Published .NET SDK versions, from the public release metadata.

``releases-index.json`` lists one channel per ``major.minor`` with a link to that
channel's ``releases.json``; each release there lists the SDKs it shipped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from sdk_workloads.domain.errors import FeedError, raise_if_cancelled
from sdk_workloads.domain.versions import SdkVersion, is_prerelease

logger = logging.getLogger(__name__)

RELEASES_INDEX_URL = "https://builds.dotnet.microsoft.com/dotnet/release-metadata/releases-index.json"


def _release_sdk_versions(release: Dict[str, Any]) -> List[str]:
    versions: List[str] = []
    sdks = release.get("sdks")
    if isinstance(sdks, list):
        versions.extend(s.get("version") for s in sdks if isinstance(s, dict))
    sdk = release.get("sdk")
    if isinstance(sdk, dict):
        versions.append(sdk.get("version"))
    return [v for v in versions if isinstance(v, str)]


class SdkReleaseCatalog:
    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        index_url: str = RELEASES_INDEX_URL,
        timeout_seconds: float = 60.0,
    ):
        self._index_url = index_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(follow_redirects=True, timeout=timeout_seconds)

    async def __aenter__(self) -> "SdkReleaseCatalog":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, cancel_event: Optional[asyncio.Event]) -> Dict[str, Any]:
        raise_if_cancelled(cancel_event)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise FeedError(f"Release metadata request failed: {e}", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise FeedError(f"Release metadata request failed: {e}") from e
        except ValueError as e:
            raise FeedError(f"Release metadata at {url} is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise FeedError(f"Release metadata at {url} is not an object")
        return data

    async def _channels(self, cancel_event: Optional[asyncio.Event]) -> List[Dict[str, Any]]:
        index = await self._get_json(self._index_url, cancel_event)
        channels = index.get("releases-index", [])
        return [c for c in channels if isinstance(c, dict)]

    async def _channel_sdks(
        self,
        channel: Dict[str, Any],
        include_preview: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> List[SdkVersion]:
        url = channel.get("releases.json")
        if not isinstance(url, str):
            return []
        releases = (await self._get_json(url, cancel_event)).get("releases", [])

        result: List[SdkVersion] = []
        for release in releases:
            if not isinstance(release, dict):
                continue
            if not include_preview and is_prerelease(str(release.get("release-version", ""))):
                continue
            for text in _release_sdk_versions(release):
                sdk = SdkVersion.parse(text)
                if sdk is None:
                    logger.debug(f"Skipping malformed SDK version {text!r}")
                    continue
                if not include_preview and sdk.is_preview:
                    continue
                result.append(sdk)
        return result

    @staticmethod
    def _distinct_descending(versions: List[SdkVersion]) -> List[SdkVersion]:
        unique: Dict[str, SdkVersion] = {}
        for v in versions:
            unique.setdefault(v.version.lower(), v)
        return sorted(unique.values(), key=lambda v: v.sort_key, reverse=True)

    async def available_sdk_versions(
        self,
        include_preview: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SdkVersion]:
        versions: List[SdkVersion] = []
        for channel in await self._channels(cancel_event):
            versions.extend(await self._channel_sdks(channel, include_preview, cancel_event))
        return self._distinct_descending(versions)

    async def sdk_versions_for_runtime(
        self,
        runtime_version: str,
        include_preview: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SdkVersion]:
        """
        SDKs shipped in the channel matching ``runtime_version``'s major.minor.

        Raises:
            ValueError: ``runtime_version`` does not start with ``major.minor``.
        """
        parts = runtime_version.split(".")
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1].split("-")[0].isdigit():
            raise ValueError(f"Invalid runtime version format: {runtime_version}")
        channel_version = f"{int(parts[0])}.{int(parts[1].split('-')[0])}"

        for channel in await self._channels(cancel_event):
            if channel.get("channel-version") == channel_version:
                return self._distinct_descending(
                    await self._channel_sdks(channel, include_preview, cancel_event)
                )
        return []
