"""
Discovery of .NET SDK workload metadata.

This package is responsible for:
* Reading workload manifests and workload sets published on a NuGet V3 feed.
* Inspecting the SDKs, manifests and workload sets installed on this machine.
* Finding the SDK and workload set a directory is pinned to via global.json.
"""
