import pytest

from sdk_workloads.domain.errors import MalformedDocumentError
from sdk_workloads.domain.models import PackKind, WorkloadKind
from sdk_workloads.domain.parsing import (
    load_json,
    parse_workload_manifest,
    parse_workload_set,
    split_workload_set_value,
)

MANIFEST = """
// Licensed to the .NET Foundation
{
  "version": "9.0.0",
  "description": "Mono runtime workloads", /* inline */
  "depends-on": {
    "Microsoft.NET.Workload.Emscripten.Current": "9.0.0",
  },
  "workloads": {
    "wasm-tools": {
      "description": ".NET WebAssembly build tools",
      "packs": ["Microsoft.NET.Runtime.WebAssembly.Sdk", "Microsoft.NETCore.App.Runtime.Mono.browser-wasm"],
      "extends": ["microsoft-net-runtime-mono-tooling"],
      "platforms": ["win-x64", "linux-x64", "osx-arm64"],
    },
    "microsoft-net-runtime-mono-tooling": {
      "abstract": true,
      "description": "Shared native build tooling for Mono runtime",
      "packs": ["Microsoft.NET.Runtime.MonoAOTCompiler.Task"],
      "kind": "build"
    },
    "wasm-experimental": {
      "redirect-to": "wasm-tools",
      "kind": "weird"
    }
  },
  "packs": {
    "Microsoft.NET.Runtime.WebAssembly.Sdk": {"kind": "Sdk", "version": "9.0.0"},
    "Microsoft.NET.Runtime.MonoAOTCompiler.Task": {"kind": "library", "version": "9.0.0"},
    "Microsoft.NETCore.App.Runtime.Mono.browser-wasm": {"kind": "framework", "version": "9.0.0"},
    "Microsoft.NETCore.App.Runtime.AOT.Cross.browser-wasm": {
      "version": "9.0.0",
      "alias-to": {
        "win-x64": "Microsoft.NETCore.App.Runtime.AOT.win-x64.Cross.browser-wasm",
        "osx-arm64": "Microsoft.NETCore.App.Runtime.AOT.osx-arm64.Cross.browser-wasm"
      }
    },
    "Microsoft.Weird.Pack": {"kind": "Mystery"}
  }
}
"""


def test_load_json_tolerates_comments_and_trailing_commas():
    assert load_json('{"a": [1, 2,], // hi\n "b": "x//y", /* c */ }') == {"a": [1, 2], "b": "x//y"}


def test_load_json_keeps_comment_markers_inside_strings():
    assert load_json('{"url": "https://example.com/*not*/", "s": "a,}"}') == {
        "url": "https://example.com/*not*/",
        "s": "a,}",
    }


def test_load_json_strips_bom_from_bytes():
    assert load_json(b"\xef\xbb\xbf{\"a\": 1}") == {"a": 1}


def test_load_json_raises_malformed():
    with pytest.raises(MalformedDocumentError) as exc:
        load_json("{ not json", source="x.json")
    assert exc.value.source == "x.json"


def test_parse_manifest_top_level():
    manifest = parse_workload_manifest(MANIFEST)
    assert manifest.version == "9.0.0"
    assert manifest.description == "Mono runtime workloads"
    assert manifest.depends_on == {"Microsoft.NET.Workload.Emscripten.Current": "9.0.0"}
    assert len(manifest.workloads) == 3
    assert len(manifest.packs) == 5


def test_parse_manifest_workloads():
    manifest = parse_workload_manifest(MANIFEST)

    wasm = manifest.workloads["wasm-tools"]
    assert wasm.kind == WorkloadKind.DEV
    assert not wasm.is_abstract
    assert wasm.extends == ["microsoft-net-runtime-mono-tooling"]
    assert wasm.supports_platform("LINUX-x64")
    assert not wasm.supports_platform("linux-arm")

    tooling = manifest.workloads["microsoft-net-runtime-mono-tooling"]
    assert tooling.is_abstract
    assert tooling.kind == WorkloadKind.BUILD

    experimental = manifest.workloads["wasm-experimental"]
    assert experimental.redirect_to == "wasm-tools"
    assert experimental.kind == WorkloadKind.UNKNOWN
    assert experimental.packs == []
    assert experimental.supports_platform("anything")


def test_parse_manifest_packs():
    manifest = parse_workload_manifest(MANIFEST)

    assert manifest.packs["Microsoft.NET.Runtime.WebAssembly.Sdk"].kind == PackKind.SDK
    assert manifest.packs["Microsoft.NET.Runtime.MonoAOTCompiler.Task"].kind == PackKind.LIBRARY
    assert manifest.packs["Microsoft.NETCore.App.Runtime.Mono.browser-wasm"].kind == PackKind.FRAMEWORK
    assert manifest.packs["Microsoft.Weird.Pack"].kind == PackKind.UNKNOWN
    assert manifest.packs["Microsoft.Weird.Pack"].version == ""

    cross = manifest.packs["Microsoft.NETCore.App.Runtime.AOT.Cross.browser-wasm"]
    assert cross.kind == PackKind.SDK
    assert cross.alias_to is None
    assert cross.resolve_alias("osx-arm64") == "Microsoft.NETCore.App.Runtime.AOT.osx-arm64.Cross.browser-wasm"
    assert cross.resolve_alias("linux-x64") is None


def test_manifest_lookups_are_case_insensitive():
    manifest = parse_workload_manifest(MANIFEST)
    assert manifest.get_workload("WASM-TOOLS").id == "wasm-tools"
    assert manifest.get_pack("microsoft.net.runtime.webassembly.sdk").version == "9.0.0"
    assert manifest.get_workload("missing") is None
    assert manifest.concrete_workload_ids == ["wasm-tools", "wasm-experimental"]


def test_manifest_property_names_are_case_insensitive():
    manifest = parse_workload_manifest('{"Version": "1.0.0", "Workloads": {"x": {"Packs": ["p"]}}}')
    assert manifest.version == "1.0.0"
    assert manifest.workloads["x"].packs == ["p"]


def test_manifest_alias_id_is_kept_separately():
    manifest = parse_workload_manifest(
        '{"packs": {"A": {"version": "1.0", "alias-to": {"id": "B", "win-x64": "B.Win"}}}}'
    )
    pack = manifest.packs["A"]
    assert pack.alias_to == "B"
    assert pack.alias_to_by_platform == {"win-x64": "B.Win"}
    assert pack.resolve_alias("WIN-X64") == "B.Win"
    assert pack.resolve_alias("linux-x64") == "B"


@pytest.mark.parametrize(
    "document",
    [
        "[]",
        '{"workloads": []}',
        '{"workloads": {"x": "nope"}}',
        '{"workloads": {"x": {"packs": "p"}}}',
        '{"workloads": {"x": {"abstract": "yes"}}}',
        '{"packs": {"p": {"alias-to": "q"}}}',
        '{"depends-on": {"m": 1}}',
    ],
)
def test_parse_manifest_rejects_wrong_shapes(document):
    with pytest.raises(MalformedDocumentError):
        parse_workload_manifest(document)


def test_workload_set_value_with_band():
    ws = parse_workload_set('{"microsoft.net.sdk.android": "35.0.0/9.0.100"}', "9.0.100", "9.0.100.1")
    entry = ws.workloads["microsoft.net.sdk.android"]
    assert entry.manifest_id == "microsoft.net.sdk.android"
    assert entry.manifest_version == "35.0.0"
    assert entry.manifest_feature_band == "9.0.100"
    assert ws.version == "9.0.100.1"
    assert ws.feature_band == "9.0.100"


def test_workload_set_value_without_band():
    ws = parse_workload_set('{"x": "1.2.3"}', "9.0.100", "9.0.100")
    assert ws.workloads["x"].manifest_version == "1.2.3"
    assert ws.workloads["x"].manifest_feature_band is None


def test_workload_set_skips_unusable_values():
    ws = parse_workload_set('{"a": "", "b": 5, "c": null, "d": "1.0.0", "e": "/9.0.100"}', "9.0.100", "1")
    assert list(ws.workloads) == ["d"]


def test_workload_set_must_be_object():
    with pytest.raises(MalformedDocumentError):
        parse_workload_set("[1, 2]", "9.0.100", "1")


def test_split_value():
    assert split_workload_set_value("1.0.0/").manifest_feature_band is None
    assert split_workload_set_value(None) is None
