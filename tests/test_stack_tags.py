from __future__ import annotations

import copy

from cloud_assembly.schema.stack_tags import (
    patch_stack_tags_on_read,
    patch_stack_tags_on_write,
    replace_stack_tags,
)


def _stack_manifest(tags: list[dict]) -> dict:
    return {
        "version": "38.0.0",
        "artifacts": {
            "MyStack": {
                "type": "aws:cloudformation:stack",
                "metadata": {
                    "/MyStack": [
                        {"type": "aws:cdk:stack-tags", "data": tags},
                        {"type": "aws:cdk:logicalId", "data": "Bucket83908E77"},
                    ]
                },
            },
            "Tree": {
                "type": "cdk:tree",
                "metadata": {"/Tree": [{"type": "aws:cdk:stack-tags", "data": [{"Key": "k", "Value": "v"}]}]},
            },
        },
    }


def test_read_lowercases_stack_tags_only() -> None:
    manifest = _stack_manifest([{"Key": "team", "Value": "infra"}])

    patched = patch_stack_tags_on_read(manifest)

    entries = patched["artifacts"]["MyStack"]["metadata"]["/MyStack"]
    assert entries[0]["data"] == [{"key": "team", "value": "infra"}]
    assert entries[1] == {"type": "aws:cdk:logicalId", "data": "Bucket83908E77"}
    # Artifacts that are not stacks are returned as they were.
    assert patched["artifacts"]["Tree"] == manifest["artifacts"]["Tree"]


def test_write_uppercases_stack_tags() -> None:
    manifest = _stack_manifest([{"key": "team", "value": "infra"}])

    patched = patch_stack_tags_on_write(manifest)

    assert patched["artifacts"]["MyStack"]["metadata"]["/MyStack"][0]["data"] == [{"Key": "team", "Value": "infra"}]


def test_write_keeps_tags_already_in_file_casing() -> None:
    tags = [{"Key": "team", "Value": "infra"}, {"key": "env", "value": "prod"}]

    patched = patch_stack_tags_on_write(_stack_manifest(tags))

    assert patched["artifacts"]["MyStack"]["metadata"]["/MyStack"][0]["data"] == [
        {"Key": "team", "Value": "infra"},
        {"Key": "env", "Value": "prod"},
    ]


def test_round_trip_restores_file_casing() -> None:
    manifest = _stack_manifest([{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}])

    assert patch_stack_tags_on_write(patch_stack_tags_on_read(manifest)) == manifest


def test_input_is_not_mutated() -> None:
    manifest = _stack_manifest([{"Key": "team", "Value": "infra"}])
    snapshot = copy.deepcopy(manifest)

    patch_stack_tags_on_read(manifest)

    assert manifest == snapshot


def test_absent_keys_stay_absent() -> None:
    manifest = {"version": "38.0.0", "artifacts": {"S": {"type": "aws:cloudformation:stack"}}}

    assert patch_stack_tags_on_read(manifest) == manifest
    assert "artifacts" not in patch_stack_tags_on_read({"version": "38.0.0"})


def test_empty_tag_data_is_left_alone() -> None:
    calls: list[list] = []

    def record(tags):
        calls.append(tags)
        return tags

    replace_stack_tags(_stack_manifest([]), record)

    assert calls == []


def test_misshapen_values_pass_through_unchanged() -> None:
    manifest = {
        "version": "38.0.0",
        "artifacts": {
            "Bad": "oops",
            "NoList": {"type": "aws:cloudformation:stack", "metadata": {"/NoList": "oops"}},
            "Mixed": {
                "type": "aws:cloudformation:stack",
                "metadata": {
                    "/Mixed": [
                        "oops",
                        {"type": "aws:cdk:stack-tags", "data": "not-a-list"},
                        {"type": "aws:cdk:stack-tags", "data": ["raw", {"Key": "k", "Value": "v"}]},
                    ]
                },
            },
        },
    }

    patched = patch_stack_tags_on_read(manifest)

    assert patched["artifacts"]["Bad"] == "oops"
    assert patched["artifacts"]["NoList"] == manifest["artifacts"]["NoList"]
    assert patched["artifacts"]["Mixed"]["metadata"]["/Mixed"] == [
        "oops",
        {"type": "aws:cdk:stack-tags", "data": "not-a-list"},
        {"type": "aws:cdk:stack-tags", "data": ["raw", {"key": "k", "value": "v"}]},
    ]
    assert patch_stack_tags_on_read({"version": "38.0.0", "artifacts": []})["artifacts"] == []
    assert patch_stack_tags_on_write({"version": "38.0.0", "artifacts": "oops"})["artifacts"] == "oops"
