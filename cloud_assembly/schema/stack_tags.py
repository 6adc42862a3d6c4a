"""Stack tag casing between the manifest file and the object model.

Stack tags used to be written as ``{"Key": ..., "Value": ...}``, which is
what CloudFormation expects, and the file format kept that casing. The
object model exposes them as ``{"key": ..., "value": ...}``. These helpers
translate one into the other for the ``aws:cdk:stack-tags`` metadata payload
and nothing else.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any


CLOUDFORMATION_STACK = "aws:cloudformation:stack"
STACK_TAGS = "aws:cdk:stack-tags"

TagsTransform = Callable[[Any], Any]

# Marks keys that were absent in the input, so they can be dropped again.
_UNDEFINED: Any = object()


def _map_values(mapping: Any, fn: Callable[[Any], Any]) -> Any:
    if mapping is None:
        return _UNDEFINED
    if not isinstance(mapping, Mapping):
        return mapping
    return {key: fn(value) for key, value in mapping.items()}


def _no_undefined(obj: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in obj.items() if value is not _UNDEFINED}


# Values of the wrong shape pass through untouched and are left to validation.
def _patch_entry(entry: Any, fn: TagsTransform) -> Any:
    if not isinstance(entry, Mapping) or entry.get("type") != STACK_TAGS or not entry.get("data"):
        return entry
    return {**entry, "data": fn(entry["data"])}


def _patch_entries(entries: Any, fn: TagsTransform) -> Any:
    if not isinstance(entries, list):
        return entries
    return [_patch_entry(entry, fn) for entry in entries]


def _patch_artifact(artifact: Any, fn: TagsTransform) -> Any:
    if not isinstance(artifact, Mapping) or artifact.get("type") != CLOUDFORMATION_STACK:
        return artifact
    return _no_undefined(
        {
            **artifact,
            "metadata": _map_values(artifact.get("metadata"), lambda entries: _patch_entries(entries, fn)),
        }
    )


def replace_stack_tags(manifest: dict[str, Any], fn: TagsTransform) -> dict[str, Any]:
    return _no_undefined(
        {
            **manifest,
            "artifacts": _map_values(manifest.get("artifacts"), lambda artifact: _patch_artifact(artifact, fn)),
        }
    )


def tags_to_object_model(tags: Any) -> Any:
    if not isinstance(tags, list):
        return tags
    return [{"key": tag.get("Key"), "value": tag.get("Value")} if isinstance(tag, Mapping) else tag for tag in tags]


def tags_to_disk(tags: Any) -> Any:
    if not isinstance(tags, list):
        return tags
    # Synthesis may already hand us the final casing.
    return [
        {"Key": tag.get("key"), "Value": tag.get("value")} if isinstance(tag, Mapping) and "Key" not in tag else tag
        for tag in tags
    ]


def patch_stack_tags_on_read(manifest: dict[str, Any]) -> dict[str, Any]:
    return replace_stack_tags(manifest, tags_to_object_model)


def patch_stack_tags_on_write(manifest: dict[str, Any]) -> dict[str, Any]:
    return replace_stack_tags(manifest, tags_to_disk)
