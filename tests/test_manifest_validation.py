from __future__ import annotations

import pytest

from cloud_assembly.schema import (
    ForbiddenFieldError,
    LoadManifestOptions,
    Manifest,
    SchemaValidationError,
    StructuralValidator,
)
from cloud_assembly.schema.manifest import ASSEMBLY_SCHEMA_FILE, ASSETS_SCHEMA_FILE, load_schema
from cloud_assembly.schema.validation import validate


def _assembly(**artifacts) -> dict:
    return {"version": "38.0.0", "artifacts": artifacts}


def _stack(**properties) -> dict:
    return {
        "type": "aws:cloudformation:stack",
        "environment": "aws://123456789012/us-east-1",
        "properties": {"templateFile": "MyStack.template.json", **properties},
    }


def _validate(manifest: dict, options: LoadManifestOptions | None = None, schema: str = ASSEMBLY_SCHEMA_FILE) -> None:
    Manifest.validate(manifest, load_schema(schema), options)


def test_valid_assembly_passes() -> None:
    _validate(
        _assembly(
            MyStack=_stack(stackName="my-stack", tags={"team": "infra"}),
            Tree={"type": "cdk:tree", "properties": {"file": "tree.json"}},
        )
    )


def test_unknown_property_is_rejected() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        _validate(_assembly(MyStack={**_stack(), "colour": "blue"}))

    assert any("'colour' was unexpected" in line for line in exc_info.value.errors)
    assert str(exc_info.value).startswith("Invalid assembly manifest:\n")


def test_all_violations_are_reported() -> None:
    manifest = {
        "version": "38.0.0",
        "missing": [{"key": "k", "props": {}, "provider": "ami", "extra": 1}],
        "runtime": {},
    }

    with pytest.raises(SchemaValidationError) as exc_info:
        _validate(manifest)

    joined = "\n".join(exc_info.value.errors)
    assert "$.missing[0]" in joined
    assert "'libraries' is a required property" in joined


def test_unknown_enum_value_rejected_by_default() -> None:
    with pytest.raises(SchemaValidationError):
        _validate(_assembly(Future={"type": "cdk:something-new"}))


def test_skip_enum_check_accepts_unknown_enum_values() -> None:
    options = LoadManifestOptions(skip_enum_check=True)

    _validate(_assembly(Future={"type": "cdk:something-new"}), options)
    _validate(
        {"version": "38.0.0", "missing": [{"key": "k", "props": {}, "provider": "new-provider"}]},
        options,
    )


def test_skip_enum_check_still_reports_other_errors() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        _validate(
            _assembly(Future={"type": "cdk:something-new", "dependencies": "not-a-list"}),
            LoadManifestOptions(skip_enum_check=True),
        )

    assert all("is not one of" not in line for line in exc_info.value.errors)
    assert any("dependencies" in line for line in exc_info.value.errors)


def test_skip_enum_check_accepts_unknown_value_inside_any_of_branch() -> None:
    entry = {"type": "aws:cdk:asset", "data": {"packaging": "tarball", "path": "p", "id": "i", "sourceHash": "h"}}
    manifest = _assembly(MyStack={**_stack(), "metadata": {"/MyStack": [entry]}})

    with pytest.raises(SchemaValidationError) as exc_info:
        _validate(manifest)
    assert any("tarball" in line for line in exc_info.value.errors)

    _validate(manifest, LoadManifestOptions(skip_enum_check=True))


@pytest.mark.parametrize("forbidden", ["RoleArn", "ExternalId"])
def test_assume_role_options_reject_role_fields_on_stack(forbidden: str) -> None:
    manifest = _assembly(MyStack=_stack(assumeRoleAdditionalOptions={forbidden: "x", "Tags": []}))

    with pytest.raises(ForbiddenFieldError) as exc_info:
        _validate(manifest)

    assert str(exc_info.value) == f"{forbidden} is not allowed inside 'assumeRoleAdditionalOptions'"


def test_assume_role_options_rejected_in_nested_lookup_role() -> None:
    manifest = _assembly(
        MyStack=_stack(lookupRole={"arn": "arn:role", "assumeRoleAdditionalOptions": {"RoleArn": "arn:other"}})
    )

    with pytest.raises(ForbiddenFieldError):
        _validate(manifest)


def test_assume_role_options_rejected_in_asset_destinations() -> None:
    manifest = {
        "version": "38.0.0",
        "dockerImages": {
            "abc": {
                "source": {"directory": "img"},
                "destinations": {
                    "d": {
                        "repositoryName": "repo",
                        "imageTag": "abc",
                        "assumeRoleAdditionalOptions": {"ExternalId": "nope"},
                    }
                },
            }
        },
    }

    with pytest.raises(ForbiddenFieldError):
        _validate(manifest, schema=ASSETS_SCHEMA_FILE)


def test_same_shape_under_other_key_is_allowed() -> None:
    _validate(_assembly(MyStack=_stack(parameters={"RoleArn": "x", "ExternalId": "y"})))
    _validate(_assembly(MyStack=_stack(assumeRoleAdditionalOptions={"Tags": [], "RoleArn": ""})))


def test_custom_property_hook_sees_every_property() -> None:
    seen: list[str] = []
    structural = StructuralValidator(property_hook=lambda instance, key, _schema: seen.append(key))

    validate(
        {"version": "38.0.0", "runtime": {"libraries": {"lib": "1.0.0"}}},
        load_schema(ASSEMBLY_SCHEMA_FILE),
        Manifest.version(),
        structural=structural,
    )

    assert {"version", "runtime", "libraries", "lib"} <= set(seen)


def test_integ_manifest_requires_stacks() -> None:
    from cloud_assembly.schema.manifest import INTEG_SCHEMA_FILE

    with pytest.raises(SchemaValidationError) as exc_info:
        _validate({"version": "38.0.0", "testCases": {"case": {}}}, schema=INTEG_SCHEMA_FILE)

    assert any("'stacks' is a required property" in line for line in exc_info.value.errors)
