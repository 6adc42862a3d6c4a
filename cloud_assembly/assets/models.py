from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ManifestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class DockerCacheOption(_ManifestModel):
    type: str = Field(..., description="Cache backend type, e.g. registry or gha")
    params: Optional[dict[str, str]] = None


class DockerImageSource(_ManifestModel):
    directory: Optional[str] = Field(None, description="Build context, relative to the manifest directory")
    executable: Optional[list[str]] = Field(None, description="Command that builds the image and prints its id")
    docker_file: Optional[str] = Field(None, alias="dockerFile")
    docker_build_target: Optional[str] = Field(None, alias="dockerBuildTarget")
    docker_build_args: Optional[dict[str, str]] = Field(None, alias="dockerBuildArgs")
    docker_build_secrets: Optional[dict[str, str]] = Field(None, alias="dockerBuildSecrets")
    docker_build_ssh: Optional[str] = Field(None, alias="dockerBuildSsh")
    network_mode: Optional[str] = Field(None, alias="networkMode")
    platform: Optional[str] = None
    docker_outputs: Optional[list[str]] = Field(None, alias="dockerOutputs")
    cache_from: Optional[list[DockerCacheOption]] = Field(None, alias="cacheFrom")
    cache_to: Optional[DockerCacheOption] = Field(None, alias="cacheTo")
    cache_disabled: Optional[bool] = Field(None, alias="cacheDisabled")


class DockerImageDestination(_ManifestModel):
    repository_name: str = Field(..., alias="repositoryName")
    image_tag: str = Field(..., alias="imageTag")
    region: Optional[str] = None
    assume_role_arn: Optional[str] = Field(None, alias="assumeRoleArn")
    assume_role_external_id: Optional[str] = Field(None, alias="assumeRoleExternalId")
    assume_role_additional_options: Optional[dict[str, Any]] = Field(None, alias="assumeRoleAdditionalOptions")


class DestinationIdentifier(_ManifestModel):
    asset_id: str = Field(..., alias="assetId")
    destination_id: str = Field(..., alias="destinationId")

    def __str__(self) -> str:
        return f"{self.asset_id}:{self.destination_id}"


class DockerImageManifestEntry(_ManifestModel):
    id: DestinationIdentifier
    source: DockerImageSource
    destination: DockerImageDestination
    display_name: Optional[str] = Field(None, alias="displayName")

    @property
    def label(self) -> str:
        return self.display_name or str(self.id)


def _selected(identifier: DestinationIdentifier, selection: list[str] | None) -> bool:
    if not selection:
        return True
    return identifier.asset_id in selection or str(identifier) in selection


def docker_image_entries(
    asset_manifest: dict[str, Any],
    selection: list[str] | None = None,
) -> list[DockerImageManifestEntry]:
    """Expand ``dockerImages`` into one entry per (asset, destination) pair.

    ``selection`` holds asset ids or ``assetId:destinationId`` pairs; an empty
    selection keeps everything.
    """
    entries: list[DockerImageManifestEntry] = []
    for asset_id, asset in sorted((asset_manifest.get("dockerImages") or {}).items()):
        for destination_id, destination in sorted((asset.get("destinations") or {}).items()):
            identifier = DestinationIdentifier(assetId=asset_id, destinationId=destination_id)
            if not _selected(identifier, selection):
                continue
            entries.append(
                DockerImageManifestEntry(
                    id=identifier,
                    source=DockerImageSource.model_validate(asset.get("source") or {}),
                    destination=DockerImageDestination.model_validate(destination),
                    displayName=asset.get("displayName"),
                )
            )
    return entries


def file_asset_ids(asset_manifest: dict[str, Any]) -> list[str]:
    return sorted((asset_manifest.get("files") or {}).keys())
