from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from cloud_assembly.assets.errors import (
    AssetPublishingError,
    ImageNotFoundError,
    RegistryError,
    RepositoryNotFoundError,
)
from cloud_assembly.assets.models import DockerImageDestination
from cloud_assembly.config import PublishingConfig

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
)

PLACEHOLDERS = {
    "account": "${AWS::AccountId}",
    "region": "${AWS::Region}",
    "partition": "${AWS::Partition}",
}


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        code = errors[0].get("code")
        return str(code) if code else None
    return None


class OciRegistryClient:
    """Registry lookups over the OCI distribution API.

    Answers the same two questions the deployment side asks of a registry:
    does this repository exist, and does this tag exist in it.
    """

    def __init__(
        self,
        registry: str,
        *,
        insecure: bool = False,
        token: Optional[str] = None,
        timeout_sec: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.registry = registry
        scheme = "http" if insecure else "https"
        self._base_url = f"{scheme}://{registry}"
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._timeout_sec = timeout_sec
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout_sec,
            transport=self._transport,
        )

    def _raise_for(self, response: httpx.Response, *, repository_name: str, reference: Optional[str]) -> None:
        code = _error_code(response)
        if code == "NAME_UNKNOWN" or (response.status_code == 404 and reference is None):
            raise RepositoryNotFoundError(
                f"The repository with name '{repository_name}' does not exist in the registry {self.registry}",
                code=code or "NAME_UNKNOWN",
                status_code=response.status_code,
            )
        if response.status_code == 404:
            raise ImageNotFoundError(
                f"The image with tag '{reference}' does not exist in repository '{repository_name}'",
                code=code or "MANIFEST_UNKNOWN",
                status_code=response.status_code,
            )
        raise RegistryError(
            f"Registry {self.registry} answered {response.status_code} for '{repository_name}'",
            code=code,
            status_code=response.status_code,
        )

    async def describe_images(self, repository_name: str, image_ids: list[dict[str, str]]) -> dict[str, Any]:
        details: list[dict[str, Any]] = []
        async with self._client() as client:
            for image_id in image_ids:
                reference = image_id.get("imageTag") or image_id.get("imageDigest")
                try:
                    response = await client.get(
                        f"/v2/{repository_name}/manifests/{reference}",
                        headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
                    )
                except httpx.HTTPError as exc:
                    raise RegistryError(f"Cannot reach registry {self.registry}: {exc}") from exc
                if response.status_code != 200:
                    self._raise_for(response, repository_name=repository_name, reference=reference)
                details.append(
                    {
                        "repositoryName": repository_name,
                        "imageTags": [image_id["imageTag"]] if "imageTag" in image_id else [],
                        "imageDigest": response.headers.get("Docker-Content-Digest"),
                    }
                )
        return {"imageDetails": details}

    async def describe_repositories(self, repository_names: list[str]) -> dict[str, Any]:
        repositories: list[dict[str, str]] = []
        async with self._client() as client:
            for name in repository_names:
                try:
                    response = await client.get(f"/v2/{name}/tags/list", params={"n": 1})
                except httpx.HTTPError as exc:
                    raise RegistryError(f"Cannot reach registry {self.registry}: {exc}") from exc
                if response.status_code != 200:
                    self._raise_for(response, repository_name=name, reference=None)
                repositories.append({"repositoryName": name, "repositoryUri": f"{self.registry}/{name}"})
        return {"repositories": repositories}


class ConfiguredRegistryProvider:
    """Registry access driven by :class:`PublishingConfig`."""

    def __init__(
        self,
        config: PublishingConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def replace_placeholders(self, value: str, *, region: Optional[str] = None) -> str:
        values = {
            "account": self.config.account,
            "region": region or self.config.region,
            "partition": self.config.partition,
        }
        for name, placeholder in PLACEHOLDERS.items():
            if placeholder not in value:
                continue
            if not values[name]:
                raise AssetPublishingError(f"Cannot resolve {placeholder} in '{value}': no {name} configured")
            value = value.replace(placeholder, values[name])
        return value

    async def resolve_destination(self, destination: DockerImageDestination) -> DockerImageDestination:
        region = self.replace_placeholders(destination.region) if destination.region else self.config.region
        updates: dict[str, Any] = {
            "repository_name": self.replace_placeholders(destination.repository_name, region=region),
            "image_tag": self.replace_placeholders(destination.image_tag, region=region),
            "region": region,
        }
        if destination.assume_role_arn:
            updates["assume_role_arn"] = self.replace_placeholders(destination.assume_role_arn, region=region)
        return destination.model_copy(update=updates)

    async def registry_client(self, destination: DockerImageDestination, *, quiet: bool = False) -> OciRegistryClient:
        if not self.config.registry:
            raise AssetPublishingError("No container registry configured; set CLOUD_ASSEMBLY_REGISTRY or --registry")
        host = self.replace_placeholders(self.config.registry, region=destination.region)
        if not quiet:
            logger.info("Using registry %s for %s", host, destination.repository_name)
        return OciRegistryClient(
            host,
            insecure=self.config.insecure_registry,
            token=self.config.registry_token,
            timeout_sec=self.config.request_timeout_sec,
            transport=self._transport,
        )

    async def discover_current_account(self) -> Optional[str]:
        return self.config.account
