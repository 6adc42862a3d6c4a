"""Publishing of container image assets.

A handler owns one asset destination. The first operation resolves the
destination once (registry client, repository URI, full image URI and
whether the tag is already there) and every later operation reuses that
result. ``build`` and ``publish`` are no-ops when the image is already in the
registry, and stop quietly as soon as cancellation is requested.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cloud_assembly.assets.docker import DockerBuildOptions
from cloud_assembly.assets.errors import (
    AssetSourceError,
    ImageNotFoundError,
    RepositoryMissingError,
    RepositoryNotFoundError,
)
from cloud_assembly.assets.host import DockerEngine, HandlerHost, HandlerOptions, RegistryClient
from cloud_assembly.assets.models import DockerImageDestination, DockerImageManifestEntry
from cloud_assembly.assets.progress import EventType
from cloud_assembly.runtime import shell

logger = logging.getLogger(__name__)

LOCAL_TAG_PREFIX = "cdkasset-"


class InitState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class ContainerImageInit:
    registry: RegistryClient
    repo_uri: str
    image_uri: str
    destination_already_exists: bool


def local_tag_name(asset_id: str) -> str:
    return f"{LOCAL_TAG_PREFIX}{asset_id.lower()}"


async def image_exists(registry: RegistryClient, repository_name: str, image_tag: str) -> bool:
    try:
        await registry.describe_images(repository_name, [{"imageTag": image_tag}])
        return True
    except ImageNotFoundError:
        return False


async def repository_uri(registry: RegistryClient, repository_name: str) -> Optional[str]:
    """Return the URI of ``repository_name``, or None if there is no such repository."""
    try:
        response = await registry.describe_repositories([repository_name])
    except RepositoryNotFoundError:
        return None
    repositories = response.get("repositories") or []
    return repositories[0].get("repositoryUri") if repositories else None


class ContainerImageAssetHandler:
    def __init__(
        self,
        work_dir: str | Path,
        asset: DockerImageManifestEntry,
        host: HandlerHost,
        options: Optional[HandlerOptions] = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.asset = asset
        self.host = host
        self.options = options or HandlerOptions()
        self._state = InitState.UNINITIALIZED
        self._init: Optional[ContainerImageInit] = None

    @property
    def state(self) -> InitState:
        return self._state

    def _debug_emitter(self, event: EventType, message: str) -> None:
        self.host.emit_message(EventType.DEBUG, message)

    async def build(self) -> None:
        init = await self._init_once()

        if init.destination_already_exists:
            return
        if self.host.aborted:
            return

        docker_for_building = await self.host.docker_factory.for_build(
            repo_uri=init.repo_uri,
            registry=init.registry,
            event_emitter=self._debug_emitter,
            subprocess_output_destination=self.options.subprocess_output_destination,
        )

        builder = ContainerImageBuilder(docker_for_building, self.work_dir, self.asset, self.host)
        local_tag = await builder.build()

        if local_tag is None or self.host.aborted:
            return

        await docker_for_building.tag(local_tag, init.image_uri)

    async def is_published(self) -> bool:
        try:
            init = await self._init_once(quiet=True)
            return init.destination_already_exists
        except Exception as exc:  # advisory check, never fails the run
            logger.debug("Could not determine whether %s is published: %s", self.asset.id, exc)
            self.host.emit_message(EventType.DEBUG, str(exc))
        return False

    async def publish(self) -> None:
        init = await self._init_once()

        if init.destination_already_exists:
            return
        if self.host.aborted:
            return

        docker_for_pushing = await self.host.docker_factory.for_registry_push(
            repo_uri=init.repo_uri,
            registry=init.registry,
            event_emitter=self.host.emit_message,
            subprocess_output_destination=self.options.subprocess_output_destination,
        )

        if self.host.aborted:
            return

        self.host.emit_message(EventType.UPLOAD, f"Push {init.image_uri}")
        await docker_for_pushing.push(init.image_uri)

    async def _init_once(self, *, quiet: bool = False) -> ContainerImageInit:
        if self._state is InitState.READY and self._init is not None:
            return self._init

        self._state = InitState.INITIALIZING
        try:
            init = await self._resolve_init(quiet=quiet)
        except BaseException:
            self._state = InitState.UNINITIALIZED
            raise

        self._init = init
        self._state = InitState.READY
        return init

    async def _resolve_init(self, *, quiet: bool) -> ContainerImageInit:
        destination = await self.host.registry.resolve_destination(self.asset.destination)
        registry = await self.host.registry.registry_client(destination, quiet=quiet)

        repo_uri = await repository_uri(registry, destination.repository_name)
        if not repo_uri:
            account = await self.host.registry.discover_current_account()
            raise RepositoryMissingError(repository_name=destination.repository_name, account=account)

        image_uri = f"{repo_uri}:{destination.image_tag}"
        exists = await self._destination_already_exists(registry, destination, image_uri)
        return ContainerImageInit(
            registry=registry,
            repo_uri=repo_uri,
            image_uri=image_uri,
            destination_already_exists=exists,
        )

    async def _destination_already_exists(
        self,
        registry: RegistryClient,
        destination: DockerImageDestination,
        image_uri: str,
    ) -> bool:
        # The lookup goes by repository name and tag; image_uri is only for display.
        self.host.emit_message(EventType.CHECK, f"Check {image_uri}")
        if await image_exists(registry, destination.repository_name, destination.image_tag):
            self.host.emit_message(EventType.FOUND, f"Found {image_uri}")
            return True
        return False


class ContainerImageBuilder:
    def __init__(
        self,
        docker: DockerEngine,
        work_dir: str | Path,
        asset: DockerImageManifestEntry,
        host: HandlerHost,
    ) -> None:
        self.docker = docker
        self.work_dir = Path(work_dir)
        self.asset = asset
        self.host = host

    async def build(self) -> Optional[str]:
        source = self.asset.source
        if source.directory:
            return await self._build_directory_asset()
        if source.executable:
            return await self._build_external_asset(source.executable)
        raise AssetSourceError(
            f"Either 'directory' or 'executable' is expected in the DockerImage asset source, "
            f"got: {json.dumps(source.model_dump(by_alias=True, exclude_none=True))}"
        )

    async def _build_directory_asset(self) -> Optional[str]:
        """Build from a directory with a Dockerfile.

        The local tag is derived from the asset id only, so an image built
        earlier for the same asset is found in the local cache and reused.
        """
        local_tag = local_tag_name(self.asset.id.asset_id)

        if not await self._is_image_cached(local_tag):
            if self.host.aborted:
                return None
            await self._build_image(local_tag)

        return local_tag

    async def _build_external_asset(self, executable: list[str], cwd: str | Path | None = None) -> Optional[str]:
        """Build by running an external command.

        The command deduplicates its own work and prints the resulting image
        identifier on stdout. ``cwd`` is kept for callers that need a working
        directory other than the manifest directory.
        """
        asset_path = Path(cwd) if cwd is not None else self.work_dir

        self.host.emit_message(EventType.BUILD, f"Building Docker image using command '{executable}'")
        if self.host.aborted:
            return None

        output = await shell(
            list(executable),
            cwd=asset_path,
            output_destination="ignore",
            emit=lambda line: self.host.emit_message(EventType.DEBUG, line),
        )
        return output.strip()

    async def _build_image(self, local_tag: str) -> None:
        source = self.asset.source
        full_path = (self.work_dir / source.directory).resolve()
        self.host.emit_message(EventType.BUILD, f"Building Docker image at {full_path}")

        await self.docker.build(
            DockerBuildOptions(
                directory=str(full_path),
                tag=local_tag,
                build_args=source.docker_build_args,
                build_secrets=source.docker_build_secrets,
                build_ssh=source.docker_build_ssh,
                target=source.docker_build_target,
                file=source.docker_file,
                network_mode=source.network_mode,
                platform=source.platform,
                outputs=source.docker_outputs,
                cache_from=source.cache_from,
                cache_to=source.cache_to,
                cache_disabled=source.cache_disabled,
            )
        )

    async def _is_image_cached(self, local_tag: str) -> bool:
        if await self.docker.exists(local_tag):
            self.host.emit_message(EventType.CACHED, f"Cached {local_tag}")
            return True
        return False
