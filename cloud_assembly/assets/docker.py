from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import docker
from docker.errors import DockerException, ImageNotFound
from docker.utils import parse_repository_tag

from cloud_assembly.assets.errors import DockerError
from cloud_assembly.assets.models import DockerCacheOption
from cloud_assembly.assets.progress import EventEmitter, EventType
from cloud_assembly.runtime import run_command

logger = logging.getLogger(__name__)

DOCKER_EXECUTABLE_ENV = "CLOUD_ASSEMBLY_DOCKER"


@dataclass
class DockerBuildOptions:
    directory: str
    tag: str
    build_args: Optional[dict[str, str]] = None
    build_secrets: Optional[dict[str, str]] = None
    build_ssh: Optional[str] = None
    target: Optional[str] = None
    file: Optional[str] = None
    network_mode: Optional[str] = None
    platform: Optional[str] = None
    outputs: Optional[list[str]] = None
    cache_from: Optional[list[DockerCacheOption]] = None
    cache_to: Optional[DockerCacheOption] = None
    cache_disabled: Optional[bool] = None


def docker_executable() -> str:
    return os.environ.get(DOCKER_EXECUTABLE_ENV) or "docker"


def cache_option_to_flag(option: DockerCacheOption) -> str:
    flag = f"type={option.type}"
    for key, value in (option.params or {}).items():
        flag += f",{key}={value}"
    return flag


def docker_build_command(options: DockerBuildOptions, executable: str | None = None) -> list[str]:
    cmd = [executable or docker_executable(), "build"]
    for key, value in (options.build_args or {}).items():
        cmd.extend(["--build-arg", f"{key}={value}"])
    for key, value in (options.build_secrets or {}).items():
        cmd.extend(["--secret", f"id={key},{value}"])
    if options.build_ssh:
        cmd.extend(["--ssh", options.build_ssh])
    cmd.extend(["--tag", options.tag])
    if options.target:
        cmd.extend(["--target", options.target])
    if options.file:
        cmd.extend(["--file", options.file])
    if options.network_mode:
        cmd.extend(["--network", options.network_mode])
    if options.platform:
        cmd.extend(["--platform", options.platform])
    for output in options.outputs or []:
        cmd.extend(["--output", output])
    for cache in options.cache_from or []:
        cmd.extend(["--cache-from", cache_option_to_flag(cache)])
    if options.cache_to:
        cmd.extend(["--cache-to", cache_option_to_flag(options.cache_to)])
    if options.cache_disabled:
        cmd.append("--no-cache")
    cmd.append(".")
    return cmd


def _registry_cache_refs(options: DockerBuildOptions) -> Optional[list[str]]:
    refs: list[str] = []
    for cache in options.cache_from or []:
        ref = (cache.params or {}).get("ref")
        if cache.type != "registry" or not ref:
            return None
        refs.append(ref)
    return refs


def requires_buildkit(options: DockerBuildOptions) -> bool:
    """True when the classic Engine API build cannot express ``options``."""
    return bool(
        options.build_secrets
        or options.build_ssh
        or options.outputs
        or options.cache_to
        or _registry_cache_refs(options) is None
    )


def get_docker_client():
    try:
        client = docker.from_env()
        client.ping()
        return client
    except DockerException as exc:
        raise DockerError("Docker is not available.") from exc


def _discard(_event: EventType, _message: str) -> None:
    return None


class Docker:
    """Local image operations against one Docker daemon."""

    def __init__(
        self,
        client: Any,
        *,
        event_emitter: EventEmitter = _discard,
        subprocess_output_destination: str = "stdio",
        executable: str | None = None,
    ) -> None:
        self.client = client
        self.event_emitter = event_emitter
        self.subprocess_output_destination = subprocess_output_destination
        self.executable = executable or docker_executable()

    def _debug(self, message: str) -> None:
        if self.subprocess_output_destination != "ignore":
            self.event_emitter(EventType.DEBUG, message)

    async def exists(self, tag: str) -> bool:
        def _lookup() -> bool:
            try:
                self.client.images.get(tag)
                return True
            except ImageNotFound:
                return False
            except DockerException as exc:
                raise DockerError(f"Cannot look up image {tag}: {exc}") from exc

        return await asyncio.to_thread(_lookup)

    async def build(self, options: DockerBuildOptions) -> None:
        if requires_buildkit(options):
            await self._build_with_cli(options)
        else:
            await asyncio.to_thread(self._build_with_api, options)

    def _build_with_api(self, options: DockerBuildOptions) -> None:
        logger.debug("Building %s from %s through the Engine API", options.tag, options.directory)
        try:
            output = self.client.api.build(
                path=options.directory,
                dockerfile=options.file,
                tag=options.tag,
                buildargs=options.build_args or None,
                target=options.target,
                network_mode=options.network_mode,
                platform=options.platform,
                cache_from=_registry_cache_refs(options) or None,
                nocache=bool(options.cache_disabled),
                decode=True,
                rm=True,
                forcerm=True,
            )
            for entry in output:
                if "stream" in entry and entry["stream"].strip():
                    self._debug(entry["stream"].rstrip())
                if "error" in entry:
                    raise DockerError(f"Docker build of {options.tag} failed: {entry['error']}")
        except DockerException as exc:
            raise DockerError(f"Docker build of {options.tag} failed: {exc}") from exc

    async def _build_with_cli(self, options: DockerBuildOptions) -> None:
        cmd = docker_build_command(options, self.executable)
        logger.debug("Building %s with %s", options.tag, " ".join(cmd))
        result = await asyncio.to_thread(run_command, cmd, Path(options.directory))
        for line in result.stderr.splitlines():
            if line.strip():
                self._debug(line)
        if result.exit_code != 0:
            raise DockerError(
                f"{' '.join(cmd)} exited with error code {result.exit_code}: {result.stderr.strip()}"
            )

    async def tag(self, source_tag: str, target_tag: str) -> None:
        repository, tag = parse_repository_tag(target_tag)

        def _tag() -> None:
            try:
                image = self.client.images.get(source_tag)
                tagged = image.tag(repository, tag=tag)
            except ImageNotFound as exc:
                raise DockerError(f"Cannot tag {source_tag}: image not found") from exc
            except DockerException as exc:
                raise DockerError(f"Tagging {source_tag} as {target_tag} failed: {exc}") from exc
            if not tagged:
                raise DockerError(f"Tagging {source_tag} as {target_tag} failed")

        logger.debug("Tagging %s as %s", source_tag, target_tag)
        await asyncio.to_thread(_tag)

    async def push(self, tag: str) -> None:
        repository, image_tag = parse_repository_tag(tag)

        def _push() -> None:
            try:
                for entry in self.client.images.push(repository, tag=image_tag, stream=True, decode=True):
                    if "error" in entry:
                        raise DockerError(f"Pushing {tag} failed: {entry['error']}")
                    status = entry.get("status")
                    if status and not entry.get("progressDetail"):
                        self._debug(f"{entry.get('id', repository)}: {status}")
            except DockerException as exc:
                raise DockerError(f"Pushing {tag} failed: {exc}") from exc

        await asyncio.to_thread(_push)


class DockerClientFactory:
    """Hands out :class:`Docker` instances sharing one lazily created SDK client."""

    def __init__(self, client: Any = None, *, executable: str | None = None) -> None:
        self._client = client
        self._executable = executable

    async def _get_client(self) -> Any:
        if self._client is None:
            self._client = await asyncio.to_thread(get_docker_client)
        return self._client

    async def for_build(
        self,
        *,
        repo_uri: str,
        registry: Any,
        event_emitter: EventEmitter,
        subprocess_output_destination: str,
    ) -> Docker:
        logger.debug("Preparing Docker for building images bound for %s", repo_uri)
        return Docker(
            await self._get_client(),
            event_emitter=event_emitter,
            subprocess_output_destination=subprocess_output_destination,
            executable=self._executable,
        )

    async def for_registry_push(
        self,
        *,
        repo_uri: str,
        registry: Any,
        event_emitter: EventEmitter,
        subprocess_output_destination: str,
    ) -> Docker:
        logger.debug("Preparing Docker for pushing to %s", repo_uri)
        return Docker(
            await self._get_client(),
            event_emitter=event_emitter,
            subprocess_output_destination=subprocess_output_destination,
            executable=self._executable,
        )
