from __future__ import annotations

import logging

import docker
from docker.errors import DockerException
from docker.models.containers import Container

from .metrics import BYTES_PER_MB

LOGGER = logging.getLogger("crudbench.benchmark.docker")


class ContainerMemoryProbe:
    """Sample the memory usage of a target API container through the Docker API."""

    def __init__(self, container_name: str, client: docker.DockerClient | None = None) -> None:
        self._container_name = container_name
        self._client = client
        self._container: Container | None = None

    def memory_mb(self) -> float:
        container = self._resolve()
        stats = container.stats(stream=False)
        memory = stats.get("memory_stats") or {}
        usage = memory.get("usage")
        if usage is None:
            raise RuntimeError(
                f"Container {self._container_name} reported no memory usage"
            )
        # Page cache inflates raw usage; docker CLI subtracts it the same way.
        detail = memory.get("stats") or {}
        cache = detail.get("inactive_file") or detail.get("cache", 0)
        return max(usage - cache, 0) / BYTES_PER_MB

    def _resolve(self) -> Container:
        if self._container is None:
            if self._client is None:
                self._client = docker.from_env()
            try:
                self._container = self._client.containers.get(self._container_name)
            except DockerException:
                LOGGER.error("Unable to find container %s", self._container_name)
                raise
            LOGGER.debug(
                "Sampling memory from container %s (%s)",
                self._container_name,
                self._container.short_id,
            )
        return self._container
