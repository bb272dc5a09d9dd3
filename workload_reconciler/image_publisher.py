"""Rebuild an image and load it into a kind cluster."""

import logging
import os
import subprocess
from typing import List

from .config import BUILD_TIMEOUT_SECONDS, DEFAULT_KIND_CLUSTER
from .errors import TransientCallError

logger = logging.getLogger(__name__)


class KindImagePublisher:
    """
    Builds an image from a local build context with ``docker build`` and
    makes it pullable by the nodes of a kind cluster with
    ``kind load docker-image``.
    """

    def __init__(self, build_context: str, cluster_name: str = DEFAULT_KIND_CLUSTER):
        self.build_context = build_context
        self.cluster_name = cluster_name

    def __call__(self, image: str) -> None:
        if not os.path.isdir(self.build_context):
            raise TransientCallError(f"Build context {self.build_context} does not exist")

        self._run(["docker", "build", "-t", image, self.build_context])
        logger.info(f"Built image {image} from {self.build_context}")

        self._run(["kind", "load", "docker-image", image, "--name", self.cluster_name])
        logger.info(f"Loaded image {image} into kind cluster {self.cluster_name}")

    def _run(self, command: List[str]) -> None:
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=BUILD_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as e:
            raise TransientCallError(f"{command[0]} is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise TransientCallError(f"{' '.join(command[:2])} timed out after {BUILD_TIMEOUT_SECONDS}s") from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip().splitlines()
            tail = output[-1] if output else "no output"
            raise TransientCallError(f"{' '.join(command[:2])} failed ({result.returncode}): {tail}")
