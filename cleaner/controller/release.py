"""Helm release teardown."""

from __future__ import annotations

import logging
import os
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)

# Text of helm's driver.ErrReleaseNotFound
RELEASE_NOT_FOUND = "release: not found"


class ReleaseError(Exception):
    """Uninstalling a release failed."""


class ReleaseNotFoundError(ReleaseError):
    """The release does not exist (already uninstalled)."""


class HelmReleaseManager:
    """Uninstalls Helm releases by running the helm binary."""

    def __init__(self, binary: str = "helm", driver: Optional[str] = None, timeout: float = 300):
        """Initialize the release manager.

        Args:
            binary: Path or name of the helm executable
            driver: Helm storage driver (HELM_DRIVER), e.g. "secret"
            timeout: Seconds before the helm process is abandoned
        """
        self.binary = binary
        self.driver = driver
        self.timeout = timeout

    def _command(self, release: str, namespace: str) -> List[str]:
        return [self.binary, "uninstall", release, "--namespace", namespace]

    def uninstall(self, release: str, namespace: str) -> None:
        """Uninstall a release.

        Args:
            release: Release name
            namespace: Namespace the release lives in

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ReleaseError: If helm fails or times out
        """
        cmd = self._command(release, namespace)
        env = dict(os.environ)
        if self.driver:
            env["HELM_DRIVER"] = self.driver

        logger.info(f"helm> {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, env=env)
        except subprocess.TimeoutExpired as e:
            raise ReleaseError(f"helm uninstall {release} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ReleaseError(f"could not run {self.binary}: {e}") from e

        if result.returncode == 0:
            logger.debug(f"helm stdout: {result.stdout[:800]}")
            return

        stderr = (result.stderr or "").strip()
        if RELEASE_NOT_FOUND in stderr:
            raise ReleaseNotFoundError(f"release {release} not found in {namespace}")
        raise ReleaseError(f"helm uninstall {release} failed (rc={result.returncode}): {stderr[:500]}")
