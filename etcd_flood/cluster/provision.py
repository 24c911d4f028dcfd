"""
Suite-wide binary provisioning

Every supported version lives under ``<etcd_root>/<version>/``. If that
directory carries a ``download.sh`` it is run (cwd = the version directory)
and must exit 0; afterwards an executable ``etcd`` must be present. Anything
else is an unrecoverable setup failure.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .manager import executable_path
from .versions import ProtocolVersion
from ..utils.exceptions import ErrorCodes, SetupError

LOG = logging.getLogger(__name__)

DOWNLOAD_SCRIPT = "download.sh"
DEFAULT_PROVISION_TIMEOUT = 60


def provision_binary(
    etcd_root: Union[str, Path],
    version: Union[str, ProtocolVersion],
    timeout: float = DEFAULT_PROVISION_TIMEOUT
) -> Path:
    """
    Make sure ``<etcd_root>/<version>/etcd`` exists and is executable.

    Returns:
        Absolute path of the executable

    Raises:
        SetupError: download script failed/timed out or binary still missing
    """
    version = ProtocolVersion.parse(version)
    version_dir = (Path(etcd_root) / version.value).resolve()
    script = version_dir / DOWNLOAD_SCRIPT

    if script.is_file():
        LOG.info(f"Provisioning etcd {version} via {script}")
        try:
            result = subprocess.run(
                [str(script)],
                cwd=str(version_dir),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise SetupError(
                f"{script} did not finish within {timeout}s",
                code=ErrorCodes.PROVISION_FAILED,
                version=version.value
            )
        except OSError as e:
            raise SetupError(
                f"Cannot run {script}: {e}",
                code=ErrorCodes.PROVISION_FAILED,
                version=version.value
            )

        if result.returncode != 0:
            LOG.error(f"{script} failed:\n{result.stdout}{result.stderr}")
            raise SetupError(
                f"{script} exited with {result.returncode}",
                code=ErrorCodes.PROVISION_FAILED,
                version=version.value,
                returncode=result.returncode
            )

    binary = executable_path(etcd_root, version)
    if not (binary.is_file() and os.access(binary, os.X_OK)):
        raise SetupError(
            f"etcd {version} binary not found or not executable at {binary}",
            code=ErrorCodes.BINARY_MISSING,
            version=version.value,
            executable=str(binary)
        )

    LOG.info(f"etcd {version} available at {binary}")
    return binary


def provision_binaries(
    etcd_root: Union[str, Path],
    versions: Optional[Iterable[Union[str, ProtocolVersion]]] = None,
    timeout: float = DEFAULT_PROVISION_TIMEOUT
) -> Dict[ProtocolVersion, Path]:
    """Provision every version (all three by default), failing on the first miss."""
    if versions is None:
        versions = list(ProtocolVersion)
    return {
        ProtocolVersion.parse(v): provision_binary(etcd_root, v, timeout=timeout)
        for v in versions
    }
