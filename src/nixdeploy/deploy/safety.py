"""Machine identity check run before any build or activation."""

from pathlib import Path
from typing import Optional

import structlog

from nixdeploy.core.exceptions import IdentityMismatch, IdentityReadError

logger = structlog.get_logger()

MACHINE_ID_PATH = Path("/etc/machine-id")


def read_machine_id(path: Path = MACHINE_ID_PATH) -> str:
    try:
        return Path(path).read_text().rstrip("\n")
    except OSError as e:
        raise IdentityReadError(str(path), str(e)) from e


def check_identity(expected: Optional[str], machine_id_path: Path = MACHINE_ID_PATH) -> None:
    """Ensure the configuration targets this machine.

    The check is skipped when the configuration declares no machine id.

    Raises:
        IdentityReadError: if the local machine id can not be read
        IdentityMismatch: if it differs from ``expected``
    """
    if expected is None:
        logger.debug("No expected machine id configured, skipping identity check")
        return
    actual = read_machine_id(machine_id_path)
    if expected != actual:
        raise IdentityMismatch(expected, actual)
    logger.info("Machine id matches", machine_id=actual)
