"""Durable GC roots keeping the deployed closures alive."""

import os
import uuid
from pathlib import Path
from typing import Optional

import structlog

from nixdeploy.core.exceptions import FilesystemError
from nixdeploy.core.models import ExecutionMode

logger = structlog.get_logger()


class GcRootManager:
    """Maintains ``<state_dir>/gcroots/switch-to-configuration-<host>``."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.gcroots_dir = self.state_dir / "gcroots"

    def root_path(self, hostname: str) -> Path:
        return self.gcroots_dir / f"switch-to-configuration-{hostname}"

    def current_root(self, hostname: str) -> Optional[str]:
        try:
            return os.readlink(self.root_path(hostname))
        except OSError:
            return None

    def record_root(self, hostname: str, output_path: str, mode: ExecutionMode) -> None:
        """Point the host's GC root at ``output_path``.

        The new link is created under a temporary name and renamed over the
        old one, so a root for the host exists at every instant.
        """
        gc_root = self.root_path(hostname)
        try:
            self.gcroots_dir.mkdir(mode=0o750, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create '{self.gcroots_dir}': {e}", str(self.gcroots_dir)) from e

        if mode.simulated:
            logger.info("Dry-run enabled: gcroot not updated", gc_root=str(gc_root), output_path=output_path)
            return

        tmp_link = self.gcroots_dir / f".{gc_root.name}.{uuid.uuid4().hex}.tmp"
        try:
            os.symlink(output_path, tmp_link)
            os.replace(tmp_link, gc_root)
        except OSError as e:
            try:
                os.unlink(tmp_link)
            except FileNotFoundError:
                pass
            raise FilesystemError(
                f"Failed to create symlink 'ln -s {output_path} {gc_root}': {e}", str(gc_root)
            ) from e
        logger.info("Gcroot created", gc_root=str(gc_root), output_path=output_path)
