from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from wpgh.exceptions import ActivationError
from wpgh.extraction import RunCommand, Which
from wpgh.models import PackageKind

logger: logging.Logger = logging.getLogger(__name__)


class WpCliActivator:
    """Activate installed packages through WP-CLI.

    Plugins are addressed by ``<slug>/<main file>``, themes by their slug.
    """

    def __init__(
        self,
        wordpress_root: Path | None = None,
        wp_binary: str = "wp",
        run_command: RunCommand = subprocess.run,
        which: Which = shutil.which,
    ) -> None:
        self.wordpress_root = wordpress_root
        self.wp_binary = wp_binary
        self.run_command = run_command
        self.which = which

    def build_command(self, kind: PackageKind, installed_identifier: str) -> list[str]:
        binary = self.which(self.wp_binary)
        if not binary:
            raise ActivationError(f"{self.wp_binary} command is not available")
        cmd = [binary, kind.value, "activate", installed_identifier]
        if self.wordpress_root is not None:
            cmd.append(f"--path={self.wordpress_root}")
        return cmd

    def activate(self, kind: PackageKind, installed_identifier: str) -> None:
        cmd = self.build_command(kind, installed_identifier)
        logger.info(f"Activating {kind.value} {installed_identifier}...")
        try:
            output = self.run_command(
                cmd,
                capture_output=True,
                check=True,
                text=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            raise ActivationError(
                f"Could not activate {kind.value} {installed_identifier}: {exc}"
            ) from exc

        error_msg = "Error: "
        if error_msg in f"{output.stdout}" or error_msg in f"{output.stderr}":
            raise ActivationError(
                f"Could not activate {kind.value} {installed_identifier}:"
                f" {output.stderr or output.stdout}".rstrip()
            )
        logger.info(f"Activated {kind.value} {installed_identifier}")
