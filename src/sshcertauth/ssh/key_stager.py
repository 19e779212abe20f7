"""
Key stager: hands an SSH public key line to the privileged installer program.

The installer is invoked as

    <launcher...> <program> addkey --user <username> --keydir <key_dir>

with the key line on stdin. Any non-zero exit status is a failure, whatever
the installer printed.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from ..errors import StagerFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagerResult:
    """Exit status and captured diagnostics of one installer run."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class KeyStager:
    """
    Installs public keys into authorized-keys stores through an external program.

    Each call spawns one child process; its stdin/stdout/stderr pipes are owned
    by subprocess.run and closed on every exit path.
    """

    def __init__(self, program: str, launcher: str = "", timeout: Optional[float] = None):
        """
        Args:
            program: Path of the installer executable
            launcher: Optional command prefix, e.g. "sudo -n"
            timeout: Seconds to wait for the installer, None waits forever
        """
        self.program = program
        self.launcher = shlex.split(launcher) if launcher else []
        self.timeout = timeout

    def build_command(self, username: str, key_dir: str) -> List[str]:
        """Argument vector for one installation."""
        return self.launcher + [self.program, "addkey", "--user", username, "--keydir", key_dir]

    def install(self, ssh_line: str, username: str, key_dir: str) -> StagerResult:
        """
        Install ssh_line for username.

        Returns:
            StagerResult of a successful run

        Raises:
            StagerFailure: on non-zero exit, missing program or timeout
        """
        command = self.build_command(username, key_dir)
        logger.debug(f"Running key stager: {command}")

        try:
            completed = subprocess.run(
                command,
                input=ssh_line + "\n",
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            logger.error(f"Key stager not found: {self.program}")
            raise StagerFailure(f"Key stager not found: {e.filename or self.program}") from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"Key stager timed out after {self.timeout}s")
            raise StagerFailure(f"Key stager timed out after {self.timeout} seconds") from e
        except OSError as e:
            logger.error(f"Key stager could not be started: {e}")
            raise StagerFailure(f"Key stager could not be started: {e}") from e

        result = StagerResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=(completed.stderr or "").strip(),
        )

        if not result.ok:
            logger.warning(
                f"Key stager exited with status {result.returncode} for user {username}: {result.stderr}"
            )
            raise StagerFailure(
                f"Key stager exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        if result.stderr:
            logger.info(f"Key stager diagnostics for {username}: {result.stderr}")
        logger.info(f"Staged public key for user {username} in {key_dir}")
        return result
