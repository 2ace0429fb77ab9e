"""
Git/gh command runner — PR Agent

Runs external CLIs with captured output. Failures (non-zero exit, missing
executable, timeout) come back as {"success": False, ...} instead of
raising, so callers can decide whether a failed git step is fatal.
"""

import logging
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)


def run_command(
    command: str,
    args: list,
    cwd: Optional[str] = None,
    timeout: int = 120,
) -> dict:
    """
    Run a command and return its output.

    Returns:
        dict with keys 'stdout' (str), 'stderr' (str), 'success' (bool)
    """
    logger.info("Running command: %s %s", command, " ".join(args))

    try:
        result = subprocess.run(
            [command, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except FileNotFoundError:
        return {"stdout": "", "stderr": f"{command}: command not found", "success": False}
    except subprocess.TimeoutExpired:
        return {
            "stdout": "",
            "stderr": f"{command} timed out after {timeout} seconds",
            "success": False,
        }

    return {
        "stdout": result.stdout or "",
        "stderr": result.stderr or "",
        "success": result.returncode == 0,
    }


def execute_git_command(args: list, cwd: Optional[str] = None) -> dict:
    """Run a git subcommand, e.g. execute_git_command(["fetch", "origin"])."""
    return run_command("git", args, cwd=cwd)
