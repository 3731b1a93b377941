"""Thin wrapper around the ``gcloud`` CLI."""

from __future__ import annotations

import subprocess
from typing import Optional

from pdum.provision.types.exceptions import GCloudError, OperatorAbort

# 130 = SIGINT, 141 = SIGPIPE as reported by a shell; negative codes when
# subprocess sees the child killed by the signal directly.
ABORT_EXIT_CODES = frozenset({130, 141, -2, -13})


def run_gcloud(args: list[str], check: bool = True, capture: bool = True) -> Optional[str]:
    """Run a gcloud command and return output.

    Args:
        args: List of arguments to pass to gcloud
        check: If True, raise exception on non-zero exit code
        capture: If True, capture and return stdout

    Returns:
        Command stdout if capture=True, None otherwise. With check=False a failed
        command returns None.

    Raises:
        GCloudError: If command fails and check=True
        OperatorAbort: If gcloud was interrupted or its output pipe closed
    """
    cmd = ["gcloud"] + args
    try:
        result = subprocess.run(
            cmd,
            check=check,
            capture_output=capture,
            text=True,
        )
    except subprocess.CalledProcessError as e:
        if e.returncode in ABORT_EXIT_CODES:
            raise OperatorAbort(f"gcloud interrupted (exit {e.returncode})") from e
        stderr = (e.stderr or "").strip()
        raise GCloudError(
            f"Command failed: {' '.join(cmd)}\n{stderr}",
            command=cmd,
            returncode=e.returncode,
            stderr=stderr,
        ) from e
    except FileNotFoundError as e:
        raise GCloudError("gcloud CLI not found on PATH", command=cmd) from e

    if result.returncode in ABORT_EXIT_CODES:
        raise OperatorAbort(f"gcloud interrupted (exit {result.returncode})")
    if result.returncode != 0:
        return None
    return result.stdout.strip() if capture else None


__all__ = ["ABORT_EXIT_CODES", "run_gcloud"]
