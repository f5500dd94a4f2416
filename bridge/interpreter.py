"""
Interpreter discovery.

Finds a usable Python by probing each candidate invocation with ``-V``.
Nothing is cached: every request probes again, so an interpreter that is
installed or removed while the bridge runs is picked up on the next call.
"""

import logging
import shlex
import subprocess
import sys
from typing import List, Sequence

from bridge.errors import NoInterpreterFound

logger = logging.getLogger(__name__)

VERSION_FLAG = "-V"


def split_command(command: str) -> List[str]:
    """Split an invocation string such as ``py -3`` into argv."""
    return shlex.split(command, posix=not sys.platform.startswith("win"))


def probe(command: str, timeout: float = 5.0) -> bool:
    """
    Check whether an interpreter invocation reports its version.

    Args:
        command: Invocation string, e.g. 'python3' or 'py -3'
        timeout: Seconds the probe may take

    Returns:
        True if the probe exited with status 0
    """
    try:
        argv = split_command(command)
    except ValueError as e:
        logger.warning(f"Cannot parse interpreter candidate {command!r}: {e}")
        return False
    if not argv:
        return False

    try:
        result = subprocess.run(
            argv + [VERSION_FLAG],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Probe failed for {command!r}: {e}")
        return False

    return result.returncode == 0


def resolve_interpreter(candidates: Sequence[str], probe_timeout: float = 5.0) -> str:
    """
    Return the first candidate whose version probe succeeds.

    Candidates are probed sequentially and probing stops at the first
    success, so later candidates are not necessarily spawned.

    Raises:
        NoInterpreterFound: If every candidate fails its probe
    """
    for candidate in candidates:
        if probe(candidate, timeout=probe_timeout):
            logger.info(f"Using interpreter: {candidate}")
            return candidate
    raise NoInterpreterFound(candidates)
