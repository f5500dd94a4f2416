"""
Turn a finished runner invocation into the JSON the caller receives.

A JSON document on stdout always wins: it is passed through untouched,
even when the runner exited with a non-zero status.
"""

import json
import logging
from typing import Any, Tuple

from bridge.errors import InvalidJSONOutput, RunnerExitedNonZero
from bridge.supervisor import RunResult

logger = logging.getLogger(__name__)


def parse_output(result: RunResult) -> Any:
    """
    Extract the runner's JSON payload.

    Raises:
        RunnerExitedNonZero: Non-zero exit and nothing but whitespace on stdout
        InvalidJSONOutput: Stdout is not a single JSON document
    """
    stdout = result.stdout_text
    if result.exit_code != 0 and stdout.strip() == "":
        raise RunnerExitedNonZero(result.exit_code, result.stderr_text)

    try:
        return json.loads(stdout)
    except ValueError:
        raise InvalidJSONOutput(stdout, result.stderr_text) from None


def normalize(result: RunResult) -> Tuple[int, Any]:
    """Map a RunResult to (http_status, json_body)."""
    try:
        return 200, parse_output(result)
    except (RunnerExitedNonZero, InvalidJSONOutput) as e:
        logger.warning(f"Runner output rejected ({e.status}): {e.message}")
        return e.status, e.to_dict()
