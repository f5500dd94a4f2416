"""
RunnerBridge - one request in, one runner invocation, one JSON answer out.

Resolve an interpreter, start the runner, pump the request body through
it and normalize what comes back. Every outcome, success or failure, is
returned as (http_status, json_body).
"""

import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from bridge.config import BridgeConfig
from bridge.errors import BadRequest, BridgeError, RunnerTimeout, SpawnFailed
from bridge.interpreter import resolve_interpreter
from bridge.normalizer import normalize
from bridge.packs import list_packs, resolve_pack, resolve_requirements
from bridge.supervisor import RunnerProcess

logger = logging.getLogger(__name__)

PIP_INSTALL = ("-m", "pip", "install", "-r")


class RunnerBridge:
    """Relay request bodies to runner scripts under the configured limits."""

    def __init__(self, config: Optional[BridgeConfig] = None):
        self.config = config or BridgeConfig()

    def run(
        self,
        body: bytes,
        script: Optional[str] = None,
        cwd: Optional[str] = None
    ) -> Tuple[int, Any]:
        """
        Run a script with the body on its stdin.

        Args:
            body: Raw request bytes, forwarded unmodified
            script: Runner script, defaults to the configured runner
            cwd: Working directory, defaults to the bridge directory

        Returns:
            (http_status, json_body)
        """
        script = script or self.config.runner_path
        cwd = cwd or self.config.working_dir

        try:
            interpreter = resolve_interpreter(
                self.config.python_candidates,
                probe_timeout=self.config.probe_timeout,
            )
            runner = RunnerProcess(
                interpreter,
                script,
                cwd=cwd,
                timeout=self.config.timeout,
                poll_interval=self.config.poll_interval,
                max_output_bytes=self.config.max_output_bytes,
            )
            with runner:
                result = runner.communicate(body)
        except BridgeError as e:
            logger.warning(f"Runner request failed ({e.status}): {e.message}")
            return e.status, e.to_dict()

        return normalize(result)

    def _read_pack_request(self, raw: bytes) -> Dict[str, Any]:
        """
        Parse a pack request body into a dict.

        Raises:
            BridgeError: Packs disabled (404), empty or malformed body (400)
        """
        if not self.config.packs_dir:
            raise BridgeError("Packs are not enabled", status=404)
        if raw is None or raw.strip() == b"":
            raise BadRequest("No input")
        try:
            request = json.loads(raw)
        except ValueError:
            raise BadRequest("Invalid JSON") from None
        if not isinstance(request, dict) or not request:
            raise BadRequest("Invalid JSON")
        return request

    def run_pack(self, raw: bytes) -> Tuple[int, Any]:
        """
        Run a pack's runner for a {"slug": ..., "payload": ...} request.

        The payload is re-encoded as JSON and becomes the runner's stdin;
        the pack directory is its working directory. A missing or null
        payload is sent as an empty list.
        """
        try:
            request = self._read_pack_request(raw)
            script = resolve_pack(self.config.packs_dir, request.get("slug"))
        except BridgeError as e:
            logger.warning(f"Pack request rejected ({e.status}): {e.message}")
            return e.status, e.to_dict()

        payload = request.get("payload")
        if payload is None:
            payload = []
        body = json.dumps(payload).encode("utf-8")
        return self.run(body, script=script, cwd=os.path.dirname(script))

    def install_pack(self, raw: bytes) -> Tuple[int, Any]:
        """
        Install a pack's requirements.txt with pip for a {"slug": ...} request.

        Pip runs under the same pump as a runner, with no input and the
        install timeout. Every answer carries "ok"; a pip failure or
        timeout is reported in the body with status 200.
        """
        try:
            request = self._read_pack_request(raw)
            requirements = resolve_requirements(self.config.packs_dir, request.get("slug"))
            interpreter = resolve_interpreter(
                self.config.python_candidates,
                probe_timeout=self.config.probe_timeout,
            )
        except BridgeError as e:
            logger.warning(f"Install request rejected ({e.status}): {e.message}")
            return e.status, {"ok": False, **e.to_dict()}

        pack_dir = os.path.dirname(requirements)
        runner = RunnerProcess(
            interpreter,
            None,
            cwd=pack_dir,
            timeout=self.config.install_timeout,
            poll_interval=self.config.poll_interval,
            max_output_bytes=self.config.max_output_bytes,
            args=[*PIP_INSTALL, requirements],
        )
        try:
            with runner:
                result = runner.communicate(b"")
        except SpawnFailed as e:
            logger.error(f"Failed to start pip for {pack_dir}: {e.reason}")
            return e.status, {"ok": False, "error": "Failed to start pip"}
        except RunnerTimeout as e:
            logger.warning(f"pip timed out after {e.timeout}s for {pack_dir}")
            return 200, {"ok": False, "error": "pip timeout", "log": e.stdout, "stderr": e.stderr}
        except BridgeError as e:
            logger.warning(f"pip install failed for {pack_dir}: {e.message}")
            return e.status, {"ok": False, **e.to_dict()}

        if result.exit_code != 0:
            logger.warning(f"pip exited with {result.exit_code} for {pack_dir}")
            return 200, {
                "ok": False,
                "error": f"pip exited with {result.exit_code}",
                "log": result.stdout_text,
                "stderr": result.stderr_text,
                "code": result.exit_code,
            }

        logger.info(f"Installed requirements for {pack_dir} in {result.elapsed:.1f}s")
        return 200, {"ok": True, "log": result.stdout_text, "code": result.exit_code}

    def packs(self) -> Tuple[int, Any]:
        """List the available packs."""
        if not self.config.packs_dir:
            return 404, {"error": "Packs are not enabled"}
        return 200, {"packs": list_packs(self.config.packs_dir)}
