"""
Deployment configuration for the runner bridge.

All settings are fixed at startup and come from the environment, none of
them are part of the request.
"""

import math
import os
import sys
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

BRIDGE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_RUNNER = "runner.py"


def default_candidates() -> List[str]:
    """Interpreter invocations to try, in order, for this platform."""
    if sys.platform.startswith("win"):
        return ["py -3", "python", "python3"]
    return ["python3", "python"]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = float(raw)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive finite number, got {raw!r}")
    return value


@dataclass
class BridgeConfig:
    """Settings shared by every request the bridge serves."""
    python_candidates: List[str] = field(default_factory=default_candidates)
    runner_path: str = os.path.join(BRIDGE_DIR, DEFAULT_RUNNER)
    working_dir: str = BRIDGE_DIR
    timeout: float = 60.0
    install_timeout: float = 180.0
    probe_timeout: float = 5.0
    poll_interval: float = 0.02
    max_output_bytes: int = 16 * 1024 * 1024  # 0 disables the cap
    packs_dir: Optional[str] = None
    api_key: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read from, defaults to os.environ

        Returns:
            BridgeConfig with every unset variable at its default

        Raises:
            ValueError: If a numeric setting is malformed or out of range
        """
        env = os.environ if env is None else env
        config = cls()

        candidates = env.get("BRIDGE_PYTHON_CANDIDATES", "")
        if candidates.strip():
            config.python_candidates = _split_list(candidates)

        runner_path = env.get("BRIDGE_RUNNER_PATH", "").strip()
        if runner_path:
            if not os.path.isabs(runner_path):
                runner_path = os.path.join(BRIDGE_DIR, runner_path)
            config.runner_path = os.path.normpath(runner_path)

        config.timeout = _positive_float(env, "BRIDGE_TIMEOUT", config.timeout)
        config.install_timeout = _positive_float(env, "BRIDGE_INSTALL_TIMEOUT", config.install_timeout)
        config.probe_timeout = _positive_float(env, "BRIDGE_PROBE_TIMEOUT", config.probe_timeout)
        config.poll_interval = _positive_float(env, "BRIDGE_POLL_INTERVAL", config.poll_interval)

        max_output = env.get("BRIDGE_MAX_OUTPUT_BYTES", "").strip()
        if max_output:
            config.max_output_bytes = int(max_output)
            if config.max_output_bytes < 0:
                raise ValueError(f"BRIDGE_MAX_OUTPUT_BYTES must not be negative, got {max_output!r}")

        packs_dir = env.get("BRIDGE_PACKS_DIR", "").strip()
        config.packs_dir = os.path.realpath(packs_dir) if packs_dir else None
        config.api_key = env.get("BRIDGE_API_KEY") or None
        config.host = env.get("BRIDGE_HOST", config.host)
        config.port = int(env.get("BRIDGE_PORT", config.port))
        return config
