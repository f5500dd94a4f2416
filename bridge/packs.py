"""
Runner packs - a directory of independently runnable runner scripts.

Layout:
    <packs_dir>/<slug>/runner.py          required to run the pack
    <packs_dir>/<slug>/manifest.json      required to be listed
    <packs_dir>/<slug>/requirements.txt   optional, installed by POST /packs/install
"""

import hashlib
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from bridge.config import DEFAULT_RUNNER
from bridge.errors import BadRequest, BridgeError, RunnerMissing

logger = logging.getLogger(__name__)

SLUG_STRIP = re.compile(r"[^a-zA-Z0-9._-]")
MANIFEST = "manifest.json"
REQUIREMENTS = "requirements.txt"


def sanitize_slug(slug: Any) -> str:
    """Drop every character outside [a-zA-Z0-9._-]. Non-strings become ''."""
    if not isinstance(slug, str):
        return ""
    return SLUG_STRIP.sub("", slug)


def _is_inside(path: str, base: str) -> bool:
    return path == base or path.startswith(base + os.sep)


def pack_directory(packs_dir: str, slug: Any) -> str:
    """
    Resolve a caller-supplied slug to a pack directory.

    Raises:
        BadRequest: Empty or non-string slug, or one that escapes packs_dir
    """
    clean = sanitize_slug(slug)
    if clean == "":
        raise BadRequest("Missing slug")

    base = os.path.realpath(packs_dir)
    pack_dir = os.path.realpath(os.path.join(base, clean))
    if pack_dir == base or not _is_inside(pack_dir, base) or not os.path.isdir(pack_dir):
        raise BadRequest("Invalid pack")
    return pack_dir


def resolve_pack(packs_dir: str, slug: Any) -> str:
    """
    Locate the runner script of a pack.

    Args:
        packs_dir: Directory holding the packs
        slug: Pack name as sent by the caller

    Returns:
        Absolute path of the pack's runner.py

    Raises:
        BadRequest: Empty slug or a slug that escapes packs_dir
        RunnerMissing: The pack exists but has no runner (404)
    """
    pack_dir = pack_directory(packs_dir, slug)
    runner = os.path.join(pack_dir, DEFAULT_RUNNER)
    if not os.path.isfile(runner):
        raise RunnerMissing(f"{DEFAULT_RUNNER} not found for pack '{os.path.basename(pack_dir)}'", status=404)
    return runner


def resolve_requirements(packs_dir: str, slug: Any) -> str:
    """
    Locate the requirements.txt of a pack.

    Raises:
        BadRequest: Empty slug or a slug that escapes packs_dir
        BridgeError: The pack has no requirements.txt (404)
    """
    requirements = os.path.join(pack_directory(packs_dir, slug), REQUIREMENTS)
    if not os.path.isfile(requirements):
        raise BridgeError(f"No {REQUIREMENTS}", status=404)
    return requirements


def _read_manifest(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _requirements_hash(path: str) -> Optional[str]:
    try:
        with open(path, "rb") as f:
            return hashlib.sha1(f.read()).hexdigest()
    except OSError:
        return None


def _normalize_node(node: Dict[str, Any], name: str, slug: str, runner: str) -> Dict[str, Any]:
    node_type = node.get("type") or ""
    return {
        **node,
        "type": node_type,
        "title": node.get("title") or node_type,
        "pack": name,
        "slug": slug,
        "runner": runner,
        "inspector": node.get("inspector") or [],
        "inputs": node.get("inputs") or [],
        "outputs": node.get("outputs") or [],
    }


def list_packs(packs_dir: str) -> List[Dict[str, Any]]:
    """
    Describe every pack that ships a readable manifest.

    Returns:
        List of pack dicts sorted by slug
    """
    base = os.path.realpath(packs_dir)
    if not os.path.isdir(base):
        logger.warning(f"Packs directory does not exist: {base}")
        return []

    packs = []
    for slug in sorted(os.listdir(base)):
        pack_dir = os.path.realpath(os.path.join(base, slug))
        if not _is_inside(pack_dir, base) or not os.path.isdir(pack_dir):
            continue

        manifest = _read_manifest(os.path.join(pack_dir, MANIFEST))
        if manifest is None:
            continue

        name = manifest.get("name") or slug
        runner = manifest.get("runner") or DEFAULT_RUNNER
        nodes = manifest.get("nodes")
        if not isinstance(nodes, list):
            nodes = []

        requirements = os.path.join(pack_dir, REQUIREMENTS)
        has_requirements = os.path.isfile(requirements)

        packs.append({
            "slug": slug,
            "name": name,
            "version": manifest.get("version") or "0.0.0",
            "runner": DEFAULT_RUNNER if os.path.isfile(os.path.join(pack_dir, DEFAULT_RUNNER)) else None,
            "has_requirements": has_requirements,
            "requirements_hash": _requirements_hash(requirements) if has_requirements else None,
            "nodes": [
                _normalize_node(node, name, slug, runner)
                for node in nodes if isinstance(node, dict)
            ],
        })
    return packs
