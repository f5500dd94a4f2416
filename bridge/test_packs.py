"""
Unit tests for pack discovery and lookup
"""

import hashlib
import json
import os

import pytest

from bridge.errors import BadRequest, BridgeError, RunnerMissing
from bridge.packs import list_packs, resolve_pack, resolve_requirements, sanitize_slug


@pytest.fixture
def packs_dir(tmp_path):
    """Create a packs directory with a mix of complete and partial packs."""
    base = tmp_path / "packs"

    ollama = base / "gridflow-ollama"
    ollama.mkdir(parents=True)
    (ollama / "runner.py").write_text("print('{}')\n", encoding="utf-8")
    (ollama / "requirements.txt").write_text("requests\n", encoding="utf-8")
    (ollama / "manifest.json").write_text(json.dumps({
        "name": "Ollama",
        "version": "1.2.0",
        "nodes": [
            {"type": "ollama.model", "title": "Ollama Model", "inputs": ["prompt"]},
            {"type": "ollama.embed"},
            "not-a-node",
        ],
    }), encoding="utf-8")

    bare = base / "bare"
    bare.mkdir()
    (bare / "manifest.json").write_text(json.dumps({"nodes": "broken"}), encoding="utf-8")

    broken = base / "broken"
    broken.mkdir()
    (broken / "manifest.json").write_text("{not json", encoding="utf-8")

    unlisted = base / "unlisted"
    unlisted.mkdir()
    (unlisted / "runner.py").write_text("print('{}')\n", encoding="utf-8")

    (base / "stray-file.txt").write_text("ignored", encoding="utf-8")
    return base


class TestSanitizeSlug:

    @pytest.mark.parametrize("raw, expected", [
        ("gridflow-ollama", "gridflow-ollama"),
        ("../etc/passwd", "..etcpasswd"),
        ("a b\tc", "abc"),
        ("v1.2_beta", "v1.2_beta"),
        (None, ""),
        (42, ""),
        (["gridflow-ollama"], ""),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_slug(raw) == expected


class TestResolvePack:
    """Test suite for resolve_pack()."""

    def test_resolves_runner(self, packs_dir):
        runner = resolve_pack(str(packs_dir), "gridflow-ollama")

        assert runner == os.path.join(os.path.realpath(str(packs_dir)), "gridflow-ollama", "runner.py")

    def test_empty_slug(self, packs_dir):
        with pytest.raises(BadRequest, match="Missing slug"):
            resolve_pack(str(packs_dir), "")

    @pytest.mark.parametrize("slug", [42, {"name": "gridflow-ollama"}, ["gridflow-ollama"]])
    def test_non_string_slug(self, packs_dir, slug):
        with pytest.raises(BadRequest, match="Missing slug"):
            resolve_pack(str(packs_dir), slug)

    def test_parent_directory(self, packs_dir):
        """Test a slug cannot climb out of the packs directory."""
        with pytest.raises(BadRequest, match="Invalid pack"):
            resolve_pack(str(packs_dir), "..")

    def test_packs_dir_itself(self, packs_dir):
        with pytest.raises(BadRequest, match="Invalid pack"):
            resolve_pack(str(packs_dir), ".")

    def test_file_is_not_a_pack(self, packs_dir):
        with pytest.raises(BadRequest, match="Invalid pack"):
            resolve_pack(str(packs_dir), "stray-file.txt")

    def test_symlink_escape(self, packs_dir, tmp_path):
        """Test a symlink pointing outside the packs directory is rejected."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "runner.py").write_text("print('{}')\n", encoding="utf-8")
        os.symlink(str(outside), str(packs_dir / "escape"))

        with pytest.raises(BadRequest, match="Invalid pack"):
            resolve_pack(str(packs_dir), "escape")

    def test_missing_runner(self, packs_dir):
        with pytest.raises(RunnerMissing) as exc_info:
            resolve_pack(str(packs_dir), "bare")

        assert exc_info.value.status == 404
        assert exc_info.value.to_dict() == {"error": "runner.py not found for pack 'bare'"}



class TestResolveRequirements:

    def test_resolves_requirements(self, packs_dir):
        requirements = resolve_requirements(str(packs_dir), "gridflow-ollama")

        assert requirements == os.path.join(os.path.realpath(str(packs_dir)), "gridflow-ollama", "requirements.txt")

    def test_missing_requirements(self, packs_dir):
        with pytest.raises(BridgeError) as exc_info:
            resolve_requirements(str(packs_dir), "unlisted")

        assert exc_info.value.status == 404
        assert exc_info.value.to_dict() == {"error": "No requirements.txt"}

    def test_escape(self, packs_dir):
        with pytest.raises(BadRequest, match="Invalid pack"):
            resolve_requirements(str(packs_dir), "..")

class TestListPacks:
    """Test suite for list_packs()."""

    def test_lists_packs_with_manifest(self, packs_dir):
        packs = list_packs(str(packs_dir))

        assert [p["slug"] for p in packs] == ["bare", "gridflow-ollama"]

    def test_pack_details(self, packs_dir):
        pack = {p["slug"]: p for p in list_packs(str(packs_dir))}["gridflow-ollama"]

        assert pack["name"] == "Ollama"
        assert pack["version"] == "1.2.0"
        assert pack["runner"] == "runner.py"
        assert pack["has_requirements"] is True
        assert pack["requirements_hash"] == hashlib.sha1(b"requests\n").hexdigest()
        assert len(pack["nodes"]) == 2

        model, embed = pack["nodes"]
        assert model["title"] == "Ollama Model"
        assert model["inputs"] == ["prompt"]
        assert model["pack"] == "Ollama"
        assert model["slug"] == "gridflow-ollama"
        assert embed["title"] == "ollama.embed"
        assert embed["inspector"] == []
        assert embed["outputs"] == []
        assert embed["runner"] == "runner.py"

    def test_defaults(self, packs_dir):
        pack = {p["slug"]: p for p in list_packs(str(packs_dir))}["bare"]

        assert pack["name"] == "bare"
        assert pack["version"] == "0.0.0"
        assert pack["runner"] is None
        assert pack["has_requirements"] is False
        assert pack["requirements_hash"] is None
        assert pack["nodes"] == []

    def test_missing_directory(self, tmp_path):
        assert list_packs(str(tmp_path / "nope")) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
