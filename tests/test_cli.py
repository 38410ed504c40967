from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

from key_directory.version import __version__

pytest.importorskip("typer")


def _run_cli(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    command = [sys.executable, "-m", "key_directory", *args]
    env = os.environ.copy()
    module_root = Path(__file__).resolve().parents[1] / "src"
    env["PYTHONPATH"] = (
        f"{module_root}{os.pathsep}{env['PYTHONPATH']}"
        if env.get("PYTHONPATH")
        else str(module_root)
    )
    return subprocess.run(
        command,
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
        cwd=cwd,
    )


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "storage": {"backend": "filesystem", "root": str(tmp_path / "store")},
                "rotation": {"journal_path": str(tmp_path / "journal.jsonl")},
                "logging": {"level": "error"},
            }
        ),
        encoding="utf-8",
    )
    return path


def keydir(config_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return _run_cli("--config", str(config_path), *args)


def test_version(tmp_path: Path):
    result = _run_cli("version", cwd=tmp_path)
    assert result.returncode == 0
    assert result.stdout.strip() == __version__


def test_missing_config_exits_with_usage_error(tmp_path: Path):
    result = _run_cli("--config", str(tmp_path / "nope.yaml"), "list-keys")
    assert result.returncode == 2
    assert "not found" in result.stderr


def test_empty_store(config_path: Path):
    assert "No keys found" in keydir(config_path, "list-keys").stdout
    assert "No keys to clear" in keydir(config_path, "sweep").stdout
    result = keydir(config_path, "directory", "privacypass")
    assert result.returncode == 1
    assert "not initialised" in result.stderr


def test_rotate_list_and_render(config_path: Path):
    result = keydir(config_path, "rotate", "--purpose", "encryption")
    assert result.returncode == 0, result.stderr
    purpose, identifier, _public = result.stdout.split()
    assert purpose == "encryption"

    listing = keydir(config_path, "list-keys")
    assert listing.stdout.split()[:2] == ["encryption", identifier]

    jwks = keydir(config_path, "directory", "jwks")
    assert jwks.returncode == 0, jwks.stderr
    assert json.loads(jwks.stdout)["keys"][0]["kid"] == identifier


def test_workflow_prints_run_summary(config_path: Path):
    result = keydir(config_path, "workflow", "--run-id", "cli-run")
    assert result.returncode == 0, result.stderr
    summary = json.loads(result.stdout)
    assert summary["run_id"] == "cli-run"
    assert set(summary["minted"]) == {"encryption", "signature"}

    resumed = json.loads(keydir(config_path, "workflow", "--run-id", "cli-run").stdout)
    assert resumed["skipped"] == ["mint-encryption-key", "mint-signature-key", "sweep"]
    assert resumed["minted"] == {}

    directory = json.loads(keydir(config_path, "directory").stdout)
    assert len(directory["token-keys"]) == 1


def test_schedule_requires_positive_interval(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("storage:\n  backend: memory\nrotation:\n  interval_seconds: 0\n", encoding="utf-8")
    assert _run_cli("--config", str(path), "schedule").returncode == 2


def test_init_config_writes_defaults(tmp_path: Path):
    target = tmp_path / "out" / "config.yaml"
    result = _run_cli("init-config", str(target), cwd=tmp_path)
    assert result.returncode == 0, result.stderr
    assert "Configuration written" in result.stdout
    assert yaml.safe_load(target.read_text(encoding="utf-8"))["lifecycle"]["minimum_freshest_keys"] == 2
