"""Shared pytest fixtures for LayerPlanner tests."""
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, Generator

import pytest
import yaml

from layerplanner.infrastructure.config_manager import set_global_config
from layerplanner.infrastructure.logger import set_global_logger

FIXED_JARS = [
    "BOOT-INF/lib/guava-33.0.0-jre.jar",
    "BOOT-INF/lib/jackson-databind-2.17.0.jar",
    "BOOT-INF/lib/spring-core-6.1.2.jar",
]
SNAPSHOT_JAR = "BOOT-INF/lib/shared-model-1.4-SNAPSHOT.jar"
START_SCRIPT = "bin/app"
CLASS_COUNT = 50


def write_file(root: Path, relative: str, content: bytes) -> Path:
    """Create a file (and its parents) under root."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def class_path(i: int) -> str:
    return f"BOOT-INF/classes/com/acme/Service{i:02d}.class"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def build_tree(temp_dir: Path) -> Path:
    """Spring Boot style build output: 3 fixed jars, 1 snapshot jar, 50 classes, a start script."""
    root = temp_dir / "app"
    root.mkdir()

    for i, jar in enumerate(FIXED_JARS):
        write_file(root, jar, bytes([i + 1]) * (4096 + i))
    write_file(root, SNAPSHOT_JAR, b"snapshot-model" * 64)

    for i in range(CLASS_COUNT):
        write_file(root, class_path(i), b"\xca\xfe\xba\xbe" + f"class {i}".encode() * 8)

    write_file(root, START_SCRIPT, b"#!/bin/sh\nexec java -cp 'BOOT-INF/classes:BOOT-INF/lib/*' com.acme.App \"$@\"\n")

    return root


@pytest.fixture
def resource_tree(build_tree: Path) -> Path:
    """build_tree plus static resources."""
    write_file(build_tree, "BOOT-INF/classes/static/index.html", b"<html></html>")
    write_file(build_tree, "BOOT-INF/classes/templates/home.html", b"<p>home</p>")
    return build_tree


@pytest.fixture
def sample_config(temp_dir: Path) -> Dict[str, Any]:
    """Provide a sample LayerPlanner configuration."""
    return {
        "layerplanner": {
            "base_image": "eclipse-temurin:21-jre",
            "policy": {
                "max_layers": 4,
                "max_layer_bytes": None,
            },
            "classification": {
                "default_class": "APPLICATION_CODE",
                "rules": [
                    {
                        "name": "native-libs",
                        "class": "FIXED_DEPENDENCY",
                        "patterns": ["native/**/*.so"],
                    }
                ],
            },
            "entrypoint": {
                "executable": START_SCRIPT,
                "arguments": ["{@}"],
            },
            "cache": {
                "enabled": True,
                "path": str(temp_dir / "cache" / "records.jsonl"),
            },
            "backend": {
                "name": "archive",
                "output_dir": str(temp_dir / "out"),
            },
            "logging": {
                "level": "DEBUG",
                "file": None,
            },
        }
    }


@pytest.fixture
def config_file(temp_dir: Path, sample_config: Dict[str, Any]) -> Path:
    """Create a configuration file."""
    config_path = temp_dir / "layerplanner.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config, f)
    return config_path


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep LAYERPLANNER_* variables and the host's system config out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("LAYERPLANNER_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr("layerplanner.cli.SYSTEM_CONFIG_PATH", "/nonexistent/layerplanner/config.yaml")


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global logger and config between tests."""
    yield
    set_global_logger(None)
    set_global_config(None)


@pytest.fixture
def make_file():
    """Factory creating files under a root: make_file(root, "a/b.jar", b"...")."""
    return write_file


@pytest.fixture
def tree_layout() -> SimpleNamespace:
    """Paths written by build_tree."""
    return SimpleNamespace(
        fixed_jars=list(FIXED_JARS),
        snapshot_jar=SNAPSHOT_JAR,
        start_script=START_SCRIPT,
        class_count=CLASS_COUNT,
        class_path=class_path,
    )


@pytest.fixture
def app_entrypoint():
    """Entrypoint running the start script with all runtime arguments."""
    from layerplanner.plan.entrypoint import EntrypointSpec

    return EntrypointSpec(START_SCRIPT, arguments=("{@}",))


@pytest.fixture
def build_plan(build_tree: Path, app_entrypoint):
    """Plan of build_tree with the default policy."""
    from layerplanner.planner import LayerPlanner

    return LayerPlanner().plan(build_tree, "eclipse-temurin:21-jre", app_entrypoint)
