#!/usr/bin/env python3
"""Archive backend: reproducible tar layers plus a YAML manifest.

Each layer becomes ``<output_dir>/layers/<digest hex>.tar``. Archives are
byte-identical for identical layers: members are sorted by name, mtime is 0,
owner is root and modes are fixed (0755 for directories and the entrypoint
executable, 0644 for everything else).

Example:
    >>> backend = ArchiveBackend(output_dir="build/layerplanner")
    >>> backend.finalize(plan, [backend.materialize_layer(plan, l) for l in plan.layers])
    'sha256:...'
"""

import hashlib
import io
import os
import tarfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

import yaml

from layerplanner.backends.base import BackendAdapter, BackendError, register_backend
from layerplanner.core.constants import LAYERPLANNER_PLAN_VERSION, Capability
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import Layer, hash_file
from layerplanner.plan.emitter import BuildPlan

MANIFEST_NAME = "manifest.yaml"
LAYERS_DIR = "layers"


@register_backend
class ArchiveBackend(BackendAdapter):
    """Writes layers as tar archives into an output directory."""

    name = "archive"
    capabilities = frozenset(
        {
            Capability.MATERIALIZE_LAYERS,
            Capability.REPRODUCIBLE_ARTIFACTS,
            Capability.IMAGE_MANIFEST,
        }
    )

    def __init__(self, output_dir: str = "build/layerplanner", **kwargs):
        """Initialize archive backend.

        Args:
            output_dir: Directory receiving layer archives and the manifest
            **kwargs: Options meant for other backends (ignored)
        """
        self.output_dir = Path(output_dir).expanduser()
        self.layers_dir = self.output_dir / LAYERS_DIR
        self._logger = get_logger()

    def layer_path(self, plan: BuildPlan, layer: Layer) -> Path:
        """Archive path for a layer, named by its artifact key."""
        return self.layers_dir / f"{_digest_hex(plan.artifact_key(layer))}.tar"

    def materialize_layer(self, plan: BuildPlan, layer: Layer) -> str:
        target = self.layer_path(plan, layer)
        tmp = target.with_name(f"{target.name}.{os.getpid()}.tmp")

        try:
            self.layers_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(tmp, "w", format=tarfile.PAX_FORMAT) as tar:
                for info, content in self._members(plan, layer):
                    tar.addfile(info, io.BytesIO(content) if content is not None else None)
            os.replace(tmp, target)
        except (OSError, tarfile.TarError) as e:
            _discard(tmp)
            raise BackendError(f"Failed to write {target}: {e}", self.name)
        except BackendError:
            _discard(tmp)
            raise

        self._logger.debug(
            "Layer archive written", order_index=layer.order_index, path=str(target)
        )
        return str(target)

    def _members(self, plan: BuildPlan, layer: Layer):
        """Yield (TarInfo, content) in sorted member order."""
        files = {entry.path: entry for entry in layer.entries}
        for name in sorted(set(files) | _parent_directories(files)):
            entry = files.get(name)
            if entry is None:
                info = _tar_info(name, tarfile.DIRTYPE, 0o755)
                yield info, None
                continue

            content = self.read_entry(plan, entry)
            info = _tar_info(name, tarfile.REGTYPE, plan.file_mode(name))
            info.size = len(content)
            yield info, content

    def has_artifact(self, artifact_ref: str) -> bool:
        return Path(artifact_ref).is_file()

    def finalize(self, plan: BuildPlan, artifact_refs: List[str]) -> str:
        """Write the manifest and return its digest as the image reference."""
        if len(artifact_refs) != len(plan.layers):
            raise BackendError(
                f"Expected {len(plan.layers)} artifacts, got {len(artifact_refs)}", self.name
            )

        try:
            layers = [
                self._manifest_layer(layer, Path(ref))
                for layer, ref in zip(plan.layers, artifact_refs)
            ]
        except OSError as e:
            raise BackendError(f"Cannot read layer archive: {e}", self.name)

        manifest: Dict[str, Any] = {
            "version": LAYERPLANNER_PLAN_VERSION,
            "base_image": plan.base_image,
            "entrypoint": {
                "argv": list(plan.entrypoint.template),
                "shell": plan.entrypoint.shell_form(),
                "options_env": plan.entrypoint.options_env,
            },
            "plan_digest": plan.plan_digest,
            "layers": layers,
        }
        payload = yaml.safe_dump(manifest, sort_keys=True, default_flow_style=False).encode("utf-8")

        manifest_path = self.output_dir / MANIFEST_NAME
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            manifest_path.write_bytes(payload)
        except OSError as e:
            raise BackendError(f"Failed to write {manifest_path}: {e}", self.name)

        image_ref = f"sha256:{hashlib.sha256(payload).hexdigest()}"
        self._logger.info("Manifest written", path=str(manifest_path), image=image_ref)
        return image_ref

    def _manifest_layer(self, layer: Layer, archive: Path) -> Dict[str, Any]:
        return {
            "order_index": layer.order_index,
            "volatility": layer.volatility.value,
            "digest": layer.content_digest,
            "archive": self._relative_ref(archive),
            "archive_digest": f"sha256:{hash_file(archive)}",
            "files": len(layer),
        }

    def _relative_ref(self, archive: Path) -> str:
        # archives reused from another output directory stay absolute
        try:
            return archive.resolve().relative_to(self.output_dir.resolve()).as_posix()
        except ValueError:
            return str(archive)

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["output_dir"] = str(self.output_dir)
        return stats


def _digest_hex(digest: str) -> str:
    return digest.split(":", 1)[-1]


def _parent_directories(paths: Iterable[str]) -> Set[str]:
    directories: Set[str] = set()
    for path in paths:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            directories.add("/".join(parts[:i]))
    return directories


def _tar_info(name: str, member_type: bytes, mode: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = member_type
    info.mode = mode
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _discard(path: Path) -> None:
    # exists() is False when a parent is not a directory
    if path.exists():
        path.unlink()
