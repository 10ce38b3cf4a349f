#!/usr/bin/env python3
"""Dockerfile backend: staged build context plus a Jinja2-rendered Dockerfile.

Each layer is staged as ``<output_dir>/layers/<digest hex>/`` holding the
layer's files at their tree-relative paths. finalize() renders a Dockerfile
with one COPY per layer in plan order, so an image builder reuses its own
layer cache exactly where the layer digests are unchanged.

Example:
    >>> backend = DockerfileBackend(output_dir="build/context", tag="acme/app:1")
    >>> refs = [backend.materialize_layer(plan, layer) for layer in plan.layers]
    >>> backend.finalize(plan, refs)
    'acme/app:1'
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import jinja2

from layerplanner.backends.base import BackendAdapter, BackendError, register_backend
from layerplanner.core.constants import LAYERPLANNER_VERSION, Capability
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import Layer
from layerplanner.plan.emitter import BuildPlan

DOCKERFILE_NAME = "Dockerfile"
LAYERS_DIR = "layers"
DEFAULT_WORKDIR = "/app"
DEFAULT_REPOSITORY = "layerplanner/app"

DOCKERFILE_TEMPLATE = """\
# Generated by layerplanner {{ version }}. Do not edit.
FROM {{ base_image }}
WORKDIR {{ workdir }}
{% for layer in layers %}

# layer {{ layer.order_index }}: {{ layer.volatility }}, {{ layer.files }} files
# {{ layer.digest }}
COPY {{ layer.source }}/ {{ workdir }}/
{% endfor %}

LABEL io.layerplanner.plan-digest="{{ plan_digest }}"
ENTRYPOINT {{ entrypoint }}
"""


@register_backend
class DockerfileBackend(BackendAdapter):
    """Stages layers into a build context and renders a Dockerfile."""

    name = "dockerfile"
    capabilities = frozenset({Capability.MATERIALIZE_LAYERS, Capability.RENDER_BUILDFILE})

    def __init__(
        self,
        output_dir: str = "build/layerplanner",
        tag: Optional[str] = None,
        workdir: str = DEFAULT_WORKDIR,
        **kwargs,
    ):
        """Initialize Dockerfile backend.

        Args:
            output_dir: Build context directory
            tag: Image reference to return (derived from the plan digest if None)
            workdir: Directory in the image the layers are copied to
            **kwargs: Options meant for other backends (ignored)
        """
        self.output_dir = Path(output_dir).expanduser()
        self.layers_dir = self.output_dir / LAYERS_DIR
        self.tag = tag
        self.workdir = workdir
        self._env = jinja2.Environment(
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=jinja2.StrictUndefined,
        )
        self._logger = get_logger()

    def layer_dir(self, plan: BuildPlan, layer: Layer) -> Path:
        """Staging directory for a layer, named by its artifact key."""
        return self.layers_dir / plan.artifact_key(layer).split(":", 1)[-1]

    def materialize_layer(self, plan: BuildPlan, layer: Layer) -> str:
        target = self.layer_dir(plan, layer)
        staging = target.with_name(f"{target.name}.{os.getpid()}.tmp")

        try:
            if staging.exists():
                shutil.rmtree(staging)
            for entry in layer.entries:
                content = self.read_entry(plan, entry)
                path = staging / entry.path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
                path.chmod(plan.file_mode(entry.path))

            if target.exists():
                shutil.rmtree(target)
            os.replace(staging, target)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise BackendError(f"Failed to stage {target}: {e}", self.name)
        except BackendError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        self._logger.debug("Layer staged", order_index=layer.order_index, path=str(target))
        return str(target)

    def has_artifact(self, artifact_ref: str) -> bool:
        return Path(artifact_ref).is_dir()

    def render(self, plan: BuildPlan, artifact_refs: List[str]) -> str:
        """Render the Dockerfile text for a plan.

        Raises:
            BackendError: If the template cannot be rendered
        """
        context: Dict[str, Any] = {
            "version": LAYERPLANNER_VERSION,
            "base_image": plan.base_image,
            "workdir": self.workdir,
            "plan_digest": plan.plan_digest,
            "entrypoint": json.dumps(
                ["/bin/sh", "-c", plan.entrypoint.shell_form(), "layerplanner"]
            ),
            "layers": [
                {
                    "order_index": layer.order_index,
                    "volatility": layer.volatility.value,
                    "files": len(layer),
                    "digest": layer.content_digest,
                    "source": self._context_path(Path(ref)),
                }
                for layer, ref in zip(plan.layers, artifact_refs)
            ],
        }

        try:
            return self._env.from_string(DOCKERFILE_TEMPLATE).render(**context)
        except jinja2.TemplateError as e:
            raise BackendError(f"Template error: {e}", self.name)

    def finalize(self, plan: BuildPlan, artifact_refs: List[str]) -> str:
        """Write the Dockerfile and return the image tag."""
        if len(artifact_refs) != len(plan.layers):
            raise BackendError(
                f"Expected {len(plan.layers)} artifacts, got {len(artifact_refs)}", self.name
            )

        try:
            refs = [
                self._import_artifact(plan, layer, Path(ref))
                for layer, ref in zip(plan.layers, artifact_refs)
            ]
            self.output_dir.mkdir(parents=True, exist_ok=True)
            dockerfile = self.output_dir / DOCKERFILE_NAME
            dockerfile.write_text(self.render(plan, refs), encoding="utf-8")
        except OSError as e:
            raise BackendError(f"Failed to write build context: {e}", self.name)

        tag = self.tag or f"{DEFAULT_REPOSITORY}:{plan.plan_digest.split(':', 1)[-1][:12]}"
        self._logger.info("Dockerfile written", path=str(dockerfile), image=tag)
        return tag

    def _import_artifact(self, plan: BuildPlan, layer: Layer, staged: Path) -> str:
        """Copy a layer staged outside the build context into it."""
        target = self.layer_dir(plan, layer)
        if staged.resolve() != target.resolve():
            if target.exists():
                shutil.rmtree(target)
            shutil.copytree(staged, target)
        return str(target)

    def _context_path(self, staged: Path) -> str:
        return staged.resolve().relative_to(self.output_dir.resolve()).as_posix()

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats.update(output_dir=str(self.output_dir), workdir=self.workdir)
        return stats
