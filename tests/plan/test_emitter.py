"""Tests for the build plan emitter."""
import dataclasses
import hashlib
import io
import json

import pytest
import yaml

from layerplanner.core.constants import VolatilityClass
from layerplanner.core.errors import InvalidPlanError
from layerplanner.layers.base import FileEntry
from layerplanner.layers.digest import CacheKeyDeriver
from layerplanner.layers.partitioner import LayerPartitioner
from layerplanner.plan.emitter import BuildPlan, BuildPlanEmitter
from layerplanner.plan.entrypoint import EntrypointSpec

FIXED = VolatilityClass.FIXED_DEPENDENCY
RESOURCE = VolatilityClass.RESOURCE
APP = VolatilityClass.APPLICATION_CODE

BASE = "eclipse-temurin:21-jre"


def entry(path, volatility, size=10):
    return FileEntry(path, size, hashlib.sha256(path.encode()).hexdigest(), volatility)


@pytest.fixture
def layers():
    return LayerPartitioner().partition(
        [
            entry("lib/guava-33.0.0-jre.jar", FIXED, 100),
            entry("static/index.html", RESOURCE, 20),
            entry("bin/app", APP, 5),
            entry("com/acme/App.class", APP, 30),
        ]
    )


@pytest.fixture
def entrypoint():
    return EntrypointSpec("bin/app", arguments=("{@}",))


@pytest.fixture
def emitter():
    return BuildPlanEmitter()


@pytest.fixture
def plan(emitter, layers, entrypoint):
    return emitter.emit(layers, BASE, entrypoint, source_root="/build/app")


class TestEmit:
    """Successful emission."""

    def test_plan(self, plan, layers, entrypoint):
        assert plan.layers == tuple(layers)
        assert plan.base_image == BASE
        assert plan.entrypoint == entrypoint
        assert plan.source_root == "/build/app"
        assert plan.plan_digest == CacheKeyDeriver().plan_digest(layers)
        assert len(plan) == 3

    def test_plan_is_immutable(self, plan):
        with pytest.raises(dataclasses.FrozenInstanceError):
            plan.base_image = "alpine"

    def test_accessors(self, plan):
        assert plan.total_size == 155
        assert plan.layer(1).volatility == RESOURCE
        layer, found = plan.find_entry("bin/app")
        assert layer.order_index == 2
        assert found.size == 5
        assert plan.find_entry("missing") is None
        with pytest.raises(KeyError):
            plan.layer(7)

    def test_same_input_same_digest(self, emitter, layers, entrypoint):
        first = emitter.emit(layers, BASE, entrypoint, "/a")
        second = emitter.emit(list(layers), BASE, entrypoint, "/b")
        assert first.plan_digest == second.plan_digest
        assert first.to_dict() == second.to_dict()


class TestEmitValidation:
    """Rejected plans."""

    @pytest.mark.parametrize("base", [None, "", "   "])
    def test_missing_base_image(self, emitter, layers, entrypoint, base):
        with pytest.raises(InvalidPlanError, match="Base image reference cannot be empty"):
            emitter.emit(layers, base, entrypoint)

    def test_malformed_base_image(self, emitter, layers, entrypoint):
        with pytest.raises(InvalidPlanError, match="Invalid base image reference"):
            emitter.emit(layers, "Not A Reference", entrypoint)

    def test_no_layers(self, emitter, entrypoint):
        with pytest.raises(InvalidPlanError, match="no layers"):
            emitter.emit([], BASE, entrypoint)

    def test_misordered(self, emitter, layers, entrypoint):
        swapped = [
            dataclasses.replace(layers[2], order_index=0),
            dataclasses.replace(layers[1], order_index=1),
            dataclasses.replace(layers[0], order_index=2),
        ]
        with pytest.raises(InvalidPlanError, match="misordered"):
            emitter.emit(swapped, BASE, entrypoint)

    def test_index_gap(self, emitter, layers, entrypoint):
        gapped = [layers[0], dataclasses.replace(layers[2], order_index=2)]
        with pytest.raises(InvalidPlanError, match="misordered"):
            emitter.emit(gapped, BASE, entrypoint)

    def test_tampered_digest(self, emitter, layers, entrypoint):
        layers[0] = dataclasses.replace(layers[0], content_digest="sha256:" + "0" * 64)
        with pytest.raises(InvalidPlanError, match="digest does not match"):
            emitter.emit(layers, BASE, entrypoint)

    def test_missing_entrypoint(self, emitter, layers):
        with pytest.raises(InvalidPlanError, match="requires an entrypoint"):
            emitter.emit(layers, BASE, None)

    def test_entrypoint_not_in_tree(self, emitter, layers):
        with pytest.raises(InvalidPlanError, match="not present"):
            emitter.emit(layers, BASE, EntrypointSpec("bin/missing"))

    def test_entrypoint_in_dependency_layer(self, emitter, layers):
        with pytest.raises(InvalidPlanError, match="FIXED_DEPENDENCY layer"):
            emitter.emit(layers, BASE, EntrypointSpec("lib/guava-33.0.0-jre.jar"))

    def test_scratch_base(self, emitter, layers, entrypoint):
        assert emitter.emit(layers, "scratch", entrypoint).base_image == "scratch"


class TestSerialization:
    """Plan documents."""

    def test_records(self, plan):
        records = plan.to_records()
        assert [r["order_index"] for r in records] == [0, 1, 2]
        assert records[2]["entries"] == ["bin/app", "com/acme/App.class"]
        assert records[0]["digest"] == plan.layers[0].content_digest
        assert set(records[0]) == {"order_index", "entries", "digest"}

    def test_to_dict(self, plan):
        document = plan.to_dict()
        assert document["version"] == 1
        assert document["base_image"] == BASE
        assert document["entrypoint"]["executable"] == "bin/app"
        assert document["layers"][1]["volatility"] == "RESOURCE"
        assert document["layers"][1]["size"] == 20
        assert "source_root" not in document

    def test_yaml(self, plan):
        assert yaml.safe_load(plan.dumps("yaml")) == plan.to_dict()

    def test_json(self, plan):
        text = plan.dumps("json")
        assert text.endswith("\n")
        assert json.loads(text) == plan.to_dict()

    def test_dump_stream(self, plan):
        stream = io.StringIO()
        plan.dump(stream, "json")
        assert stream.getvalue() == plan.dumps("json")

    def test_unknown_format(self, plan):
        with pytest.raises(ValueError, match="Unknown plan format"):
            plan.dumps("toml")

    def test_build_plan_direct(self, layers, entrypoint):
        plan = BuildPlan(tuple(layers), BASE, entrypoint, "", "sha256:x")
        assert plan.to_dict()["plan_digest"] == "sha256:x"
