"""Tests for layer and plan digests."""
import hashlib

import pytest

from layerplanner.core.constants import VolatilityClass
from layerplanner.layers.base import FileEntry, Layer
from layerplanner.layers.digest import CacheKeyDeriver

APP = VolatilityClass.APPLICATION_CODE


def entry(path, content=b"x"):
    return FileEntry(path, len(content), hashlib.sha256(content).hexdigest(), APP)


@pytest.fixture
def deriver():
    return CacheKeyDeriver()


class TestDerive:
    """Layer content digests."""

    def test_format(self, deriver):
        digest = deriver.derive([entry("a")])
        assert digest.startswith("sha256:")
        assert len(digest) == len("sha256:") + 64

    def test_known_value(self, deriver):
        e = entry("a", b"x")
        expected = hashlib.sha256(b"a\0" + e.content_hash.encode() + b"\n").hexdigest()
        assert deriver.derive([e]) == f"sha256:{expected}"

    def test_order_independent(self, deriver):
        a, b, c = entry("a"), entry("b/c"), entry("b/d")
        assert deriver.derive([a, b, c]) == deriver.derive([c, a, b])

    def test_content_sensitive(self, deriver):
        assert deriver.derive([entry("a", b"1")]) != deriver.derive([entry("a", b"2")])

    def test_path_sensitive(self, deriver):
        assert deriver.derive([entry("a")]) != deriver.derive([entry("b")])

    def test_size_and_class_do_not_matter(self, deriver):
        e = entry("a")
        other = FileEntry(e.path, e.size + 1, e.content_hash, VolatilityClass.RESOURCE)
        assert deriver.derive([e]) == deriver.derive([other])

    def test_no_ambiguity_between_path_and_hash(self, deriver):
        one = FileEntry("ab", 1, "cd", APP)
        two = FileEntry("a", 1, "bcd", APP)
        assert deriver.derive([one]) != deriver.derive([two])

    def test_empty(self, deriver):
        assert deriver.derive([]) == "sha256:" + hashlib.sha256(b"").hexdigest()


class TestPlanDigest:
    """Digests over ordered layers."""

    def _layers(self, deriver, *digests):
        return [
            Layer(order_index=i, volatility=APP, entries=(), content_digest=d)
            for i, d in enumerate(digests)
        ]

    def test_order_matters(self, deriver):
        first = deriver.plan_digest(self._layers(deriver, "sha256:a", "sha256:b"))
        second = deriver.plan_digest(self._layers(deriver, "sha256:b", "sha256:a"))
        assert first != second

    def test_input_sequence_does_not_matter(self, deriver):
        layers = self._layers(deriver, "sha256:a", "sha256:b")
        assert deriver.plan_digest(layers) == deriver.plan_digest(list(reversed(layers)))


class TestVerify:
    """Stored digest checks."""

    def test_verify(self, deriver):
        entries = (entry("a"), entry("b"))
        layer = Layer(0, APP, entries, deriver.derive(entries))
        assert deriver.verify(layer)

    def test_verify_detects_mismatch(self, deriver):
        layer = Layer(0, APP, (entry("a"),), "sha256:" + "0" * 64)
        assert not deriver.verify(layer)

    def test_other_algorithm(self):
        deriver = CacheKeyDeriver("sha512")
        assert deriver.derive([entry("a")]).startswith("sha512:")


class TestArtifactKey:
    """Keys for materialized artifacts."""

    @pytest.fixture
    def layer(self, deriver):
        entries = (entry("bin/app"), entry("lib/a.class"))
        return Layer(0, APP, entries, deriver.derive(entries))

    def test_without_executables(self, deriver, layer):
        assert deriver.artifact_key(layer) == layer.content_digest
        assert deriver.artifact_key(layer, ["bin/elsewhere"]) == layer.content_digest

    def test_executable_changes_key(self, deriver, layer):
        key = deriver.artifact_key(layer, ["bin/app"])
        assert key != layer.content_digest
        assert key.startswith("sha256:")
        assert key != deriver.artifact_key(layer, ["lib/a.class"])

    def test_stable(self, deriver, layer):
        assert deriver.artifact_key(layer, ["bin/app", "bin/app"]) == deriver.artifact_key(
            layer, {"bin/app"}
        )


class TestUndecodablePaths:
    """File names that are not valid UTF-8."""

    def test_digest(self, deriver):
        name = b"bad\xff.class".decode("utf-8", "surrogateescape")
        first = deriver.derive([entry(name)])
        assert first == deriver.derive([entry(name)])
        assert first != deriver.derive([entry("bad.class")])
