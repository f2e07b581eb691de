"""Tests for worker variant identity and option-variant configuration."""

import inspect
from unittest.mock import patch

import pytest

from chainlab.error_handling import ConfigurationError
from chainlab.system_tools import ToolInfo
from chainlab.tool_interfaces import Worker
from chainlab.tool_wrappers import OptipngWorker, PngquantWorker
from chainlab.worker_variants import (
    WorkerVariant,
    build_variants,
    implementation_digest,
    load_option_variants,
    worker_id,
)


def _all_available(tool_key, engine_config=None):
    return ToolInfo(name=tool_key, available=True, version="1.0")


@pytest.fixture
def tools_available():
    with patch("chainlab.tool_interfaces.discover_tool", side_effect=_all_available) as mock:
        yield mock


class TestWorkerId:
    """Stable identifiers from worker name and non-default options."""

    @pytest.mark.fast
    def test_default_options_give_bare_name(self):
        assert worker_id(PngquantWorker()) == "pngquant"
        assert worker_id(PngquantWorker({"speed": 3})) == "pngquant"

    @pytest.mark.fast
    def test_non_default_options_sorted(self):
        worker = OptipngWorker({"strip": False, "level": 7})
        assert worker_id(worker) == "optipng(level:7, strip:false)"

    @pytest.mark.fast
    def test_list_values(self):
        assert worker_id(PngquantWorker({"quality": [60, 80]})) == "pngquant(quality:[60,80])"


class TestWorkerVariant:
    """Derived run order, cons_id and etag."""

    def test_cons_id_uses_allow_consecutive_options(self):
        """Pngquant variants differing in quality may follow each other; speed alone may not."""
        low = WorkerVariant.from_worker(PngquantWorker({"quality": "60-80"}), ())
        high = WorkerVariant.from_worker(PngquantWorker({"quality": "80-95"}), ())
        fast = WorkerVariant.from_worker(PngquantWorker({"speed": 10}), ())
        default = WorkerVariant.from_worker(PngquantWorker(), ())

        assert low.cons_id != high.cons_id
        assert fast.cons_id == default.cons_id

    def test_cons_id_without_allow_consecutive(self):
        first = WorkerVariant.from_worker(OptipngWorker({"level": 2}), ())
        second = WorkerVariant.from_worker(OptipngWorker({"level": 7}), ())
        assert first.cons_id == second.cons_id == ("optipng", ())

    def test_run_order_and_formats_from_worker_class(self):
        variant = WorkerVariant.from_worker(PngquantWorker(), ())
        assert variant.run_order == PngquantWorker.RUN_ORDER
        assert variant.formats == frozenset({"png"})
        assert str(variant) == "pngquant"

    def test_etag_tracks_binary_version(self):
        """A different resolved binary version gives a different etag."""
        old = WorkerVariant.from_worker(PngquantWorker(), (("pngquant", "2.17.0"),))
        same = WorkerVariant.from_worker(PngquantWorker(), (("pngquant", "2.17.0"),))
        new = WorkerVariant.from_worker(PngquantWorker(), (("pngquant", "3.0.1"),))

        assert old.etag == same.etag
        assert old.etag != new.etag
        assert old.etag[0] == "pngquant"

    def test_etag_tracks_options(self):
        first = WorkerVariant.from_worker(PngquantWorker({"quality": "60-80"}), ())
        second = WorkerVariant.from_worker(PngquantWorker({"quality": "70-80"}), ())
        assert first.etag != second.etag

    def test_resolves_binary_versions_when_not_given(self, tools_available):
        variant = WorkerVariant.from_worker(PngquantWorker())
        assert variant.etag[1] == (("pngquant", "1.0"),)

    def test_equality_ignores_worker_instance(self):
        assert WorkerVariant.from_worker(PngquantWorker(), ()) == WorkerVariant.from_worker(
            PngquantWorker(), ()
        )

    def test_implementation_digest(self):
        digest = implementation_digest(PngquantWorker)
        assert len(digest) == 64
        assert digest == implementation_digest(PngquantWorker)


class TestImplementationDigest:
    """Worker code digests are scoped to one worker class."""

    @staticmethod
    def _edited(edited_cls):
        """Return a getsource stand-in that reports a changed body for *edited_cls*."""
        original = inspect.getsource

        def _getsource(obj):
            source = original(obj)
            if obj is edited_cls:
                return source.replace('"level": 6', '"level": 7') + "\n# edited\n"
            return source

        return _getsource

    def test_workers_in_one_module_differ(self):
        assert implementation_digest(PngquantWorker) != implementation_digest(OptipngWorker)

    def test_editing_another_worker_keeps_digest(self):
        before = implementation_digest.__wrapped__(PngquantWorker)
        with patch("inspect.getsource", side_effect=self._edited(OptipngWorker)):
            after = implementation_digest.__wrapped__(PngquantWorker)
            edited = implementation_digest.__wrapped__(OptipngWorker)

        assert after == before
        assert edited != implementation_digest.__wrapped__(OptipngWorker)

    def test_editing_the_worker_base_changes_every_digest(self):
        before = implementation_digest.__wrapped__(PngquantWorker)
        with patch("inspect.getsource", side_effect=self._edited(Worker)):
            after = implementation_digest.__wrapped__(PngquantWorker)
        assert after != before

    def test_runtime_class_uses_its_name(self):
        runtime_cls = type("RuntimeWorker", (OptipngWorker,), {"__module__": "generated"})
        assert implementation_digest.__wrapped__(runtime_cls) != implementation_digest.__wrapped__(
            OptipngWorker
        )


class TestLoadOptionVariants:
    """YAML option-variant files."""

    def test_valid_file(self, tmp_path):
        config = tmp_path / "variants.yaml"
        config.write_text(
            "pngquant:\n"
            "  - {quality: 60-80}\n"
            "  - {quality: 80-95, speed: 1}\n"
            "optipng: {level: 7}\n"
            "svgo: false\n"
        )
        data = load_option_variants(config)

        assert data["pngquant"] == [{"quality": "60-80"}, {"quality": "80-95", "speed": 1}]
        assert data["optipng"] == {"level": 7}
        assert data["svgo"] is False

    def test_empty_file(self, tmp_path):
        config = tmp_path / "empty.yaml"
        config.write_text("")
        assert load_option_variants(config) == {}

    def test_non_mapping_rejected(self, tmp_path):
        config = tmp_path / "list.yaml"
        config.write_text("- pngquant\n- optipng\n")
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            load_option_variants(config)

    def test_invalid_yaml_rejected(self, tmp_path):
        config = tmp_path / "broken.yaml"
        config.write_text("pngquant: [unclosed\n")
        with pytest.raises(ConfigurationError, match="read option variants"):
            load_option_variants(config)

    def test_missing_file_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_option_variants(tmp_path / "missing.yaml")


class TestBuildVariants:
    """Instantiating every configured variant."""

    def test_defaults_give_one_variant_per_worker(self, tools_available):
        variants = build_variants()
        ids = [variant.id for variant in variants]

        assert "pngquant" in ids
        assert "jpegoptim" in ids
        assert len(ids) == len(set(ids))

    def test_lists_expand_to_several_variants(self, tools_available):
        variants = build_variants({"pngquant": [{"quality": "60-80"}, {"quality": "80-95"}]})
        ids = [variant.id for variant in variants if variant.id.startswith("pngquant")]
        assert ids == ["pngquant(quality:60-80)", "pngquant(quality:80-95)"]

    def test_false_disables_worker(self, tools_available):
        ids = [variant.id for variant in build_variants({"svgo": False})]
        assert "svgo" not in ids

    def test_duplicates_are_dropped(self, tools_available):
        variants = build_variants({"pngquant": [{}, {"quality": "100-100"}, None]})
        assert [v.id for v in variants].count("pngquant") == 1

    def test_unknown_worker_is_fatal(self, tools_available):
        with pytest.raises(ConfigurationError, match="Unknown worker"):
            build_variants({"pngcrunch": {}})

    def test_unknown_option_is_fatal(self, tools_available):
        with pytest.raises(ConfigurationError, match="Unknown option"):
            build_variants({"pngquant": {"colours": 16}})

    def test_invalid_structure_is_fatal(self, tools_available):
        with pytest.raises(ConfigurationError, match="Invalid"):
            build_variants({"pngquant": "fast"})
        with pytest.raises(ConfigurationError, match="Invalid variant"):
            build_variants({"pngquant": ["fast"]})

    def test_unavailable_workers_are_skipped(self):
        """Workers whose binary is missing are left out unless requested."""

        def discover(tool_key, engine_config=None):
            return ToolInfo(name=tool_key, available=tool_key != "pngquant", version="1.0")

        with patch("chainlab.tool_interfaces.discover_tool", side_effect=discover):
            available_ids = [v.id for v in build_variants()]
            all_ids = [v.id for v in build_variants(only_available=False)]

        assert "pngquant" not in available_ids
        assert "optipng" in available_ids
        assert "pngquant" in all_ids

    def test_configuration_checked_before_discovery(self):
        """Option errors surface even when no binary is installed."""
        unavailable = ToolInfo(name="x", available=False)
        with patch("chainlab.tool_interfaces.discover_tool", return_value=unavailable) as mock:
            with pytest.raises(ConfigurationError):
                build_variants({"optipng": {"bogus": 1}})
        mock.assert_not_called()
