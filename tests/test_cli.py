"""Tests for CLI argument parsing and configuration.

This module tests the command-line interface including:
- Argument parsing and validation
- Configuration assembly from file, environment and arguments
- Logging setup
- The main() entry point
"""

import logging
from unittest.mock import patch

import pytest
import yaml

from layerplanner.cli import (
    CLIError,
    build_config_from_args,
    load_configuration,
    main,
    parse_arguments,
    print_banner,
    setup_logging,
)
from layerplanner.infrastructure.logger import Logger, get_logger


class TestParseArguments:
    """Test argument parsing."""

    def test_minimal(self, build_tree):
        """Only --tree is required."""
        args = parse_arguments(["--tree", str(build_tree)])

        assert args.tree == str(build_tree)
        assert args.format == "yaml"
        assert not args.assemble
        assert not args.no_cache
        assert args.max_layers is None

    def test_all_options(self, build_tree, config_file, temp_dir):
        """Parses every option."""
        args = parse_arguments(
            [
                "-t", str(build_tree),
                "-c", str(config_file),
                "--base-image", "alpine:3.20",
                "--entrypoint", "bin/app",
                "--max-layers", "6",
                "--max-layer-bytes", "1048576",
                "-o", str(temp_dir / "plan.json"),
                "--format", "json",
                "--assemble",
                "--backend", "dockerfile",
                "--output-dir", str(temp_dir / "ctx"),
                "--tag", "acme/app:1",
                "--cache", str(temp_dir / "records.jsonl"),
                "--debug",
                "--log-file", str(temp_dir / "planner.log"),
            ]
        )

        assert args.config == str(config_file)
        assert args.max_layers == 6
        assert args.max_layer_bytes == 1048576
        assert args.format == "json"
        assert args.assemble
        assert args.backend == "dockerfile"
        assert args.tag == "acme/app:1"
        assert args.debug

    def test_tree_required(self):
        """Missing --tree exits."""
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_unknown_format(self, build_tree):
        """Format is restricted to yaml and json."""
        with pytest.raises(SystemExit):
            parse_arguments(["--tree", str(build_tree), "--format", "toml"])

    def test_cache_options_exclusive(self, build_tree, temp_dir):
        """--cache and --no-cache cannot be combined."""
        with pytest.raises(SystemExit):
            parse_arguments(
                ["--tree", str(build_tree), "--cache", str(temp_dir / "c"), "--no-cache"]
            )

    def test_version(self, capsys):
        """--version prints the version and exits."""
        with pytest.raises(SystemExit) as exc_info:
            parse_arguments(["--version"])
        assert exc_info.value.code == 0
        assert "layerplanner 1.0.0" in capsys.readouterr().out


class TestValidateArguments:
    """Test argument validation."""

    def test_missing_tree(self, temp_dir):
        """Tree must exist."""
        with pytest.raises(CLIError, match="does not exist"):
            parse_arguments(["--tree", str(temp_dir / "missing")])

    def test_tree_is_file(self, temp_dir, make_file):
        """Tree must be a directory."""
        path = make_file(temp_dir, "app.jar", b"x")
        with pytest.raises(CLIError, match="not a directory"):
            parse_arguments(["--tree", str(path)])

    def test_missing_config(self, build_tree, temp_dir):
        """Config file must exist."""
        with pytest.raises(CLIError, match="Configuration file does not exist"):
            parse_arguments(["--tree", str(build_tree), "--config", str(temp_dir / "nope.yaml")])

    def test_config_is_directory(self, build_tree, temp_dir):
        """Config path must be a file."""
        with pytest.raises(CLIError, match="not a file"):
            parse_arguments(["--tree", str(build_tree), "--config", str(temp_dir)])

    @pytest.mark.parametrize("value", ["0", "128"])
    def test_max_layers_range(self, build_tree, value):
        """--max-layers must be in 1..127."""
        with pytest.raises(CLIError, match="--max-layers"):
            parse_arguments(["--tree", str(build_tree), "--max-layers", value])

    def test_max_layer_bytes_positive(self, build_tree):
        """--max-layer-bytes must be positive."""
        with pytest.raises(CLIError, match="positive"):
            parse_arguments(["--tree", str(build_tree), "--max-layer-bytes", "0"])

    def test_output_is_directory(self, build_tree, temp_dir):
        """--output must not be a directory."""
        with pytest.raises(CLIError, match="Output path is a directory"):
            parse_arguments(["--tree", str(build_tree), "--output", str(temp_dir)])


class TestBuildConfigFromArgs:
    """Test argument to configuration conversion."""

    def test_only_given_options(self, build_tree):
        """Unset options do not appear."""
        args = parse_arguments(["--tree", str(build_tree)])
        assert build_config_from_args(args) == {"layerplanner": {}}

    def test_mapping(self, build_tree, temp_dir):
        """Each option lands in its section."""
        args = parse_arguments(
            [
                "--tree", str(build_tree),
                "--base-image", "alpine:3.20",
                "--entrypoint", "bin/app",
                "--max-layers", "5",
                "--backend", "dockerfile",
                "--tag", "acme/app:1",
                "--cache", str(temp_dir / "records.jsonl"),
                "--debug",
            ]
        )

        section = build_config_from_args(args)["layerplanner"]

        assert section["base_image"] == "alpine:3.20"
        assert section["entrypoint"] == {"executable": "bin/app"}
        assert section["policy"] == {"max_layers": 5}
        assert section["backend"] == {"name": "dockerfile", "tag": "acme/app:1"}
        assert section["cache"] == {"enabled": True, "path": str(temp_dir / "records.jsonl")}
        assert section["logging"] == {"level": "DEBUG"}

    def test_no_cache(self, build_tree):
        """--no-cache disables the store."""
        args = parse_arguments(["--tree", str(build_tree), "--no-cache"])
        assert build_config_from_args(args)["layerplanner"]["cache"] == {"enabled": False}


class TestLoadConfiguration:
    """Test configuration assembly."""

    def test_file_then_arguments(self, build_tree, config_file):
        """Arguments override the config file."""
        args = parse_arguments(
            ["--tree", str(build_tree), "--config", str(config_file), "--max-layers", "2"]
        )

        config = load_configuration(args)

        assert config.get("layerplanner.policy.max_layers") == 2
        assert config.get("layerplanner.base_image") == "eclipse-temurin:21-jre"

    def test_environment_between_file_and_arguments(self, build_tree, config_file, monkeypatch):
        """Environment overrides the file but not arguments."""
        monkeypatch.setenv("LAYERPLANNER_BASE_IMAGE", "alpine:3.20")
        monkeypatch.setenv("LAYERPLANNER_POLICY__MAX_LAYERS", "6")
        args = parse_arguments(
            ["--tree", str(build_tree), "--config", str(config_file), "--max-layers", "3"]
        )

        config = load_configuration(args)

        assert config.get("layerplanner.base_image") == "alpine:3.20"
        assert config.get("layerplanner.policy.max_layers") == 3

    def test_system_file_below_config_file(self, build_tree, config_file, temp_dir, monkeypatch):
        """The system-wide file fills in what the config file leaves out."""
        system_file = temp_dir / "system.yaml"
        system_file.write_text(
            yaml.dump({"layerplanner": {"base_image": "alpine:3.20", "backend": {"tag": "acme/app:1"}}})
        )
        monkeypatch.setattr("layerplanner.cli.SYSTEM_CONFIG_PATH", str(system_file))
        args = parse_arguments(["--tree", str(build_tree), "--config", str(config_file)])

        config = load_configuration(args)

        assert config.get("layerplanner.base_image") == "eclipse-temurin:21-jre"
        assert config.get("layerplanner.backend.tag") == "acme/app:1"

    def test_invalid_file(self, build_tree, temp_dir):
        """Invalid configuration becomes a CLIError."""
        path = temp_dir / "bad.yaml"
        path.write_text(yaml.dump({"layerplanner": {"policy": {"max_layers": "many"}}}))
        args = parse_arguments(["--tree", str(build_tree), "--config", str(path)])

        with pytest.raises(CLIError, match="max_layers"):
            load_configuration(args)


class TestSetupLogging:
    """Test logging setup."""

    def test_level_from_config(self, build_tree):
        """Configured level is used without --debug."""
        args = parse_arguments(["--tree", str(build_tree)])
        logger = setup_logging(args, {"level": "WARNING"})

        assert logger.get_level() == logging.WARNING
        assert get_logger() is logger

    def test_debug_flag(self, build_tree):
        """--debug wins over the configured level."""
        args = parse_arguments(["--tree", str(build_tree), "--debug"])
        assert setup_logging(args, {"level": "ERROR"}).get_level() == logging.DEBUG

    def test_log_file(self, build_tree, temp_dir):
        """--log-file adds a file handler."""
        log_file = temp_dir / "planner.log"
        args = parse_arguments(["--tree", str(build_tree), "--log-file", str(log_file)])

        logger = setup_logging(args, {})
        logger.info("hello")

        assert "hello" in log_file.read_text()

    def test_unwritable_log_file(self, build_tree, temp_dir):
        """A log file that cannot be opened is a CLIError."""
        args = parse_arguments(
            ["--tree", str(build_tree), "--log-file", str(temp_dir / "missing" / "x.log")]
        )
        with pytest.raises(CLIError, match="Cannot open log file"):
            setup_logging(args, {})

    def test_banner(self):
        """Banner mentions the version."""
        with patch.object(Logger, "info") as info:
            print_banner(Logger("layerplanner.banner"))
        messages = [call.args[0] for call in info.call_args_list]
        assert "LayerPlanner v1.0.0" in messages


class TestMain:
    """Test the main() entry point."""

    def test_prints_plan(self, build_tree, capsys):
        """Without --assemble the plan goes to stdout."""
        code = main(
            [
                "--tree", str(build_tree),
                "--base-image", "eclipse-temurin:21-jre",
                "--entrypoint", "bin/app",
                "--no-cache",
            ]
        )

        assert code == 0
        document = yaml.safe_load(capsys.readouterr().out)
        assert len(document["layers"]) == 3

    def test_cli_error(self, temp_dir, capsys):
        """Argument errors return 1."""
        assert main(["--tree", str(temp_dir / "missing")]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_policy_violation_exit_code(self, build_tree):
        """An unsatisfiable policy returns the CONFLICT code."""
        code = main(
            [
                "--tree", str(build_tree),
                "--base-image", "eclipse-temurin:21-jre",
                "--entrypoint", "bin/app",
                "--max-layers", "1",
                "--no-cache",
            ]
        )
        assert code == 4

    def test_keyboard_interrupt(self, build_tree):
        """Ctrl-C during startup returns 130."""
        with patch("layerplanner.cli.load_configuration", side_effect=KeyboardInterrupt):
            assert main(["--tree", str(build_tree)]) == 130

    def test_unexpected_error(self, build_tree, capsys):
        """Unexpected exceptions return 1."""
        with patch("layerplanner.cli.load_configuration", side_effect=RuntimeError("boom")):
            assert main(["--tree", str(build_tree)]) == 1
        assert "Unexpected error: boom" in capsys.readouterr().err
