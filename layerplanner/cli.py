#!/usr/bin/env python3
"""Command-line interface for LayerPlanner.

This module provides the CLI for planning and assembling layered images:
- Argument parsing and validation
- Configuration loading (file, environment, arguments)
- Logging setup
- Help and version information

Example:
    >>> from layerplanner.cli import parse_arguments
    >>> args = parse_arguments(['--tree', 'target/app', '--base-image', 'eclipse-temurin:21-jre'])
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from layerplanner.core.constants import LAYERPLANNER_VERSION, ConfigKey, Limits
from layerplanner.infrastructure.config_manager import (
    SYSTEM_CONFIG_PATH,
    ConfigError,
    ConfigManager,
    ConfigSource,
)
from layerplanner.infrastructure.logger import Logger, set_global_logger
from layerplanner.plan.emitter import PLAN_FORMATS

# Version information
VERSION = LAYERPLANNER_VERSION
DESCRIPTION = "LayerPlanner - Cache-optimal container image layering for JVM build outputs"


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
        CLIError: If arguments are well-formed but unusable
    """
    parser = argparse.ArgumentParser(
        prog="layerplanner",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print the layer plan for a Spring Boot exploded jar
  layerplanner --tree target/app --base-image eclipse-temurin:21-jre \\
      --entrypoint org/springframework/boot/loader/launch/JarLauncher.class

  # Plan with a configuration file and write the plan as JSON
  layerplanner --tree target/app --config layerplanner.yaml --output plan.json --format json

  # Plan and assemble reproducible layer archives
  layerplanner --tree target/app --config layerplanner.yaml --assemble

  # Assemble a Docker build context without touching the layer cache
  layerplanner --tree target/app --config layerplanner.yaml --assemble \\
      --backend dockerfile --output-dir build/context --no-cache
        """,
    )

    # Version
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}",
    )

    # Build output tree (required)
    parser.add_argument(
        "-t",
        "--tree",
        metavar="DIR",
        type=str,
        required=True,
        help="Build output directory to plan (required)",
    )

    # Configuration file
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=str,
        help="Configuration file path (YAML format)",
    )

    # Plan options
    plan_group = parser.add_argument_group("plan options")

    plan_group.add_argument(
        "--base-image",
        metavar="REF",
        type=str,
        help="Base image reference (e.g., eclipse-temurin:21-jre)",
    )

    plan_group.add_argument(
        "--entrypoint",
        metavar="PATH",
        type=str,
        help="Entrypoint executable, relative to the tree",
    )

    plan_group.add_argument(
        "--max-layers",
        metavar="N",
        type=int,
        help=f"Maximum number of layers (default: {Limits.DEFAULT_MAX_LAYERS})",
    )

    plan_group.add_argument(
        "--max-layer-bytes",
        metavar="N",
        type=int,
        help="Split layers larger than N bytes (default: unlimited)",
    )

    plan_group.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        type=str,
        help="Write the plan to FILE (default: stdout unless --assemble)",
    )

    plan_group.add_argument(
        "--format",
        choices=PLAN_FORMATS,
        default="yaml",
        help="Plan output format (default: yaml)",
    )

    # Assembly options
    assembly_group = parser.add_argument_group("assembly options")

    assembly_group.add_argument(
        "--assemble",
        action="store_true",
        help="Assemble the plan with the configured backend",
    )

    assembly_group.add_argument(
        "--backend",
        metavar="NAME",
        type=str,
        help="Assembly backend (archive, dockerfile)",
    )

    assembly_group.add_argument(
        "--output-dir",
        metavar="DIR",
        type=str,
        help="Directory the backend writes to",
    )

    assembly_group.add_argument(
        "--tag",
        metavar="REF",
        type=str,
        help="Image tag returned by the dockerfile backend",
    )

    cache_options = assembly_group.add_mutually_exclusive_group()

    cache_options.add_argument(
        "--cache",
        metavar="FILE",
        type=str,
        help="Layer cache record file",
    )

    cache_options.add_argument(
        "--no-cache",
        action="store_true",
        help="Neither reuse nor record layer artifacts",
    )

    # Logging options
    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Also write logs to FILE (rotated)",
    )

    # Parse arguments
    parsed = parser.parse_args(args)

    # Validate arguments
    _validate_arguments(parsed)

    return parsed


def _validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        CLIError: If validation fails
    """
    tree_path = Path(args.tree)

    if not tree_path.exists():
        raise CLIError(f"Build output directory does not exist: {args.tree}")

    if not tree_path.is_dir():
        raise CLIError(f"Build output is not a directory: {args.tree}")

    if args.config:
        config_path = Path(args.config)

        if not config_path.exists():
            raise CLIError(f"Configuration file does not exist: {args.config}")

        if not config_path.is_file():
            raise CLIError(f"Configuration path is not a file: {args.config}")

    if args.max_layers is not None and not 1 <= args.max_layers <= Limits.MAX_LAYERS:
        raise CLIError(f"--max-layers must be between 1 and {Limits.MAX_LAYERS}")

    if args.max_layer_bytes is not None and args.max_layer_bytes <= 0:
        raise CLIError("--max-layer-bytes must be positive")

    if args.output and Path(args.output).is_dir():
        raise CLIError(f"Output path is a directory: {args.output}")


def build_config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Build configuration overrides from command-line arguments.

    Only options given on the command line appear in the result.

    Args:
        args: Parsed arguments namespace

    Returns:
        Configuration dictionary under the ``layerplanner`` root
    """
    section: Dict[str, Any] = {}

    policy = {}
    if args.max_layers is not None:
        policy[ConfigKey.MAX_LAYERS] = args.max_layers
    if args.max_layer_bytes is not None:
        policy[ConfigKey.MAX_LAYER_BYTES] = args.max_layer_bytes
    if policy:
        section[ConfigKey.POLICY] = policy

    if args.base_image:
        section[ConfigKey.BASE_IMAGE] = args.base_image

    if args.entrypoint:
        section[ConfigKey.ENTRYPOINT] = {ConfigKey.EXECUTABLE: args.entrypoint}

    backend = {}
    if args.backend:
        backend[ConfigKey.BACKEND_NAME] = args.backend
    if args.output_dir:
        backend[ConfigKey.BACKEND_OUTPUT_DIR] = args.output_dir
    if args.tag:
        backend[ConfigKey.BACKEND_TAG] = args.tag
    if backend:
        section[ConfigKey.BACKEND] = backend

    if args.no_cache:
        section[ConfigKey.CACHE] = {ConfigKey.CACHE_ENABLED: False}
    elif args.cache:
        section[ConfigKey.CACHE] = {ConfigKey.CACHE_ENABLED: True, ConfigKey.CACHE_PATH: args.cache}

    logging_config = {}
    if args.debug:
        logging_config["level"] = "DEBUG"
    if args.log_file:
        logging_config["file"] = args.log_file
    if logging_config:
        section[ConfigKey.LOGGING] = logging_config

    return {ConfigKey.ROOT: section}


def load_configuration(args: argparse.Namespace) -> ConfigManager:
    """
    Assemble the configuration for one invocation.

    Precedence: defaults < system file < config file < environment < arguments.

    Raises:
        CLIError: If the configuration cannot be loaded or is invalid
    """
    try:
        config = ConfigManager()
        config.load_system_config(SYSTEM_CONFIG_PATH)
        if args.config:
            config.load_file(args.config)
        config.load_dict(build_config_from_args(args), source=ConfigSource.CLI_ARGS)
        config.validate()
    except ConfigError as e:
        raise CLIError(str(e))

    return config


def setup_logging(args: argparse.Namespace, logging_config: Dict[str, Any]) -> Logger:
    """
    Setup logging based on arguments and configuration.

    The configured logger becomes the global logger every component uses.

    Args:
        args: Parsed arguments namespace
        logging_config: The ``logging`` configuration section

    Returns:
        Configured logger instance
    """
    log_level = "DEBUG" if args.debug else logging_config.get("level") or "INFO"
    log_file = args.log_file or logging_config.get("file")

    logger = Logger("layerplanner", level=log_level)

    if log_file:
        try:
            logger.add_handler(logger.create_file_handler(log_file))
        except OSError as e:
            raise CLIError(f"Cannot open log file {log_file}: {e}")

    set_global_logger(logger)
    return logger


def print_banner(logger: Logger) -> None:
    """
    Log startup banner with version information.

    Args:
        logger: Logger instance
    """
    logger.info("=" * 60)
    logger.info(f"LayerPlanner v{VERSION}")
    logger.info(DESCRIPTION)
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Handles argument parsing, configuration and logging, then passes control
    to layerplanner.main for planning and assembly.

    Returns:
        Process exit code
    """
    try:
        # Parse arguments
        args = parse_arguments(argv)

        # Load configuration
        config = load_configuration(args)

        # Setup logging
        logger = setup_logging(args, config.section(ConfigKey.LOGGING))

        if args.debug:
            print_banner(logger)

        # Import and run main
        from layerplanner.main import run_layerplanner

        return run_layerplanner(args, config, logger)

    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
