#!/usr/bin/env python3
"""Main entry point for LayerPlanner.

This module handles:
- Component initialization (LayerPlanner, CacheStore, backend)
- Plan output
- Assembly with cancellation on SIGINT/SIGTERM
- Cleanup on exit

Example:
    >>> from layerplanner.main import run_layerplanner
    >>> run_layerplanner(args, config, logger)
"""

import argparse
import signal
import sys
import threading
from typing import Any, Dict, Optional

from layerplanner.backends.base import BackendAdapter, get_backend
from layerplanner.core.constants import ConfigKey
from layerplanner.core.errors import PlannerError
from layerplanner.infrastructure.cache_store import CacheStore, CacheStoreError
from layerplanner.infrastructure.config_manager import ConfigError, ConfigManager
from layerplanner.infrastructure.logger import Logger
from layerplanner.plan.emitter import BuildPlan
from layerplanner.plan.entrypoint import EntrypointSpec
from layerplanner.planner import LayerPlanner


class LayerPlannerMain:
    """
    Main class for one LayerPlanner invocation.

    Handles component lifecycle, planning, assembly and shutdown.
    """

    def __init__(self, args: argparse.Namespace, config: ConfigManager, logger: Logger):
        """
        Initialize LayerPlanner main controller.

        Args:
            args: Parsed command-line arguments
            config: Configuration manager (arguments already merged in)
            logger: Logger instance
        """
        self.args = args
        self.config_manager = config
        self.logger = logger
        self.cancel_event = threading.Event()
        self._previous_handlers: Dict[int, Any] = {}

        # Components
        self.settings: Dict[str, Any] = {}
        self.planner: Optional[LayerPlanner] = None
        self.entrypoint: Optional[EntrypointSpec] = None
        self.cache_store: Optional[CacheStore] = None
        self.backend: Optional[BackendAdapter] = None
        self.plan: Optional[BuildPlan] = None
        self.image_ref: Optional[str] = None

    def initialize_components(self) -> None:
        """
        Initialize all LayerPlanner components.

        Creates and configures:
        - LayerPlanner (classifier, policy)
        - EntrypointSpec
        - CacheStore (unless disabled)
        - Backend adapter (only when assembling)

        Raises:
            ConfigError: If the configuration cannot be turned into components
            CacheStoreError: If the cache store cannot be loaded
        """
        self.logger.info("Initializing components...")

        self.config_manager.validate()
        self.settings = self.config_manager.get_all().get(ConfigKey.ROOT, {})

        # 1. Planner
        self.logger.debug("Creating LayerPlanner")
        try:
            self.planner = LayerPlanner.from_config(self.settings)
        except ValueError as e:
            raise ConfigError(f"Invalid classification or policy configuration: {e}")

        # 2. Entrypoint
        entrypoint_config = self.settings.get(ConfigKey.ENTRYPOINT) or {}
        if entrypoint_config.get(ConfigKey.EXECUTABLE):
            try:
                self.entrypoint = EntrypointSpec.from_dict(entrypoint_config)
            except ValueError as e:
                raise ConfigError(f"Invalid entrypoint configuration: {e}")
            self.logger.debug("Entrypoint", executable=self.entrypoint.executable)

        # 3. Cache store
        cache_config = self.settings.get(ConfigKey.CACHE) or {}
        if cache_config.get(ConfigKey.CACHE_ENABLED, True):
            self.logger.debug("Opening CacheStore")
            self.cache_store = CacheStore(cache_config.get(ConfigKey.CACHE_PATH))
            self.cache_store.open()

        # 4. Backend
        if self.args.assemble:
            backend_config = self.settings.get(ConfigKey.BACKEND) or {}
            name = backend_config.get(ConfigKey.BACKEND_NAME) or "archive"
            self.logger.debug("Creating backend", backend=name)
            try:
                self.backend = get_backend(
                    name,
                    output_dir=backend_config.get(ConfigKey.BACKEND_OUTPUT_DIR)
                    or "build/layerplanner",
                    tag=backend_config.get(ConfigKey.BACKEND_TAG),
                )
            except ValueError as e:
                raise ConfigError(str(e))

        self.logger.info("All components initialized successfully")

    def setup_signal_handlers(self) -> None:
        """
        Setup signal handlers for graceful cancellation.

        SIGINT and SIGTERM stop assembly at the next layer boundary.
        """

        def signal_handler(signum, frame):
            """Handle shutdown signals."""
            sig_name = signal.Signals(signum).name
            self.logger.info(f"Received signal {sig_name}, cancelling after the current layer...")
            self.cancel_event.set()

        # Handlers can only be installed from the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        for signum in (signal.SIGTERM, signal.SIGINT):
            self._previous_handlers[signum] = signal.signal(signum, signal_handler)

        self.logger.debug("Signal handlers registered")

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def create_plan(self) -> BuildPlan:
        """
        Plan the build output tree.

        Returns:
            Emitted BuildPlan

        Raises:
            PlannerError: If classification, partitioning or validation fails
        """
        self.plan = self.planner.plan(
            self.args.tree, self.settings.get(ConfigKey.BASE_IMAGE), self.entrypoint
        )

        if self.cache_store is not None:
            backend_name = self._backend_name()
            status = self.planner.cache_status(self.plan, self.cache_store, backend_name)
            self.logger.info(
                "Cache status",
                backend=backend_name,
                cached=sum(status.values()),
                layers=len(status),
            )

        return self.plan

    def _backend_name(self) -> str:
        if self.backend is not None:
            return self.backend.name
        backend_config = self.settings.get(ConfigKey.BACKEND) or {}
        return backend_config.get(ConfigKey.BACKEND_NAME) or "archive"

    def write_plan(self) -> None:
        """Write the plan to --output, or stdout when not assembling."""
        if self.args.output:
            with open(self.args.output, "w", encoding="utf-8") as f:
                self.plan.dump(f, self.args.format)
            self.logger.info("Plan written", path=self.args.output, format=self.args.format)
        elif not self.args.assemble:
            self.plan.dump(sys.stdout, self.args.format)

    def assemble(self) -> str:
        """
        Assemble the plan with the configured backend.

        Returns:
            Image reference

        Raises:
            AssemblyError: If assembly fails or is cancelled
        """
        execution = self.planner.assemble(
            self.plan, self.backend, self.cache_store, self.cancel_event
        )
        self.image_ref = execution.image_ref
        self.logger.info("Assembly statistics", **execution.get_stats())
        print(self.image_ref)
        return self.image_ref

    def cleanup(self) -> None:
        """
        Cleanup resources on shutdown.

        Performs:
        - Cache store flush and close
        - Signal handler restore
        - Log final statistics
        """
        self.logger.info("Cleaning up...")

        self.restore_signal_handlers()

        if self.cache_store is not None and self.cache_store.is_open:
            try:
                self.cache_store.close()
                self.logger.info("Cache statistics", **self.cache_store.get_stats())
            except CacheStoreError as e:
                self.logger.exception("Failed to close cache store", e)

        self.logger.info("Cleanup complete")

    def run(self) -> int:
        """
        Run one planning (and optionally assembly) pass.

        Returns:
            Exit code (0 for success, the ErrorCode of a planner error,
            1 for configuration errors, 130 if interrupted)
        """
        try:
            # Initialize components
            self.initialize_components()

            # Setup signal handlers
            self.setup_signal_handlers()

            self.create_plan()
            self.write_plan()

            if self.args.assemble:
                self.assemble()

            return 0

        except PlannerError as e:
            self.logger.error(f"{type(e).__name__}: {e.message}")
            return int(e.error_code)

        except ConfigError as e:
            self.logger.error(f"Configuration error: {e.message}")
            return 1

        except CacheStoreError as e:
            self.logger.error(f"Cache store error: {e.message}")
            return 1

        except OSError as e:
            self.logger.error(f"I/O error: {e}")
            return 1

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
            return 130

        except Exception as e:
            self.logger.error(f"Fatal error: {e}")
            import traceback

            traceback.print_exc()
            return 1

        finally:
            # Cleanup
            self.cleanup()


def run_layerplanner(args: argparse.Namespace, config: ConfigManager, logger: Logger) -> int:
    """
    Main entry point for running LayerPlanner.

    Args:
        args: Parsed command-line arguments
        config: Configuration manager
        logger: Logger instance

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    # Create main controller
    main = LayerPlannerMain(args, config, logger)

    # Run
    return main.run()


def main():
    """
    Entry point when run as standalone script.

    Typically called via cli.py, but can be run directly for testing.
    """
    from layerplanner.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
