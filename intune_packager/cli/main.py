# intune_packager/cli/main.py
"""Main CLI entry point for intune-packager"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import click
import httpx
from rich.logging import RichHandler

from ..__version__ import __version__
from ..constants import APP_NAME, EXIT_FAILURE, EXIT_INTERRUPTED, LOG_FORMAT
from ..core import ArchiveExtractor, IdentityInspector, PackageBuilder, PathResolver
from ..graph import CachedAuthProvider, ClientSecretAuthProvider, GraphCatalogClient
from ..models.config import AppConfig
from ..services import (
    AppUploader,
    ChunkedUploader,
    ConfigService,
    Downloader,
    LabelPipeline,
    LabelScriptRunner,
    NotificationSink,
    NullNotifier,
    TeamsNotifier,
)
from ..utils.process_utils import CommandRunner
from .utils.output import console

# Import all commands
from .commands import process, scan, run_all, paths, ondemand


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Setup logging configuration

    Args:
        verbose: Enable verbose output (INFO level)
        debug: Enable debug output (DEBUG level)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    # Configure rich handler
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            RichHandler(
                console=console,
                show_time=debug,
                show_path=debug,
                rich_tracebacks=True,
                tracebacks_suppress=[click]
            )
        ]
    )

    # Adjust third-party loggers, request lines would carry storage URLs
    for name in ("asyncio", "aiofiles", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


class Context:
    """CLI context object with lazy configuration loading

    Configuration, path resolver and pipeline are only built when a
    command asks for them, so ``--help`` works without a config file.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize CLI context"""
        self.config_path = config_path
        self.verbose: bool = False
        self.debug: bool = False
        self._config_service: Optional[ConfigService] = None
        self._path_resolver: Optional[PathResolver] = None

    @property
    def config_service(self) -> ConfigService:
        if self._config_service is None:
            self._config_service = ConfigService(self.config_path)
        return self._config_service

    @property
    def config(self) -> AppConfig:
        """Loaded configuration

        Raises:
            ConfigurationError: If the configuration file is invalid
        """
        return self.config_service.config

    @property
    def path_resolver(self) -> PathResolver:
        if self._path_resolver is None:
            self._path_resolver = PathResolver(self.config.root_path)
        return self._path_resolver

    def build_notifier(self, http_client: httpx.AsyncClient) -> NotificationSink:
        settings = self.config.notifications
        if settings.enabled and settings.webhook_url:
            return TeamsNotifier(settings.webhook_url, http_client)
        return NullNotifier()

    @asynccontextmanager
    async def open_pipeline(self) -> AsyncIterator[LabelPipeline]:
        """Wire a pipeline against Graph for the duration of a command"""
        config = self.config
        resolver = self.path_resolver
        resolver.ensure_directories()

        async with httpx.AsyncClient(timeout=config.download.timeout) as http_client:
            auth = CachedAuthProvider(ClientSecretAuthProvider(config.graph, http_client))
            catalog = GraphCatalogClient(auth, config.graph.base_url, http_client)
            runner = CommandRunner()

            label_script = None
            if config.label_script:
                label_script = LabelScriptRunner(config.label_script, resolver, runner)

            async with catalog:
                yield LabelPipeline(
                    config,
                    resolver,
                    auth=auth,
                    catalog=catalog,
                    downloader=Downloader(http_client, config.download),
                    uploader=AppUploader(catalog, ChunkedUploader(http_client, config.upload), config.upload),
                    label_script=label_script,
                    notifier=self.build_notifier(http_client),
                    extractor=ArchiveExtractor(runner),
                    inspector=IdentityInspector(runner),
                    builder=PackageBuilder(runner),
                )


@click.group(name=APP_NAME)
@click.version_option(__version__, prog_name=APP_NAME)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('-d', '--debug', is_flag=True, help='Enable debug output')
@click.option('-q', '--quiet', is_flag=True, help='Suppress all output except errors')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Configuration file (default: $INTUNE_PACKAGER_CONFIG or ~/.intune-packager/config.yaml)')
@click.pass_context
def cli(ctx, verbose, debug, quiet, config_path):
    """Intune Packager - Package macOS software and publish it to Intune

    Each managed title lives in ManagedTitles/{label}_{trackingID}. A run
    resolves the label, downloads and verifies the vendor artifact,
    builds the installer the title is deployed as, uploads it and
    retires old versions.
    """
    # Setup logging
    if quiet:
        logging.disable(logging.CRITICAL)
    else:
        setup_logging(verbose=verbose, debug=debug)

    # Callers may hand in a prepared context
    if ctx.obj is None:
        ctx.obj = Context()
    if config_path is not None:
        ctx.obj.config_path = config_path
    ctx.obj.verbose = verbose
    ctx.obj.debug = debug


# Register commands
cli.add_command(process.process)
cli.add_command(scan.scan)
cli.add_command(run_all.run_all)
cli.add_command(paths.paths)
cli.add_command(ondemand.ondemand)


def main():
    """Main entry point for the CLI application

    This function handles:
    - Exit codes returned by commands
    - Keyboard interrupts
    - Unexpected exceptions with proper error display
    """
    try:
        rv = cli.main(prog_name=APP_NAME, standalone_mode=False)

    except (KeyboardInterrupt, click.exceptions.Abort):
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(EXIT_INTERRUPTED)

    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)

    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if '--debug' in sys.argv or '-d' in sys.argv:
            console.print_exception()
        sys.exit(EXIT_FAILURE)

    sys.exit(rv if isinstance(rv, int) else 0)


if __name__ == "__main__":
    main()
