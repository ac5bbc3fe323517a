"""Path display command"""

import click
import yaml
from rich import box
from rich.syntax import Syntax
from rich.table import Table

from ..decorators import config_required
from ..utils.output import console


@click.command()
@click.option('--show-config', is_flag=True, help='Also print the effective configuration (secrets masked)')
@click.pass_context
@config_required
def paths(ctx, show_config):
    """Show the directories intune-packager works in

    Examples:
        # Show all resolved paths
        intune-packager paths

        # Include the effective configuration
        intune-packager paths --show-config
    """
    resolver = ctx.obj.path_resolver
    config_path = ctx.obj.config_service.config_path

    table = Table(title="Intune Packager Paths", box=box.ROUNDED)
    table.add_column("Path Type", style="cyan")
    table.add_column("Absolute Path", style="green")
    table.add_column("Exists", style="yellow")

    paths_info = [
        ("Configuration", config_path),
        ("Root", resolver.root),
        ("Managed Titles", resolver.get_managed_titles_dir()),
        ("Cache", resolver.get_cache_dir()),
        ("Logs", resolver.get_logs_dir()),
        ("On-demand Queue", resolver.get_queue_dir()),
    ]

    for name, path in paths_info:
        table.add_row(name, str(path), "Yes" if path.exists() else "No")

    console.print(table)

    if show_config:
        text = yaml.safe_dump(ctx.obj.config.to_dict(), default_flow_style=False, sort_keys=False)
        console.print("\n[bold]Configuration:[/bold]")
        console.print(Syntax(text, "yaml"))
