"""Folder scan command"""

import click

from ..decorators import config_required
from ..utils.output import console, format_folder_checks
from ...core.folder_scanner import FolderScanner


@click.command()
@click.option('-a', '--all', 'show_all', is_flag=True,
              help='Also list folders that are not ready, with the reasons')
@click.pass_context
@config_required
def scan(ctx, show_all):
    """List managed title folders ready for automation

    A folder is ready when its name is label_trackingID and its metadata,
    assignments, label script and label plist are all present and
    complete.
    """
    scanner = FolderScanner(ctx.obj.path_resolver)
    checks = scanner.check_all()
    format_folder_checks(checks, show_all=show_all)

    ready = sum(1 for c in checks if c.is_ready)
    console.print(f"\n{ready} of {len(checks)} folders ready for automation")
