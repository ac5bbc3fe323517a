"""Configuration context decorator for CLI commands"""

from functools import wraps
from typing import Callable

import click

from ..utils.output import console
from ...api.exceptions import ConfigurationError
from ...constants import EMOJI_ERROR, EXIT_FAILURE


def config_required(func: Callable) -> Callable:
    """Decorator that loads the configuration before the command runs

    An invalid configuration file ends the command with exit code 1
    instead of a traceback.

    Args:
        func: Command function to decorate

    Returns:
        Decorated function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()

        try:
            config = ctx.obj.config
        except ConfigurationError as e:
            console.print(f"{EMOJI_ERROR} {e.message}")
            ctx.exit(EXIT_FAILURE)

        if ctx.obj.debug:
            console.print(f"[dim]Configuration: {ctx.obj.config_service.config_path}[/dim]")
            console.print(f"[dim]Root: {config.root_path}[/dim]")

        return func(*args, **kwargs)

    return wrapper
