"""
tmcloud CLI -- chat-data cloud sync from the command line.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: tmcloud.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="tmcloud")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to the console.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """tmcloud - back up and sync chat data to object storage.

    Encrypted, date-keyed backups with snapshots and a daily schedule.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


from .sync_cmd import register_sync_commands
from .backup import register_backup_commands
from .config_cmd import register_config_commands
from .daemon import register_daemon_commands

register_sync_commands(main)
register_backup_commands(main)
register_config_commands(main)
register_daemon_commands(main)
