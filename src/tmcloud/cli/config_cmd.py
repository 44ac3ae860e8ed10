"""Config commands: show, set."""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from pydantic import ValidationError
from rich.panel import Panel

from ._common import console, home_option, with_runtime
from ..config import YamlConfigStore
from ..errors import TmCloudError
from ..models import SyncConfig

SETTABLE = (
    "sync_mode",
    "sync_hour",
    "sync_minute",
    "encryption_enabled",
    "encryption_key",
    "storage.backend",
    "storage.path",
    "console_logging",
    "operation_timeout",
)


def apply_setting(config: SyncConfig, key: str, value: str) -> SyncConfig:
    """Return a validated copy of config with one dotted key changed.

    Raises:
        click.BadParameter: Unknown key.
        ValidationError: The value does not validate.
    """
    if key not in SETTABLE:
        raise click.BadParameter(
            f"unknown key {key!r}; choose from {', '.join(SETTABLE)}", param_hint="KEY"
        )
    data = config.model_dump(mode="json")
    target = data
    *parents, leaf = key.split(".")
    for part in parents:
        target = target[part]
    target[leaf] = value
    return SyncConfig(**data)


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group()
    def config():
        """Show or change sync settings."""

    @config.command("show")
    @home_option
    def config_show(home: str):
        """Print the current configuration (key masked)."""
        store = YamlConfigStore(Path(home).expanduser())
        data = store.load().model_dump(mode="json")
        if data.get("encryption_key"):
            data["encryption_key"] = "********"
        console.print(Panel(
            yaml.dump(data, default_flow_style=False).rstrip(),
            title=str(store.path),
            border_style="cyan",
        ))

    @config.command("set")
    @click.argument("key")
    @click.argument("value")
    @home_option
    def config_set(key: str, value: str, home: str):
        """Change one setting and apply it.

        Switching from disabled to an active mode runs an initial sync;
        switching from backup to sync runs a mode-switch sync.

        Examples:

            tmcloud config set storage.path /mnt/bucket

            tmcloud config set sync_mode sync
        """
        current = YamlConfigStore(Path(home).expanduser()).load()
        try:
            updated = apply_setting(current, key, value)
        except ValidationError as exc:
            console.print(f"[red]Invalid value for {key}:[/] {exc.errors()[0]['msg']}")
            raise SystemExit(1)

        try:
            with_runtime(home, lambda rt: rt.save_settings(updated), exclusive=True)
        except TmCloudError as exc:
            console.print(f"[red]Settings not saved: {exc}[/]")
            raise SystemExit(1)
        shown = "********" if key == "encryption_key" else value
        console.print(f"\n  [green]Set[/] {key} = [cyan]{shown}[/]\n")
