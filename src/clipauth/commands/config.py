"""Config commands -- view and modify client settings.

Provides the ``clipauth config`` sub-command group for reading, updating
and resetting :class:`~clipauth.models.AuthSettings`. ``show`` prints the
effective values (environment overrides applied); ``set`` and ``reset``
only touch the settings file.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from clipauth.config import get_config_dir, load_file_settings, load_settings, save_settings
from clipauth.exceptions import ConfigError
from clipauth.models import AuthSettings
from clipauth.output import error, info, print_record, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective settings.

    Example::

        clipauth config show
        clipauth --json config show
    """
    try:
        settings = load_settings()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    record = settings.model_dump(mode="json")
    record["redirect_uri"] = settings.redirect_uri
    print_record(record, title="Settings")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'redirect_port'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the settings file.

    The value is validated (and coerced) by
    :class:`~clipauth.models.AuthSettings` before saving. Setting
    ``client_id`` to an empty string restores the built-in client id.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value invalid.

    Example::

        clipauth config set redirect_port 8400
        clipauth config set authority https://login.microsoftonline.com/consumers
    """
    if key not in AuthSettings.model_fields:
        error(f"Unknown setting: {key}")
        info(f"Known settings: {', '.join(AuthSettings.model_fields)}")
        raise typer.Exit(code=2)

    try:
        data = load_file_settings().model_dump(mode="json")
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data[key] = value
    try:
        new_settings = AuthSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Invalid value for {key}: {exc.errors()[0]['msg']}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {getattr(new_settings, key)}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the settings file to defaults.

    Asks for confirmation unless ``--force`` is active.
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(AuthSettings())
    success("Settings reset to defaults.")
