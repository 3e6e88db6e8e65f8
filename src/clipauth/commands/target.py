"""Target commands -- the recently used notebook and section.

The application remembers where content was last sent so the next send
can default to it. The four values live in the same state file as the
tokens (see :class:`~clipauth.auth.store.RecentTargetStore`).
"""

from __future__ import annotations

import typer

from clipauth.auth import JsonFileStore, RecentTargetStore
from clipauth.models import RecentTarget
from clipauth.output import info, print_record, success

target_app = typer.Typer(no_args_is_help=True)


@target_app.command("show")
def target_show() -> None:
    """Show the recently used notebook and section."""
    target = RecentTargetStore(JsonFileStore()).load()
    if target is None:
        info("No recent target stored.")
        return
    print_record(target.model_dump(), title="Recent target")


@target_app.command("set")
def target_set(
    notebook_id: str = typer.Argument(help="Notebook id."),
    notebook_name: str = typer.Argument(help="Notebook display name."),
    section_id: str = typer.Argument(help="Section id."),
    section_name: str = typer.Argument(help="Section display name."),
) -> None:
    """Remember a notebook and section as the recent target.

    Example::

        clipauth target set 0-abc "Work" 0-def "Clippings"
    """
    for label, value in (
        ("notebook id", notebook_id),
        ("notebook name", notebook_name),
        ("section id", section_id),
        ("section name", section_name),
    ):
        if not value.strip():
            raise typer.BadParameter(f"{label} must not be empty")

    target = RecentTarget(
        notebook_id=notebook_id,
        notebook_name=notebook_name,
        section_id=section_id,
        section_name=section_name,
    )
    RecentTargetStore(JsonFileStore()).save(target)
    success(f"Recent target set to {notebook_name} / {section_name}.")


@target_app.command("clear")
def target_clear() -> None:
    """Forget the recent target."""
    RecentTargetStore(JsonFileStore()).clear()
    success("Recent target cleared.")
