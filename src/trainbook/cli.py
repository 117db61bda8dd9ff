"""Command-line interface for trainbook."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from trainbook import __version__


@click.group()
@click.version_option(version=__version__, prog_name="trainbook")
def main() -> None:
    """trainbook -- interactive training projects stored in a workbook.

    Projects, slides and elements live in the tabs of one .xlsx file.
    """


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

_workspace_option = click.option(
    "--workspace",
    "directory",
    default=".",
    type=click.Path(exists=True, file_okay=False),
    help="Workspace directory.",
)
_user_option = click.option(
    "--user",
    default=None,
    help="Act as this identity (defaults to the configured environment variable).",
)


def _open(directory: str, user: str | None = None) -> tuple[Any, str]:
    from trainbook.config import CONFIG_FILENAME
    from trainbook.service import open_workspace

    root = Path(directory)
    if not (root / CONFIG_FILENAME).exists():
        raise click.ClickException(f"No {CONFIG_FILENAME} in {root}")
    ws = open_workspace(root)
    identity = user or ws.identity.current_identity()
    return ws, identity


def _unwrap(response: dict[str, Any]) -> Any:
    if response.get("success"):
        return response.get("data")
    if response.get("requireAuth"):
        raise click.ClickException(f"{response['error']} Use --user to act as another identity.")
    raise click.ClickException(response.get("error", "Request failed"))


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
@click.option("--owner", default="owner@example.com", help="Identity recorded as the workbook owner.")
def init(directory: str, owner: str) -> None:
    """Create a new workspace at DIRECTORY."""
    from trainbook.config import scaffold_workspace
    from trainbook.service import open_workspace

    try:
        target = scaffold_workspace(Path(directory), owner=owner)
    except FileExistsError as e:
        raise click.ClickException(str(e))
    ws = open_workspace(target)
    click.echo(f"Created workspace at {target}")
    click.echo(f"  workbook: {ws.grid.path}")


@main.command()
@_workspace_option
@click.option("--tab", default=None, help="Reconcile one tab only.")
def reconcile(directory: str, tab: str | None) -> None:
    """Add any missing sections to project tabs."""
    from trainbook.utils.ids import sanitize_tab_name

    ws, _ = _open(directory)
    tabs = [tab] if tab else [sanitize_tab_name(e.title) for e in ws.index.list_all()]
    for name in tabs:
        added = ws.template.reconcile(name)
        if added:
            click.echo(f"{name}: added {', '.join(added)}")
        else:
            click.echo(f"{name}: up to date")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@main.group()
def project() -> None:
    """Project commands."""


@project.command("create")
@click.argument("title")
@_workspace_option
@_user_option
def project_create(title: str, directory: str, user: str | None) -> None:
    """Create a project called TITLE."""
    ws, identity = _open(directory, user)
    data = _unwrap(ws.service.create_project({"name": title}, identity))
    click.echo(f"Created {data['projectId']} (tab {data['projectTabName']!r})")


@project.command("list")
@_workspace_option
@_user_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def project_list(directory: str, user: str | None, as_json: bool) -> None:
    """List projects visible to the current identity."""
    ws, identity = _open(directory, user)
    entries = _unwrap(ws.service.list_projects({}, identity))
    if as_json:
        _echo_json(entries)
        return
    if not entries:
        click.echo("No projects.")
        return
    for e in entries:
        click.echo(f"  {e['projectId']}  {e['title']}")


@project.command("show")
@click.argument("project_id")
@_workspace_option
@_user_option
def project_show(project_id: str, directory: str, user: str | None) -> None:
    """Print a project as JSON and record the access."""
    ws, identity = _open(directory, user)
    data = _unwrap(ws.service.get_project({"projectId": project_id}, identity))
    ws.document.open(project_id)
    _echo_json(data)


@project.command("rename")
@click.argument("project_id")
@click.argument("title")
@_workspace_option
@_user_option
def project_rename(project_id: str, title: str, directory: str, user: str | None) -> None:
    """Rename a project, its tab and its folder."""
    ws, identity = _open(directory, user)
    data = _unwrap(
        ws.service.update_project({"projectId": project_id, "updates": {"title": title}}, identity)
    )
    click.echo(f"Renamed; tab is now {data['projectTabName']!r}")


@project.command("delete")
@click.argument("project_id")
@_workspace_option
@_user_option
@click.option("--purge", is_flag=True, help="Also trash the project folder.")
def project_delete(project_id: str, directory: str, user: str | None, purge: bool) -> None:
    """Delete a project."""
    ws, identity = _open(directory, user)
    data = _unwrap(
        ws.service.delete_project({"projectId": project_id, "deleteDriveFiles": purge}, identity)
    )
    click.echo(data.get("message", "Deleted"))


@project.command("publish")
@click.argument("project_id")
@_workspace_option
@_user_option
@click.option("--base-url", default=None, help="Override the configured publish URL.")
def project_publish(project_id: str, directory: str, user: str | None, base_url: str | None) -> None:
    """Stamp the viewer URL on a project."""
    ws, identity = _open(directory, user)
    data = _unwrap(ws.service.publish_project({"projectId": project_id, "baseUrl": base_url}, identity))
    click.echo(data["webAppUrl"])


# ---------------------------------------------------------------------------
# Slides and elements
# ---------------------------------------------------------------------------


@main.group()
def slide() -> None:
    """Slide commands."""


@slide.command("add")
@click.argument("project_id")
@click.option("--title", default=None, help="Slide title.")
@click.option("--background", default=None, help="Background color, e.g. #FFFFFF.")
@_workspace_option
@_user_option
def slide_add(project_id: str, title: str | None, background: str | None, directory: str, user: str | None) -> None:
    """Append a slide to a project."""
    ws, identity = _open(directory, user)
    slide_data: dict[str, Any] = {}
    if title:
        slide_data["title"] = title
    if background:
        slide_data["backgroundColor"] = background
    data = _unwrap(ws.service.add_slide({"projectId": project_id, "slide": slide_data}, identity))
    click.echo(f"Added slide {data['slideNumber']}: {data['slideId']}")


@main.group()
def element() -> None:
    """Element commands."""


@element.command("add")
@click.argument("project_id")
@click.argument("slide_id")
@click.option("--type", "element_type", default="Rectangle", help="Element type.")
@click.option("--text", default=None, help="Element text.")
@click.option("--nickname", default=None, help="Element nickname.")
@_workspace_option
@_user_option
def element_add(
    project_id: str,
    slide_id: str,
    element_type: str,
    text: str | None,
    nickname: str | None,
    directory: str,
    user: str | None,
) -> None:
    """Add an element to SLIDE_ID."""
    ws, identity = _open(directory, user)
    element_data: dict[str, Any] = {"type": element_type}
    if text:
        element_data["text"] = text
    if nickname:
        element_data["nickname"] = nickname
    data = _unwrap(
        ws.service.add_element(
            {"projectId": project_id, "slideId": slide_id, "element": element_data}, identity
        )
    )
    click.echo(f"Added element {data['nickname']!r}: {data['elementId']}")


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


@main.group()
def access() -> None:
    """Access commands."""


@access.command("level")
@click.argument("project_id")
@click.argument("identity")
@_workspace_option
def access_level(project_id: str, identity: str, directory: str) -> None:
    """Print the access level IDENTITY has on a project."""
    ws, _ = _open(directory)
    click.echo(str(ws.access.level_for(project_id, identity)))


@main.group()
def admin() -> None:
    """Project admin commands."""


def _require_manage(ws: Any, action: str, project_id: str, identity: str) -> None:
    if not ws.access.can_perform_action(action, project_id, identity):
        raise click.ClickException("Authorization denied.")


@admin.command("add")
@click.argument("project_id")
@click.argument("email")
@_workspace_option
@_user_option
def admin_add(project_id: str, email: str, directory: str, user: str | None) -> None:
    """Make EMAIL an admin of a project."""
    ws, identity = _open(directory, user)
    _require_manage(ws, "admin.addUser", project_id, identity)
    if not ws.access.add_project_admin(project_id, email):
        raise click.ClickException(f"Could not add {email} to {project_id}")
    click.echo(f"{email} is now an admin of {project_id}")


@admin.command("remove")
@click.argument("project_id")
@click.argument("email")
@_workspace_option
@_user_option
def admin_remove(project_id: str, email: str, directory: str, user: str | None) -> None:
    """Remove EMAIL from a project's admins."""
    ws, identity = _open(directory, user)
    _require_manage(ws, "admin.removeUser", project_id, identity)
    if not ws.access.remove_project_admin(project_id, email):
        raise click.ClickException(f"Could not remove {email} from {project_id}")
    click.echo(f"{email} is no longer an admin of {project_id}")


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


def _echo_events(events: list[dict[str, Any]]) -> None:
    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


@main.command("events")
@_workspace_option
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--project", "project_id", default=None, help="Filter by project ID.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    project_id: str | None,
    limit: int,
) -> None:
    """Show the structured event log, newest first."""
    from trainbook.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, project_id=project_id, limit=limit)
    if not events:
        click.echo("No events found.")
        return
    _echo_events(events)


@project.command("log")
@click.argument("project_id")
@_workspace_option
def project_log(project_id: str, directory: str) -> None:
    """Show the event log of one project."""
    from trainbook.logging.sink import EventSink

    events = EventSink(Path(directory)).read_project_log(project_id)
    if not events:
        click.echo(f"No events found for project {project_id}.")
        return
    _echo_events(events)


@main.command("gc")
@_workspace_option
@click.option("--max-days", default=None, type=int, help="Override logging_max_days.")
def gc_cmd(directory: str, max_days: int | None) -> None:
    """Purge old project logs.  Logs of indexed projects are kept."""
    from trainbook.logging.sink import EventSink

    ws, _ = _open(directory)
    days = max_days if max_days is not None else ws.config.get("logging_max_days")
    if days is None:
        click.echo("logging_max_days is not set; nothing to do.")
        return
    retained = {e.project_id for e in ws.index.list_all()}
    deleted = EventSink(ws.root).purge_old_logs(int(days), retained)
    click.echo(f"Deleted {deleted} log file(s).")
