"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from fedideploy.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from fedideploy.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(line for line in (_item_line(item) for item in items) if line)

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _item_line(item: Any) -> str:
    """One ``name status`` line for a service or follow item."""
    if isinstance(item, dict):
        name = item.get("service") or item.get("handle")
        if name:
            return f"{name} {item.get('status', '')}".rstrip()
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/ERROR status line."""
    label = Text("OK", style="fedi.ok")
    op = Text(f"  {result.op}", style="fedi.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="fedi.key")
    if key.endswith("_url") or key == "kafka_endpoint":
        v = Text(str(value), style="fedi.url")
    elif key in ("workdir", "path"):
        v = Text(str(value), style="fedi.path")
    elif key.endswith("password"):
        v = Text(str(value), style="fedi.secret")
    elif isinstance(value, (dict, list)):
        v = Text(_json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        console.print(f"    {k}: {v}")


def _status_table(items: list[dict[str, Any]], *, name_key: str, detail_key: str | None) -> Table:
    """Build a two- or three-column table of named items and their status."""
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column(name_key.replace("_", " ").title(), no_wrap=True)
    table.add_column("Status")
    if detail_key:
        table.add_column(detail_key.replace("_", " ").title(), style="dim")
    for item in items:
        status = str(item.get("status", ""))
        style = style_for_status(status)
        row: list[str | Text] = [
            str(item.get(name_key, "")),
            Text(status, style=style) if style else status,
        ]
        if detail_key:
            row.append(str(item.get(detail_key) or ""))
        table.add_row(*row)
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="fedi.error")
    op = Text(f"  {result.op}", style="fedi.op")
    sep = Text(" — ")
    console.print(label, op, sep, msg)

    if err and err.code:
        console.print(Text(f"  code: {err.code}", style="dim"))
    if result.data.get("failed_step"):
        console.print(Text(f"  failed_step: {result.data['failed_step']}", style="dim"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Preflight / render ────────────────────────────────────────────────


def _render_preflight(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for tool, path in result.data.get("tools", {}).items():
        _field(console, tool, path)
    env = result.data.get("environment", [])
    if env:
        _field(console, "environment", ", ".join(env))


def _render_config(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render render_config results with the file manifest."""
    _status_line(console, result)
    d = result.data
    for key in ("workdir", "domain", "instance_url", "stage"):
        if key in d:
            _field(console, key, d[key])
    _field(console, "services", ", ".join(d.get("services", [])))
    files = d.get("files_written", [])
    _field(console, "files_written", len(files))
    if verbose:
        for f in files:
            console.print(f"    {f}")
        dirs = d.get("directories_created", [])
        if dirs:
            _field(console, "directories_created", len(dirs))
            for rel in dirs:
                console.print(f"    {rel}")
        owned = d.get("directories_owned", [])
        if owned:
            _field(console, "directories_owned", ", ".join(owned))
        _render_meta(console, result)


# ── Stack ─────────────────────────────────────────────────────────────


def _render_stack(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    started = result.data.get("services", [])
    if started:
        _field(console, "started", ", ".join(started))
    healthy = result.data.get("healthy", [])
    if healthy or verbose:
        _field(console, "healthy", ", ".join(healthy) or "-")


def _render_stack_status(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    console.print(_status_table(items, name_key="service", detail_key=None))
    healthy = sum(1 for i in items if i.get("status") in ("healthy", "running"))
    console.print(f"\n{healthy}/{len(items)} services up")


# ── Bootstrap / follow / deploy ───────────────────────────────────────


def _admin_panel(data: dict[str, Any]) -> Panel:
    lines = [
        f"url:      {data.get('instance_url', '')}",
        f"username: {data.get('admin_username', '')}",
        f"email:    {data.get('admin_email', '')}",
        f"password: {data.get('admin_password') or '-'}",
    ]
    return Panel("\n".join(lines), title="Admin account", border_style="fedi.ok", expand=False)


def _render_bootstrap(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render bootstrap results: stages run this time plus the admin credentials."""
    _status_line(console, result)
    d = result.data
    _field(console, "stage", d.get("stage", ""))
    completed = d.get("completed_stages", [])
    if completed:
        _field(console, "completed", len(completed))
        if verbose:
            for stage in completed:
                console.print(f"    {stage}")
    else:
        _field(console, "completed", "nothing to do")
    console.print(_admin_panel(d))


def _render_follow(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    items = d.get("items", [])
    if verbose:
        console.print(_status_table(items, name_key="handle", detail_key="detail"))
    else:
        notable = [i for i in items if i.get("status") != "followed"]
        if notable:
            console.print(_status_table(notable, name_key="handle", detail_key="detail"))
    _status_line(console, result)
    for key in ("total", "followed", "skipped", "failed"):
        _field(console, key, d.get(key, 0))


def _render_deploy(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the final deploy summary."""
    _status_line(console, result)
    d = result.data
    for key in ("domain", "instance_url", "kafka_endpoint"):
        if key in d:
            _field(console, key, d[key])
    steps = d.get("steps", [])
    if steps:
        _field(console, "steps", " → ".join(steps))
    if "followed" in d:
        summary = f"{d['followed']} followed, {d['skipped']} skipped, {d['failed']} failed"
        _field(console, "follows", summary)
    console.print(_admin_panel(d))
    console.print(
        Text(
            "Store the admin password now; it is not shown again outside the state file.",
            style="fedi.warning",
        )
    )


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "preflight": _render_preflight,
    "render_config": _render_config,
    # Stack
    "stack_up": _render_stack,
    "stack_down": _render_stack,
    "stack_restart": _render_stack,
    "stack_status": _render_stack_status,
    # Bootstrap
    "bootstrap": _render_bootstrap,
    "follow": _render_follow,
    "deploy": _render_deploy,
}
