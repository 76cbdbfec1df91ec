"""crossview command-line interface.

Commands:
    crossview contexts                          List contexts and the current one.
    crossview use-context NAME                  Select the current context.
    crossview add-contexts FILE                 Merge a kubeconfig file's contexts.
    crossview remove-context NAME               Delete a context from the kubeconfig.
    crossview list APIVERSION KIND [-n NS]      List one page of resources.
    crossview get APIVERSION KIND NAME [-n NS]  Show a single resource.
    crossview events KIND NAME [-n NS]          Events for an object, newest first.
    crossview managed [--refresh]               All provider-managed resources.
    crossview view VIEW                         A Crossplane dashboard view.
    crossview serve                             Run the REST API server.
    crossview version                           Print version and exit.

Every command except ``serve`` and ``version`` calls the REST API at
http://localhost:8080 (configurable via ``--api-url``).
"""

from __future__ import annotations

import json
from typing import Any

import click
import httpx

from crossview import __version__

_DEFAULT_API_URL = "http://localhost:8080"

_CONDITION_COLORS: dict[str, str] = {
    "True": "green",
    "False": "red",
    "Unknown": "yellow",
}


def _styled_ready(obj: dict[str, Any]) -> str:
    conditions = (obj.get("status") or {}).get("conditions") or obj.get("conditions") or []
    for cond in conditions:
        if cond.get("type") in ("Ready", "Synced"):
            status = str(cond.get("status", "Unknown"))
            return click.style(status, fg=_CONDITION_COLORS.get(status, "white"))
    return click.style("-", fg="bright_black")


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _request(
    api_url: str,
    method: str,
    path: str,
    params: dict[str, object] | None = None,
    body: dict[str, object] | None = None,
) -> Any:
    """Perform a request and return the parsed JSON body.

    Raises click.ClickException on connection errors or non-2xx responses.
    """
    url = api_url.rstrip("/") + path
    query = {k: v for k, v in (params or {}).items() if v is not None}
    try:
        with httpx.Client(timeout=60.0) as client:
            response = client.request(method, url, params=query, json=body)
        response.raise_for_status()
        return response.json()
    except httpx.ConnectError as err:
        raise click.ClickException(f"Cannot connect to crossview API at {api_url}. Is the server running?") from err
    except httpx.HTTPStatusError as exc:
        _handle_error_response(exc.response)
        raise


def _get(api_url: str, path: str, params: dict[str, object] | None = None) -> Any:
    return _request(api_url, "GET", path, params=params)


def _post(api_url: str, path: str, body: dict[str, object]) -> Any:
    return _request(api_url, "POST", path, body=body)


def _delete(api_url: str, path: str, params: dict[str, object]) -> Any:
    return _request(api_url, "DELETE", path, params=params)


def _handle_error_response(response: httpx.Response) -> None:
    """Parse an error response body and raise a friendly ClickException."""
    try:
        data: dict[str, object] = response.json()
        msg = f"{data.get('error', 'ERROR')}: {data.get('detail', 'Unknown error')}"
    except Exception:  # noqa: BLE001
        msg = f"HTTP {response.status_code}: {response.text[:200]}"
    raise click.ClickException(msg)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--api-url",
    default=_DEFAULT_API_URL,
    envvar="CROSSVIEW_API_URL",
    show_default=True,
    help="crossview REST API base URL.",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """crossview: browse Crossplane and Kubernetes resources across contexts."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


_context_option = click.option("--context", "-c", "context", default=None, help="Context to query.")
_namespace_option = click.option("--namespace", "-n", default=None, metavar="NS", help="Namespace.")
_json_option = click.option("--json", "output_json", is_flag=True, default=False, help="Print raw JSON response.")


@cli.command("version")
def cmd_version() -> None:
    """Print the crossview version and exit."""
    click.echo(f"crossview {__version__}")


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------


@cli.command("contexts")
@_json_option
@click.pass_context
def cmd_contexts(ctx: click.Context, output_json: bool) -> None:
    """List known contexts; the current one is marked with ``*``."""
    data = _get(ctx.obj["api_url"], "/api/contexts")
    if output_json:
        _echo_json(data)
        return
    current = data.get("current")
    for entry in data.get("contexts", []):
        marker = click.style("*", fg="green", bold=True) if entry["name"] == current else " "
        click.echo(f"{marker} {entry['name']}  cluster={entry.get('cluster', '')}  namespace={entry.get('namespace', '')}")


@cli.command("use-context")
@click.argument("name")
@click.pass_context
def cmd_use_context(ctx: click.Context, name: str) -> None:
    """Select NAME as the current context."""
    _post(ctx.obj["api_url"], "/api/contexts/current", {"context": name})
    click.echo(f"Switched to context {click.style(name, bold=True)}.")


@cli.command("add-contexts")
@click.argument("kubeconfig", type=click.File("r"))
@click.pass_context
def cmd_add_contexts(ctx: click.Context, kubeconfig: Any) -> None:
    """Merge the contexts of KUBECONFIG (a file, or - for stdin)."""
    data = _post(ctx.obj["api_url"], "/api/contexts/add", {"kubeconfig": kubeconfig.read()})
    added = data.get("added", [])
    if not added:
        click.echo("No new contexts.")
    for name in added:
        click.echo(f"Added context {click.style(name, bold=True)}.")


@cli.command("remove-context")
@click.argument("name")
@click.confirmation_option(prompt="Remove this context from the kubeconfig?")
@click.pass_context
def cmd_remove_context(ctx: click.Context, name: str) -> None:
    """Delete NAME and any cluster or user only it referenced."""
    _delete(ctx.obj["api_url"], "/api/contexts", {"context": name})
    click.echo(f"Removed context {name}.")


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@cli.command("list")
@click.argument("api_version")
@click.argument("kind")
@_namespace_option
@_context_option
@click.option("--limit", type=int, default=None, help="Page size.")
@click.option("--continue", "continue_token", default=None, help="Continuation token from a previous page.")
@click.option("--plural", default=None, help="Resource plural; skips discovery.")
@_json_option
@click.pass_context
def cmd_list(
    ctx: click.Context,
    api_version: str,
    kind: str,
    namespace: str | None,
    context: str | None,
    limit: int | None,
    continue_token: str | None,
    plural: str | None,
    output_json: bool,
) -> None:
    """List KIND objects of API_VERSION (e.g. ``pkg.crossplane.io/v1 Provider``)."""
    params: dict[str, object] = {
        "apiVersion": api_version,
        "kind": kind,
        "namespace": namespace,
        "context": context,
        "limit": limit,
        "continue": continue_token,
        "plural": plural,
    }
    data = _get(ctx.obj["api_url"], "/api/resources", params)
    if output_json:
        _echo_json(data)
        return
    _print_items(data.get("items", []))
    token = data.get("continueToken")
    if token:
        click.echo("")
        click.echo(click.style("More results: ", fg="bright_black") + f"--continue {token}")


@cli.command("get")
@click.argument("api_version")
@click.argument("kind")
@click.argument("name")
@_namespace_option
@_context_option
@click.pass_context
def cmd_get(
    ctx: click.Context,
    api_version: str,
    kind: str,
    name: str,
    namespace: str | None,
    context: str | None,
) -> None:
    """Show a single object as JSON."""
    params: dict[str, object] = {
        "apiVersion": api_version,
        "kind": kind,
        "name": name,
        "namespace": namespace,
        "context": context,
    }
    _echo_json(_get(ctx.obj["api_url"], "/api/resource", params))


@cli.command("events")
@click.argument("kind")
@click.argument("name")
@_namespace_option
@_context_option
@_json_option
@click.pass_context
def cmd_events(
    ctx: click.Context,
    kind: str,
    name: str,
    namespace: str | None,
    context: str | None,
    output_json: bool,
) -> None:
    """Events involving KIND/NAME, newest first."""
    params: dict[str, object] = {"kind": kind, "name": name, "namespace": namespace, "context": context}
    data = _get(ctx.obj["api_url"], "/api/events", params)
    if output_json:
        _echo_json(data)
        return
    events = data.get("items", [])
    if not events:
        click.echo("No events.")
    for evt in events:
        when = evt.get("lastTimestamp") or evt.get("eventTime") or evt.get("firstTimestamp") or ""
        color = "yellow" if evt.get("type") == "Warning" else "green"
        click.echo(
            f"  {when}  {click.style(str(evt.get('type', '')), fg=color)}  "
            f"{evt.get('reason', '')}: {str(evt.get('message', ''))[:100]}"
        )


@cli.command("managed")
@_context_option
@click.option("--refresh", is_flag=True, default=False, help="Bypass the server's cache.")
@click.option("--limit", type=int, default=None, help="Maximum items to return.")
@_json_option
@click.pass_context
def cmd_managed(
    ctx: click.Context,
    context: str | None,
    refresh: bool,
    limit: int | None,
    output_json: bool,
) -> None:
    """All instances of every provider-managed resource type."""
    params: dict[str, object] = {"context": context, "refresh": "true" if refresh else None, "limit": limit}
    data = _get(ctx.obj["api_url"], "/api/managed", params)
    if output_json:
        _echo_json(data)
        return
    _print_items(data.get("items", []), show_kind=True)
    if data.get("fromCache"):
        click.echo(click.style("(cached)", fg="bright_black"))


@cli.command("view")
@click.argument(
    "view",
    type=click.Choice(
        [
            "providers",
            "provider-configs",
            "functions",
            "compositions",
            "xrds",
            "composite-resource-kinds",
            "composite-resources",
            "claims",
            "resources",
            "dashboard",
        ]
    ),
)
@_context_option
@click.pass_context
def cmd_view(ctx: click.Context, view: str, context: str | None) -> None:
    """Print a Crossplane dashboard VIEW as JSON."""
    _echo_json(_get(ctx.obj["api_url"], f"/api/crossplane/{view}", {"context": context}))


def _print_items(items: list[dict[str, Any]], show_kind: bool = False) -> None:
    if not items:
        click.echo("No resources found.")
        return
    for item in items:
        metadata = item.get("metadata") or {}
        name = metadata.get("name", "?")
        namespace = metadata.get("namespace")
        label = f"{item.get('kind', '?')}/{name}" if show_kind else name
        where = f"  ({namespace})" if namespace else ""
        click.echo(f"  {_styled_ready(item)}  {label}{where}")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@cli.command("serve")
def cmd_serve() -> None:
    """Run the REST API server (configured from CROSSVIEW_* variables)."""
    from crossview.app import run

    run()


if __name__ == "__main__":
    cli()
