"""chrca command-line interface.

Commands:
    chrca collect <symptom> [options]   Collect RCA evidence for a symptom.
    chrca serve [--host HOST]           Run the REST API.
    chrca version                       Print version and exit.

``collect`` queries ClickHouse directly using the ``CHRCA_*`` environment
configuration. When ``--api-url`` is given it posts the request to a running
chrca REST API instead. Output is colourised for readability.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
import httpx
from pydantic import ValidationError

from chrca import __version__
from chrca.api.schemas import RcaEvidenceRequestSchema
from chrca.config import load_config
from chrca.evidence.progress import log_progress
from chrca.models.evidence import Scope, Symptom
from chrca.observability.logging import setup_logging

# ---------------------------------------------------------------------------
# Colour helpers
# ---------------------------------------------------------------------------

_RISK_COLORS: dict[str, str] = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
}

_SIGNAL_THRESHOLDS: list[tuple[float, str]] = [
    (0.75, "red"),
    (0.5, "yellow"),
    (0.0, "bright_black"),
]


def _signal_color(signal: float) -> str:
    for threshold, color in _SIGNAL_THRESHOLDS:
        if signal >= threshold:
            return color
    return "bright_black"


def _styled_risk(risk: str) -> str:
    color = _RISK_COLORS.get(risk.lower(), "white")
    return click.style(risk.upper(), fg=color, bold=True)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _post(api_url: str, path: str, body: dict[str, object]) -> dict[str, object]:
    """Perform a POST request and return the parsed JSON body.

    Raises click.ClickException on connection errors or non-2xx responses.
    """
    url = api_url.rstrip("/") + path
    try:
        with httpx.Client(timeout=300.0) as client:
            response = client.post(url, json=body)
        response.raise_for_status()
        return response.json()  # type: ignore[no-any-return]
    except httpx.ConnectError as err:
        raise click.ClickException(f"Cannot connect to chrca API at {api_url}. Is the server running?") from err
    except httpx.HTTPStatusError as exc:
        _handle_error_response(exc.response)
        raise


def _handle_error_response(response: httpx.Response) -> None:
    """Parse an error response body and raise a friendly ClickException."""
    try:
        data: dict[str, object] = response.json()
        detail = data.get("detail", "Unknown error")
        msg = f"HTTP {response.status_code}: {json.dumps(detail) if not isinstance(detail, str) else detail}"
    except ValueError:
        msg = f"HTTP {response.status_code}: {response.text[:200]}"
    raise click.ClickException(msg)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--api-url",
    default=None,
    envvar="CHRCA_API_URL",
    help="chrca REST API base URL. When unset, collect queries ClickHouse directly.",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str | None) -> None:
    """chrca: root cause analysis evidence for ClickHouse clusters."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


# ---------------------------------------------------------------------------
# chrca version
# ---------------------------------------------------------------------------


@cli.command("version")
def cmd_version() -> None:
    """Print the chrca version and exit."""
    click.echo(f"chrca {__version__}")


# ---------------------------------------------------------------------------
# chrca collect
# ---------------------------------------------------------------------------


def _build_request_body(
    symptom: str,
    scope: str,
    target: dict[str, str | None],
    symptom_text: str | None,
    time_window: int | None,
    time_from: str | None,
    time_to: str | None,
    status_context: Path | None,
) -> dict[str, object]:
    """Assemble the JSON request body from command-line options."""
    if (time_from is None) != (time_to is None):
        raise click.UsageError("--from and --to must be given together")

    body: dict[str, object] = {"symptom": symptom, "scope": scope}
    present = {key: value for key, value in target.items() if value}
    if present:
        body["target"] = present
    if symptom_text:
        body["symptom_text"] = symptom_text
    if time_window is not None:
        body["time_window"] = time_window
    if time_from is not None:
        body["time_range"] = {"from": time_from, "to": time_to}
    if status_context is not None:
        try:
            body["status_context"] = json.loads(status_context.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise click.UsageError(f"cannot read status context {status_context}: {exc}") from exc
    return body


@cli.command("collect")
@click.argument("symptom", type=click.Choice([s.value for s in Symptom]))
@click.option(
    "--scope",
    type=click.Choice([s.value for s in Scope]),
    default=Scope.CLUSTER.value,
    show_default=True,
    help="Investigation granularity.",
)
@click.option("--database", default=None, help="Target database.")
@click.option("--table", default=None, help="Target table, optionally database-qualified.")
@click.option("--node", default=None, help="Target node hostname.")
@click.option("--query-hash", default=None, help="Target normalized query hash.")
@click.option("--symptom-text", default=None, help="Free-text description. Required for 'unknown'.")
@click.option("--time-window", type=int, default=None, metavar="MINUTES", help="Look-back window in minutes.")
@click.option("--from", "time_from", default=None, metavar="ISO8601", help="Absolute range start.")
@click.option("--to", "time_to", default=None, metavar="ISO8601", help="Absolute range end.")
@click.option(
    "--status-context",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with a previously generated cluster-status snapshot.",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    default=False,
    help="Print raw JSON response.",
)
@click.pass_context
def cmd_collect(
    ctx: click.Context,
    symptom: str,
    scope: str,
    database: str | None,
    table: str | None,
    node: str | None,
    query_hash: str | None,
    symptom_text: str | None,
    time_window: int | None,
    time_from: str | None,
    time_to: str | None,
    status_context: Path | None,
    output_json: bool,
) -> None:
    """Collect RCA evidence for SYMPTOM.

    Example:

        chrca collect high_part_count --scope table --table events.raw --time-window 120
    """
    body = _build_request_body(
        symptom,
        scope,
        {"database": database, "table": table, "node": node, "query_hash": query_hash},
        symptom_text,
        time_window,
        time_from,
        time_to,
        status_context,
    )
    try:
        request_schema = RcaEvidenceRequestSchema.model_validate(body)
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc

    if not output_json:
        click.echo(click.style("Collecting", bold=True) + f" {symptom} evidence (scope: {scope}) ...")

    api_url: str | None = ctx.obj.get("api_url")
    if api_url:
        data = _post(api_url, "/api/v1/rca/evidence", body)
    else:
        from chrca.app import collect_once

        try:
            config = load_config()
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        setup_logging(config.log.level, json_output=not sys.stderr.isatty())
        output = asyncio.run(collect_once(config, request_schema.to_domain(), progress=log_progress))
        data = output.to_dict()

    if output_json:
        click.echo(json.dumps(data, indent=2))
    else:
        _print_evidence(data)

    if not data.get("success", False):
        ctx.exit(1)


def _print_evidence(data: dict[str, object]) -> None:
    """Pretty-print an RCA evidence response dict."""
    click.echo("")
    click.echo(click.style("RCA Evidence", bold=True, underline=True))
    click.echo(f"  symptom: {data.get('symptom', '?')}  scope: {data.get('scope', '?')}")
    target = data.get("target")
    if isinstance(target, dict) and target:
        click.echo("  target: " + ", ".join(f"{k}={v}" for k, v in target.items()))

    error = data.get("error")
    if error:
        click.echo("")
        click.echo(click.style(f"  Error: {error}", fg="red", bold=True))

    candidates: list[dict[str, object]] = data.get("candidates", [])  # type: ignore[assignment]
    if candidates:
        click.echo("")
        click.echo(click.style(f"Candidates ({len(candidates)}):", bold=True))
        for cand in candidates:
            raw_signal = cand.get("signal_strength", 0.0)
            signal = float(raw_signal) if isinstance(raw_signal, int | float) else 0.0
            styled = click.style(f"{signal:.2f}", fg=_signal_color(signal), bold=True)
            click.echo(
                f"  {styled}  {cand.get('cause', '?')}"
                f"  ({cand.get('indicators_matched', 0)}/{cand.get('indicators_checked', 0)} indicators)"
            )
            for line in cand.get("evidence_for", []):  # type: ignore[attr-defined]
                click.echo(click.style("      + ", fg="green") + str(line))
            for line in cand.get("evidence_against", []):  # type: ignore[attr-defined]
                click.echo(click.style("      - ", fg="bright_black") + str(line))
            for line in cand.get("next_checks", []):  # type: ignore[attr-defined]
                click.echo(click.style("      > ", fg="cyan") + str(line))

    actions: list[dict[str, object]] = data.get("possible_actions", [])  # type: ignore[assignment]
    if actions:
        click.echo("")
        click.echo(click.style("Possible Actions:", bold=True))
        for action in actions:
            click.echo(
                f"  [{_styled_risk(str(action.get('risk', '?')))}] {action.get('title', '')}"
                f"  (for {action.get('tied_to', '?')})"
            )

    related: list[str] = data.get("related_symptoms", [])  # type: ignore[assignment]
    if related:
        click.echo("")
        click.echo(click.style("Related symptoms: ", bold=True) + ", ".join(related))

    gaps: list[dict[str, object]] = data.get("gaps", [])  # type: ignore[assignment]
    if gaps:
        click.echo("")
        for gap in gaps:
            click.echo(click.style(f"  Gap: {gap.get('description', '')}: {gap.get('reason', '')}", fg="yellow"))

    click.echo("")


# ---------------------------------------------------------------------------
# chrca serve
# ---------------------------------------------------------------------------


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind.")
def cmd_serve(host: str) -> None:
    """Run the REST API on CHRCA_API_PORT."""
    from chrca.app import run_server

    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    run_server(config, host)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
