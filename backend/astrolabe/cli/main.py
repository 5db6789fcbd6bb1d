"""CLI entrypoint for Astrolabe."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="astro", help="Astrolabe command-line interface")
snippets_app = typer.Typer(name="snippets", help="Manage visualization snippets")
datasets_app = typer.Typer(name="datasets", help="Manage datasets")
app.add_typer(snippets_app, name="snippets")
app.add_typer(datasets_app, name="datasets")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("ASTRO_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _write_or_echo(content: str, output: Optional[Path]) -> None:
    if output is None:
        typer.echo(content)
        return
    output.expanduser().write_text(content, encoding="utf-8")
    typer.echo(f"Wrote {output}")


@snippets_app.command("list")
def list_snippets(
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Filter by name, comment or spec text"),
    sort: Optional[str] = typer.Option(None, "--sort", help="name, created, modified or size"),
    order: Optional[str] = typer.Option(None, "--order", help="asc or desc"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List snippets."""
    params = {key: value for key, value in {"q": search, "sort": sort, "order": order}.items() if value}
    resp = _request("GET", "/snippets", host=host, params=params)
    for snippet in resp.json():
        marker = "*" if snippet["state"] == "dirty" else " "
        typer.echo(f"{marker} {snippet['id']}  {snippet['name']}  {snippet['modified']}")


@snippets_app.command("export")
def export_snippets(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Export every snippet as a JSON array."""
    resp = _request("GET", "/snippets/export", host=host)
    _write_or_echo(resp.text, output)


@snippets_app.command("import")
def import_snippets(
    path: Path = typer.Argument(..., help="JSON file with one snippet or an array of snippets"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Import snippets without overwriting local ones."""
    content = path.expanduser().read_text(encoding="utf-8")
    resp = _request("POST", "/snippets/import", host=host, json={"content": content})
    _echo_json(resp.json())


@datasets_app.command("list")
def list_datasets(
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Filter by name or comment"),
    sort: Optional[str] = typer.Option(None, "--sort", help="name, created, modified or size"),
    order: Optional[str] = typer.Option(None, "--order", help="asc or desc"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List datasets."""
    params = {key: value for key, value in {"q": search, "sort": sort, "order": order}.items() if value}
    resp = _request("GET", "/datasets", host=host, params=params)
    for dataset in resp.json():
        rows = dataset["metadata"]["row_count"]
        typer.echo(
            f"{dataset['id']}  {dataset['name']}  {dataset['format']}/{dataset['source']}  "
            f"rows={'?' if rows is None else rows}"
        )


@datasets_app.command("import")
def import_dataset(
    path: Path = typer.Argument(..., help="A JSON/CSV/TSV data file, or a dataset export with --records"),
    records: bool = typer.Option(False, "--records", help="Treat the file as an exported dataset array"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a dataset from a data file, or merge an exported dataset set."""
    resolved = path.expanduser()
    content = resolved.read_text(encoding="utf-8")
    if records:
        resp = _request("POST", "/datasets/import", host=host, json={"content": content})
    else:
        resp = _request(
            "POST",
            "/datasets/import-file",
            host=host,
            json={"content": content, "filename": resolved.name},
        )
    _echo_json(resp.json())


@datasets_app.command("export")
def export_dataset(
    dataset_id: Optional[int] = typer.Argument(None, help="Dataset id; omit to export all datasets"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Export one dataset as a data file, or all datasets as JSON."""
    path = "/datasets/export" if dataset_id is None else f"/datasets/{dataset_id}/export"
    resp = _request("GET", path, host=host)
    _write_or_echo(resp.text, output)


@datasets_app.command("refresh")
def refresh_dataset(
    dataset_id: int = typer.Argument(..., help="Dataset id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Recompute metadata, re-fetching URL datasets."""
    resp = _request("POST", f"/datasets/{dataset_id}/refresh", host=host)
    _echo_json(resp.json()["metadata"])


@app.command()
def resolve(
    path: Path = typer.Argument(..., help="Spec file with named dataset references"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print a spec with its dataset references resolved."""
    content = path.expanduser().read_text(encoding="utf-8")
    resp = _request("POST", "/resolve", host=host, json={"spec": content})
    _echo_json(resp.json()["spec"])


@app.command()
def detect(
    path: Path = typer.Argument(..., help="Data file to classify"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Detect the format of a data file."""
    resolved = path.expanduser()
    payload = {"text": resolved.read_text(encoding="utf-8"), "filename": resolved.name}
    resp = _request("POST", "/detect", host=host, json=payload)
    _echo_json(resp.json())


@app.command()
def storage(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show snippet storage usage against the quota."""
    resp = _request("GET", "/storage", host=host)
    usage = resp.json()
    typer.echo(
        f"{usage['used_bytes']} / {usage['quota_bytes']} bytes ({usage['percent']}%, {usage['level']}); "
        f"{usage['snippet_count']} snippets, {usage['dataset_count']} datasets"
    )


if __name__ == "__main__":
    app()
