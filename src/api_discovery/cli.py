"""CLI entry point for api-discovery."""

import logging
from pathlib import Path

import click
import yaml

from api_discovery.analyzer.patterns import analyze as analyze_observations
from api_discovery.generator.export import export_filename, render
from api_discovery.generator.openapi import SynthesisOptions, synthesize as synthesize_document
from api_discovery.generator.validator import load_document, validate_document
from api_discovery.parser.base import Observation, ObservationLoadError
from api_discovery.parser.detect import load_observations
from api_discovery.parser.filters import prepare


def _load(file_path: Path, fmt: str, api_only: bool, redact: bool) -> list[Observation]:
    click.echo(f"Loading {file_path} (format: {fmt})...")
    try:
        loaded = load_observations(file_path, fmt)
    except ObservationLoadError as e:
        raise click.ClickException(str(e)) from e
    observations = prepare(loaded, api_only=api_only, redact=redact)
    click.echo(f"Found {len(observations)} observations.")
    return observations


def _output_path(output: Path, observations: list[Observation], extension: str) -> Path:
    if output.is_dir():
        hostname = next((o.hostname for o in observations if o.hostname), "api")
        return output / export_filename("openapi", extension, hostname)
    return output


format_option = click.option(
    "--format", "fmt", default="auto", type=click.Choice(["auto", "har", "observations"]), help="Input format."
)
api_only_option = click.option("--api-only", is_flag=True, help="Keep only API-like requests.")
redact_option = click.option(
    "--redact/--no-redact", default=True, help="Redact sensitive header values before processing."
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """API Discovery: synthesize OpenAPI documents from observed HTTP traffic."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("observations_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@format_option
@api_only_option
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Write the full analysis as JSON.")
def analyze(observations_path: Path, fmt: str, api_only: bool, output: Path | None):
    """Group observed endpoints and print traffic statistics."""
    observations = _load(observations_path, fmt, api_only, redact=True)
    result = analyze_observations(observations)

    stats = result.statistics
    click.echo(f"Hosts: {', '.join(stats.unique_hosts) or '-'}")
    click.echo(f"Methods: {', '.join(f'{e.key} ({e.count})' for e in stats.methods) or '-'}")
    click.echo(f"Status codes: {', '.join(f'{e.key} ({e.count})' for e in stats.status_codes) or '-'}")
    click.echo(f"Average response size: {stats.average_response_size:.1f} bytes")
    click.echo(f"Resource groups: {len(result.groups)}")
    for group in result.groups:
        click.echo(f"  {group.key} [{', '.join(group.methods)}] {group.observation_count} observations")
        for template in group.templates:
            click.echo(f"    {template}")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        click.echo(f"Analysis saved to {output}")


@main.command()
@click.argument("observations_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file, or a directory for a timestamped file.")
@click.option("--output-format", default="yaml", type=click.Choice(["yaml", "json"]), help="Document format.")
@click.option("--title", default=None, help="API title for the info block.")
@click.option("--api-version", default=None, help="API version for the info block.")
@click.option("--description", default=None, help="API description for the info block.")
@click.option("--source-url", default=None, help="Page the traffic was captured from.")
@click.option("--metadata", is_flag=True, help="Embed discovery metadata (x-discovery-metadata).")
@format_option
@api_only_option
@redact_option
def synthesize(
    observations_path: Path,
    output: Path,
    output_format: str,
    title: str | None,
    api_version: str | None,
    description: str | None,
    source_url: str | None,
    metadata: bool,
    fmt: str,
    api_only: bool,
    redact: bool,
):
    """Synthesize an OpenAPI document from an observation snapshot."""
    observations = _load(observations_path, fmt, api_only, redact)

    options = SynthesisOptions(
        title=title,
        version=api_version,
        description=description,
        source_url=source_url,
        include_metadata=metadata,
    )
    click.echo("Synthesizing OpenAPI document...")
    doc = synthesize_document(observations, options)
    data = doc.to_dict()
    click.echo(f"Generated {len(data['paths'])} paths, {sum(1 for _ in doc.operations())} operations.")

    for error in validate_document(data):
        click.echo(f"  Warning: {error}", err=True)

    target = _output_path(output, observations, output_format)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render(data, output_format), encoding="utf-8")
    click.echo(f"Document saved to {target}")


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(doc_path: Path):
    """Check a synthesized document for unresolved references and naming clashes."""
    try:
        doc = load_document(doc_path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise click.ClickException(f"{doc_path}: {e}") from e

    errors = validate_document(doc)
    if errors:
        for error in errors:
            click.echo(f"  {error}")
        raise click.ClickException(f"{len(errors)} problem(s) found in {doc_path}")
    click.echo(f"{doc_path} is valid.")
