"""Command line driver for the attestation client."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from appattest.services.attest import AppAttestError, KeyState, VerificationOutcome
from appattest.services.attest.service import AppAttestService, EnrollmentResult, build_store
from appattest.services.logging import setup_logging
from appattest.services.settings import Settings, load_settings

app = typer.Typer(no_args_is_help=True, help="Attest a device key and assert possession of it.")

_state: dict[str, Optional[Path]] = {"config": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to appattest.yaml"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Overrides log_level from the config file"),
) -> None:
    _state["config"] = config
    settings = _settings()
    setup_logging(settings.logs_dir(), level=log_level or settings.log_level)


def _settings() -> Settings:
    try:
        return load_settings(_state["config"])
    except AppAttestError as exc:
        _print_error(str(exc))
        raise typer.Exit(1)


def _service(settings: Settings) -> AppAttestService:
    return AppAttestService.from_settings(settings)


def _print_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def _echo_outcome(outcome: VerificationOutcome, *, success: str, failure: str) -> None:
    if outcome.is_accepted:
        typer.secho(success, fg=typer.colors.GREEN)
        return
    typer.secho(failure, fg=typer.colors.RED)
    typer.echo(f"status: {outcome.status}")
    if outcome.status_code is not None:
        typer.echo(f"http status: {outcome.status_code}")
    if outcome.reason:
        typer.echo(f"reason: {outcome.reason}")


@app.command("status")
def status(as_json: bool = typer.Option(False, "--json", help="Print machine-readable output")) -> None:
    """Show the lifecycle state and the stored key identifier."""
    settings = _settings()
    try:
        lifecycle = _service(settings).lifecycle
    except AppAttestError as exc:
        _print_error(str(exc))
        raise typer.Exit(1)
    if as_json:
        typer.echo(json.dumps({"state": str(lifecycle.state), "key_id": lifecycle.key_id}))
        return
    typer.echo(f"State: {lifecycle.state}")
    typer.echo(f"Key identifier: {lifecycle.key_id or 'Not Available'}")


def _echo_enrollment(result: EnrollmentResult) -> None:
    typer.echo(f"Key identifier: {result.key_id}")
    if result.attestation_object:
        typer.echo("Attestation object:")
        typer.echo(result.attestation_object)
    if result.attempts > 1:
        typer.echo(f"Submissions: {result.attempts}")
    _echo_outcome(
        result.outcome,
        success="Attestation verified successfully by server.",
        failure="Server failed to verify attestation.",
    )


@app.command("enroll")
def enroll(
    retries: int = typer.Option(
        0,
        "--retries",
        min=0,
        help="Resubmit the same attestation proof this many times if the server does not accept it.",
    ),
) -> None:
    """Generate a key, attest it against a fresh challenge and submit the proof."""
    settings = _settings()
    try:
        settings.require_urls()
        service = _service(settings)
        if service.lifecycle.state is KeyState.KEY_PERSISTED:
            _print_error(
                f"Key {service.lifecycle.key_id} is already attested and stored. "
                "Run `appattest reset` to enroll a new key."
            )
            raise typer.Exit(1)
        result = asyncio.run(service.enroll(retries=retries))
    except AppAttestError as exc:
        _print_error(str(exc))
        raise typer.Exit(1)
    _echo_enrollment(result)
    if not result.outcome.is_accepted:
        raise typer.Exit(1)


@app.command("assert")
def assert_cmd() -> None:
    """Sign a fresh assertion challenge with the attested key and submit it."""
    settings = _settings()
    try:
        settings.require_urls()
        outcome = asyncio.run(_service(settings).assert_possession())
    except AppAttestError as exc:
        _print_error(str(exc))
        raise typer.Exit(1)
    _echo_outcome(
        outcome,
        success="Assertion verification successful!",
        failure="Assertion verification failed",
    )
    if not outcome.is_accepted:
        raise typer.Exit(1)


@app.command("reset")
def reset(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")) -> None:
    """Forget the stored key identifier so a new key can be enrolled."""
    settings = _settings()
    if not yes:
        typer.confirm("Forget the stored key identifier?", abort=True)
    try:
        build_store(settings).clear()
    except AppAttestError as exc:
        _print_error(str(exc))
        raise typer.Exit(1)
    typer.secho("Stored key identifier removed.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
