"""CLI for checking generated simulation code offline."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from guard_core.orchestrator import CorrectionOrchestrator
from guard_core.schemas import GeneratedModule, UnitState
from harness.config import GuardConfig, configure_logging, load_config
from llm.patcher import LLMPatchGenerator
from llm.providers import create_provider

app = typer.Typer(help="Guard pipeline CLI for generated simulation code")


def _load(config_path: Optional[str]) -> GuardConfig:
    if config_path is None:
        config = GuardConfig()
    else:
        try:
            config = load_config(config_path)
        except (FileNotFoundError, ValueError) as e:
            typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
    configure_logging(config.log_level)
    return config


def _read_code(code_path: str) -> str:
    path = Path(code_path)
    if not path.exists():
        typer.secho(f"❌ File not found: {code_path}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _print_validation(result) -> None:
    for error in result.errors:
        typer.secho(f"   {error.describe()}", fg=typer.colors.RED)
    for warning in result.warnings or []:
        typer.secho(f"   ⚠️  {warning}", fg=typer.colors.YELLOW)


@app.command()
def validate(
    code_path: str = typer.Argument(..., help="Path to a generated code file"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Guard YAML config"),
) -> None:
    """Run the static validator on a code file."""
    config = _load(config_path)
    result = config.build_validator().validate(_read_code(code_path))
    _print_validation(result)
    if not result.valid:
        typer.secho(f"❌ {len(result.errors)} error(s) found", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho("✅ No errors found", fg=typer.colors.GREEN)


@app.command()
def sanitize(
    code_path: str = typer.Argument(..., help="Path to a generated code file"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write sanitized code here"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Guard YAML config"),
) -> None:
    """Apply the rewrite rules and print or save the result."""
    config = _load(config_path)
    result = config.build_sanitizer().sanitize(_read_code(code_path))

    for fix in result.fixes_applied:
        typer.echo(f"   [{fix.category}] {fix.description}", err=True)
    for warning in result.warnings:
        typer.secho(f"   ⚠️  {warning}", fg=typer.colors.YELLOW, err=True)

    if output is None:
        typer.echo(result.sanitized_text)
        return
    Path(output).write_text(result.sanitized_text, encoding="utf-8")
    typer.secho(
        f"✅ Applied {len(result.fixes_applied)} fix(es), wrote {output}",
        fg=typer.colors.GREEN,
    )


@app.command()
def check(
    code_path: str = typer.Argument(..., help="Path to a generated code file"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Guard YAML config"),
) -> None:
    """Validate, then sanitize and validate the sanitized code."""
    config = _load(config_path)
    code = _read_code(code_path)
    validator = config.build_validator()

    result = validator.validate(code)
    if result.valid:
        sanitized = config.build_sanitizer().sanitize(code)
        typer.echo(f"   {len(sanitized.fixes_applied)} fix(es) applied")
        result = validator.validate(sanitized.sanitized_text)

    _print_validation(result)
    if not result.valid:
        typer.secho("❌ Check failed", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho("✅ Check passed", fg=typer.colors.GREEN)


@app.command()
def correct(
    code_path: str = typer.Argument(..., help="Path to a generated code file"),
    error: str = typer.Option(..., "--error", help="Error message observed at runtime"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write corrected code here"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Guard YAML config"),
) -> None:
    """Request one budgeted patch for a failing code file."""
    config = _load(config_path)
    if config.llm_provider is None:
        typer.secho("❌ No llm_provider configured", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    try:
        provider = create_provider(config.llm_provider)
    except (ImportError, ValueError) as e:
        typer.secho(f"❌ Could not create provider: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    orchestrator = CorrectionOrchestrator(
        LLMPatchGenerator(provider),
        budget=config.build_budget(),
        sanitizer=config.build_sanitizer(),
        validator=config.build_validator(),
        stack_trace_limit=config.stack_trace_limit,
    )
    unit_id = Path(code_path).stem
    orchestrator.register(GeneratedModule.create(unit_id, _read_code(code_path)))
    attempt = asyncio.run(orchestrator.handle_failure(unit_id, error))
    module = orchestrator.current(unit_id)

    if attempt is None or module.state != UnitState.VALID:
        reason = attempt.failure_message if attempt else "correction already pending"
        typer.secho(f"❌ Correction failed: {reason}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    typer.secho(f"✅ {attempt.explanation or 'Correction applied'}", fg=typer.colors.GREEN)
    if output is None:
        typer.echo(module.sanitized_code)
    else:
        Path(output).write_text(module.sanitized_code, encoding="utf-8")
        typer.echo(f"   Written: {output}")


if __name__ == "__main__":
    app()
