from __future__ import annotations

# Suppress harmless multiprocessing resource tracker warnings (common on macOS)
import warnings
warnings.filterwarnings("ignore", message="resource_tracker: There appear to be.*leaked semaphore")

import dataclasses
import json
import logging
from pathlib import Path

import typer

from .cache import CacheContext, load_cache_from_output
from .config import ProcessorConfig
from .errors import VaultPressError
from .plugins.factory import build_plugins
from .processor.output import OutputFiles
from .processor.processor import process_vault

app = typer.Typer(add_completion=False, no_args_is_help=True)

_DEBUG_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def _setup_logging(log_file: str | None, debug_level: int, verbose: bool) -> None:
    """Configure the package logger."""
    level = logging.DEBUG if verbose else _DEBUG_LEVELS.get(debug_level, logging.INFO)

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    handlers: list[logging.Handler] = []
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(fmt, datefmt))
    handlers.append(console)

    if log_file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(logging.Formatter(fmt, datefmt))
        handlers.append(file_handler)

    logger = logging.getLogger("vaultpress")
    logger.setLevel(level)
    logger.handlers.clear()
    for h in handlers:
        logger.addHandler(h)


@app.command()
def init(vault: str = typer.Option(..., help="Vault root path"),
         output: str = typer.Option(..., help="Output directory"),
         out: str = typer.Option("config.toml", help="Write example config to this path")):
    """Write a starter config.toml."""
    outp = Path(out)
    outp.write_text(f"""[vault]
root = "{vault}"
ignore_files = ["CONTRIBUTING.md", "README.md", "readme.md", "LICENSE.md"]

[output]
dir = "{output}"

[content]
process_all_files = false
slug_conflict_strategy = "number"  # number|hash
track_relationships = false

[media]
format = "webp"  # webp|jpeg|png|avif
quality = 80
use_hash = true
use_sharding = false

[[media.sizes]]
suffix = "sm"
width = 640

[[media.sizes]]
suffix = "md"
width = 1024

[[media.sizes]]
suffix = "lg"
width = 1920

[embeddings]
provider = "off"  # sentence_transformers|off
model = "sentence-transformers/all-MiniLM-L6-v2"
image_provider = "off"  # clip|off
batch_size = 32
device = "cpu"

[similarity]
provider = "cosine"
top_n = 5

[database]
provider = "sqlite"  # sqlite|off
name = "vault.db"
fts = true
vector_search = true

[plugins]
image_processor = "pillow"  # pillow|copy|off
required = []

[debug]
level = 1
timing = false
""", encoding="utf-8")
    typer.echo(f"Wrote {outp}")


@app.command()
def process(
    config: str = typer.Option(None, help="config.toml path"),
    input_dir: str = typer.Option(None, "--input", "-i", help="Vault root (overrides config)"),
    output_dir: str = typer.Option(None, "--output", "-o", help="Output directory (overrides config)"),
    cache_from: str = typer.Option(None, "--cache-from", help="Reuse media/embeddings from a previous output directory"),
    all_files: bool = typer.Option(False, "--all", help="Include drafts and unpublished documents"),
    workers: int = typer.Option(None, help="Override max_workers"),
    log_file: str = typer.Option(None, "--log-file", "-l", help="Log file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"),
    as_json: bool = typer.Option(False, "--json", help="Print the run summary as JSON"),
):
    """Process a vault into documents, media, maps, issues and a database."""
    if not config and not (input_dir and output_dir):
        raise typer.BadParameter("Provide --config or both --input and --output")

    try:
        if config:
            cfg = ProcessorConfig.from_toml(config)
            overrides = {}
            if input_dir:
                overrides["input_dir"] = Path(input_dir)
            if output_dir:
                overrides["output_dir"] = Path(output_dir)
            if overrides:
                cfg = dataclasses.replace(cfg, **overrides)
        else:
            cfg = ProcessorConfig(input_dir=input_dir, output_dir=output_dir)

        if all_files:
            cfg = dataclasses.replace(cfg, process_all_files=True)
        if workers:
            cfg = dataclasses.replace(cfg, max_workers=workers)
    except VaultPressError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    _setup_logging(log_file, cfg.debug.level, verbose)

    cache = load_cache_from_output(cache_from) if cache_from else CacheContext()
    try:
        result = process_vault(cfg, build_plugins(cfg), cache)
    except VaultPressError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    summary = result.issues.summary
    if as_json:
        typer.echo(json.dumps({
            "documents": len(result.documents),
            "media": len(result.media),
            "cancelled": result.cancelled,
            "stats": result.stats.to_dict(),
            "issues": summary.to_dict(),
            "outputFiles": {k: str(v) for k, v in result.output_files.items()},
        }, indent=2))
    else:
        typer.echo(f"Documents: {len(result.documents)}  Media: {len(result.media)}")
        typer.echo(f"Issues: {summary.error_count} errors, {summary.warning_count} warnings, "
                   f"{summary.info_count} info")
        typer.echo(f"Output: {result.output_dir}")
    if summary.error_count:
        raise typer.Exit(code=2)


@app.command()
def issues(
    output_dir: str = typer.Argument(..., help="Output directory of a previous run"),
    severity: str = typer.Option(None, help="Only show issues of this severity"),
):
    """Print the issue report of a previous run."""
    path = Path(output_dir) / OutputFiles.ISSUES
    if not path.exists():
        typer.echo(f"No issue report at {path}", err=True)
        raise typer.Exit(code=1)
    report = json.loads(path.read_text(encoding="utf-8"))
    for issue in report.get("issues", []):
        if severity and issue.get("severity") != severity:
            continue
        where = f" {issue['filePath']}" if issue.get("filePath") else ""
        typer.echo(f"[{issue['severity']}] {issue['category']}{where}: {issue['message']}")
    s = report.get("summary", {})
    typer.echo(f"Total: {s.get('totalIssues', 0)} ({s.get('errorCount', 0)} errors, "
               f"{s.get('warningCount', 0)} warnings, {s.get('infoCount', 0)} info)")


if __name__ == "__main__":
    app()
