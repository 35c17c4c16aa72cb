# FILE: landbase/cli.py
# =============================================================================
# landbase: Typer CLI
#
# Commands
# --------
#   run               Full pipeline (inputs -> refveg per year -> reconcile -> outputs)
#   effective-config  Emit the fully resolved config (after overrides) as JSON or YAML
#   version           Package version + optional config hash
#
# Logging controls on `run`:
#   --run-id auto|<str>   stamps file/JSON logs with a stable run id (auto = UTC timestamp)
#   --log-level LEVEL     overrides config.logging.level
#   --log-file/--no-log-file, --log-json/--no-log-json force handlers on/off
#
# Usage
# -----
#   python -m landbase run -c configs/landbase.yaml --run-id auto --log-file
#   python -m landbase effective-config -c configs/landbase.yaml -o '{"run":{"random_seed":7}}'
#
# Exit codes: 0 ok, 3 memory, 4 input/output, 5 grid topology, 6 country lookup.
# =============================================================================

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import typer
import yaml

from . import __version__
from .errors import LandbaseError
from .pipeline import run_pipeline
from .utils.config_loader import resolve_config
from .utils.logging_utils import get_logger, init_logging

app = typer.Typer(add_completion=False, help="landbase: land-cover disaggregation and land-mask reconciliation")

# =============================================================================
# Helpers
# =============================================================================


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _sha256_bytes(b: bytes) -> str:
    return "sha256:" + hashlib.sha256(b).hexdigest()


def _sha256_file(path: Path) -> str:
    return _sha256_bytes(path.read_bytes())


def _write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, sort_keys=False), encoding="utf-8")


def _auto_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def _merge_logging_overrides(cfg: Dict[str, Any],
                             level: Optional[str],
                             to_file: Optional[bool],
                             to_json: Optional[bool]) -> Dict[str, Any]:
    c = dict(cfg or {})
    lc = dict(c.get("logging", {}) or {})
    if level:
        lc["level"] = level
    if to_file is not None:
        lc["to_file"] = bool(to_file)
    if to_json is not None:
        lc["to_json"] = bool(to_json)
    lc.setdefault("dir", "logs")
    c["logging"] = lc
    return c


def _bootstrap_logging(cfg: Dict[str, Any],
                       run_id: Optional[str],
                       level: Optional[str],
                       to_file: Optional[bool],
                       to_json: Optional[bool]) -> Tuple[Dict[str, Any], str]:
    """
    Apply CLI logging overrides, compute run_id (auto|str), and initialize logging.
    Returns (merged_cfg, resolved_run_id).
    """
    merged = _merge_logging_overrides(cfg, level, to_file, to_json)
    rid = _auto_run_id() if (run_id == "auto" or not run_id) else run_id
    init_logging(merged, run_id=rid)
    log = get_logger("landbase.cli")
    log.info("[RunMeta] run_id=%s cfg_hash=%s", rid, _sha256_bytes(json.dumps(merged, sort_keys=True).encode("utf-8")))
    return merged, rid


# =============================================================================
# Commands
# =============================================================================


@app.command("version")
def cli_version(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML."),
):
    cfg_hash = None
    if config:
        p = Path(config)
        if p.exists():
            cfg_hash = _sha256_file(p)
    payload = {"landbase_version": __version__, "config_hash": cfg_hash, "timestamp_utc": _utc_now_iso()}
    typer.echo(json.dumps(payload, indent=2))


@app.command("effective-config")
def cli_effective_config(
    config: str = typer.Option(..., "--config", "-c", help="Path to YAML config."),
    overrides: Optional[str] = typer.Option(None, "--override", "-o", help="JSON string of overrides."),
    out: Optional[str] = typer.Option(None, "--out", help="Write resolved config to this path (json|yaml)."),
):
    """
    Render the fully-resolved config (after JSON overrides and defaults).
    """
    cfg = resolve_config(config, overrides_json=overrides)
    if out:
        outp = Path(out)
        outp.parent.mkdir(parents=True, exist_ok=True)
        if outp.suffix.lower() in (".yml", ".yaml"):
            outp.write_text(yaml.safe_dump(cfg, sort_keys=False), encoding="utf-8")
        else:
            _write_json(outp, cfg)
        typer.echo(f"Wrote resolved config → {outp.as_posix()}")
    else:
        typer.echo(json.dumps(cfg, indent=2))


@app.command("run")
def cli_run(
    config: str = typer.Option(..., "--config", "-c", help="Path to config YAML."),
    overrides: Optional[str] = typer.Option(None, "--override", "-o", help="JSON string of overrides."),
    run_id: str = typer.Option("auto", "--run-id", help='Run identifier ("auto" => UTC timestamp).'),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging level (e.g. INFO, DEBUG)."),
    log_file: Optional[bool] = typer.Option(None, "--log-file/--no-log-file", help="Enable/disable file logging."),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--no-log-json", help="Enable/disable JSONL logging."),
):
    """
    Build the land base: disaggregate every configured year, reconcile masks, write outputs.
    """
    cfg = resolve_config(config, overrides_json=overrides)
    cfg, rid = _bootstrap_logging(cfg, run_id, log_level, log_file, log_json)
    log = get_logger("landbase.cli")
    log.info("=== landbase :: run :: run_id=%s ===", rid)

    try:
        artifacts = run_pipeline(cfg)
    except LandbaseError as err:
        log.error("Run failed: %s", err)
        raise typer.Exit(code=err.exit_code)

    artifacts["run_id"] = rid
    log.info("Run completed. Summary → %s", artifacts["summary_file"])
    typer.echo(json.dumps({k: v for k, v in artifacts.items() if k != "files"}, indent=2))


# =============================================================================
# Entrypoint
# =============================================================================


@app.callback(invoke_without_command=False)
def _root() -> None:
    """landbase: CLI entrypoint."""
    return


def main() -> None:
    app()


if __name__ == "__main__":
    main()
