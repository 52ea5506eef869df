"""Shared helpers for logging, path handling, tables and the run record."""

import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd


def configure_logging(log_path: Path) -> None:
    """Configure logging to file and stdout."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_format = "%(asctime)s [%(levelname)s] %(message)s"
    handlers = [logging.FileHandler(log_path, mode="w"), logging.StreamHandler(sys.stdout)]
    logging.basicConfig(level=logging.INFO, format=log_format, handlers=handlers, force=True)


def to_relative_path(path: Path, base: Path) -> str:
    """Return `path` as a string relative to `base` when possible."""
    try:
        return str(path.relative_to(base))
    except ValueError:
        return str(path)


def resolve_path(path: Path, base: Path) -> Path:
    """Anchor a relative CLI path at `base`."""
    return path if path.is_absolute() else base / path


def require_file(path: Path, label: str) -> None:
    """Raise FileNotFoundError naming `label` when `path` does not exist."""
    if not path.exists():
        raise FileNotFoundError(f"{label} not found: {path}")


def require_columns(df: pd.DataFrame, columns: Iterable[str], label: str) -> None:
    """Raise when `df` lacks any of `columns`."""
    missing = set(columns) - set(df.columns)
    if missing:
        raise ValueError(f"{label} missing required columns: {', '.join(sorted(missing))}")


def read_tsv(path: Path, label: str, **kwargs) -> pd.DataFrame:
    """Read a tab-separated file, failing loudly when it does not exist."""
    require_file(path, label)
    return pd.read_csv(path, sep="\t", **kwargs)


def write_table(df: pd.DataFrame, path: Path, index: bool = False) -> Path:
    """Write a dataframe to TSV."""
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=index)
    return path


def assemble_metadata(
    script_start: float,
    params: Dict[str, object],
    outputs: Dict[str, List[Path]],
    metadata_path: Path,
    repo_root: Path,
    caveats: Optional[List[str]] = None,
) -> None:
    """Write metadata.json capturing run context."""
    relative_outputs: Dict[str, List[str]] = {}
    for key, paths in outputs.items():
        relative_outputs[key] = [to_relative_path(path, repo_root) for path in paths]

    metadata = {
        "script": "rogue-chinook-report",
        "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "runtime_seconds": time.time() - script_start,
        "parameters": params,
        "outputs": relative_outputs,
        "caveats": caveats or [],
    }
    metadata_path.parent.mkdir(parents=True, exist_ok=True)
    metadata_path.write_text(json.dumps(metadata, indent=2))
