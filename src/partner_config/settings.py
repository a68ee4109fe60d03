from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_CALL_TIMEOUT_S = 30.0


def _find_repo_root(start: Path) -> Optional[Path]:
    """
    Walk upward until we find pyproject.toml or .git.
    """
    start = start.resolve()
    for p in (start, *start.parents):
        if (p / "pyproject.toml").exists() or (p / ".git").exists():
            return p
    return None


@lru_cache(maxsize=1)
def repo_root() -> Path:
    """Best-effort repository root discovery.

    Order of precedence:
      1) PARTNER_REPO_ROOT (explicit override)
      2) walk upward from current working directory
      3) walk upward from this module file's directory
    """
    explicit = os.getenv("PARTNER_REPO_ROOT")
    if explicit:
        p = Path(explicit).expanduser()
        try:
            p = p.resolve()
        except OSError:
            p = p.absolute()

        if not p.exists() or not p.is_dir():
            raise RuntimeError(f"PARTNER_REPO_ROOT does not exist or is not a directory: {p}")
        return p

    cwd = Path.cwd().resolve()
    root = _find_repo_root(cwd)
    if root:
        return root

    here_dir = Path(__file__).resolve().parent
    root = _find_repo_root(here_dir)
    if root:
        return root

    # repo/src/partner_config/settings.py
    if len(here_dir.parents) >= 2:
        return here_dir.parents[1]

    return cwd


@lru_cache(maxsize=1)
def load_env_once() -> Optional[Path]:
    """
    Load dotenv exactly once. Precedence:
      1) PARTNER_ENV_FILE (explicit path)
      2) repo-root/.env
      3) repo-root/config/.env
    """
    explicit = os.getenv("PARTNER_ENV_FILE")
    candidates = []

    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(repo_root() / ".env")
    candidates.append(repo_root() / "config" / ".env")

    for p in candidates:
        try:
            p = p.resolve()
        except OSError:
            continue
        if p.exists() and p.is_file():
            # Do NOT override already-set environment variables
            load_dotenv(dotenv_path=str(p), override=False)
            return p

    return None


def telemetry_dir() -> Path:
    """
    Default telemetry dir. Override with PARTNER_TELEMETRY_DIR.
    """
    p = os.getenv("PARTNER_TELEMETRY_DIR")
    if p:
        return Path(p).expanduser().resolve()
    return (repo_root() / "artifacts" / "telemetry").resolve()


def telemetry_disabled() -> bool:
    return os.getenv("PARTNER_DISABLE_TELEMETRY", "0").strip().lower() in {"1", "true", "yes"}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def call_timeout() -> float | None:
    """
    Per-call deadline in seconds for tool calls. PARTNER_CALL_TIMEOUT=0 disables it.
    """
    t = _env_float("PARTNER_CALL_TIMEOUT", DEFAULT_CALL_TIMEOUT_S)
    return t if t > 0 else None


@dataclass(frozen=True)
class ServerConfig:
    """How to launch one MCP tool server as a child process."""
    command: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)


def _split_args(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        raw = default
    return tuple(shlex.split(raw))


def things_server() -> ServerConfig:
    """
    Things 3 MCP server. Override with PARTNER_THINGS_COMMAND / PARTNER_THINGS_ARGS.
    """
    return ServerConfig(
        command=os.getenv("PARTNER_THINGS_COMMAND", "uvx"),
        args=_split_args("PARTNER_THINGS_ARGS", "things-mcp"),
    )


def gcal_server() -> ServerConfig:
    """
    Google Calendar MCP server. Override with PARTNER_GCAL_COMMAND / PARTNER_GCAL_ARGS.
    GOOGLE_OAUTH_CREDENTIALS is forwarded explicitly so a .env value reaches the child.
    """
    env: dict[str, str] = {}
    creds = os.getenv("GOOGLE_OAUTH_CREDENTIALS")
    if creds:
        env["GOOGLE_OAUTH_CREDENTIALS"] = creds
    return ServerConfig(
        command=os.getenv("PARTNER_GCAL_COMMAND", "npx"),
        args=_split_args("PARTNER_GCAL_ARGS", "-y @cocal/google-calendar-mcp"),
        env=env,
    )


def calendar_backend() -> str:
    """
    Which calendar provider the CLI builds: "gcal" (default) or "apple".
    """
    v = os.getenv("PARTNER_CALENDAR_BACKEND", "gcal").strip().lower()
    return v if v in {"gcal", "apple"} else "gcal"


def configure_logging() -> None:
    """
    Configure logging explicitly. No import-time side effects.
    Idempotent: if logging is already configured, do nothing.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = os.getenv("PARTNER_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    fmt = os.getenv(
        "PARTNER_LOG_FORMAT",
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logging.basicConfig(level=level, format=fmt)


def init_runtime(*, configure_logs: bool = True, load_env: bool = True) -> None:
    """
    Call this from entrypoints only (CLI, scripts).
    """
    if load_env:
        load_env_once()
    if configure_logs:
        configure_logging()
