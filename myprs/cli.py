from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from logging.handlers import RotatingFileHandler

from . import __version__
from . import config as config_module
from .config import STATUS_LITERALS, AppConfig, apply_env_and_cli, load_config, save_config
from .errors import ConfigError, PersistError
from .tui import MyPRsApp

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
LOG_FILE_NAME = "myprs.log"
LOG_MAX_BYTES = 1024 * 1024
LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    Returns:
        Parser accepting ``--repo`` (repeatable), ``--email``, ``--api-token``,
        ``--status``, ``--base-url`` and ``--version``.
    """
    parser = argparse.ArgumentParser(
        prog="myprs",
        description="Bitbucket PR TUI for your authored PRs",
        epilog="Commands inside the TUI: type /help.",
    )
    parser.add_argument(
        "--repo",
        dest="repos",
        action="extend",
        nargs="+",
        default=[],
        metavar="WORKSPACE/REPO",
        help="Repository in workspace/repo format",
    )
    parser.add_argument("--email", help="Atlassian account email")
    parser.add_argument("--api-token", dest="api_token", help="Bitbucket API token")
    parser.add_argument("--status", type=str.lower, choices=STATUS_LITERALS, help="Default status filter")
    parser.add_argument("--base-url", dest="base_url", help="Bitbucket API base URL")
    parser.add_argument("-v", "--version", action="version", version=f"myprs {__version__}")
    return parser


def configure_logging(level_name: str | None = None) -> logging.Logger:
    """Send the ``myprs`` logger to a rotating file in the config directory.

    The terminal belongs to the TUI, so nothing is logged to stderr.

    Args:
        level_name: DEBUG, INFO, WARNING or ERROR; defaults to the
            ``MYPRS_LOG_LEVEL`` environment variable, then INFO.

    Returns:
        The configured package logger.
    """
    root = logging.getLogger("myprs")
    if root.handlers:
        return root
    level_name = level_name or os.environ.get("MYPRS_LOG_LEVEL", "INFO")
    root.setLevel(LEVELS.get(level_name.upper().strip(), logging.INFO))
    try:
        config_module.ensure_config_dir()
        handler: logging.Handler = RotatingFileHandler(
            config_module.CONFIG_DIR / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=1,
        )
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    root.addHandler(handler)
    root.propagate = False
    return root


def prepare_config(args: argparse.Namespace) -> AppConfig:
    """Load the config, apply env/CLI overrides and require credentials.

    Overrides that change the config are saved; a failed save is logged only.

    Raises:
        ConfigError: If the config is unreadable, a value is invalid, or the
            email/API token pair is missing.
    """
    cfg = load_config()
    if apply_env_and_cli(
        cfg,
        repos=args.repos,
        email=args.email,
        api_token=args.api_token,
        status=args.status,
        base_url=args.base_url,
    ):
        try:
            save_config(cfg)
        except PersistError as e:
            logger.warning(f"Could not save config: {e}")
    if cfg.credentials() is None:
        raise ConfigError(
            "Missing credentials. Set BITBUCKET_EMAIL and BITBUCKET_API_TOKEN "
            "or pass --email and --api-token."
        )
    return cfg


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the `myprs` console script.

    Launches the Textual TUI after loading configuration. Exits with status 2
    and a diagnostic on stderr when the configuration is unusable.

    Returns:
        None
    """
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        cfg = prepare_config(args)
    except ConfigError as e:
        logger.error(f"Startup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    MyPRsApp(cfg).run()
