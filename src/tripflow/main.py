"""
Command-line entry point for tripflow.

Three modes are available:

* ``api``: serve the REST API in the foreground;
* ``cli``: serve the API on a daemon thread and attach the interactive client to it;
* ``run``: plan and execute a single request in-process, then exit.
"""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path

from tripflow.api.app import run_api
from tripflow.common import (
    AnsiColors,
    colored_print,
)
from tripflow.config import (
    SECRET_FIELDS,
    settings,
)
from tripflow.core.errors import TripflowError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
BIND_HOST = "0.0.0.0"


# ---------------------------------------------------------------------------
# Start-up helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # one INFO line per request otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tripflow", description="LLM agents and planning flows for travel requests"
    )
    parser.add_argument(
        "--mode",
        choices=["api", "cli", "run"],
        type=str.lower,
        default="api",
        help="api: REST server, cli: server plus interactive client, run: one request",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Log verbosity (default: %(default)s)",
    )
    parser.add_argument(
        "--backend",
        choices=["openai", "anthropic", "http"],
        type=str.lower,
        help="Language-model backend; overrides LLM_BACKEND",
    )
    parser.add_argument("request", nargs="?", help="Travel request to plan (run mode only)")
    return parser


def _prepare_data_dir() -> Path:
    """Create ``DATA_DIR`` if needed; exit when it cannot be written to."""
    path = Path(settings.DATA_DIR)
    path.mkdir(parents=True, exist_ok=True)
    if not os.access(path, os.W_OK):
        logger.error("DATA_DIR %s is not writable", path.resolve())
        sys.exit(1)
    return path


def _serve_in_background() -> threading.Thread:
    thread = threading.Thread(
        target=run_api,
        name="tripflow-api",
        kwargs={
            "host": BIND_HOST,
            "port": settings.API_PORT,
            "reload": False,
            "log_level": "warning",
        },
        daemon=True,
    )
    thread.start()
    return thread


def _run_flow(request: str, backend: str | None) -> int:
    """Plan and execute *request* in-process and print the result."""
    # pylint: disable=import-outside-toplevel
    from tripflow.agent.agents import (
        AppContext,
        build_agent_pool,
    )
    from tripflow.agent.llm_interface import load_llm
    from tripflow.flow.planning_flow import PlanningFlow

    primary, agents = build_agent_pool(AppContext(llm=load_llm(backend)))
    try:
        result = PlanningFlow(primary, agents).execute(request)
    except TripflowError as exc:
        colored_print(f"⚠️ {exc}", AnsiColors.RED)
        return 1
    colored_print(result, AnsiColors.YELLOW)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    if args.mode == "run" and not args.request:
        parser.error("--mode run requires a request")

    settings.LOG_LEVEL = args.log_level
    if args.backend:
        settings.LLM_BACKEND = args.backend
    _init_logging(settings.LOG_LEVEL)
    data_dir = _prepare_data_dir()

    logger.info("tripflow starting in %s mode (data: %s)", args.mode, data_dir)
    logger.debug("Effective settings: %s", settings.model_dump(exclude=SECRET_FIELDS))

    if args.mode == "run":
        sys.exit(_run_flow(args.request, args.backend))
    if args.mode == "api":
        run_api(host=BIND_HOST, port=settings.API_PORT, reload=settings.DEBUG)
        return

    _serve_in_background()
    from tripflow.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    run_cli()


if __name__ == "__main__":
    main()
