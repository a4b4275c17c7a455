"""
Command-line interface for the engine evaluation service.
"""

import argparse
import logging
import signal
import sys

from evalpool.config import Settings, load_settings
from evalpool.constants import DEFAULT_DEPTH, STATUS_OK
from evalpool.dispatcher import EvaluationDispatcher
from evalpool.errors import ConfigError, InvalidInput
from evalpool.health import check_engine
from evalpool.pool import WorkerPool

log = logging.getLogger("evalpool")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evalpool",
        description="Evaluate chess positions with a pool of UCI engine processes",
        epilog="Settings default to environment variables (PORT, ENGINE_PATH, POOL_SIZE, ...)"
    )
    parser.add_argument("--engine", "-e", type=str, default=None,
                        help="Path to the UCI engine executable (default: $ENGINE_PATH)")
    parser.add_argument("--pool-size", "-n", type=int, default=None,
                        help="Maximum number of engine processes (default: $POOL_SIZE or 4)")
    parser.add_argument("--timeout", "-t", type=float, default=None,
                        help="Seconds allowed per position (default: $EVAL_TIMEOUT or 30)")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Logging level (default: $LOG_LEVEL or INFO)")

    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP service (default)")
    serve.add_argument("--host", type=str, default="0.0.0.0",
                       help="Interface to bind (default: 0.0.0.0)")
    serve.add_argument("--port", "-p", type=int, default=None,
                       help="Port to listen on (default: $PORT or 3000)")

    evaluate = commands.add_parser("eval", help="Evaluate positions once and print the results")
    evaluate.add_argument("fens", nargs="+", help="FEN strings (quote each one)")
    evaluate.add_argument("--depth", "-d", type=int, default=DEFAULT_DEPTH,
                          help=f"Search depth (default: {DEFAULT_DEPTH})")

    commands.add_parser("health", help="Check the engine binary and exit 0 if it responds")

    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    return settings.override(
        engine_path=args.engine,
        pool_size=args.pool_size,
        eval_timeout=args.timeout,
        port=getattr(args, "port", None),
        log_level=args.log_level.upper() if args.log_level else None,
    )


def build_pool(settings: Settings) -> WorkerPool:
    return WorkerPool(settings.engine_path, max_workers=settings.pool_size,
                      handshake_timeout=settings.handshake_timeout,
                      threads=settings.engine_threads)


def install_shutdown_handlers(pool: WorkerPool):
    """Terminate every worker on SIGTERM/SIGINT before the process exits."""
    def handle_signal(signum, frame):
        log.info("Received %s, shutting down engine pool", signal.Signals(signum).name)
        pool.shutdown_all()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)


def run_serve(settings: Settings, host: str) -> int:
    from web.app import create_app

    pool = build_pool(settings)
    install_shutdown_handlers(pool)
    app = create_app(settings=settings, pool=pool)

    log.info("Serving on http://%s:%d (engine %s, pool size %d)",
             host, settings.port, settings.engine_path, settings.pool_size)
    try:
        app.run(host=host, port=settings.port, threaded=True)
    finally:
        pool.shutdown_all()
    return 0


def run_eval(settings: Settings, fens: list[str], depth: int) -> int:
    with build_pool(settings) as pool:
        dispatcher = EvaluationDispatcher(pool, eval_timeout=settings.eval_timeout)
        try:
            results = dispatcher.evaluate_batch(fens, depth)
        except InvalidInput as e:
            print(f"Error: {e}")
            return 2

    failures = 0
    for result in results:
        if result.status == STATUS_OK:
            print(f"{result.position}  {result.move or '-'}  {result.evaluation}")
        else:
            failures += 1
            detail = f" ({result.error})" if result.error else ""
            print(f"{result.position}  {result.status}{detail}")
    return 1 if failures else 0


def run_health(settings: Settings) -> int:
    report = check_engine(settings.engine_path, settings.health_timeout)
    print(f"{'OK' if report.ok else 'ERROR'}: {report.message}")
    return 0 if report.ok else 1


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = resolve_settings(args)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(2)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "eval":
        sys.exit(run_eval(settings, args.fens, args.depth))
    elif args.command == "health":
        sys.exit(run_health(settings))
    else:
        sys.exit(run_serve(settings, getattr(args, "host", "0.0.0.0")))
