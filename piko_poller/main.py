# piko_poller/main.py

import signal
import threading
from pathlib import Path

from .cli import build_parser
from .config import Config
from .errors import ConfigurationError
from .logging import ConsoleLog, StructuredLog

from .services.field_schema import load_schema, render_schema_table
from .services.poll_cycle import PollCycle
from .services.retry_scheduler import RetryScheduler
from .services.simulation_transport import FileTransport
from .services.state_publisher import StatePublisher
from .services.state_store import StateStore
from .services.timers import SchedulerTimer
from .services.transport import HttpTransport
from .services.output_formatter import emit_json, emit_human
from .services import state_maintenance

EXIT_CONFIG_ERROR = 2
EXIT_GAVE_UP = 3
EXIT_CRASHED = 4


def run_service(app_cfg, fields, store, transport, structured_logger, log, *, timer=None, stop_event=None) -> int:
    publisher = StatePublisher(store, log)
    cycle = PollCycle(transport, fields, publisher, log)
    stop = stop_event or threading.Event()
    owned_timer = timer is None
    if owned_timer:
        timer = SchedulerTimer()
    scheduler = RetryScheduler(
        cycle,
        timer,
        app_cfg.polling,
        publisher,
        log,
        structured_log=structured_logger,
        on_stopped=stop.set,
    )

    def _request_stop(signum, frame):
        log.info("Received signal %s; shutting down", signum)
        stop.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _request_stop)
        signal.signal(signal.SIGTERM, _request_stop)

    try:
        # Reset the connection indicator during startup
        publisher.set_connection(False)
        log.info(
            "Polling %s every %s ms (retry %s x every %s ms)",
            app_cfg.server.base_url,
            app_cfg.polling.interval_ms,
            app_cfg.polling.fail_count,
            app_cfg.polling.fail_timeout_ms,
        )
        try:
            scheduler.start()
        except Exception:
            # the scheduler has already logged the traceback
            if not scheduler.crashed:
                raise

        # Short waits keep the main thread responsive to signals.
        while not stop.wait(1.0):
            pass
    finally:
        scheduler.shutdown()
        if owned_timer:
            timer.shutdown()
        transport.close()
        store.flush()

    if scheduler.gave_up:
        return EXIT_GAVE_UP
    if scheduler.crashed:
        return EXIT_CRASHED
    return 0


def run_once(fields, store, transport, log, *, as_json=False, quiet=False):
    publisher = StatePublisher(store, log)
    cycle = PollCycle(transport, fields, publisher, log)
    outcome = cycle.run()
    transport.close()
    store.flush()

    if not quiet:
        if as_json:
            emit_json(outcome, fields, store)
        else:
            emit_human(outcome, fields, store)
    return outcome


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    fields = load_schema()

    if args.command == "schema":
        print(render_schema_table(fields))
        return 0

    try:
        app_cfg = Config.load(args.config)
    except ConfigurationError as exc:
        ConsoleLog(level="ERROR", quiet=args.quiet).setup().error("%s", exc)
        return EXIT_CONFIG_ERROR

    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )

    log.debug("config.serverProtocol: %s", app_cfg.server.protocol)
    log.debug("config.serverIp: %s", app_cfg.server.host)
    log.debug("config.serverPort: %s", app_cfg.server.port)
    log.debug("config.interval: %s", app_cfg.polling.interval_ms)
    log.debug("\n%s", render_schema_table(fields))

    state_path = Path(app_cfg.state.path).expanduser() if app_cfg.state.path else None

    if args.command == "maintain-db":
        store = StateStore(path=state_path)
        stale_days = args.stale_days if args.stale_days is not None else app_cfg.retention.stale_days
        vacuum = app_cfg.retention.vacuum_after_prune and not args.no_vacuum
        removed = state_maintenance.prune_stale(store, stale_days, vacuum=vacuum)
        log.info("Database maintenance complete (%d objects older than %s days removed)", len(removed), stale_days)
        store.close()
        return 0

    if args.command == "simulate":
        document = args.document or app_cfg.simulation.document
        if not document:
            log.error("simulate needs --document or [simulation] document")
            return EXIT_CONFIG_ERROR
        store = StateStore(persist=False)
        transport = FileTransport(document, log)
        outcome = run_once(fields, store, transport, log, as_json=args.json, quiet=args.quiet)
        return 0 if outcome.success else 1

    store = StateStore(path=state_path)
    transport = HttpTransport(app_cfg.server, log)

    if args.command == "poll":
        outcome = run_once(fields, store, transport, log, as_json=args.json, quiet=args.quiet)
        return 0 if outcome.success else 1
    if args.command == "run":
        return run_service(app_cfg, fields, store, transport, structured_logger, log)

    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
