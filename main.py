# main.py
import argparse
import os
import signal
import sys

from pyfiglet import Figlet, FigletError

from typing import Optional

from app_context import AppContext
from config_validation import ConfigValidationError, Settings, load_settings
from relay_interface import FatalError, SinkError, TransportError, SessionTimeout, ServerClosed
from sink_registry import create_sink, describe_sink
from rewind import FrameSender, Session, SessionEngine, UdpTransport
import traffic_log

# On Windows terminals, force UTF-8 so the banner renders OK.
if os.name == "nt":
    try:
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, OSError):
        pass

PROGRAM_NAME = "Rewind-Listener"
CURRENT_VERSION = "1.0.0"
DEFAULT_CONFIG_FILE = "config.json"
LOG_DIR = "logs"

logger = None
debug_mode = False


class ShutdownRequested(BaseException):
    """Raised from the signal handler to unwind the engine loop."""

    def __init__(self, signum: int):
        super().__init__(signum)
        self.signum = signum


def print_banner_safe(title: str = "REWIND-LISTENER"):
    """Print a banner on stderr (stdout carries audio). Never crash on a missing font."""
    out = sys.stderr
    if os.getenv("NO_FIGLET") == "1":
        print("\n" + title + "\n", file=out)
        return
    for font in ("slant", "standard"):
        try:
            fig = Figlet(font=font, width=120)
            print(fig.renderText(title), file=out)
            return
        except FigletError:
            continue
    print("\n" + title + "\n", file=out)


def graceful_exit(ctx: Optional[AppContext] = None, exit_code: int = 0, send_close: bool = False) -> None:
    """
    Release resources and exit the program.

    - Send a best-effort Close when asked (signal or consumer gone).
    - Close the transport and the audio sink.
    - Exit process with exit_code.
    """
    if ctx is not None:
        if ctx.engine is not None:
            if send_close:
                ctx.engine.shutdown()
            logger and logger.info(f"[SESSION] {ctx.engine.summary()}")

        if ctx.transport is not None:
            ctx.transport.disconnect()

        if ctx.sink is not None:
            try:
                ctx.sink.close()
            except SinkError as e:
                logger and logger.debug(f"[AUDIO] sink close raised: {e}")

    sys.exit(exit_code)


def install_signal_handlers() -> None:
    """SIGINT/SIGTERM raise ShutdownRequested in the main thread."""
    def _handler(signum, frame):
        raise ShutdownRequested(signum)

    signal.signal(signal.SIGINT, _handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handler)


def create_context(settings: Settings, config_path: str, logger_in, traffic_log_path: Optional[str]) -> AppContext:
    """Build a run context from validated settings."""
    return AppContext(
        logger=logger_in,
        settings=settings,
        config_path=config_path,
        debug_mode=debug_mode,
        server_address=f"{settings.server_host}:{settings.server_port}",
        sink_description=describe_sink(settings.audio_output),
        traffic_log_path=traffic_log_path,
    )


def build_session(ctx: AppContext) -> SessionEngine:
    """Open the transport and wire sender, sink and engine into ctx."""
    s = ctx.settings

    ctx.sink = create_sink(s.audio_output)
    logger.info(f"[AUDIO] Output: {ctx.sink_description}")

    ctx.transport = UdpTransport(s.server_host, s.server_port, debug=ctx.debug_mode)
    ctx.transport.connect()

    sender = FrameSender(ctx.transport.send, app_id=s.app_id)
    session = Session(
        password=s.server_password,
        app_id=s.app_id,
        talkgroup_id=s.rec_talkgroup_id,
        timeout_s=float(s.server_timeout_seconds),
    )
    ctx.engine = SessionEngine(
        session,
        sender,
        ctx.sink,
        ctx.transport.inbound,
        on_frame=traffic_log.log_frame if s.traffic_log else None,
    )
    return ctx.engine


def main() -> None:
    global logger, debug_mode

    parser = argparse.ArgumentParser(description=f"{PROGRAM_NAME}: stream a talkgroup from a Rewind relay server")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE,
                        help=f"config file to use, default: {DEFAULT_CONFIG_FILE}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--clear-logs", action="store_true", help="Delete old log files and exit")
    parser.add_argument("--no-banner", action="store_true", help="Do not print the start banner")
    args = parser.parse_args()

    debug_mode = args.debug

    # --clear-logs: purge old logs and exit without running anything else
    if args.clear_logs:
        from loghandler import clear_old_logs
        clear_old_logs(LOG_DIR)
        sys.exit(0)

    if not args.no_banner:
        print_banner_safe("REWIND-LISTENER")

    settings = load_settings(args.config)

    from loghandler import setup_logging
    logger, traffic_log_path = setup_logging(log_dir=LOG_DIR, debug=debug_mode, traffic_log=settings.traffic_log)

    ctx = create_context(settings, args.config, logger, traffic_log_path)
    logger.info(f"{PROGRAM_NAME} - v{CURRENT_VERSION}")
    logger.info(f"[CONFIG] Loaded {ctx.config_path}")
    logger.info(f"[NET] using server and port {ctx.server_address}")
    logger.debug(f"[CONFIG] CallHangTimeSeconds={settings.call_hang_time_seconds} (not used)")

    install_signal_handlers()

    exit_code = 0
    send_close = False
    try:
        engine = build_session(ctx)
        engine.run()
    except ShutdownRequested as e:
        logger.info(f"[SESSION] Signal {signal.Signals(e.signum).name} received, closing session")
        send_close = True
    except SinkError as e:
        if isinstance(e.__cause__, BrokenPipeError):
            # Audio consumer went away; same as being told to stop.
            logger.info("[AUDIO] Output pipe closed, closing session")
            send_close = True
        else:
            logger.error(f"[FATAL] Audio output failed: {e}")
            exit_code = 1
    except FatalError as e:
        logger.error(f"[FATAL] {describe_fatal(e)}: {e}")
        exit_code = 1

    graceful_exit(ctx, exit_code=exit_code, send_close=send_close)


def describe_fatal(e: FatalError) -> str:
    if isinstance(e, SessionTimeout):
        return "Session timed out"
    if isinstance(e, ServerClosed):
        return "Server closed the session"
    if isinstance(e, TransportError):
        return "Network failure"
    return "Session failed"


def run() -> None:
    """Console entry point: map startup failures to exit codes."""
    try:
        main()
    except ConfigValidationError as e:
        if logger:
            logger.error(f"[CONFIG ERROR] {e}")
        else:
            print(f"[CONFIG ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    except ShutdownRequested:
        # Signal before the session existed; nothing to close.
        sys.exit(0)
    except Exception as e:
        if logger:
            logger.exception("[FATAL] Unexpected error occurred")
        else:
            print(f"[FATAL] Unexpected error occurred: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
