import argparse
import asyncio
import sys
from typing import List, Optional

from . import constants as const
from . import i18n
from .errors import ExecutionError, ToolError
from .i18n import get_string
from .logger import logging_context
from .models import CommandResult, CommandSpec, load_sequence
from .monitor import DeviceMonitor
from .sequence import run_sequence_sync
from .sink import LoggerSink
from .ui import ui

EXIT_ENGINE_ERROR = 2


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        number = 0.0
    if not number > 0:
        raise argparse.ArgumentTypeError(get_string("cli_err_positive").format(value=value))
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geekflash", description=get_string("cli_description"))
    parser.add_argument("--version", action="version", version=f"%(prog)s {const.VERSION}")
    parser.add_argument("--timeout", type=float, default=None, help=get_string("cli_help_timeout"))
    languages = [code for code, _ in i18n.get_available_languages()]
    parser.add_argument("--lang", default="en", choices=languages, help=get_string("cli_help_lang"))
    parser.add_argument("--log-file", default=None, help=get_string("cli_help_log_file"))
    parser.add_argument("-v", "--verbose", action="store_true", help=get_string("cli_help_verbose"))

    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help=get_string("cli_help_run"))
    run_p.add_argument("--sudo", action="store_true", help=get_string("cli_help_sudo"))
    run_p.add_argument("--delay", type=int, default=0, metavar="MS", help=get_string("cli_help_delay"))
    run_p.add_argument("program", help=get_string("cli_help_program"))
    run_p.add_argument("args", nargs=argparse.REMAINDER, help=get_string("cli_help_args"))

    seq_p = sub.add_parser("sequence", help=get_string("cli_help_sequence"))
    seq_p.add_argument("file", help=get_string("cli_help_sequence_file"))

    mon_p = sub.add_parser("monitor", help=get_string("cli_help_monitor"))
    mon_p.add_argument("--interval", type=_positive_float, default=None, help=get_string("cli_help_interval"))
    mon_p.add_argument("--once", action="store_true", help=get_string("cli_help_once"))

    return parser


def _report(result: CommandResult) -> int:
    if result.succeeded:
        ui.info(get_string("cli_result").format(code=result.exit_code, ms=result.duration_ms))
        return 0
    ui.error(get_string("cli_result_failed").format(code=result.exit_code, ms=result.duration_ms))
    return result.exit_code if result.exit_code > 0 else 1


def _run_specs(specs: List[CommandSpec], timeout: Optional[float]) -> int:
    result = run_sequence_sync(specs, sink=LoggerSink(), timeout=timeout)
    return _report(result)


def _monitor(interval: Optional[float], once: bool) -> int:
    monitor = DeviceMonitor(sink=LoggerSink())
    if once:
        monitor.poll()
        return 0

    if interval is None:
        interval = const.POLL_INTERVAL_SECONDS
    ui.info(get_string("monitor_started").format(interval=f"{interval:g}"))
    try:
        asyncio.run(monitor.watch(interval))
    finally:
        ui.info(get_string("monitor_stopped"))
    return 0


def dispatch(args: argparse.Namespace) -> int:
    if args.command == "run":
        spec = CommandSpec(args.program, tuple(args.args), sudo=args.sudo, delay_before_ms=args.delay)
        return _run_specs([spec], args.timeout)
    if args.command == "sequence":
        return _run_specs(load_sequence(args.file), args.timeout)
    return _monitor(args.interval, args.once)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    i18n.load_lang(args.lang)

    with logging_context(args.log_file, verbose=args.verbose):
        try:
            return dispatch(args)
        except ExecutionError as e:
            ui.box_output([get_string("cli_engine_error"), str(e)], err=True)
            return EXIT_ENGINE_ERROR
        except (ToolError, ValueError) as e:
            ui.error(f"[!] {e}")
            return EXIT_ENGINE_ERROR
        except KeyboardInterrupt:
            ui.error(get_string("cli_user_cancel"))
            return 130


def entry_point() -> None:
    sys.exit(main())


if __name__ == "__main__":
    entry_point()
