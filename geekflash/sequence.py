import asyncio
from typing import Iterable, Optional

from . import constants as const
from .errors import CommandCancelled
from .i18n import get_string
from .logger import get_logger
from .models import CommandResult, CommandSpec, LogLine
from .runner import ProcessRunner
from .sink import EventSink, ensure_safe

logger = get_logger()


class SequenceRunner:
    def __init__(self, runner: Optional[ProcessRunner] = None, sink: Optional[EventSink] = None):
        self.runner = runner if runner is not None else ProcessRunner(sink=sink)
        if sink is None:
            sink = getattr(self.runner, "sink", None)
        self.sink = ensure_safe(sink)

    def _info(self, message: str, stream: str = const.STDOUT) -> None:
        self.sink.publish(LogLine(stream=stream, content=message))

    async def _delay(self, delay_ms: int, cancel_event: Optional[asyncio.Event]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay_ms / 1000

        while (remaining := deadline - loop.time()) > 0:
            if cancel_event is None:
                await asyncio.sleep(remaining)
                continue
            try:
                await asyncio.wait_for(cancel_event.wait(), remaining)
            except asyncio.TimeoutError:
                continue
            raise CommandCancelled()

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event], index: int, total: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            self._info(get_string("seq_cancelled").format(index=index, total=total), const.STDERR)
            raise CommandCancelled()

    async def run_sequence(
        self,
        specs: Iterable[CommandSpec],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        """Run ``specs`` one after another and return the last result.

        Stops at the first command that exits non-zero and returns its result.
        SpawnError, CommandTimeout and CommandCancelled abort the remaining
        steps and propagate to the caller.
        """
        specs = list(specs)
        total = len(specs)
        last_result = CommandResult.empty()

        for index, spec in enumerate(specs, 1):
            self._check_cancelled(cancel_event, index, total)

            if spec.delay_before_ms > 0:
                self._info(get_string("seq_waiting").format(ms=spec.delay_before_ms))
                try:
                    await self._delay(spec.delay_before_ms, cancel_event)
                except CommandCancelled:
                    self._info(get_string("seq_cancelled").format(index=index, total=total), const.STDERR)
                    raise

            command = spec.display(getattr(self.runner, "escalation_program", None))
            self._info(get_string("seq_running").format(index=index, total=total, command=command))

            result = await self.runner.run(spec.program, spec.args, spec.sudo, cancel_event=cancel_event)
            logger.debug(f"Step {index}/{total} finished: {result}")

            if result.exit_code != 0:
                self._info(
                    get_string("seq_step_failed").format(index=index, total=total, code=result.exit_code),
                    const.STDERR,
                )
                if spec.sudo:
                    self._info(
                        get_string("seq_escalation_hint").format(
                            wrapper=getattr(self.runner, "escalation_program", const.ESCALATION_PROGRAM)
                        ),
                        const.STDERR,
                    )
                return result

            last_result = result

        if total:
            self._info(get_string("seq_complete").format(total=total))
        return last_result


async def run_sequence(
    specs: Iterable[CommandSpec],
    sink: Optional[EventSink] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    runner = ProcessRunner(sink=sink, timeout=timeout)
    return await SequenceRunner(runner, sink).run_sequence(specs, cancel_event=cancel_event)


def run_sequence_sync(
    specs: Iterable[CommandSpec],
    sink: Optional[EventSink] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    return asyncio.run(run_sequence(specs, sink=sink, timeout=timeout))
