import asyncio
import os
import signal
import time
from datetime import datetime
from typing import List, Optional, Sequence

from . import constants as const
from .errors import CommandCancelled, CommandTimeout, SpawnError
from .i18n import get_string
from .logger import get_logger
from .models import CommandResult, LogLine, utc_now
from .sink import EventSink, ensure_safe

logger = get_logger()


def _strip_newline(raw: bytes) -> bytes:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


class ProcessRunner:
    """Runs one external command and streams its output as LogLine events.

    stdout and stderr are drained by two independent tasks; the command only
    counts as finished once both pipes reached EOF and the process exited.
    The whole wait is bounded by ``timeout`` seconds, after which the child
    is sent SIGTERM, then SIGKILL if it is still alive ``kill_grace`` seconds
    later, and CommandTimeout is raised.
    """

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        timeout: Optional[float] = None,
        escalation_program: Optional[str] = None,
        kill_grace: Optional[float] = None,
        line_limit: Optional[int] = None,
    ):
        self.sink = ensure_safe(sink)
        self.timeout = timeout if timeout is not None else const.TIMEOUT_SECONDS
        self.escalation_program = escalation_program or const.ESCALATION_PROGRAM
        self.kill_grace = kill_grace if kill_grace is not None else const.KILL_GRACE_SECONDS
        self.line_limit = line_limit or const.LINE_LIMIT_BYTES

    def build_argv(self, program: str, args: Sequence[str] = (), sudo: bool = False) -> List[str]:
        argv = [program, *args]
        if sudo:
            argv.insert(0, self.escalation_program)
        return argv

    def _emit(self, stream: str, content: str, timestamp: Optional[datetime] = None) -> None:
        self.sink.publish(LogLine(stream=stream, content=content, timestamp=timestamp or utc_now()))

    async def _pump(self, reader: asyncio.StreamReader, stream: str) -> None:
        last_stamp: Optional[datetime] = None
        discarding = False
        while True:
            try:
                raw = await reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw = e.partial
            except asyncio.LimitOverrunError as e:
                # The rest of an over-long line may still be in flight; drop
                # everything up to its newline and report it once.
                await reader.read(e.consumed)
                if not discarding:
                    discarding = True
                    self._emit(const.STDERR, get_string("runner_line_dropped").format(limit=self.line_limit))
                continue
            except OSError as e:
                logger.debug(f"Reading {stream} stopped: {e}")
                break
            if not raw:
                break

            if discarding:
                discarding = not raw.endswith(b"\n")
                continue

            stamp = utc_now()
            if last_stamp is not None and stamp < last_stamp:
                stamp = last_stamp
            last_stamp = stamp

            self._emit(stream, _strip_newline(raw).decode("utf-8", errors="replace"), stamp)

    async def _drain_and_wait(self, proc: asyncio.subprocess.Process, readers: List["asyncio.Task[None]"]) -> int:
        await asyncio.gather(*readers)
        return await proc.wait()

    def _signal(self, proc: asyncio.subprocess.Process, group: bool, force: bool) -> None:
        try:
            if group:
                os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)
            elif force:
                proc.kill()
            else:
                proc.terminate()
        except ProcessLookupError:
            pass

    async def _stop(self, proc: asyncio.subprocess.Process, group: bool) -> None:
        # SIGTERM first: an escalation wrapper forwards it to the command it
        # started, which SIGKILL on the wrapper would leave running.
        for force in (False, True):
            if proc.returncode is not None and not group:
                return
            self._signal(proc, group, force)
            try:
                await asyncio.wait_for(proc.wait(), self.kill_grace)
                break
            except asyncio.TimeoutError:
                logger.debug(f"Process {proc.pid} still running {self.kill_grace:g}s after signal (force={force})")

        if group:
            # Group members that outlived the leader, e.g. ones ignoring SIGTERM.
            self._signal(proc, group, force=True)

    async def _terminate(
        self,
        proc: asyncio.subprocess.Process,
        readers: List["asyncio.Task[None]"],
        completion: "asyncio.Future[int]",
        group: bool,
    ) -> None:
        await self._stop(proc, group)

        # Descendants of the child may still hold the pipes open.
        await asyncio.wait({completion}, timeout=self.kill_grace)
        for task in (*readers, completion):
            task.cancel()
        await asyncio.gather(*readers, completion, return_exceptions=True)

    async def run(
        self,
        program: str,
        args: Sequence[str] = (),
        sudo: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        argv = self.build_argv(program, args, sudo)
        # Escalated commands stay in our session so the wrapper keeps its terminal
        # credentials; everything else gets its own group to be killed as a whole.
        group = os.name == "posix" and not sudo
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self.line_limit,
                start_new_session=group,
            )
        except OSError as e:
            raise SpawnError(argv[0], e.strerror or e) from e

        logger.debug(f"Spawned pid {proc.pid}: {argv}")

        readers = [
            asyncio.ensure_future(self._pump(proc.stdout, const.STDOUT)),
            asyncio.ensure_future(self._pump(proc.stderr, const.STDERR)),
        ]
        completion = asyncio.ensure_future(self._drain_and_wait(proc, readers))

        waiters = {completion}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.timeout if self.timeout > 0 else None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._terminate(proc, readers, completion, group)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        duration_ms = int((time.monotonic() - start) * 1000)

        if completion in done:
            returncode = completion.result()
            exit_code = returncode if returncode >= 0 else const.EXIT_CODE_UNKNOWN
            logger.debug(f"pid {proc.pid} exited with {returncode}")
            self._emit(
                const.STDOUT,
                get_string("runner_exit_summary").format(code=exit_code, ms=duration_ms),
            )
            return CommandResult(exit_code=exit_code, duration_ms=duration_ms)

        await self._terminate(proc, readers, completion, group)

        if cancel_waiter is not None and cancel_waiter in done:
            self._emit(const.STDERR, get_string("runner_cancelled"))
            raise CommandCancelled()

        self._emit(const.STDERR, get_string("runner_timeout").format(seconds=f"{self.timeout:g}"))
        raise CommandTimeout(self.timeout)
