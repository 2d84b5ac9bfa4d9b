import asyncio

import pytest
from geekflash import constants as const
from geekflash.errors import CommandCancelled, CommandTimeout, SpawnError
from geekflash.models import CommandResult, CommandSpec
from geekflash.sequence import SequenceRunner, run_sequence, run_sequence_sync


def _specs(n):
    return [CommandSpec("tool", (str(i),)) for i in range(n)]


class TestSequenceRunner:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [1, 2, 5])
    async def test_all_succeed_returns_last_result(self, n, sink, fake_runner):
        runner = fake_runner()
        result = await SequenceRunner(runner, sink).run_sequence(_specs(n))

        assert len(runner.calls) == n
        assert result == CommandResult(exit_code=0, duration_ms=n)
        assert sink.contents()[-1] == f"[+] All {n} commands completed successfully"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, 1, 3])
    async def test_first_failure_stops_sequence(self, k, sink, fake_runner):
        codes = [0] * k + [7] + [0] * 3
        runner = fake_runner(exit_codes=codes)
        result = await SequenceRunner(runner, sink).run_sequence(_specs(len(codes)))

        assert len(runner.calls) == k + 1
        assert result == CommandResult(exit_code=7, duration_ms=k + 1)
        assert f"[!] Step {k + 1}/{len(codes)} failed with exit code 7" in sink.contents(const.STDERR)

    @pytest.mark.asyncio
    async def test_empty_sequence_is_identity(self, sink, fake_runner):
        runner = fake_runner()
        result = await SequenceRunner(runner, sink).run_sequence([])

        assert result == CommandResult(exit_code=0, duration_ms=0)
        assert runner.calls == []
        assert sink.events == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [SpawnError("edl", "No such file"), CommandTimeout(30)])
    async def test_engine_errors_propagate_and_abort(self, error, sink, fake_runner):
        runner = fake_runner(errors={1: error})

        with pytest.raises(type(error)):
            await SequenceRunner(runner, sink).run_sequence(_specs(3))

        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_announcements(self, sink, fake_runner):
        specs = [
            CommandSpec("fastboot", ("oem", "edl")),
            CommandSpec("edl", ("w", "boot_a", "boot.img", "--loader=prog.elf"), sudo=True, delay_before_ms=10),
        ]
        runner = fake_runner()
        await SequenceRunner(runner, sink).run_sequence(specs)

        assert sink.contents() == [
            "[1/2] Running: fastboot oem edl",
            "Waiting 10ms before next command...",
            "[2/2] Running: sudo edl w boot_a boot.img --loader=prog.elf",
            "[+] All 2 commands completed successfully",
        ]
        assert runner.calls[1] == ("edl", ("w", "boot_a", "boot.img", "--loader=prog.elf"), True)

    @pytest.mark.asyncio
    async def test_delay_is_honoured(self, sink, fake_runner):
        specs = [CommandSpec("a"), CommandSpec("b", delay_before_ms=150)]
        runner = fake_runner()
        await SequenceRunner(runner, sink).run_sequence(specs)

        assert runner.call_times[1] - runner.call_times[0] >= 0.15

    @pytest.mark.asyncio
    async def test_escalated_failure_adds_hint(self, sink, fake_runner):
        runner = fake_runner(exit_codes=[1])
        await SequenceRunner(runner, sink).run_sequence([CommandSpec("edl", ("ws", "0"), sudo=True)])

        assert any("'sudo' may have refused" in c for c in sink.contents(const.STDERR))

    @pytest.mark.asyncio
    async def test_plain_failure_has_no_escalation_hint(self, sink, fake_runner):
        runner = fake_runner(exit_codes=[1])
        await SequenceRunner(runner, sink).run_sequence([CommandSpec("fastboot", ("oem", "edl"))])

        assert not any("may have refused" in c for c in sink.contents())

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, sink, fake_runner):
        runner = fake_runner()
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(CommandCancelled):
            await SequenceRunner(runner, sink).run_sequence(_specs(2), cancel_event=cancel)

        assert runner.calls == []
        assert sink.contents(const.STDERR) == ["[!] Sequence cancelled before step 1/2"]

    @pytest.mark.asyncio
    async def test_cancel_interrupts_delay(self, sink, fake_runner):
        runner = fake_runner()
        cancel = asyncio.Event()
        specs = [CommandSpec("a"), CommandSpec("b", delay_before_ms=60_000)]

        asyncio.get_running_loop().call_later(0.1, cancel.set)
        with pytest.raises(CommandCancelled):
            await asyncio.wait_for(
                SequenceRunner(runner, sink).run_sequence(specs, cancel_event=cancel), 5
            )

        assert len(runner.calls) == 1
        assert "[!] Sequence cancelled before step 2/2" in sink.contents(const.STDERR)

    @pytest.mark.asyncio
    async def test_broken_sink_does_not_affect_result(self, fake_runner):
        class ExplodingSink:
            def publish(self, event):
                raise ValueError("nobody listening")

        runner = fake_runner(exit_codes=[0, 2])
        result = await SequenceRunner(runner, ExplodingSink()).run_sequence(_specs(2))

        assert result.exit_code == 2


@pytest.mark.integration
class TestRealProcesses:
    @pytest.mark.asyncio
    async def test_stops_after_failing_tool(self, sink, python_cmd):
        specs = [
            CommandSpec(*python_cmd("print('ok')")),
            CommandSpec(*python_cmd("import sys; sys.exit(1)")),
            CommandSpec(*python_cmd("print('never')")),
        ]
        result = await run_sequence(specs, sink=sink)

        assert result.exit_code == 1
        contents = sink.contents()
        assert "ok" in contents
        assert "never" not in contents
        assert not any(c.startswith("[3/3]") for c in contents)

    def test_blocking_wrapper(self, sink, python_cmd):
        result = run_sequence_sync([CommandSpec(*python_cmd("print('hi')"))], sink=sink)

        assert result.succeeded
        assert "hi" in sink.contents(const.STDOUT)

    def test_blocking_wrapper_on_empty_list(self):
        assert run_sequence_sync([]) == CommandResult.empty()
