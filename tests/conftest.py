import sys
import time
from typing import Any, Dict, List, Optional, Sequence

import pytest
from geekflash.models import CommandResult, LogLine


class RecordingSink:
    def __init__(self):
        self.events: List[Any] = []

    def publish(self, event: Any) -> None:
        self.events.append(event)

    def lines(self, stream: Optional[str] = None) -> List[LogLine]:
        return [
            e for e in self.events
            if isinstance(e, LogLine) and (stream is None or e.stream == stream)
        ]

    def contents(self, stream: Optional[str] = None) -> List[str]:
        return [line.content for line in self.lines(stream)]


class FakeRunner:
    escalation_program = "sudo"

    def __init__(self, exit_codes: Sequence[int] = (), errors: Optional[Dict[int, Exception]] = None):
        self.exit_codes = list(exit_codes)
        self.errors = errors or {}
        self.calls: List[tuple] = []
        self.call_times: List[float] = []

    async def run(self, program, args=(), sudo=False, cancel_event=None) -> CommandResult:
        index = len(self.calls)
        self.calls.append((program, tuple(args), sudo))
        self.call_times.append(time.monotonic())
        if index in self.errors:
            raise self.errors[index]
        code = self.exit_codes[index] if index < len(self.exit_codes) else 0
        return CommandResult(exit_code=code, duration_ms=index + 1)


def _python_cmd(code: str):
    return sys.executable, ["-c", code]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def python_cmd():
    return _python_cmd

