import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import constants as const
from .errors import ToolError
from .i18n import get_string


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CommandSpec:
    program: str
    args: Tuple[str, ...] = ()
    sudo: bool = False
    delay_before_ms: int = 0

    def __post_init__(self):
        if not self.program:
            raise ValueError("program must not be empty")
        if self.delay_before_ms < 0:
            raise ValueError(f"delay_before_ms must be >= 0, got {self.delay_before_ms}")
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))

    def display(self, escalation_program: Optional[str] = None) -> str:
        parts = [self.program, *self.args]
        if self.sudo:
            parts.insert(0, escalation_program or const.ESCALATION_PROGRAM)
        return " ".join(parts)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandSpec":
        args = data.get("args", [])
        if isinstance(args, str) or not isinstance(args, (list, tuple)):
            raise ValueError("args must be a list of strings")
        return cls(
            program=data["program"],
            args=tuple(args),
            sudo=bool(data.get("sudo", False)),
            delay_before_ms=int(data.get("delay_before_ms", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program": self.program,
            "args": list(self.args),
            "sudo": self.sudo,
            "delay_before_ms": self.delay_before_ms,
        }


@dataclass(frozen=True)
class LogLine:
    stream: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "stream": self.stream,
            "content": self.content,
        }


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    duration_ms: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @classmethod
    def empty(cls) -> "CommandResult":
        return cls(exit_code=0, duration_ms=0)

    def to_dict(self) -> Dict[str, Any]:
        return {"exit_code": self.exit_code, "duration_ms": self.duration_ms}


@dataclass(frozen=True)
class DeviceStatus:
    mode: str
    timestamp: int

    @classmethod
    def now(cls, mode: str) -> "DeviceStatus":
        return cls(mode=mode, timestamp=int(utc_now().timestamp() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": self.mode, "timestamp": self.timestamp}


def parse_sequence(entries: Sequence[Any]) -> List[CommandSpec]:
    specs = []
    for index, entry in enumerate(entries):
        try:
            if not isinstance(entry, dict):
                raise ValueError("expected an object")
            specs.append(CommandSpec.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(get_string("err_sequence_entry").format(index=index, e=e)) from e
    return specs


def load_sequence(path: Union[str, Path]) -> List[CommandSpec]:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError("top level must be a JSON array")
        return parse_sequence(data)
    except (OSError, ValueError) as e:
        raise ToolError(get_string("err_sequence_file").format(path=path, e=e)) from e
