from .errors import CommandCancelled, CommandTimeout, ExecutionError, SpawnError, ToolError
from .models import CommandResult, CommandSpec, DeviceStatus, LogLine, load_sequence
from .runner import ProcessRunner
from .sequence import SequenceRunner, run_sequence, run_sequence_sync

__version__ = "0.1.0"

__all__ = [
    "CommandCancelled",
    "CommandResult",
    "CommandSpec",
    "CommandTimeout",
    "DeviceStatus",
    "ExecutionError",
    "LogLine",
    "ProcessRunner",
    "SequenceRunner",
    "SpawnError",
    "ToolError",
    "load_sequence",
    "run_sequence",
    "run_sequence_sync",
]
