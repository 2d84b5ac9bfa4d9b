from .i18n import get_string


class ToolError(Exception):
    pass


class ExecutionError(ToolError):
    """The engine could not run a command to completion.

    A command that runs and exits non-zero is not an ExecutionError; its
    exit code is reported in the CommandResult instead.
    """


class SpawnError(ExecutionError):
    def __init__(self, program: str, reason: object):
        self.program = program
        self.reason = reason
        super().__init__(get_string("err_spawn").format(program=program, reason=reason))


class CommandTimeout(ExecutionError):
    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(get_string("err_timeout").format(seconds=_format_seconds(seconds)))


class CommandCancelled(ExecutionError):
    def __init__(self):
        super().__init__(get_string("err_cancelled"))


def _format_seconds(seconds: float) -> str:
    return f"{seconds:g}"
