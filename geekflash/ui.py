import logging
from typing import List

from . import constants as const
from .logger import TOOL_STREAM, get_logger

logger = get_logger()


class ConsoleUI:
    BOX_WIDTH = 60

    def echo(self, message: str = "", err: bool = False) -> None:
        if err:
            logger.error(message)
        else:
            logger.info(message)

    def info(self, message: str) -> None:
        self.echo(message)

    def warn(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str) -> None:
        self.echo(message, err=True)

    def tool_line(self, stream: str, content: str) -> None:
        """Print one output line of an external tool, tagged with its stream."""
        level = logging.WARNING if stream == const.STDERR else logging.INFO
        logger.log(level, content, extra={TOOL_STREAM: stream})

    def box_output(self, lines: List[str], err: bool = False) -> None:
        width = min(max((len(line) for line in lines), default=0), self.BOX_WIDTH)
        rule = "-" * width
        self.echo(rule, err=err)
        for line in lines:
            self.echo(line, err=err)
        self.echo(rule, err=err)


ui = ConsoleUI()
