from typing import Any, Callable, Iterable, Optional, Protocol

from .i18n import get_string
from .logger import get_logger
from .models import DeviceStatus, LogLine
from .ui import ui

logger = get_logger()


class EventSink(Protocol):
    def publish(self, event: Any) -> None:
        ...


class NullSink:
    def publish(self, event: Any) -> None:
        pass


class CallbackSink:
    def __init__(self, callback: Callable[[Any], None]):
        self.callback = callback

    def publish(self, event: Any) -> None:
        self.callback(event)


class LoggerSink:
    def publish(self, event: Any) -> None:
        if isinstance(event, LogLine):
            ui.tool_line(event.stream, event.content)
        elif isinstance(event, DeviceStatus):
            ui.info(get_string("monitor_status").format(mode=event.mode))
        else:
            ui.info(str(event))


class MultiSink:
    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def publish(self, event: Any) -> None:
        for sink in self.sinks:
            sink.publish(event)


class SafeSink:
    """Delivery boundary for engine events.

    Whatever the wrapped sink raises is logged and dropped so that a broken
    subscriber never aborts a running command.
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink if sink is not None else NullSink()

    def publish(self, event: Any) -> None:
        try:
            self.sink.publish(event)
        except Exception as e:
            logger.debug(f"Event delivery failed ({type(e).__name__}): {e}")


def ensure_safe(sink: Optional[EventSink]) -> SafeSink:
    if isinstance(sink, SafeSink):
        return sink
    return SafeSink(sink)
