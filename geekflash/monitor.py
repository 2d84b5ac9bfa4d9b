import asyncio
import subprocess
from typing import Callable, Optional

import serial
import serial.tools.list_ports

from . import constants as const
from .errors import ToolError
from .i18n import get_string
from .logger import get_logger
from .models import DeviceStatus
from .sink import EventSink, ensure_safe

logger = get_logger()


def find_edl_port() -> Optional[str]:
    try:
        ports = serial.tools.list_ports.comports()
    except (OSError, serial.SerialException) as e:
        raise ToolError(get_string("monitor_err_list_ports").format(e=e)) from e

    for port in ports:
        if port.vid == const.EDL_VID and port.pid == const.EDL_PID:
            return port.device
    return None


def has_fastboot_device() -> bool:
    try:
        result = subprocess.run(
            [const.FASTBOOT_PROGRAM, "devices"],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="ignore",
            timeout=const.PROBE_TIMEOUT_SECONDS,
            check=False,
        )
    except FileNotFoundError:
        return False
    except (OSError, subprocess.SubprocessError) as e:
        raise ToolError(get_string("monitor_err_fastboot").format(e=e)) from e
    return bool(result.stdout.strip())


def detect_mode() -> str:
    if find_edl_port():
        return const.MODE_EDL
    if has_fastboot_device():
        return const.MODE_FASTBOOT
    return const.MODE_DISCONNECTED


class DeviceMonitor:
    """Polling session that reports device mode transitions.

    The previous mode lives on the session, so several monitors can run side
    by side. A status is published only when the mode changes.
    """

    def __init__(self, sink: Optional[EventSink] = None, probe: Callable[[], str] = detect_mode):
        self.sink = ensure_safe(sink)
        self.probe = probe
        self.last_mode: Optional[str] = None

    def poll(self) -> Optional[DeviceStatus]:
        try:
            mode = self.probe()
        except ToolError as e:
            logger.debug(get_string("monitor_probe_failed").format(e=e))
            return None

        if mode == self.last_mode:
            return None

        self.last_mode = mode
        status = DeviceStatus.now(mode)
        self.sink.publish(status)
        return status

    async def watch(self, interval: Optional[float] = None, stop_event: Optional[asyncio.Event] = None) -> None:
        interval = interval if interval is not None else const.POLL_INTERVAL_SECONDS
        if not interval > 0:
            raise ValueError(get_string("monitor_err_interval").format(interval=interval))
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()

        while not stop_event.is_set():
            await loop.run_in_executor(None, self.poll)
            try:
                await asyncio.wait_for(stop_event.wait(), interval)
            except asyncio.TimeoutError:
                pass
