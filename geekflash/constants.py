import json
from pathlib import Path
from typing import Any

PACKAGE_DIR = Path(__file__).parent.resolve()
CONFIG_FILE = PACKAGE_DIR / "config.json"

STDOUT = "stdout"
STDERR = "stderr"

MODE_EDL = "edl"
MODE_FASTBOOT = "fastboot"
MODE_DISCONNECTED = "disconnected"

EXIT_CODE_UNKNOWN = -1

_config: dict = {}


def load_config() -> None:
    global _config
    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE, "r", encoding="utf-8") as f:
                _config = json.load(f)
        except (OSError, ValueError) as e:
            raise RuntimeError(f"[!] Critical Error: Failed to load config.json: {e}")
    else:
        raise RuntimeError(f"[!] Critical Error: Configuration file missing: {CONFIG_FILE}")


def _get_cfg(section: str, key: str, default: Any = None) -> Any:
    if not _config:
        load_config()
    try:
        return _config[section][key]
    except KeyError:
        if default is not None:
            return default
        raise RuntimeError(f"[!] Critical Error: Missing configuration key: [{section}][{key}]")


if not _config:
    load_config()

VERSION = _config.get("version", "0.0.0")

TIMEOUT_SECONDS = float(_get_cfg("executor", "timeout_seconds", 30))
KILL_GRACE_SECONDS = float(_get_cfg("executor", "kill_grace_seconds", 5))
ESCALATION_PROGRAM = _get_cfg("executor", "escalation_program", "sudo")
LINE_LIMIT_BYTES = int(_get_cfg("executor", "line_limit_bytes", 1024 * 1024))

POLL_INTERVAL_SECONDS = float(_get_cfg("device", "poll_interval_seconds", 3))
FASTBOOT_PROGRAM = _get_cfg("device", "fastboot_program", "fastboot")
PROBE_TIMEOUT_SECONDS = float(_get_cfg("device", "probe_timeout_seconds", 5))
EDL_VID = int(_get_cfg("device", "edl_vid", "05c6"), 16)
EDL_PID = int(_get_cfg("device", "edl_pid", "9008"), 16)
