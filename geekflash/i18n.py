import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

APP_DIR = Path(__file__).parent.resolve()
LANG_DIR = APP_DIR / "lang"

_lang_data: Dict[str, Any] = {}
_fallback_data: Dict[str, Any] = {}


def _read_catalogue(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_available_languages() -> List[Tuple[str, str]]:
    if not LANG_DIR.is_dir():
        raise RuntimeError(f"Language directory not found: {LANG_DIR}")

    lang_files = sorted(LANG_DIR.glob("*.json"))
    if not lang_files:
        raise RuntimeError(f"No language files (*.json) found in: {LANG_DIR}")

    languages = []
    for f in lang_files:
        lang_code = f.stem
        try:
            lang_name = _read_catalogue(f).get("lang_native_name", lang_code)
        except (OSError, ValueError):
            lang_name = lang_code
        languages.append((lang_code, lang_name))

    languages.sort(key=lambda x: (0 if x[0] == "en" else 1, x[1].lower()))
    return languages


def load_lang(lang_code: str = "en") -> None:
    global _lang_data, _fallback_data

    fallback_file = LANG_DIR / "en.json"
    if not _fallback_data and fallback_file.exists():
        try:
            _fallback_data = _read_catalogue(fallback_file)
        except (OSError, ValueError) as e:
            print(f"[!] Failed to load fallback language en.json: {e}", file=sys.stderr)
            _fallback_data = {}

    lang_file = LANG_DIR / f"{lang_code}.json"
    if lang_code == "en" or not lang_file.exists():
        _lang_data = _fallback_data
        return

    try:
        _lang_data = _read_catalogue(lang_file)
    except (OSError, ValueError) as e:
        print(f"[!] Failed to load language {lang_code}, using fallback: {e}", file=sys.stderr)
        _lang_data = _fallback_data


def get_string(key: str, default: str = "") -> str:
    if not _fallback_data:
        load_lang("en")
    val = _lang_data.get(key, _fallback_data.get(key, default))
    if val:
        return val

    missing_key_format = _fallback_data.get("err_missing_key", "[{key}]")
    try:
        return missing_key_format.format(key=key)
    except KeyError:
        return f"[{key}]"
