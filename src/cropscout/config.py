"""Environment and .env driven defaults for the CLI."""

import os
from pathlib import Path
from typing import Optional

from cropscout.options import CropOptions

STEP_ENV_VAR = "CROPSCOUT_STEP"
DOWNSAMPLE_ENV_VAR = "CROPSCOUT_DOWNSAMPLE"
PRESCALE_ENV_VAR = "CROPSCOUT_PRESCALE"
RULE_OF_THIRDS_ENV_VAR = "CROPSCOUT_RULE_OF_THIRDS"
OUTPUT_QUALITY_ENV_VAR = "CROPSCOUT_OUTPUT_QUALITY"

_BOOL_TRUE = {"1", "true", "yes", "on"}
_BOOL_FALSE = {"0", "false", "no", "off"}


def _read_env_file(env_path: Path) -> dict[str, str]:
    """Parse KEY=VALUE lines; `export` prefixes and matching quotes are stripped."""
    if not env_path.is_file():
        return {}

    values: dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().removeprefix("export ").partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        value = value.strip()
        if value[:1] in {"'", '"'} and len(value) >= 2 and value[-1] == value[0]:
            value = value[1:-1]
        values[key] = value
    return values


def _resolve_env_string(var_name: str, search_dir: Optional[Path] = None) -> Optional[str]:
    """Resolve a string env var from environment first, then .env files."""
    env_value = (os.environ.get(var_name) or "").strip()
    if env_value:
        return env_value

    candidates = [Path.cwd() / ".env"]
    if search_dir is not None:
        candidates.append(search_dir / ".env")

    seen: set[Path] = set()
    for env_file in candidates:
        resolved = env_file.resolve()
        if resolved in seen or not env_file.exists():
            continue
        seen.add(resolved)

        values = _read_env_file(env_file)
        value = (values.get(var_name) or "").strip()
        if value:
            os.environ.setdefault(var_name, value)
            print(f"  📝 Loaded {var_name} from {env_file}")
            return value
    return None


def _resolve_env_int(var_name: str, default: int, search_dir: Optional[Path] = None) -> int:
    raw = _resolve_env_string(var_name, search_dir=search_dir)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _resolve_env_bool(var_name: str, default: bool, search_dir: Optional[Path] = None) -> bool:
    raw = (_resolve_env_string(var_name, search_dir=search_dir) or "").lower()
    if not raw:
        return default
    if raw in _BOOL_TRUE:
        return True
    if raw in _BOOL_FALSE:
        return False
    return default


def resolve_step(search_dir: Optional[Path] = None) -> int:
    """Resolve the candidate position stride in pixels."""
    return min(64, max(1, _resolve_env_int(STEP_ENV_VAR, CropOptions.step, search_dir)))


def resolve_down_sample(search_dir: Optional[Path] = None) -> int:
    """Resolve the scoring downsample factor."""
    return min(
        32, max(1, _resolve_env_int(DOWNSAMPLE_ENV_VAR, CropOptions.score_down_sample, search_dir))
    )


def resolve_prescale(search_dir: Optional[Path] = None) -> bool:
    return _resolve_env_bool(PRESCALE_ENV_VAR, CropOptions.prescale, search_dir)


def resolve_rule_of_thirds(search_dir: Optional[Path] = None) -> bool:
    return _resolve_env_bool(RULE_OF_THIRDS_ENV_VAR, CropOptions.rule_of_thirds, search_dir)


def resolve_output_quality(search_dir: Optional[Path] = None) -> int:
    """Resolve JPEG quality used when writing cropped outputs."""
    return min(100, max(30, _resolve_env_int(OUTPUT_QUALITY_ENV_VAR, 92, search_dir)))


def default_options(search_dir: Optional[Path] = None) -> CropOptions:
    """Build CropOptions whose tunables come from env / .env when present."""
    return CropOptions(
        step=resolve_step(search_dir),
        score_down_sample=resolve_down_sample(search_dir),
        prescale=resolve_prescale(search_dir),
        rule_of_thirds=resolve_rule_of_thirds(search_dir),
    )
