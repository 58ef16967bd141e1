"""Persistent mediaplan settings.

Settings live in ``$XDG_CONFIG_HOME/mediaplan/config.toml`` (tomli/tomli-w) and
are resolved with the precedence CLI > environment (``MEDIAPLAN_*``) > config
file > built-in default. Known keys:

- ``confirmation.timeout_ms``: how long a confirmation may wait (30000).
- ``plans.dir``: where plan records are stored (``~/.mediaplan/plans``).
- ``recovery.policy``: what to do with pending plans after a restart
  (``reoffer`` or ``expire``).
- ``matcher.title_fallback``: match untagged files by episode title (false).
"""

import contextlib
import os
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar, cast

import tomli
import tomli_w

# Determine config directory respecting XDG_CONFIG_HOME if set.
_xdg_config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
CONFIG_DIR = _xdg_config_home / "mediaplan"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_PLANS_DIR = Path.home() / ".mediaplan" / "plans"
RECOVERY_POLICIES = ("reoffer", "expire")

T = TypeVar("T")

_TRUTHY = {"1", "true", "yes", "on"}


def _read_config_file() -> Dict[str, Any]:
    """Read the TOML config file if it exists, returning a (nested) dict."""
    if not CONFIG_FILE.exists():
        return {}
    with CONFIG_FILE.open("rb") as f:
        return tomli.load(f)


def _lookup_nested(data: Dict[str, Any], dotted_key: str) -> Optional[Any]:
    """Retrieve a nested value from *data* given a dotted key path.

    Example: dotted_key="plans.dir" will attempt ``data["plans"]["dir"]``
    returning None if any level is missing.
    """
    current: Any = data
    for part in dotted_key.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _make_env_var_name(dotted_key: str, prefix: str = "MEDIAPLAN_") -> str:
    """Convert a dotted key path to an uppercase ENV var name.

    Example: "confirmation.timeout_ms" -> "MEDIAPLAN_CONFIRMATION_TIMEOUT_MS".
    """
    return prefix + dotted_key.replace(".", "_").upper()


def _coerce(value: Any, default: T) -> T:
    """Coerce a raw env/file value to the type of *default*.

    Values that cannot be coerced fall back to *default*.
    """
    if isinstance(default, bool):
        if isinstance(value, bool):
            return cast(T, value)
        if isinstance(value, str):
            return cast(T, value.strip().lower() in _TRUTHY)
        return default
    if isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return cast(T, value)
        if isinstance(value, str):
            with contextlib.suppress(ValueError):
                return cast(T, int(value))
        return default
    if isinstance(default, str):
        return cast(T, str(value))
    return cast(T, value)


def resolve_setting(
    key: str,
    *,
    default: T,
    cli_value: Optional[T] = None,
) -> T:
    """Resolve a configuration *key* using precedence CLI > env > config > default.

    Args:
        key: Dotted key path, e.g. ``"confirmation.timeout_ms"``.
        default: Value to fall back to when no overrides found.
        cli_value: Value passed from a CLI option (``None`` when not provided).

    Returns:
        The resolved value with type matching *default* (or *cli_value*).
    """
    if cli_value is not None:
        return cli_value

    env_var = _make_env_var_name(key)
    if env_var in os.environ:
        return _coerce(os.environ[env_var], default)

    file_val = _lookup_nested(_read_config_file(), key)
    if file_val is not None:
        return _coerce(file_val, default)

    return default


def set_setting(key: str, value: Any) -> None:
    """Persist *value* under the dotted *key* in config.toml.

    Args:
        key: Dotted key path. Intermediate tables are created as needed.
        value: A TOML-serializable scalar.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    data = _read_config_file()
    *tables, leaf = key.split(".")
    current = data
    for table in tables:
        current = current.setdefault(table, {})
    current[leaf] = value
    with CONFIG_FILE.open("wb") as f:
        tomli_w.dump(data, f)


def get_confirmation_timeout_ms(cli_value: Optional[int] = None) -> int:
    """Return the confirmation timeout in milliseconds."""
    return resolve_setting(
        "confirmation.timeout_ms", default=DEFAULT_TIMEOUT_MS, cli_value=cli_value
    )


def get_plans_dir(cli_value: Optional[Path] = None) -> Path:
    """Return the directory where plan records are stored."""
    if cli_value is not None:
        return cli_value
    return Path(
        resolve_setting("plans.dir", default=str(DEFAULT_PLANS_DIR))
    ).expanduser()


def get_recovery_policy(cli_value: Optional[str] = None) -> str:
    """Return the restart recovery policy, ``reoffer`` or ``expire``.

    Raises:
        ValueError: If the configured policy is not a known one.
    """
    policy = resolve_setting("recovery.policy", default="reoffer", cli_value=cli_value)
    if policy not in RECOVERY_POLICIES:
        raise ValueError(
            f"Unknown recovery policy {policy!r}; expected one of {RECOVERY_POLICIES}"
        )
    return policy


def get_title_fallback(cli_value: Optional[bool] = None) -> bool:
    """Return whether the episode matcher may match by episode title."""
    return resolve_setting("matcher.title_fallback", default=False, cli_value=cli_value)
