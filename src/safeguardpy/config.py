"""Configuration with XDG paths, atomic writes, and environment overrides.

This module handles the small amount of persistent and ambient
configuration the SDK needs:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.safeguardpy/`` on macOS and Windows. See :func:`get_data_dir`.
* **Atomic writes** -- :func:`_atomic_write` writes through a temp file and
  ``os.replace`` so stored sessions are never left half-written.
* **Transport settings** -- :func:`load_request_config` builds a
  :class:`~safeguardpy.models.RequestConfig` from ``SAFEGUARD_*``
  environment variables.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from safeguardpy.exceptions import ConfigError
from safeguardpy.models import RequestConfig

_APP_NAME = "safeguardpy"

ENV_TIMEOUT = "SAFEGUARD_TIMEOUT"
ENV_VERIFY_SSL = "SAFEGUARD_VERIFY_SSL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_data_dir() -> Path:
    """Return the data directory (stored sessions), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/safeguardpy/`` (default
    ``~/.local/share/safeguardpy/``). On macOS/Windows: ``~/.safeguardpy/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_DATA_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".local" / "share"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: int = 0o600) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. Permissions are
    restricted before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Environment overrides ---


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def load_request_config() -> RequestConfig:
    """Build the transport settings from the environment.

    Recognised variables:
        - ``SAFEGUARD_TIMEOUT`` -- request timeout in seconds (float).
        - ``SAFEGUARD_VERIFY_SSL`` -- ``true``/``false`` (also ``1``/``0``,
          ``yes``/``no``, ``on``/``off``).

    Unset variables fall back to the :class:`RequestConfig` defaults.

    Returns:
        The effective :class:`~safeguardpy.models.RequestConfig`.

    Raises:
        ConfigError: If a variable is set to an unparseable value.
    """
    values: dict[str, object] = {}

    timeout = os.environ.get(ENV_TIMEOUT)
    if timeout:
        try:
            values["timeout"] = float(timeout)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {ENV_TIMEOUT}: {timeout!r}") from exc

    verify = os.environ.get(ENV_VERIFY_SSL)
    if verify:
        values["verify_ssl"] = _parse_bool(ENV_VERIFY_SSL, verify)

    try:
        return RequestConfig.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid request configuration: {exc}") from exc
