"""
Secure directory and file helpers.

Logs and event files go to a per-user state directory; private key material
goes to owner-only temporary files.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional


def get_secure_app_directory(
    app_name: str = "rdsvalidator",
    subdirectory: Optional[str] = None,
) -> Path:
    """
    Get a writable per-user application directory.

    Follows the XDG Base Directory Specification (``$XDG_STATE_HOME`` or
    ``~/.local/state``). When that location cannot be created or written,
    falls back to a fresh temporary directory with 0o700 permissions.

    Args:
        app_name: Name of the application (default: "rdsvalidator")
        subdirectory: Optional subdirectory within the app directory

    Returns:
        Path: Secure, writable directory path
    """
    base_dir = _get_state_directory(app_name)
    app_dir = base_dir / subdirectory if subdirectory else base_dir

    try:
        app_dir.mkdir(parents=True, exist_ok=True)
        _test_directory_writable(app_dir)
        return app_dir

    except (OSError, PermissionError):
        return _create_secure_temp_directory(f"{app_name}_", "_state")


def create_private_file(prefix: str, suffix: str = "") -> Path:
    """Create an empty file readable only by its owner and return its path."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(fd)
    os.chmod(name, 0o600)
    return Path(name)


def _get_state_directory(app_name: str) -> Path:
    """Get the XDG state directory for the application."""
    xdg_state_home = os.environ.get("XDG_STATE_HOME")
    if xdg_state_home:
        return Path(xdg_state_home) / app_name
    return Path.home() / ".local" / "state" / app_name


def _test_directory_writable(directory: Path) -> None:
    """
    Test if directory is writable by creating and removing a test file.

    Raises:
        OSError: If directory is not writable
    """
    test_file = directory / ".write_test"
    test_file.touch()
    test_file.unlink()


def _create_secure_temp_directory(prefix: str, suffix: str) -> Path:
    """Create a temporary directory with owner-only permissions."""
    temp_dir = Path(tempfile.mkdtemp(prefix=prefix, suffix=suffix))
    os.chmod(temp_dir, 0o700)
    return temp_dir
