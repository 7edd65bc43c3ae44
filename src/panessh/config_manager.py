"""Configuration management module.

Reads user preferences from ~/.panessh/config.toml. Every key is optional;
a missing default config file means "use defaults".

Example config:
    log_dir = "~/ssh-logs"
    log_format = "[:ARG:]_%Y%m%d.log"
    ssh_command = ["ssh", "-o", "StrictHostKeyChecking=no"]
    layout = "auto"
    share = false
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Python 3.11+ ships the same parser
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

from panessh.dispatcher import DEFAULT_SSH_COMMAND
from panessh.layout import KNOWN_LAYOUTS
from panessh.log_names import DEFAULT_LOG_DIR, DEFAULT_LOG_FORMAT

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


@dataclass
class PanesshConfig:
    """panessh configuration data."""

    log_dir: Path = DEFAULT_LOG_DIR
    log_format: str = DEFAULT_LOG_FORMAT
    ssh_command: list[str] = field(default_factory=lambda: list(DEFAULT_SSH_COMMAND))
    tmux_command: str = "tmux"
    state_dir: Path = Path.home() / ".panessh"
    socket_name: str = "tmux.sock"
    handoff_timeout: float = 30.0
    lock_timeout: float = 5.0
    layout: str = "auto"
    share: bool = False

    @property
    def socket_path(self) -> Path:
        """Fixed per-user tmux server socket, shared for co-attaching."""
        return self.state_dir / self.socket_name

    @property
    def lock_path(self) -> Path:
        return self.state_dir / "bootstrap.lock"

    def handoff_path(self, pid: int) -> Path:
        """Per-invocation handoff FIFO."""
        return self.state_dir / f"handoff-{pid}.fifo"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PanesshConfig":
        """Create from a parsed TOML table.

        Raises:
            ConfigError: If a value has the wrong type
        """
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.debug(f"Ignoring unknown config key: {key}")

        config = cls()
        for key in ("log_dir", "state_dir"):
            if key in data:
                setattr(config, key, Path(_expect(data, key, str)).expanduser())
        for key in ("log_format", "tmux_command", "socket_name", "layout"):
            if key in data:
                setattr(config, key, _expect(data, key, str))
        for key in ("handoff_timeout", "lock_timeout"):
            if key in data:
                value = _expect(data, key, (int, float))
                if value <= 0:
                    raise ConfigError(f"{key} must be positive, got {value}")
                setattr(config, key, float(value))
        if "share" in data:
            config.share = _expect(data, "share", bool)
        if "ssh_command" in data:
            command = _expect(data, "ssh_command", list)
            if not command or not all(isinstance(word, str) for word in command):
                raise ConfigError("ssh_command must be a non-empty list of strings")
            config.ssh_command = list(command)

        if config.layout != "auto" and config.layout not in KNOWN_LAYOUTS:
            raise ConfigError(
                f"Unknown layout {config.layout!r}. "
                f"Use 'auto' or one of: {', '.join(sorted(KNOWN_LAYOUTS))}"
            )
        if "/" in config.socket_name:
            raise ConfigError("socket_name must be a file name, not a path")

        return config


def _expect(data: dict[str, Any], key: str, types: type | tuple[type, ...]) -> Any:
    value = data[key]
    # bool is an int subclass; only accept it where bool is asked for
    if isinstance(value, bool) and types is not bool:
        raise ConfigError(f"Invalid type for {key}: {type(value).__name__}")
    if not isinstance(value, types):
        raise ConfigError(f"Invalid type for {key}: {type(value).__name__}")
    return value


class ConfigManager:
    """Load panessh configuration file.

    Configuration is stored at ~/.panessh/config.toml.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".panessh"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If an explicit custom path does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> PanesshConfig:
        """Load configuration, falling back to defaults.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            PanesshConfig

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug(f"No config file at {config_path}, using defaults")
            return PanesshConfig()

        try:
            with open(config_path, "rb") as f:
                data = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read {config_path}: {e}") from e

        logger.debug(f"Loaded config from {config_path}")
        return PanesshConfig.from_dict(data)

    @classmethod
    def ensure_state_dir(cls, config: PanesshConfig) -> Path:
        """Create the state directory (socket, lock, FIFOs) with 0700.

        Raises:
            ConfigError: If it cannot be created
        """
        try:
            config.state_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as e:
            raise ConfigError(f"Cannot create state directory {config.state_dir}: {e}") from e
        return config.state_dir


__all__ = ["ConfigError", "ConfigManager", "PanesshConfig"]
