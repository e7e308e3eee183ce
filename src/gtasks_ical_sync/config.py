"""
Configuration files and command-line overrides.

Files are read in order, later ones overriding earlier ones:

    /etc/gtasks-ical-sync.conf
    ~/.config/gtasks-ical-sync.conf
    the file given with --config (must exist)

All settings live in the ``[gtasks-ical-sync]`` section:

    [gtasks-ical-sync]
    listname = ^Shopping$
    path = ~/Calendars/tasks.ics
    state_db = ~/.local/share/gtasks-ical-sync-state.db
    client_secrets_file = ~/.config/gtasks-ical-sync/credentials.json
    token_file = ~/.config/gtasks-ical-sync/token.json
    retries = 3
    timeout = 30
    ipv4_only = no
    verbose = no
"""

import logging
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

from gtasks_ical_sync.models import DEFAULT_CLIENT_SECRETS
from gtasks_ical_sync.models import DEFAULT_CONFIG
from gtasks_ical_sync.models import DEFAULT_STATE_DB
from gtasks_ical_sync.models import DEFAULT_TOKEN_FILE
from gtasks_ical_sync.models import SYSTEM_CONFIG
from gtasks_ical_sync.models import ConfigError
from gtasks_ical_sync.models import SyncConfig

SECTION = "gtasks-ical-sync"

KNOWN_KEYS = frozenset(
    {
        "client_secrets_file",
        "token_file",
        "listname",
        "path",
        "state_db",
        "retries",
        "timeout",
        "ipv4_only",
        "verbose",
    }
)

_BOOLEAN_STATES = ConfigParser.BOOLEAN_STATES


@dataclass
class FileConfig:
    """Merged contents of every configuration file that was found."""

    values: dict[str, str] = field(default_factory=dict)
    files_read: list[Path] = field(default_factory=list)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(key, default)

    def get_path(self, key: str, default: Path | None = None) -> Path | None:
        value = self.values.get(key)
        return Path(value).expanduser() if value else default

    def get_int(self, key: str, default: int) -> int:
        value = self.values.get(key)
        if value is None or value == "":
            return default
        try:
            number = int(value)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from None
        if number < 0:
            raise ConfigError(f"{key} must not be negative, got {number}")
        return number

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.values.get(key)
        if value is None or value == "":
            return default
        try:
            return _BOOLEAN_STATES[value.lower()]
        except KeyError:
            raise ConfigError(f"{key} must be a boolean (yes/no), got {value!r}") from None


def config_search_path(explicit: Path | None = None) -> list[Path]:
    paths = [SYSTEM_CONFIG, DEFAULT_CONFIG]
    if explicit is not None and explicit not in paths:
        paths.append(explicit)
    return paths


def load_config_files(explicit: Path | None = None) -> FileConfig:
    """Read and merge the configuration files.

    A missing system or user file is skipped; a missing explicit file, a
    syntax error or an unknown key raises ConfigError.
    """
    logger = logging.getLogger(__name__)
    if explicit is not None and not explicit.exists():
        raise ConfigError(f"Config file not found: {explicit}")

    merged = FileConfig()
    for path in config_search_path(explicit):
        if not path.exists():
            continue
        parser = ConfigParser(interpolation=None)
        try:
            with path.open(encoding="utf-8") as fh:
                parser.read_file(fh)
        except (OSError, ConfigParserError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        merged.files_read.append(path)
        if SECTION not in parser:
            logger.debug(f"No [{SECTION}] section in {path}")
            continue
        for key, value in parser[SECTION].items():
            if key not in KNOWN_KEYS:
                raise ConfigError(f"Unknown setting {key!r} in {path}")
            merged.values[key] = value
        logger.debug(f"Read config file {path}")
    return merged


def build_sync_config(
    file_config: FileConfig,
    *,
    listname: str | None = None,
    path: Path | None = None,
    state_db: Path | None = None,
    sync_direction: str = "both",
    task_ids: tuple[str, ...] = (),
    dry_run: bool = False,
    verbose: bool = False,
    ipv4_only: bool = False,
) -> SyncConfig:
    """Combine file settings with command-line values (which win)."""
    local_path = path or file_config.get_path("path")
    if local_path is None:
        raise ConfigError(
            "No iCalendar file or directory given; pass one on the command line "
            "or set 'path' in the config file"
        )
    if sync_direction not in ("both", "to-local", "to-remote"):
        raise ConfigError(f"Invalid sync direction {sync_direction!r}")

    return SyncConfig(
        local_path=Path(local_path).expanduser(),
        state_db_path=state_db or file_config.get_path("state_db", DEFAULT_STATE_DB),
        client_secrets_file=file_config.get_path("client_secrets_file", DEFAULT_CLIENT_SECRETS),
        token_file=file_config.get_path("token_file", DEFAULT_TOKEN_FILE),
        listname=listname or file_config.get("listname") or None,
        sync_direction=sync_direction,
        task_ids=tuple(task_ids),
        dry_run=dry_run,
        verbose=verbose or file_config.get_bool("verbose"),
        ipv4_only=ipv4_only or file_config.get_bool("ipv4_only"),
        retries=file_config.get_int("retries", 3),
        timeout=file_config.get_int("timeout", 30),
    )
