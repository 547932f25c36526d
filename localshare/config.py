"""
Settings

A session needs two ports, a storage root and a few timeouts. Values come
from, in decreasing priority:
1. LOCALSHARE_* environment variables (a .env file in the working directory
   is read too)
2. A JSON settings file
3. The defaults below
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Optional

from dotenv import find_dotenv, load_dotenv

from .transfer.protocol import FILE_TRANSFER_PORT, HANDSHAKE_PORT

ENV_PREFIX = 'LOCALSHARE_'


def _optional_float(value) -> Optional[float]:
    """Parse a timeout value where empty/'none' means no timeout."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in ('', 'none', 'null'):
        return None
    return float(value)


@dataclass
class Config:
    """Settings for one transfer session."""
    # Network
    host: str = '0.0.0.0'
    handshake_port: int = HANDSHAKE_PORT
    transfer_port: int = FILE_TRANSFER_PORT

    # Where received files are written
    storage_root: Path = field(default_factory=lambda: Path('./received'))

    # Read/write block size for file streams
    chunk_size: int = 64 * 1024

    # Timeouts in seconds; None blocks until the session is cancelled
    connect_timeout: Optional[float] = 15.0
    handshake_timeout: Optional[float] = None
    transfer_timeout: Optional[float] = None

    # Gives the receiver time to bind its listener after the handshake
    sender_start_delay: float = 1.0

    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Build settings from LOCALSHARE_* variables over the defaults."""
        load_dotenv(find_dotenv(usecwd=True))

        values = {}
        for name in _PARSERS:
            raw = os.getenv(ENV_PREFIX + name.upper())
            # An empty storage root means "not set"; empty timeouts mean None
            if raw is None or (raw == '' and name == 'storage_root'):
                continue
            values[name] = raw
        return cls._from_values(values)

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Build settings from a JSON file; a missing file gives the defaults."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)
        return cls._from_values({k: v for k, v in data.items() if k in _PARSERS})

    @classmethod
    def _from_values(cls, values: Dict[str, Any]) -> 'Config':
        config = cls()
        for name, raw in values.items():
            setattr(config, name, _PARSERS[name](raw))
        return config

    def to_dict(self) -> dict:
        """JSON-friendly view, the same shape `from_file` reads."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['storage_root'] = str(self.storage_root)
        return data

    def save(self, path: Path):
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


_PARSERS: Dict[str, Callable[[Any], Any]] = {
    'host': str,
    'handshake_port': int,
    'transfer_port': int,
    'storage_root': Path,
    'chunk_size': int,
    'connect_timeout': _optional_float,
    'handshake_timeout': _optional_float,
    'transfer_timeout': _optional_float,
    'sender_start_delay': float,
    'log_level': str,
}


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Resolve the effective settings.

    An environment value only wins over the file when it differs from the
    built-in default.
    """
    config = Config.from_file(config_path) if config_path else Config()

    env_config = Config.from_env()
    defaults = Config()
    for name in _PARSERS:
        value = getattr(env_config, name)
        if value != getattr(defaults, name):
            setattr(config, name, value)

    return config


EXAMPLE_CONFIG = json.dumps(Config().to_dict(), indent=2)
