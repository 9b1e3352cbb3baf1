"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .file.chunker import CHUNK_SIZE
from .storage.lease import DEFAULT_LEASE_TTL
from .transfer.retry import (
    DEFAULT_MAX_RETRIES, DelayFunction, RetryPolicy,
    constant_delay, exponential_backoff, no_delay,
)

ENV_PREFIX = 'CHUNKRELAY_'


@dataclass
class Config:
    """
    Transfer Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CHUNKRELAY_*)
    2. Config file (config.json)
    3. Default values
    """
    # Remote endpoint
    endpoint: str = ''
    request_timeout: float = 60.0
    verify_tls: bool = True

    # What to send
    sources: List[str] = field(default_factory=list)
    chunk_size: int = CHUNK_SIZE  # 5MB
    transfer_id: Optional[str] = None  # Derived from sources + endpoint if not set

    # Retry
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = 0.0  # seconds; first delay when backoff is enabled
    retry_backoff: bool = False

    # State
    state_dir: Path = field(default_factory=lambda: Path('./chunkrelay_state'))
    staging_dir: Optional[Path] = None  # Required for multi-file transfers
    state_ttl: Optional[float] = None  # Expire unstarted transfers after this many seconds
    lease_ttl: float = DEFAULT_LEASE_TTL

    # Step API
    auth_token: str = ''
    api_host: str = '127.0.0.1'
    api_port: int = 8080

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        def env(name: str, default=None):
            return os.getenv(ENV_PREFIX + name, default)

        # Remote endpoint
        config.endpoint = env('ENDPOINT', config.endpoint)
        config.request_timeout = float(env('REQUEST_TIMEOUT', config.request_timeout))
        config.verify_tls = env('VERIFY_TLS', 'true').lower() == 'true'

        # What to send
        sources = env('SOURCES', '')
        if sources:
            config.sources = [s.strip() for s in sources.split(os.pathsep) if s.strip()]
        config.chunk_size = int(env('CHUNK_SIZE', config.chunk_size))
        config.transfer_id = env('TRANSFER_ID', config.transfer_id)

        # Retry
        config.max_retries = int(env('MAX_RETRIES', config.max_retries))
        config.retry_delay = float(env('RETRY_DELAY', config.retry_delay))
        config.retry_backoff = env('RETRY_BACKOFF', 'false').lower() == 'true'

        # State
        state_dir = env('STATE_DIR')
        if state_dir:
            config.state_dir = Path(state_dir)
        staging_dir = env('STAGING_DIR')
        if staging_dir:
            config.staging_dir = Path(staging_dir)
        state_ttl = env('STATE_TTL')
        if state_ttl:
            config.state_ttl = float(state_ttl) or None
        config.lease_ttl = float(env('LEASE_TTL', config.lease_ttl))

        # Step API
        config.auth_token = env('AUTH_TOKEN', config.auth_token)
        config.api_host = env('API_HOST', config.api_host)
        config.api_port = int(env('API_PORT', config.api_port))

        # Logging
        config.log_level = env('LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Remote endpoint
        config.endpoint = data.get('endpoint', config.endpoint)
        config.request_timeout = data.get('request_timeout', config.request_timeout)
        config.verify_tls = data.get('verify_tls', config.verify_tls)

        # What to send
        config.sources = list(data.get('sources', config.sources))
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.transfer_id = data.get('transfer_id', config.transfer_id)

        # Retry
        config.max_retries = data.get('max_retries', config.max_retries)
        config.retry_delay = data.get('retry_delay', config.retry_delay)
        config.retry_backoff = data.get('retry_backoff', config.retry_backoff)

        # State
        if 'state_dir' in data:
            config.state_dir = Path(data['state_dir'])
        if data.get('staging_dir'):
            config.staging_dir = Path(data['staging_dir'])
        config.state_ttl = data.get('state_ttl', config.state_ttl) or None
        config.lease_ttl = data.get('lease_ttl', config.lease_ttl)

        # Step API
        config.auth_token = data.get('auth_token', config.auth_token)
        config.api_host = data.get('api_host', config.api_host)
        config.api_port = data.get('api_port', config.api_port)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'endpoint': self.endpoint,
            'request_timeout': self.request_timeout,
            'verify_tls': self.verify_tls,
            'sources': list(self.sources),
            'chunk_size': self.chunk_size,
            'transfer_id': self.transfer_id,
            'max_retries': self.max_retries,
            'retry_delay': self.retry_delay,
            'retry_backoff': self.retry_backoff,
            'state_dir': str(self.state_dir),
            'staging_dir': str(self.staging_dir) if self.staging_dir else None,
            'state_ttl': self.state_ttl,
            'lease_ttl': self.lease_ttl,
            'auth_token': self.auth_token,
            'api_host': self.api_host,
            'api_port': self.api_port,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self):
        """
        Check the settings a transfer needs.

        Raises:
            ConfigurationError: a setting is missing or out of range
        """
        if not self.endpoint:
            raise ConfigurationError("No endpoint configured")
        if not self.endpoint.startswith(('http://', 'https://')):
            raise ConfigurationError(f"Endpoint must be an http(s) URL: {self.endpoint}")
        if not self.sources:
            raise ConfigurationError("No sources configured")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be at least 1, got {self.max_retries}")

    @property
    def is_multi_file(self) -> bool:
        return len(self.sources) > 1 or any(Path(s).is_dir() for s in self.sources)

    def resolved_transfer_id(self) -> str:
        return self.transfer_id or derive_transfer_id(self.sources, self.endpoint)

    def retry_policy(self) -> RetryPolicy:
        delay: DelayFunction
        if self.retry_backoff:
            delay = exponential_backoff(base=self.retry_delay or 1.0)
        elif self.retry_delay:
            delay = constant_delay(self.retry_delay)
        else:
            delay = no_delay()
        return RetryPolicy(max_retries=self.max_retries, delay=delay)


def derive_transfer_id(sources: List[str], endpoint: str) -> str:
    """
    Stable transfer identity for a (sources, endpoint) pair.

    The same command line always maps to the same manifest, which is what
    lets a restarted process find its progress.
    """
    hasher = hashlib.sha256()
    for source in sorted(str(Path(s).expanduser().resolve()) for s in sources):
        hasher.update(source.encode('utf-8'))
        hasher.update(b'\0')
    hasher.update(endpoint.encode('utf-8'))
    return hasher.hexdigest()[:16]


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['endpoint', 'request_timeout', 'verify_tls', 'sources', 'chunk_size',
                'transfer_id', 'max_retries', 'retry_delay', 'retry_backoff',
                'state_dir', 'staging_dir', 'state_ttl', 'lease_ttl',
                'auth_token', 'api_host', 'api_port', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "endpoint": "https://example.com/upload",
  "sources": ["./backups"],
  "chunk_size": 5242880,
  "max_retries": 3,
  "retry_delay": 1.0,
  "retry_backoff": true,
  "state_dir": "./chunkrelay_state",
  "staging_dir": "./chunkrelay_staging",
  "state_ttl": 86400,
  "auth_token": "change-me",
  "api_port": 8080,
  "log_level": "INFO"
}
"""
