"""Configuration for the TAR analyzer, read from a .env file and the environment."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8979
DEFAULT_TIMEOUT_SECONDS = 600

CONFIG_KEYS = [
    'SAR_SCRIPT_A_REST_PATH', 'SAR_SERVER_URL', 'SAR_USERNAME', 'SAR_PASSWORD',
    'SAR_TIMEOUT_SECONDS', 'SAR_TIMEOUT_MS', 'FASTMCP_PORT',
]


def load_config() -> dict:
    """Load config from environment variables and .env file.

    Environment variables take precedence over .env file values, so a
    container can override whatever a checked-in .env provides.
    """
    paths = [
        os.environ.get('TAR_ANALYZER_CONFIG'),
        Path.cwd() / '.env',
        Path(__file__).parent.parent / '.env',
    ]
    config = {}
    for p in paths:
        if p and Path(p).exists():
            try:
                for line in Path(p).read_text().splitlines():
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        config[key.strip()] = value.strip().strip('"').strip("'")
                break
            except OSError as e:
                logger.warning(f"Could not read config file {p}: {e}")

    for key in CONFIG_KEYS:
        env_value = os.environ.get(key)
        if env_value is not None:
            config[key] = env_value

    return config


def get_timeout_seconds(config: dict = None) -> float:
    """Resolve the runner timeout, accepting either seconds or milliseconds."""
    config = load_config() if config is None else config
    for key, scale in (('SAR_TIMEOUT_SECONDS', 1), ('SAR_TIMEOUT_MS', 1000)):
        value = config.get(key)
        if value:
            try:
                return float(value) / scale
            except ValueError:
                logger.warning(f"Ignoring non-numeric {key}={value!r}")
    return float(DEFAULT_TIMEOUT_SECONDS)


def get_port() -> int:
    try:
        return int(load_config().get('FASTMCP_PORT', DEFAULT_PORT))
    except ValueError:
        return DEFAULT_PORT


def get_runner_config():
    """Build a RunnerConfig from the current configuration."""
    from .runner import RunnerConfig

    config = load_config()
    return RunnerConfig(
        script_a_rest_path=config.get('SAR_SCRIPT_A_REST_PATH', ''),
        server_url=config.get('SAR_SERVER_URL', ''),
        username=config.get('SAR_USERNAME', ''),
        password=config.get('SAR_PASSWORD', ''),
        timeout_seconds=get_timeout_seconds(config),
    )
