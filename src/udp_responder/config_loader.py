#!/usr/bin/env python3
"""
Responder Configuration Loader
Builds the immutable ListenerConfig from a YAML file or environment variables
"""

import os
import yaml
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PORT_RANGE_START = 2600
DEFAULT_PORT_RANGE_END = 2610
DEFAULT_BIND_HOST = "0.0.0.0"

_TRUE_VALUES = ("1", "true", "yes", "on", "debug")


@dataclass(frozen=True)
class ListenerConfig:
    """Configuration shared read-only by every port responder"""
    port_range_start: int = DEFAULT_PORT_RANGE_START
    port_range_end: int = DEFAULT_PORT_RANGE_END
    debug_enabled: bool = False
    bind_host: str = DEFAULT_BIND_HOST
    metrics_port: int = 0
    isolate_failures: bool = False

    @property
    def ports(self) -> range:
        """Inclusive port range"""
        return range(self.port_range_start, self.port_range_end + 1)


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


class ConfigLoader:
    """Loads and validates responder configuration"""

    @staticmethod
    def load(config_path: str) -> ListenerConfig:
        """Load configuration from YAML file"""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}

            logger.info(f"Loaded configuration from {config_path}")
            return ConfigLoader._parse_config(config)

        except FileNotFoundError:
            logger.error(f"Config file not found: {config_path}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}")
            raise

    @staticmethod
    def from_env(environ: Optional[dict] = None) -> ListenerConfig:
        """Build configuration from RESPONDER_* environment variables"""
        env = os.environ if environ is None else environ
        return ListenerConfig(
            port_range_start=int(env.get("RESPONDER_PORT_START", DEFAULT_PORT_RANGE_START)),
            port_range_end=int(env.get("RESPONDER_PORT_END", DEFAULT_PORT_RANGE_END)),
            debug_enabled=_as_bool(env.get("RESPONDER_DEBUG", False)),
            bind_host=env.get("RESPONDER_BIND_HOST", DEFAULT_BIND_HOST),
            metrics_port=int(env.get("METRICS_PORT", 0)),
            isolate_failures=_as_bool(env.get("RESPONDER_ISOLATE_FAILURES", False)),
        )

    @staticmethod
    def _parse_config(config: dict) -> ListenerConfig:
        """Parse configuration dictionary, missing keys take defaults"""

        listener = config.get('listener') or {}

        return ListenerConfig(
            port_range_start=int(listener.get('port_range_start', DEFAULT_PORT_RANGE_START)),
            port_range_end=int(listener.get('port_range_end', DEFAULT_PORT_RANGE_END)),
            bind_host=str(listener.get('bind_host', DEFAULT_BIND_HOST)),
            debug_enabled=_as_bool(config.get('debug', False)),
            metrics_port=int(config.get('metrics_port', 0)),
            isolate_failures=_as_bool(config.get('isolate_failures', False)),
        )

    @staticmethod
    def validate(config: ListenerConfig) -> bool:
        """Validate configuration consistency"""

        if config.port_range_start > config.port_range_end:
            logger.error(f"Empty port range {config.port_range_start}-{config.port_range_end}")
            return False

        if config.port_range_start < 1 or config.port_range_end > 65535:
            logger.error(f"Port range {config.port_range_start}-{config.port_range_end} "
                         f"outside 1-65535")
            return False

        if config.metrics_port < 0 or config.metrics_port > 65535:
            logger.error(f"Invalid metrics port {config.metrics_port}")
            return False

        if config.metrics_port in config.ports:
            logger.error(f"Metrics port {config.metrics_port} collides with the listening range")
            return False

        logger.info("Configuration validation passed")
        return True
