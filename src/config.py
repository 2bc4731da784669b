"""Driver configuration management.

Settings are resolved in this order (later wins):
1. Built-in defaults
2. YAML settings file: --config, else $LB_DRIVER_CONFIG, else
   ~/.config/lb-driver/config.yaml when it exists
3. Environment: LB_DRIVER_KUBECTL, LB_DRIVER_CONTEXT, LB_DRIVER_KUBECONFIG
4. CLI flags (applied by the caller)
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

METALLB_MANIFEST_URL = (
    'https://raw.githubusercontent.com/metallb/metallb/v0.14.8/'
    'config/manifests/metallb-native.yaml'
)


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class LoadBalancerSettings:
    """Settings for talking to the cluster and provisioning MetalLB."""
    kubectl: str = 'kubectl'
    context: str = ''
    kubeconfig: str = ''
    namespace: str = 'metallb-system'
    manifest_url: str = METALLB_MANIFEST_URL
    pool_name: str = 'docker-desktop-pool'
    l2_advertisement_name: str = 'docker-desktop-l2'
    wait_timeout: int = 90  # seconds, passed to kubectl wait
    command_timeout: int = 150  # seconds, per kubectl invocation
    reprobe_delay: float = 3.0  # seconds before the post-configure status check
    classify_cloud: bool = False

    def validate(self):
        """Raise ConfigError on inconsistent values."""
        if self.wait_timeout <= 0:
            raise ConfigError(f"wait_timeout must be positive, got {self.wait_timeout}")
        if self.command_timeout <= self.wait_timeout:
            raise ConfigError(
                f"command_timeout ({self.command_timeout}s) must exceed "
                f"wait_timeout ({self.wait_timeout}s)"
            )
        if not self.namespace:
            raise ConfigError("namespace must not be empty")


def get_config_path(explicit: Optional[Path] = None) -> Optional[Path]:
    """Find the settings file to load, if any."""
    if explicit:
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    if env_path := os.environ.get('LB_DRIVER_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"LB_DRIVER_CONFIG={env_path} does not exist")

    default = Path.home() / '.config' / 'lb-driver' / 'config.yaml'
    if default.exists():
        return default
    return None


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


def _coerce(name: str, value, default):
    """Convert a settings value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', 'yes', '1', 'false', 'no', '0'):
            return value.lower() in ('true', 'yes', '1')
        raise ConfigError(f"'{name}' must be a boolean, got {value!r}")
    if isinstance(default, (int, float)):
        try:
            return type(default)(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'{name}' must be a number, got {value!r}") from e
    if value is None:
        return ''
    return str(value)


def load_settings(path: Optional[Path] = None) -> LoadBalancerSettings:
    """Load settings from defaults, YAML file and environment."""
    settings = LoadBalancerSettings()
    defaults = {f.name: getattr(settings, f.name) for f in fields(settings)}

    config_path = get_config_path(path)
    if config_path:
        data = _parse_yaml(config_path)
        for key, value in data.items():
            if key not in defaults:
                raise ConfigError(f"Unknown setting '{key}' in {config_path}")
            setattr(settings, key, _coerce(key, value, defaults[key]))

    if kubectl := os.environ.get('LB_DRIVER_KUBECTL'):
        settings.kubectl = kubectl
    if context := os.environ.get('LB_DRIVER_CONTEXT'):
        settings.context = context
    if kubeconfig := os.environ.get('LB_DRIVER_KUBECONFIG'):
        settings.kubeconfig = kubeconfig

    settings.validate()
    return settings
