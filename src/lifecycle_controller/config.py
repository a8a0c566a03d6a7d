"""
Lifecycle Controller Configuration

Process configuration for the controller. Defaults can be overridden with
LIFECYCLE_* environment variables, and CLI flags override both.
"""

import configparser
import json
import os
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from lifecycle_controller.errors import ConfigError
from lifecycle_controller.instances import DEFAULT_NOT_FOUND_PATTERNS
from lifecycle_controller.providers import (
    VM_TYPE_STANDARD,
    AWSSettings,
    AzureSettings,
    ProviderContext,
    ProviderFamily,
)
from lifecycle_controller.queue import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_patterns(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(p.strip() for p in value.split(",") if p.strip())


def _env_number(name: str, default: Any, cast: Callable[[str], Any]) -> Any:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


@dataclass(frozen=True)
class ControllerConfig:
    """Configuration for the node lifecycle controller process."""

    # Provider
    cloud: str = ""
    cloud_config: str = ""
    cloud_zone: str = ""

    # Behaviour
    dry_run: bool = False
    not_found_patterns: tuple[str, ...] = DEFAULT_NOT_FOUND_PATTERNS

    # Runtime
    workers: int = 1
    resync_seconds: int = 300
    pass_timeout: Optional[float] = None
    backoff_base: float = DEFAULT_BASE_DELAY
    backoff_max: float = DEFAULT_MAX_DELAY

    # Cluster access and probes
    kubeconfig: str = ""
    probe_address: str = ":8081"

    @classmethod
    def from_env(cls) -> "ControllerConfig":
        """Build a config from defaults and LIFECYCLE_* environment variables."""
        defaults = cls()
        return cls(
            cloud=os.getenv("LIFECYCLE_CLOUD", defaults.cloud),
            cloud_config=os.getenv("LIFECYCLE_CLOUD_CONFIG", defaults.cloud_config),
            cloud_zone=os.getenv("LIFECYCLE_CLOUD_ZONE", defaults.cloud_zone),
            dry_run=_env_bool("LIFECYCLE_DRY_RUN", defaults.dry_run),
            not_found_patterns=_env_patterns(
                "LIFECYCLE_NOT_FOUND_PATTERNS", defaults.not_found_patterns
            ),
            workers=_env_number("LIFECYCLE_WORKERS", defaults.workers, int),
            resync_seconds=_env_number(
                "LIFECYCLE_RESYNC_SECONDS", defaults.resync_seconds, int
            ),
            pass_timeout=_env_number("LIFECYCLE_PASS_TIMEOUT", defaults.pass_timeout, float),
            backoff_base=_env_number("LIFECYCLE_BACKOFF_BASE", defaults.backoff_base, float),
            backoff_max=_env_number("LIFECYCLE_BACKOFF_MAX", defaults.backoff_max, float),
            kubeconfig=os.getenv("KUBECONFIG", defaults.kubeconfig),
            probe_address=os.getenv("LIFECYCLE_PROBE_ADDRESS", defaults.probe_address),
        )

    def with_overrides(self, **overrides: Any) -> "ControllerConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        values = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **values)

    def validate(self) -> None:
        """Raise ConfigError on values the controller cannot run with."""
        if not self.cloud:
            raise ConfigError("cloud provider is required (--cloud or LIFECYCLE_CLOUD)")
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.resync_seconds < 1:
            raise ConfigError(f"resync_seconds must be positive, got {self.resync_seconds}")
        if self.backoff_base <= 0 or self.backoff_max < self.backoff_base:
            raise ConfigError(
                f"invalid backoff range: base={self.backoff_base} max={self.backoff_max}"
            )
        if self.pass_timeout is not None and self.pass_timeout <= 0:
            raise ConfigError(f"pass_timeout must be positive, got {self.pass_timeout}")

    def probe_host_port(self) -> tuple[str, int]:
        """Split ``probe_address`` (``host:port`` or ``:port``) into host and port."""
        host, _, port = self.probe_address.rpartition(":")
        try:
            return host or "0.0.0.0", int(port)
        except ValueError:
            raise ConfigError(f"invalid probe address: {self.probe_address!r}") from None


# gcfg section header, e.g. "[Global]" in an AWS cloud config
_INI_SECTION = re.compile(r"^\s*\[[^\]\[]+\]\s*$")

# Availability zone or local zone: us-west-2a, us-west-2-lax-1a
_AWS_ZONE = re.compile(r"^(?P<region>[a-z]{2}(?:-[a-z]+)+-\d+)(?:-[a-z]+-\d+)?[a-z]$")


def _first_statement(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", ";")):
            return stripped
    return ""


def _parse_ini(text: str, path: str) -> Dict[str, Any]:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(text, source=path)
    except configparser.Error as e:
        raise ConfigError(f"unable to parse cloud config {path}: {e}") from e
    # Section and key names are case-insensitive in gcfg
    return {section.lower(): dict(parser[section]) for section in parser.sections()}


def load_cloud_config(path: str) -> Dict[str, Any]:
    """
    Load a provider config file.

    ``.json`` files and documents starting with ``{`` (azure.json) are read as
    JSON, files opening with a ``[section]`` header (the AWS gcfg format) as
    INI with lower-cased section names, and anything else as YAML.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"cloud config file not found: {path}")

    text = config_path.read_text()
    first = _first_statement(text)

    if config_path.suffix.lower() == ".json" or first.startswith("{"):
        try:
            data = json.loads(text) if text.strip() else None
        except json.JSONDecodeError as e:
            raise ConfigError(f"unable to parse cloud config {path}: {e}") from e
    elif _INI_SECTION.match(first):
        data = _parse_ini(text, path)
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"unable to parse cloud config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"cloud config {path} must be a mapping")
    return data


def region_from_zone(zone: str) -> str:
    """Strip the zone suffix from an AWS availability or local zone name."""
    zone = zone.strip().lower()
    match = _AWS_ZONE.match(zone)
    return match.group("region") if match else zone


def _azure_settings(data: Dict[str, Any]) -> AzureSettings:
    subscription_id = str(data.get("subscriptionId") or "")
    resource_group = str(data.get("resourceGroup") or "")
    if not subscription_id or not resource_group:
        raise ConfigError("azure cloud config requires subscriptionId and resourceGroup")

    use_msi = bool(data.get("useManagedIdentityExtension", False))
    return AzureSettings(
        subscription_id=subscription_id,
        resource_group=resource_group,
        vm_type=str(data.get("vmType") or VM_TYPE_STANDARD),
        location=str(data.get("location") or ""),
        tenant_id=str(data.get("tenantId") or ""),
        client_id=str(
            (data.get("userAssignedIdentityID") if use_msi else data.get("aadClientId")) or ""
        ),
        client_secret=str(data.get("aadClientSecret") or ""),
        use_managed_identity=use_msi,
    )


def _aws_settings(data: Dict[str, Any], zone: str) -> AWSSettings:
    # Older configs nest everything under a "global" section
    section = data["global"] if isinstance(data.get("global"), dict) else data
    region = (
        zone
        or str(section.get("region") or section.get("zone") or "")
        or os.getenv("AWS_REGION", "")
        or os.getenv("AWS_DEFAULT_REGION", "")
    )
    return AWSSettings(region=region_from_zone(region))


def load_provider_context(config: ControllerConfig) -> ProviderContext:
    """Validate the provider family and build its context. Fails fast on unknown families."""
    family = ProviderFamily.from_name(config.cloud)
    data = load_cloud_config(config.cloud_config) if config.cloud_config else {}

    if family is ProviderFamily.AZURE:
        return ProviderContext(family, _azure_settings(data))
    return ProviderContext(family, _aws_settings(data, config.cloud_zone))
