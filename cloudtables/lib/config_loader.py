"""YAML configuration loader for cloudtables.

Connection and engine settings live in a small YAML file so operators can
tune lookback windows, concurrency and retry without touching code.

Example YAML (cloudtables.yaml):
    connection:
      profile: ${AWS_PROFILE:-}
      region: ${AWS_REGION:-us-east-1}
      service_regions:
        pricing: us-east-1
      max_attempts: 5

    engine:
      max_workers: 8
      transform_errors: "null"
      lookback:
        hourly_hours: 336
        daily_days: 90
        monthly_months: 12

Usage:
    from cloudtables.lib.config_loader import load_config
    config = load_config("./cloudtables.yaml")
    transport = AwsTransport(config.connection)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from cloudtables.lib.env import expand_options, load_env_file
from cloudtables.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "CloudTablesConfig",
    "ConfigYAMLError",
    "ConnectionConfig",
    "EngineSettings",
    "ForecastPolicy",
    "LookbackPolicy",
    "TransformErrorPolicy",
    "build_config_from_dict",
    "load_config",
]

CONFIG_ENV_VAR = "CLOUDTABLES_CONFIG"
DEFAULT_CONFIG_NAME = "cloudtables.yaml"

# Cost Explorer and the Price List API only answer in us-east-1
DEFAULT_SERVICE_REGIONS = {"ce": "us-east-1", "pricing": "us-east-1"}


class ConfigYAMLError(ConfigurationError):
    """Error in a cloudtables YAML configuration file."""


class TransformErrorPolicy(Enum):
    """What to do when a column value fails to convert."""

    NULL = "null"
    FAIL = "fail"


@dataclass(frozen=True)
class LookbackPolicy:
    """How far back a cost query looks for each granularity."""

    hourly_hours: int = 336
    daily_days: int = 90
    monthly_months: int = 12

    def validate(self) -> List[str]:
        errors: List[str] = []
        for name in ("hourly_hours", "daily_days", "monthly_months"):
            if getattr(self, name) <= 0:
                errors.append(f"lookback.{name} must be positive")
        if errors:
            return errors
        # Coarser granularities must look further back
        if self.hourly_hours >= self.daily_days * 24:
            errors.append("lookback.hourly_hours must cover less time than lookback.daily_days")
        if self.daily_days >= self.monthly_months * 28:
            errors.append("lookback.daily_days must cover less time than lookback.monthly_months")
        return errors


@dataclass(frozen=True)
class ForecastPolicy:
    """How far ahead a cost forecast reaches for each granularity."""

    daily_days: int = 90
    monthly_months: int = 12

    def validate(self) -> List[str]:
        errors: List[str] = []
        if self.daily_days <= 0:
            errors.append("forecast.daily_days must be positive")
        if self.monthly_months <= 0:
            errors.append("forecast.monthly_months must be positive")
        return errors


@dataclass(frozen=True)
class ConnectionConfig:
    """AWS connection settings handed to the transport."""

    profile: Optional[str] = None
    region: str = "us-east-1"
    service_regions: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SERVICE_REGIONS))
    endpoint_url: Optional[str] = None
    max_attempts: int = 5
    backoff_seconds: float = 1.0

    def region_for(self, service: str) -> str:
        return self.service_regions.get(service, self.region)


@dataclass(frozen=True)
class EngineSettings:
    """Query engine settings."""

    max_workers: int = 8
    transform_errors: TransformErrorPolicy = TransformErrorPolicy.NULL
    lookback: LookbackPolicy = field(default_factory=LookbackPolicy)
    forecast: ForecastPolicy = field(default_factory=ForecastPolicy)


@dataclass(frozen=True)
class CloudTablesConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    engine: EngineSettings = field(default_factory=EngineSettings)


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _build_connection(options: Dict[str, Any], errors: List[str]) -> ConnectionConfig:
    service_regions = dict(DEFAULT_SERVICE_REGIONS)
    overrides = options.get("service_regions") or {}
    if not isinstance(overrides, dict):
        errors.append("connection.service_regions must be a mapping of service -> region")
    else:
        service_regions.update({str(k): str(v) for k, v in overrides.items()})

    try:
        max_attempts = int(options.get("max_attempts", 5))
        backoff_seconds = float(options.get("backoff_seconds", 1.0))
    except (TypeError, ValueError):
        errors.append("connection.max_attempts and connection.backoff_seconds must be numbers")
        max_attempts, backoff_seconds = 5, 1.0

    if max_attempts < 1:
        errors.append("connection.max_attempts must be at least 1")
    if backoff_seconds < 0:
        errors.append("connection.backoff_seconds must not be negative")

    return ConnectionConfig(
        profile=_blank_to_none(options.get("profile")),
        region=_blank_to_none(options.get("region")) or "us-east-1",
        service_regions=service_regions,
        endpoint_url=_blank_to_none(options.get("endpoint_url")),
        max_attempts=max_attempts,
        backoff_seconds=backoff_seconds,
    )


def _build_engine(options: Dict[str, Any], errors: List[str]) -> EngineSettings:
    try:
        max_workers = int(options.get("max_workers", 8))
    except (TypeError, ValueError):
        errors.append("engine.max_workers must be an integer")
        max_workers = 8
    if max_workers < 1:
        errors.append("engine.max_workers must be at least 1")

    # YAML reads a bare null as None
    raw_policy = options.get("transform_errors", "null")
    raw_policy = "null" if raw_policy is None else str(raw_policy).lower()
    try:
        policy = TransformErrorPolicy(raw_policy)
    except ValueError:
        errors.append(f"engine.transform_errors must be 'null' or 'fail', got '{raw_policy}'")
        policy = TransformErrorPolicy.NULL

    lookback_opts = options.get("lookback") or {}
    forecast_opts = options.get("forecast") or {}
    try:
        lookback = LookbackPolicy(
            hourly_hours=int(lookback_opts.get("hourly_hours", 336)),
            daily_days=int(lookback_opts.get("daily_days", 90)),
            monthly_months=int(lookback_opts.get("monthly_months", 12)),
        )
        forecast = ForecastPolicy(
            daily_days=int(forecast_opts.get("daily_days", 90)),
            monthly_months=int(forecast_opts.get("monthly_months", 12)),
        )
    except (TypeError, ValueError, AttributeError):
        errors.append("engine.lookback and engine.forecast values must be integers")
        lookback, forecast = LookbackPolicy(), ForecastPolicy()

    errors.extend(lookback.validate())
    errors.extend(forecast.validate())

    return EngineSettings(
        max_workers=max_workers,
        transform_errors=policy,
        lookback=lookback,
        forecast=forecast,
    )


def build_config_from_dict(config: Dict[str, Any]) -> CloudTablesConfig:
    """Build a validated configuration from a (YAML-parsed) dictionary.

    Environment references are expanded before validation.

    Raises:
        ConfigYAMLError: listing every problem found
    """
    if not isinstance(config, dict):
        raise ConfigYAMLError("Configuration root must be a mapping")

    expanded = expand_options(config)
    errors: List[str] = []

    unknown = set(expanded) - {"connection", "engine"}
    if unknown:
        errors.append(f"Unknown top-level sections: {', '.join(sorted(unknown))}")

    connection = _build_connection(expanded.get("connection") or {}, errors)
    engine = _build_engine(expanded.get("engine") or {}, errors)

    if errors:
        raise ConfigYAMLError("Invalid cloudtables configuration", issues=errors)

    return CloudTablesConfig(connection=connection, engine=engine)


def load_config(path: Optional[Union[str, Path]] = None) -> CloudTablesConfig:
    """Load configuration from YAML.

    Resolution order: explicit ``path``, ``$CLOUDTABLES_CONFIG``, then
    ``./cloudtables.yaml``. A missing default file yields defaults; a missing
    explicit file is an error.
    """
    load_env_file()

    explicit = path is not None or CONFIG_ENV_VAR in os.environ
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_NAME)

    if not config_path.exists():
        if explicit:
            raise ConfigYAMLError(f"Config file not found: {config_path}", field="path")
        logger.debug("No %s found, using default configuration", config_path)
        return CloudTablesConfig()

    logger.info("Loading configuration from %s", config_path)
    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigYAMLError(f"Invalid YAML in {config_path}: {e}") from e

    return build_config_from_dict(raw)
