"""Configuration loading, parsing, and validation for otlp_setup."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from otlp_setup.api.types import (
    Destination,
    MetricsSettings,
    Protocol,
    Temporality,
    TraceSettings,
)
from otlp_setup.attributes import Attributes
from otlp_setup.exceptions import ConfigurationError

if TYPE_CHECKING:
    from otlp_setup.sdk.builder import PipelineBuilder
    from otlp_setup.sdk.pipeline import Pipeline
    from otlp_setup.sdk.transports import TransportRegistry

logger = logging.getLogger(__name__)

# Environment variable for config path fallback
OTLP_SETUP_CONFIG_PATH_ENV = "OTLP_SETUP_CONFIG_PATH"

# Pattern for environment variable substitution: ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

KNOWN_SECTIONS = {"destination", "resource", "trace", "logs", "metrics", "validation"}
TRUE_VALUES = {"true", "yes", "on", "1"}
FALSE_VALUES = {"false", "no", "off", "0"}
TRACE_LIMIT_KEYS = (
    "max_events_per_span",
    "max_attributes_per_span",
    "max_links_per_span",
    "max_attributes_per_event",
    "max_attributes_per_link",
)


@dataclass
class DestinationConfig:
    """Destination and exporter transport configuration."""

    protocol: str = "http_binary"
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 5.0
    compression: bool = True
    batch: bool = True
    certificate_file: str | None = None
    client_key_file: str | None = None
    client_certificate_file: str | None = None


@dataclass
class ValidationConfig:
    """Validation mode configuration."""

    mode: str = "permissive"  # "strict" or "permissive"


@dataclass
class PipelineConfig:
    """Complete pipeline configuration loaded from YAML."""

    destination: DestinationConfig
    resource: dict[str, Any] = field(default_factory=dict)
    trace: TraceSettings | None = None
    logs: bool = False
    metrics: MetricsSettings | None = None
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @property
    def is_strict(self) -> bool:
        """Return True if validation mode is strict."""
        return self.validation.mode == "strict"

    def attributes(self) -> Attributes:
        builder = Attributes.builder()
        for key, value in self.resource.items():
            builder.with_attr(str(key), value)
        return builder.finish()

    def to_builder(self, transports: TransportRegistry | None = None) -> PipelineBuilder:
        """Create a ``PipelineBuilder`` populated from this configuration.

        Protocol, URL and sample rate are validated by ``finish()``.
        """
        from otlp_setup.sdk.builder import PipelineBuilder

        try:
            protocol: Protocol | str = Protocol(self.destination.protocol)
        except ValueError:
            protocol = self.destination.protocol

        destination = Destination(
            protocol=protocol,  # type: ignore[arg-type]
            url=self.destination.url,
            headers=dict(self.destination.headers),
        )
        builder = (
            PipelineBuilder(destination, transports=transports)
            .with_timeout(self.destination.timeout)
            .with_compression(self.destination.compression)
            .with_batch(self.destination.batch)
        )
        tls_files = (
            self.destination.certificate_file,
            self.destination.client_key_file,
            self.destination.client_certificate_file,
        )
        if any(tls_files):
            builder.with_certificate(*tls_files)

        attributes = self.attributes()
        if self.trace is not None:
            builder.with_trace(attributes, self.trace)
        if self.logs:
            builder.with_logs(attributes)
        if self.metrics is not None:
            builder.with_metrics(attributes, self.metrics)
        return builder


def _substitute_env_vars(value: str, strict: bool) -> str:
    """Substitute ${VAR_NAME} patterns with environment variable values.

    Args:
        value: String potentially containing ${VAR_NAME} patterns.
        strict: If True, raise ConfigurationError for missing env vars.

    Returns:
        String with environment variables substituted.

    Raises:
        ConfigurationError: If strict=True and an env var is not set.
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise ConfigurationError(
                    f"Environment variable '{var_name}' is not set"
                )
            logger.warning(
                "Environment variable '%s' not set, using empty string", var_name
            )
            return ""
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any, strict: bool) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v, strict) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item, strict) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data, strict)
    else:
        return data


def _section(data: dict[str, Any], name: str, errors: list[str]) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        errors.append(f"{name} must be a mapping")
        return {}
    return value


def _parse_number(value: Any, name: str, errors: list[str], convert: Any = float) -> Any:
    """Convert a number that may arrive as a string after env substitution.

    Returns None and records a problem when the value is not a number.
    """
    if isinstance(value, bool):
        errors.append(f"{name} must be a number, got {value!r}")
        return None
    try:
        return convert(value)
    except (TypeError, ValueError):
        errors.append(f"{name} must be a number, got {value!r}")
        return None


def _parse_flag(value: Any, name: str, errors: list[str], default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in TRUE_VALUES | FALSE_VALUES:
        return value.strip().lower() in TRUE_VALUES
    errors.append(f"{name} must be a boolean, got {value!r}")
    return default


def _parse_destination_config(data: dict[str, Any], errors: list[str]) -> DestinationConfig:
    """Parse destination configuration section."""
    headers = data.get("headers") or {}
    if not isinstance(headers, dict):
        errors.append("destination.headers must be a mapping")
        headers = {}

    protocol = str(data.get("protocol", "http_binary")).lower()
    if protocol not in {p.value for p in Protocol}:
        errors.append(f"destination.protocol '{protocol}' is not a known protocol")

    timeout = _parse_number(data.get("timeout", 5.0), "destination.timeout", errors)
    if timeout is None:
        timeout = 5.0

    return DestinationConfig(
        protocol=protocol,
        url=str(data.get("url") or ""),
        headers={str(k): str(v) for k, v in headers.items()},
        timeout=timeout,
        compression=_parse_flag(
            data.get("compression", True), "destination.compression", errors, True
        ),
        batch=_parse_flag(data.get("batch", True), "destination.batch", errors, True),
        certificate_file=data.get("certificate_file"),
        client_key_file=data.get("client_key_file"),
        client_certificate_file=data.get("client_certificate_file"),
    )


def _parse_trace_config(data: Any, errors: list[str]) -> TraceSettings | None:
    """Parse trace configuration section.

    ``trace: true`` enables tracing with a sample rate of 1.0.
    """
    if data is None or data is False:
        return None
    if data is True:
        return TraceSettings(sample_rate=1.0)
    if not isinstance(data, dict):
        errors.append("trace must be a mapping or a boolean")
        return None
    if data.get("enabled", True) is False:
        return None

    limits: dict[str, int] = {}
    for key in TRACE_LIMIT_KEYS:
        if data.get(key) is not None:
            limit = _parse_number(data[key], f"trace.{key}", errors, int)
            if limit is not None:
                limits[key] = limit

    raw_rate = data.get("sample_rate", 1.0)
    sample_rate = _parse_number(raw_rate, "trace.sample_rate", errors)
    return TraceSettings(
        # An unparseable rate is kept so finish() rejects it
        sample_rate=sample_rate if sample_rate is not None else raw_rate,
        respect_parent=_parse_flag(
            data.get("respect_parent", True), "trace.respect_parent", errors, True
        ),
        **limits,
    )


def _parse_logs_config(data: Any, errors: list[str]) -> bool:
    if data is None:
        return False
    if isinstance(data, (bool, str)):
        return _parse_flag(data, "logs", errors, False)
    if isinstance(data, dict):
        return _parse_flag(data.get("enabled", True), "logs.enabled", errors, True)
    errors.append("logs must be a mapping or a boolean")
    return False


def _parse_metrics_config(data: Any, errors: list[str]) -> MetricsSettings | None:
    if data is None or data is False:
        return None
    if data is True:
        return MetricsSettings()
    if not isinstance(data, dict):
        errors.append("metrics must be a mapping or a boolean")
        return None
    if data.get("enabled", True) is False:
        return None

    temporality_name = str(data.get("temporality", "cumulative")).lower()
    try:
        temporality = Temporality(temporality_name)
    except ValueError:
        errors.append(f"metrics.temporality '{temporality_name}' is not supported")
        temporality = Temporality.CUMULATIVE

    interval = data.get("export_interval_millis")
    if interval is not None:
        interval = _parse_number(interval, "metrics.export_interval_millis", errors, int)
    return MetricsSettings(temporality=temporality, export_interval_millis=interval)


def _validation_section(data: dict[str, Any], errors: list[str]) -> dict[str, Any]:
    """Return the validation section; ``validation: strict`` is shorthand for the mode."""
    value = data.get("validation") or {}
    if isinstance(value, str):
        return {"mode": value}
    if not isinstance(value, dict):
        errors.append("validation must be a mapping or a mode name")
        return {}
    return value


def _parse_validation_config(data: dict[str, Any]) -> ValidationConfig:
    """Parse validation configuration section."""
    mode = data.get("mode", "permissive")
    if mode not in ("strict", "permissive"):
        logger.warning("Unknown validation mode '%s', defaulting to permissive", mode)
        mode = "permissive"
    return ValidationConfig(mode=mode)


def _validate_config(config: PipelineConfig) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []

    if not config.destination.url:
        errors.append("destination.url is required")

    if config.trace is None and not config.logs and config.metrics is None:
        errors.append("at least one of trace, logs or metrics must be enabled")

    return errors


def load_config(path: Path, strict: bool | None = None) -> PipelineConfig:
    """Load and parse configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
        strict: Override validation mode. If None, use mode from config file.

    Returns:
        Parsed PipelineConfig.

    Raises:
        ConfigurationError: If file doesn't exist, YAML is invalid,
                           or validation fails in strict mode.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw_data = yaml.safe_load(f)
            if raw_data is None:
                raw_data = {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    errors: list[str] = []

    # Determine validation mode early (needed for env var substitution)
    validation_data = _validation_section(raw_data, errors)
    validation_mode = validation_data.get("mode", "permissive")
    is_strict = strict if strict is not None else (validation_mode == "strict")

    data = _substitute_env_vars_recursive(raw_data, strict=is_strict)

    unknown = sorted(str(key) for key in data if key not in KNOWN_SECTIONS)
    if unknown:
        logger.warning("Unknown configuration sections ignored: %s", unknown)

    config = PipelineConfig(
        destination=_parse_destination_config(_section(data, "destination", errors), errors),
        resource=_section(data, "resource", errors),
        trace=_parse_trace_config(data.get("trace"), errors),
        logs=_parse_logs_config(data.get("logs"), errors),
        metrics=_parse_metrics_config(data.get("metrics"), errors),
        validation=_parse_validation_config(validation_data),
    )

    # Override validation mode if specified
    if strict is not None:
        config.validation.mode = "strict" if strict else "permissive"

    errors.extend(_validate_config(config))
    if errors:
        if config.is_strict:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )
        for error in errors:
            logger.warning("Configuration problem: %s", error)

    return config


def resolve_config_path(config_path: str | Path | None) -> Path:
    """Resolve configuration file path from argument or environment.

    Raises:
        ConfigurationError: If no config path is provided and
                           OTLP_SETUP_CONFIG_PATH env var is not set.
    """
    if config_path is not None:
        return Path(config_path)

    env_path = os.environ.get(OTLP_SETUP_CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)

    raise ConfigurationError(
        "No configuration path provided. Either pass a config path "
        f"or set the {OTLP_SETUP_CONFIG_PATH_ENV} environment variable."
    )


def build_pipeline(
    config_path: str | Path | None = None,
    transports: TransportRegistry | None = None,
) -> Pipeline:
    """Load a configuration file and build the pipeline it describes.

    Raises:
        ConfigurationError: The configuration cannot be loaded.
        BuildError: The configuration does not describe a valid pipeline.
    """
    config = load_config(resolve_config_path(config_path))
    return config.to_builder(transports=transports).finish()
