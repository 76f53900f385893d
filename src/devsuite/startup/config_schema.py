"""devsuite Configuration Schema.

Pydantic-based validation of the service suite and the launcher settings.
The suite is validated once at load time (unique names and ports, exactly one
primary service) so the orchestrator never has to re-check invariants later.
"""

from __future__ import annotations

from enum import StrEnum
import json
import logging
from pathlib import Path
from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from devsuite.core.exceptions import ConfigurationError, InvalidSuiteError

logger = logging.getLogger(__name__)

# Constants
DEFAULT_COMMAND = ("npm", "run", "dev", "--", "--port", "{port}")
DEFAULT_BENIGN_STDERR_PATTERNS = ("npm WARN",)


class LogLevel(StrEnum):
    """Valid log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ReadinessSettings(BaseModel):
    """Readiness polling knobs, in seconds."""

    model_config = ConfigDict(frozen=True)

    initial_delay: float = Field(
        default=1.0, description="Delay before the first poll", ge=0.0
    )
    interval: float = Field(default=2.0, description="Delay between polls", gt=0.0)
    timeout: float = Field(
        default=60.0, description="Overall readiness window per service", gt=0.0
    )
    request_timeout: float = Field(
        default=5.0, description="Timeout of a single poll request", gt=0.0
    )


class ReadinessOverrides(BaseModel):
    """Per-service readiness overrides; unset fields inherit the defaults."""

    model_config = ConfigDict(frozen=True)

    initial_delay: float | None = Field(default=None, ge=0.0)
    interval: float | None = Field(default=None, gt=0.0)
    timeout: float | None = Field(default=None, gt=0.0)
    request_timeout: float | None = Field(default=None, gt=0.0)

    def resolve(self, defaults: ReadinessSettings) -> ReadinessSettings:
        """Layer these overrides over the launcher-wide defaults."""
        return defaults.model_copy(update=self.model_dump(exclude_none=True))


class ServiceDescriptor(BaseModel):
    """Static description of one launchable service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Unique service name")
    working_directory: Path = Field(
        ...,
        description="Directory the start command runs in",
        validation_alias=AliasChoices("working_directory", "dir"),
    )
    port: int = Field(..., ge=1, le=65535, description="Listen port")
    readiness_url: str = Field(
        default="",
        description="URL polled for readiness (defaults to http://localhost:<port>)",
        validation_alias=AliasChoices("readiness_url", "url"),
    )
    priority: int = Field(default=0, description="Lower values start earlier")
    is_primary: bool = Field(
        default=False,
        description="Started last, after every other service is ready",
        validation_alias=AliasChoices("is_primary", "isMain"),
    )
    command: tuple[str, ...] = Field(
        default=DEFAULT_COMMAND,
        description="Start command; {port} placeholders are substituted",
        min_length=1,
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment for the process"
    )
    readiness: ReadinessOverrides = Field(default_factory=ReadinessOverrides)

    @model_validator(mode="before")
    @classmethod
    def default_readiness_url(cls, data: Any) -> Any:
        """Fill in the readiness URL from the port when it is omitted."""
        if (
            isinstance(data, dict)
            and not (data.get("readiness_url") or data.get("url"))
            and data.get("port")
        ):
            data = {**data, "readiness_url": f"http://localhost:{data['port']}"}
        return data

    @field_validator("readiness_url")
    @classmethod
    def validate_readiness_url(cls, v: str) -> str:
        """Validate readiness URL format."""
        if v:
            parsed = urlparse(v)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                msg = f"Invalid readiness URL: {v}"
                raise ValueError(msg)
        return v

    def render_command(self) -> list[str]:
        """Return the argv with the port substituted in."""
        return [part.replace("{port}", str(self.port)) for part in self.command]

    def resolved(self, root: Path) -> ServiceDescriptor:
        """Return a copy whose working directory is anchored at ``root``."""
        if self.working_directory.is_absolute():
            return self
        return self.model_copy(
            update={"working_directory": (root / self.working_directory).resolve()}
        )


class SuiteDefinition(BaseModel):
    """Ordered set of services making up one development suite."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="DEVELOPMENT SUITE", description="Banner title")
    services: tuple[ServiceDescriptor, ...] = Field(..., description="Services")

    @model_validator(mode="after")
    def validate_invariants(self) -> SuiteDefinition:
        """Validate suite-wide invariants."""
        errors = self.invariant_errors()
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def invariant_errors(self) -> list[str]:
        """List every suite-wide invariant this definition breaks."""
        errors: list[str] = []
        if not self.services:
            errors.append("at least one service is required")
            return errors

        seen_names: set[str] = set()
        seen_ports: set[int] = set()
        for service in self.services:
            if service.name in seen_names:
                errors.append(f"duplicate service name: {service.name}")
            seen_names.add(service.name)
            if service.port in seen_ports:
                errors.append(f"duplicate port {service.port} ({service.name})")
            seen_ports.add(service.port)

        primaries = [s.name for s in self.services if s.is_primary]
        if not primaries:
            errors.append("exactly one primary service is required, found none")
        elif len(primaries) > 1:
            errors.append(
                "exactly one primary service is required, found "
                + ", ".join(primaries)
            )
        return errors

    @property
    def primary(self) -> ServiceDescriptor:
        """The service started last."""
        return next(s for s in self.services if s.is_primary)

    def support_services(self) -> list[ServiceDescriptor]:
        """Non-primary services in start order (stable by priority)."""
        return sorted(
            (s for s in self.services if not s.is_primary), key=lambda s: s.priority
        )

    def launch_order(self) -> list[ServiceDescriptor]:
        """Every service in the order the orchestrator starts them."""
        return [*self.support_services(), self.primary]

    def resolved(self, root: Path) -> SuiteDefinition:
        """Anchor every relative working directory at ``root``."""
        return self.model_copy(
            update={"services": tuple(s.resolved(root) for s in self.services)}
        )

    @classmethod
    def from_data(cls, data: Any, source: str | None = None) -> SuiteDefinition:
        """Build a suite from parsed data, raising ``InvalidSuiteError``."""
        if isinstance(data, list):
            data = {"services": data}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidSuiteError(_format_validation_errors(e), source) from e

    @classmethod
    def from_file(cls, path: Path) -> SuiteDefinition:
        """Load a suite from a JSON file (object with ``services`` or a list)."""
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Cannot read services file {path}: {e.strerror or e}"
            raise ConfigurationError(msg, config_key="services_file") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidSuiteError([f"invalid JSON: {e}"], str(path)) from e
        return cls.from_data(data, source=str(path))


def _format_validation_errors(error: ValidationError) -> list[str]:
    errors = []
    for item in error.errors():
        field_path = ".".join(str(loc) for loc in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        errors.append(f"{field_path}: {message}" if field_path else message)
    return errors


def default_suite() -> SuiteDefinition:
    """The development suite launched when no services file is configured."""
    return SuiteDefinition(
        title="FUZIONEST DEVELOPMENT SUITE",
        services=(
            ServiceDescriptor(
                name="DB-VIEWER",
                working_directory=Path("fuzion-db-viewer"),
                port=4001,
                priority=1,
            ),
            ServiceDescriptor(
                name="POSTMAN",
                working_directory=Path("fuzion-postman"),
                port=4002,
                priority=2,
            ),
            ServiceDescriptor(
                name="TRANSFORMER",
                working_directory=Path("fuzion-transformer"),
                port=4003,
                priority=3,
            ),
            ServiceDescriptor(
                name="SUITE-DASHBOARD",
                working_directory=Path("suite-ui"),
                port=3000,
                priority=4,
                is_primary=True,
            ),
        ),
    )


class LauncherConfig(BaseSettings):
    """Launcher settings read from ``DEVSUITE_*`` environment variables."""

    services_file: Path | None = Field(
        default=None, description="JSON suite definition; built-in suite if unset"
    )
    root_directory: Path = Field(
        default_factory=Path.cwd,
        description="Base directory for relative working directories",
    )
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    debug: bool = Field(default=False, description="Verbose diagnostic logging")
    enable_colors: bool = Field(
        default=True, description="Colorize output when stdout is a TTY"
    )
    shutdown_grace_period: float = Field(
        default=5.0,
        description="Seconds to wait for children to exit after SIGTERM",
        ge=0.0,
        le=300.0,
    )
    benign_stderr_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_BENIGN_STDERR_PATTERNS),
        description="Stderr substrings that are not reported as warnings",
    )
    readiness: ReadinessSettings = Field(
        default_factory=ReadinessSettings, description="Default readiness knobs"
    )

    model_config = SettingsConfigDict(
        env_prefix="DEVSUITE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",  # Allow DEVSUITE_READINESS__TIMEOUT
        extra="ignore",
    )

    @field_validator("benign_stderr_patterns", mode="before")
    @classmethod
    def parse_benign_patterns(cls, v: Any) -> Any:
        """Parse patterns from a comma-separated string."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    def load_suite(self) -> SuiteDefinition:
        """Load the configured suite with working directories resolved."""
        if self.services_file is not None:
            path = self.services_file
            if not path.is_absolute():
                path = self.root_directory / path
            suite = SuiteDefinition.from_file(path)
            logger.info("Loaded %d services from %s", len(suite.services), path)
        else:
            suite = default_suite()
            logger.info("Using built-in suite with %d services", len(suite.services))
        return suite.resolved(self.root_directory)

    def readiness_for(self, service: ServiceDescriptor) -> ReadinessSettings:
        """Effective readiness settings for one service."""
        return service.readiness.resolve(self.readiness)

    def get_startup_summary(self) -> dict[str, Any]:
        """Get launcher configuration summary."""
        return {
            "services_file": str(self.services_file) if self.services_file else None,
            "root_directory": str(self.root_directory),
            "log_level": self.log_level.value,
            "shutdown_grace_period": self.shutdown_grace_period,
            "readiness": self.readiness.model_dump(),
        }

    @classmethod
    def validate_from_env(
        cls, **overrides: Any
    ) -> tuple[LauncherConfig | None, list[str]]:
        """Validate configuration from environment variables.

        Returns:
            Tuple of (config, errors). Config is None if validation fails.
        """
        try:
            return cls(**overrides), []
        except ValidationError as e:
            return None, _format_validation_errors(e)


def load_config(**overrides: Any) -> LauncherConfig:
    """Load and validate configuration with clear error reporting."""
    config, errors = LauncherConfig.validate_from_env(**overrides)

    if errors or config is None:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error("  • %s", error)
        msg = "Configuration validation failed - see logs for details"
        raise ConfigurationError(msg, errors=errors)

    logger.debug("Configuration loaded successfully")
    return config
