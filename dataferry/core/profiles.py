"""Profile-based endpoint and transfer configuration.

A profile is a YAML file under ``<project>/profiles/<name>.yml``::

    endpoints:
      warehouse:
        type: duckdb
        params:
          database: ${WAREHOUSE_DB|warehouse.duckdb}
      export:
        type: csv
        params:
          path: out/export.csv
    transfer:
      progress_updates: 20
      min_batch_size: 100

``${VAR}`` and ``${VAR|default}`` references are substituted from the
environment when the profile is loaded.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from dataferry.adapters.registry import adapter_registry
from dataferry.exceptions import ValidationError
from dataferry.logging import get_logger

logger = get_logger(__name__)

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass
class TransferSettings:
    """Knobs for the ingestion engine and the workflow orchestrator."""

    progress_updates: int = 20
    min_batch_size: int = 100
    default_batch_size: int = 10000
    preview_limit: int = 10
    reset_grace_period: float = 5.0

    def validate(self) -> List[str]:
        errors = []
        for name in ("progress_updates", "min_batch_size", "default_batch_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"transfer.{name} must be a positive integer")
        if not isinstance(self.preview_limit, int) or self.preview_limit < 0:
            errors.append("transfer.preview_limit must be a non-negative integer")
        if (
            not isinstance(self.reset_grace_period, (int, float))
            or self.reset_grace_period < 0
        ):
            errors.append("transfer.reset_grace_period must be a non-negative number")
        return errors

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "TransferSettings":
        config = config or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ValidationError(f"Unknown transfer setting(s): {', '.join(unknown)}")
        settings = cls(**config)
        errors = settings.validate()
        if errors:
            raise ValidationError("; ".join(errors))
        return settings


@dataclass
class EndpointProfile:
    """An endpoint configuration from a profile."""

    name: str
    endpoint_type: str
    params: Dict[str, Any]

    @classmethod
    def from_dict(cls, name: str, config: Dict[str, Any]) -> "EndpointProfile":
        """Create an EndpointProfile from its profile entry.

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        if not isinstance(config, dict):
            raise ValidationError(f"Endpoint '{name}' configuration must be a dictionary")

        endpoint_type = config.get("type")
        if not endpoint_type:
            raise ValidationError(f"Endpoint '{name}' missing required 'type' field")

        params = config.get("params", {}) or {}
        if not isinstance(params, dict):
            raise ValidationError(f"Endpoint '{name}' params must be a dictionary")

        return cls(name=name, endpoint_type=endpoint_type, params=params)


@dataclass
class ValidationResult:
    """Result of profile validation."""

    is_valid: bool
    errors: List[str]
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass
class Profile:
    name: str
    endpoints: Dict[str, EndpointProfile]
    transfer: TransferSettings = field(default_factory=TransferSettings)
    path: Optional[Path] = None


def substitute_env(data: Any, environ: Optional[Dict[str, str]] = None) -> Any:
    """Substitute ``${VAR}`` and ``${VAR|default}`` in strings, dicts and lists.

    References with no value and no default are left as written.
    """
    env = os.environ if environ is None else environ

    if isinstance(data, dict):
        return {k: substitute_env(v, env) for k, v in data.items()}
    if isinstance(data, list):
        return [substitute_env(v, env) for v in data]
    if not isinstance(data, str):
        return data

    def replace_variable(match: re.Match) -> str:
        expr = match.group(1)
        if "|" in expr:
            var_name, default = (part.strip() for part in expr.split("|", 1))
            default = default.strip("'\"")
        else:
            var_name, default = expr.strip(), None

        value = env.get(var_name)
        if value is not None:
            return value
        if default is not None:
            logger.debug(f"Using default value '{default}' for variable ${{{var_name}}}")
            return default
        logger.warning(f"Variable '{var_name}' not found in environment")
        return match.group(0)

    return VARIABLE_PATTERN.sub(replace_variable, data)


def validate_profile(data: Any) -> ValidationResult:
    """Check a parsed profile document, collecting every problem found."""
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(data, dict):
        return ValidationResult(False, ["Profile must be a YAML mapping"])

    endpoints = data.get("endpoints")
    if not isinstance(endpoints, dict) or not endpoints:
        errors.append("Profile must define at least one endpoint under 'endpoints'")
    else:
        available = adapter_registry.available()
        for name, config in endpoints.items():
            try:
                endpoint = EndpointProfile.from_dict(name, config)
            except ValidationError as e:
                errors.append(e.message)
                continue
            if endpoint.endpoint_type not in available:
                errors.append(
                    f"Endpoint '{name}' has unknown type '{endpoint.endpoint_type}' "
                    f"(available: {', '.join(available)})"
                )

    transfer = data.get("transfer")
    if transfer is not None:
        if not isinstance(transfer, dict):
            errors.append("'transfer' must be a dictionary")
        else:
            try:
                TransferSettings.from_dict(transfer)
            except (ValidationError, TypeError) as e:
                errors.append(str(e))

    for key in sorted(set(data) - {"endpoints", "transfer"}):
        warnings.append(f"Unknown top-level key '{key}' ignored")

    return ValidationResult(not errors, errors, warnings)


def profile_path(project_dir: str, profile_name: str) -> Path:
    profiles_dir = Path(project_dir) / "profiles"
    for suffix in (".yml", ".yaml"):
        candidate = profiles_dir / f"{profile_name}{suffix}"
        if candidate.exists():
            return candidate
    return profiles_dir / f"{profile_name}.yml"


def load_profile(
    project_dir: str,
    profile_name: str = "dev",
    environ: Optional[Dict[str, str]] = None,
) -> Profile:
    """Load, substitute and validate a profile.

    Raises:
        FileNotFoundError: If the profile file does not exist
        ValidationError: If the profile is malformed
    """
    path = profile_path(project_dir, profile_name)
    if not path.exists():
        raise FileNotFoundError(f"Profile not found: {path}")

    logger.debug(f"Loading profile '{profile_name}' from {path}")
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {path}: {e}") from e

    data = substitute_env(raw, environ)
    result = validate_profile(data)
    for warning in result.warnings:
        logger.warning(warning)
    if not result:
        raise ValidationError(
            f"Invalid profile '{profile_name}':\n  " + "\n  ".join(result.errors)
        )

    endpoints = {
        name: EndpointProfile.from_dict(name, config)
        for name, config in data["endpoints"].items()
    }
    return Profile(
        name=profile_name,
        endpoints=endpoints,
        transfer=TransferSettings.from_dict(data.get("transfer")),
        path=path,
    )
