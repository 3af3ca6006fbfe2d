"""Ranking configuration loader with validation."""

import hashlib
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from dropfeed.config.constants import COMPONENT_CONFIG
from dropfeed.config.schemas import RankingConfig


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


def _format_errors(error: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "loc": ".".join(str(loc) for loc in err["loc"]),
            "msg": err["msg"],
            "type": err["type"],
        }
        for err in error.errors()
    ]


def load_ranking_config(path: Path | None) -> RankingConfig:
    """Load and validate a ranking configuration file.

    Args:
        path: Path to ranking.yaml, or None for the built-in defaults.

    Returns:
        Validated, immutable RankingConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If YAML parsing or schema validation fails.
    """
    log = logger.bind(component=COMPONENT_CONFIG)

    if path is None:
        log.info("config_defaults_used")
        return RankingConfig()

    content_bytes = path.read_bytes()
    checksum = hashlib.sha256(content_bytes).hexdigest()

    try:
        parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
    except yaml.YAMLError as e:
        errors = [{"loc": "<root>", "msg": str(e), "type": "yaml_error"}]
        log.error("config_yaml_invalid", file_path=str(path), error=str(e))
        raise ConfigValidationError(errors, str(path)) from e

    try:
        config = RankingConfig.model_validate(parsed)
    except ValidationError as e:
        errors = _format_errors(e)
        log.error(
            "config_validation_failed",
            file_path=str(path),
            validation_error_count=len(errors),
            errors=errors,
        )
        raise ConfigValidationError(errors, str(path)) from e

    log.info("config_file_loaded", file_path=str(path), file_sha256=checksum)
    return config
