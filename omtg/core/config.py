#!/usr/bin/env python3
"""
config.py
--------------------
YAML configuration for the OMT-G integrity guard.

The configuration file declares the database to guard, how validation
runs, which cross-table relationships are enforced and where logs go.

Example:
    database:
      url: sqlite:///data/omtg.db
      isolation_level: SERIALIZABLE
    validation:
      lock_mode: exclusive
      use_spatial_index: true
      collect_all: false
    relationships:
      - kind: containment
        table: school_district
        column: geom
        secondary_table: bus_stop
        secondary_column: geom
        predicate: contains
    logging:
      log_dir: logs

Usage:
    from omtg.core.config import load_config

    config = load_config(Path("omtg.yaml"))
    db = OMTGDatabase(config.database.url, config=config)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

# --- Third party imports ---
import yaml

# --- Local imports ---
from omtg.core.exceptions import ConfigurationError
from omtg.core.paths import DB_URL
from omtg.topology.classes import LockMode, Relationship, SpatialPredicate


@dataclass
class DatabaseSettings:
    """
    Host database settings.

    Attributes:
        url: SQLAlchemy database URL
        isolation_level: Optional isolation level passed to create_engine
    """

    url: str = DB_URL
    isolation_level: Optional[str] = None


@dataclass
class ValidationSettings:
    """
    Statement-time validation settings.

    Attributes:
        lock_mode: Lock taken on governed tables before validators run
        use_spatial_index: Restrict pair candidates with an STRtree
        collect_all: Report every violation instead of stopping at the first
    """

    lock_mode: LockMode = LockMode.NONE
    use_spatial_index: bool = True
    collect_all: bool = False


@dataclass
class RelationshipSpec:
    """
    Declaration of a cross-table relationship rule.

    Attributes:
        kind: Relationship class
        table: Primary table (container / arcs)
        column: Geometry column of the primary table
        secondary_table: Secondary table (contained / nodes)
        secondary_column: Geometry column of the secondary table
        predicate: Spatial predicate for containment rules
    """

    kind: Relationship
    table: str
    column: str
    secondary_table: str
    secondary_column: str
    predicate: SpatialPredicate = SpatialPredicate.CONTAINS


@dataclass
class LoggingSettings:
    """Logging settings."""

    log_dir: Optional[Path] = None


@dataclass
class GuardConfig:
    """Complete guard configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    relationships: List[RelationshipSpec] = field(default_factory=list)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


_SECTIONS = {"database", "validation", "relationships", "logging"}


def _check_keys(section: str, data: Dict[str, Any], allowed: set) -> None:
    """Reject keys the configuration does not know about."""
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in '{section}': {', '.join(sorted(unknown))}"
        )


def _as_mapping(section: str, value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Section '{section}' must be a mapping")
    return value


def _parse_enum(enum_cls, value: Any, option: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid {option}: '{value}' (expected one of: "
            f"{', '.join(enum_cls.choices())})"
        )


def check_isolation_level(level: str) -> str:
    """
    Normalize an isolation level name.

    Statements are validated after they run, so a rejected statement must
    still be inside a transaction that can be rolled back.

    Raises:
        ConfigurationError: If the level is AUTOCOMMIT
    """
    level = level.strip().upper().replace("-", " ").replace("_", " ")
    if level == "AUTOCOMMIT":
        raise ConfigurationError(
            "database.isolation_level cannot be AUTOCOMMIT: rejected statements "
            "would already be committed"
        )
    return level


def _parse_relationship(index: int, data: Any) -> RelationshipSpec:
    """Build a RelationshipSpec from one YAML list item."""
    section = f"relationships[{index}]"
    data = _as_mapping(section, data)
    required = ["kind", "table", "column", "secondary_table", "secondary_column"]
    _check_keys(section, data, set(required) | {"predicate"})

    missing = [key for key in required if not data.get(key)]
    if missing:
        raise ConfigurationError(
            f"Missing field(s) in '{section}': {', '.join(missing)}"
        )

    spec = RelationshipSpec(
        kind=_parse_enum(Relationship, data["kind"], f"{section}.kind"),
        table=str(data["table"]),
        column=str(data["column"]),
        secondary_table=str(data["secondary_table"]),
        secondary_column=str(data["secondary_column"]),
    )
    if data.get("predicate") is not None:
        spec.predicate = _parse_enum(
            SpatialPredicate, data["predicate"], f"{section}.predicate"
        )
    return spec


def parse_config(data: Optional[Dict[str, Any]]) -> GuardConfig:
    """
    Build a GuardConfig from an already-parsed YAML document.

    Args:
        data: Mapping loaded from YAML (None yields the defaults)

    Returns:
        GuardConfig with defaults filled in

    Raises:
        ConfigurationError: If the document has unknown keys or bad values
    """
    data = _as_mapping("root", data)
    _check_keys("root", data, _SECTIONS)
    config = GuardConfig()

    database = _as_mapping("database", data.get("database"))
    _check_keys("database", database, {"url", "isolation_level"})
    if database.get("url"):
        config.database.url = str(database["url"])
    if database.get("isolation_level"):
        config.database.isolation_level = check_isolation_level(
            str(database["isolation_level"])
        )

    validation = _as_mapping("validation", data.get("validation"))
    _check_keys(
        "validation", validation, {"lock_mode", "use_spatial_index", "collect_all"}
    )
    if "lock_mode" in validation:
        config.validation.lock_mode = _parse_enum(
            LockMode, validation["lock_mode"], "validation.lock_mode"
        )
    for flag in ("use_spatial_index", "collect_all"):
        if flag in validation:
            if not isinstance(validation[flag], bool):
                raise ConfigurationError(f"validation.{flag} must be true or false")
            setattr(config.validation, flag, validation[flag])

    relationships = data.get("relationships") or []
    if not isinstance(relationships, list):
        raise ConfigurationError("Section 'relationships' must be a list")
    config.relationships = [
        _parse_relationship(i, item) for i, item in enumerate(relationships)
    ]

    logging_section = _as_mapping("logging", data.get("logging"))
    _check_keys("logging", logging_section, {"log_dir"})
    if "log_dir" in logging_section:
        log_dir = logging_section["log_dir"]
        config.logging.log_dir = Path(log_dir).expanduser() if log_dir else None

    return config


def load_config(path: Optional[Union[str, Path]] = None) -> GuardConfig:
    """
    Load the guard configuration from a YAML file.

    Args:
        path: Path to the YAML file. A missing file yields the defaults.

    Returns:
        Parsed GuardConfig

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid
    """
    if path is None:
        return GuardConfig()

    config_path = Path(path).expanduser()
    if not config_path.exists():
        return GuardConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}")

    return parse_config(data)
