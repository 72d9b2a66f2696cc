"""
Backup settings fetched from object storage.

The document lives at {config bucket}/{identifier}.yaml and has the shape:

    mysql:
      host: db.internal
      port: 3306
      databases:
        - name: shop
          user: backup
          password: secret
    objectStore:
      bucket: backups
      retentionDays: 14     # optional

It is validated once and turned into frozen dataclasses.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml

from .storage import S3Storage, StorageError

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when backup settings cannot be loaded."""
    pass


class ConfigFetchError(ConfigError):
    """Raised when the settings document cannot be retrieved."""
    pass


class ConfigParseError(ConfigError):
    """Raised when the settings document is malformed or incomplete."""
    pass


@dataclass(frozen=True)
class DatabaseSettings:
    name: str
    user: str
    password: str = ''

    def __repr__(self):
        return f"DatabaseSettings(name={self.name!r}, user={self.user!r}, password='***')"


@dataclass(frozen=True)
class MySQLSettings:
    host: str
    port: int
    databases: Tuple[DatabaseSettings, ...]


@dataclass(frozen=True)
class ObjectStoreSettings:
    bucket: str
    retention_days: Optional[int] = None


@dataclass(frozen=True)
class BackupSettings:
    mysql: MySQLSettings
    object_store: ObjectStoreSettings

    def effective_retention(self, fallback: int) -> int:
        if self.object_store.retention_days is not None:
            return self.object_store.retention_days
        return int(fallback)


def config_key(identifier: str) -> str:
    """Object key of the settings document for a deployment identifier."""
    return f"{identifier}.yaml"


def _require_mapping(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigParseError(f"'{path}' must be a mapping")
    return value


def _require_string(section: Dict[str, Any], field: str, path: str) -> str:
    value = section.get(field)
    if value is None or value == '':
        raise ConfigParseError(f"Missing required field '{path}.{field}'")
    if not isinstance(value, str):
        raise ConfigParseError(f"'{path}.{field}' must be a string")
    return value


def _require_int(section: Dict[str, Any], field: str, path: str) -> int:
    value = section.get(field)
    if value is None or value == '':
        raise ConfigParseError(f"Missing required field '{path}.{field}'")
    # bool is an int subclass; "port: yes" is not a port
    if isinstance(value, bool):
        raise ConfigParseError(f"'{path}.{field}' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ConfigParseError(f"'{path}.{field}' must be an integer")


def _parse_database(entry: Any, index: int) -> DatabaseSettings:
    path = f"mysql.databases[{index}]"
    entry = _require_mapping(entry, path)

    password = entry.get('password')
    if password is None:
        password = ''
    elif isinstance(password, (dict, list)):
        raise ConfigParseError(f"'{path}.password' must be a scalar")

    return DatabaseSettings(
        name=_require_string(entry, 'name', path),
        user=_require_string(entry, 'user', path),
        password=str(password)
    )


def parse_settings(document: str) -> BackupSettings:
    """
    Parse and validate a YAML settings document.

    Raises:
        ConfigParseError: If the YAML is malformed or required fields are missing
    """
    try:
        raw = yaml.safe_load(document)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML: {e}") from e

    if raw is None:
        raise ConfigParseError("Configuration document is empty")
    raw = _require_mapping(raw, '<root>')

    if 'mysql' not in raw:
        raise ConfigParseError("Missing required section 'mysql'")
    if 'objectStore' not in raw:
        raise ConfigParseError("Missing required section 'objectStore'")

    mysql = _require_mapping(raw['mysql'], 'mysql')
    object_store = _require_mapping(raw['objectStore'], 'objectStore')

    databases = mysql.get('databases')
    if databases is None:
        raise ConfigParseError("Missing required field 'mysql.databases'")
    if not isinstance(databases, list):
        raise ConfigParseError("'mysql.databases' must be a list")

    parsed_databases = tuple(
        _parse_database(entry, index)
        for index, entry in enumerate(databases)
    )
    # Dump files and object keys are named after the database
    seen = set()
    for index, database in enumerate(parsed_databases):
        if database.name in seen:
            raise ConfigParseError(
                f"Duplicate database name '{database.name}' in mysql.databases[{index}]"
            )
        seen.add(database.name)

    retention_days = None
    if object_store.get('retentionDays') is not None:
        retention_days = _require_int(object_store, 'retentionDays', 'objectStore')

    return BackupSettings(
        mysql=MySQLSettings(
            host=_require_string(mysql, 'host', 'mysql'),
            port=_require_int(mysql, 'port', 'mysql'),
            databases=parsed_databases
        ),
        object_store=ObjectStoreSettings(
            bucket=_require_string(object_store, 'bucket', 'objectStore'),
            retention_days=retention_days
        )
    )


def load_settings(storage: S3Storage, identifier: Optional[str]) -> BackupSettings:
    """
    Fetch the settings document for a deployment and parse it.

    Args:
        storage: Handler bound to the configuration bucket
        identifier: Deployment identifier (object key is {identifier}.yaml)

    Raises:
        ConfigFetchError: If the document cannot be retrieved
        ConfigParseError: If the document is malformed or incomplete
    """
    if not identifier:
        raise ConfigFetchError("No deployment identifier set (IMAGE_TAG)")

    key = config_key(identifier)
    logger.info(f"Fetching configuration {storage.bucket_name}/{key}")

    try:
        document = storage.get_text(key)
    except StorageError as e:
        raise ConfigFetchError(str(e)) from e

    settings = parse_settings(document)
    logger.info(
        f"Loaded configuration: {len(settings.mysql.databases)} database(s) on "
        f"{settings.mysql.host}:{settings.mysql.port}, bucket {settings.object_store.bucket}"
    )
    return settings
