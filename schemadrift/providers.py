"""
providers
=========

Where snapshots come from.

The engine never fetches catalog data itself; a :class:`MetadataProvider`
hands it whole :class:`~schemadrift.models.Snapshot` values. The only
provider shipped here reads snapshot documents exported by an external
collector (see :mod:`schemadrift.snapshots`). A live provider would
implement the same ``fetch`` method.

The rest of the codebase treats a provider as a pure function:

- input: :class:`ConnectionDescriptor`
- output: :class:`~schemadrift.models.Snapshot`
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from .errors import SnapshotFormatError
from .models import Snapshot
from .snapshots import load_snapshot

logger = logging.getLogger(__name__)


class AuthType(str, Enum):
    TRUSTED_CONNECTION = "TrustedConnection"
    SQL_AUTH = "SqlAuth"
    AZURE_AD = "AzureAD"

    @classmethod
    def parse(cls, value: str) -> "AuthType":
        """Resolve ``"SqlAuth"``, ``"sql_auth"``, ``"SQL_AUTH"`` and similar spellings."""
        wanted = str(value).replace("_", "").replace("-", "").replace(" ", "").lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.replace("_", "").lower()):
                return member
        if wanted in ("windows", "integrated", "trusted"):
            return cls.TRUSTED_CONNECTION
        raise ValueError(f"unknown auth_type: {value!r}")


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Identifies one database to snapshot.

    Parameters
    ----------
    server:
        SQL Server instance (e.g., ``localhost,1433``).
    database:
        Database name.
    auth_type:
        How the collector authenticates. Carried, not acted on.
    username, password:
        Credentials for :attr:`AuthType.SQL_AUTH`.
    snapshot_path:
        Snapshot document exported for this database.
    label:
        Human label for logs and reporting (e.g., "source" or "target").
    """

    server: str
    database: str
    auth_type: AuthType = AuthType.TRUSTED_CONNECTION
    username: Optional[str] = None
    password: Optional[str] = dataclasses.field(default=None, repr=False)
    snapshot_path: Optional[Path] = None
    label: str = ""

    def __post_init__(self) -> None:
        if not self.server:
            raise ValueError("server is required")
        if not self.database:
            raise ValueError("database is required")
        if self.auth_type is AuthType.SQL_AUTH and not self.username:
            raise ValueError("SqlAuth requires a username")

    def describe(self) -> str:
        """Return a human-readable description for logs/reports (never the password)."""
        who = f" user={self.username}" if self.username else ""
        label = f"{self.label.upper()}: " if self.label else ""
        return f"{label}server={self.server} db={self.database} auth={self.auth_type.value}{who}"


class MetadataProvider(Protocol):
    def fetch(self, descriptor: ConnectionDescriptor) -> Snapshot:
        ...


class FileSnapshotProvider:
    """Read the snapshot document named by ``descriptor.snapshot_path``.

    Parameters
    ----------
    base_dir:
        Directory relative snapshot paths are resolved against (usually the
        directory of the scenario config).
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir

    def resolve(self, descriptor: ConnectionDescriptor) -> Path:
        if descriptor.snapshot_path is None:
            raise SnapshotFormatError(f"no snapshot path configured for {descriptor.describe()}")
        path = Path(descriptor.snapshot_path)
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    def fetch(self, descriptor: ConnectionDescriptor) -> Snapshot:
        path = self.resolve(descriptor)
        logger.debug("loading snapshot for %s from %s", descriptor.describe(), path)
        snapshot = load_snapshot(path)
        if snapshot.source_id.casefold() != descriptor.database.casefold():
            logger.info(
                "snapshot %s has source_id %r, descriptor names database %r",
                path,
                snapshot.source_id,
                descriptor.database,
            )
        return snapshot
