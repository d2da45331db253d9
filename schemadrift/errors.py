"""
errors
======

Error taxonomy for the diff engine.

Each class maps onto a :class:`~schemadrift.models.WarningCode`. The engine
raises these at the point a fault is detected and catches them at the
object/category boundary, where :meth:`SchemaDriftError.to_warning` turns them
into :class:`~schemadrift.models.DiffWarning` entries. None of them aborts a
run.

:class:`SnapshotFormatError` is the exception used by the outer surfaces
(snapshot documents, descriptors) for input that cannot be turned into a
snapshot at all.
"""

from __future__ import annotations

from typing import Optional

from .models import DiffWarning, Kind, WarningCode


class SchemaDriftError(Exception):
    """Base class for engine faults."""

    code: WarningCode = WarningCode.INVARIANT_VIOLATION

    def __init__(self, message: str, kind: Optional[Kind] = None, qualified_name: str = ""):
        self.message = message
        self.kind = kind
        self.qualified_name = qualified_name
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_warning(self) -> DiffWarning:
        return DiffWarning(
            code=self.code,
            kind=self.kind,
            qualified_name=self.qualified_name,
            message=self.message,
        )


class ProviderUnavailable(SchemaDriftError):
    """A kind could not be collected on one or both sides."""

    code = WarningCode.PROVIDER_UNAVAILABLE


class NormalizationFailure(SchemaDriftError):
    """An attribute value could not be canonicalized."""

    code = WarningCode.NORMALIZATION_FAILURE

    def __init__(self, message: str, kind: Optional[Kind] = None, qualified_name: str = "", field: str = ""):
        super().__init__(message, kind, qualified_name)
        self.field = field


class AmbiguousIdentity(SchemaDriftError):
    """Identity keys still collide after secondary-key resolution."""

    code = WarningCode.AMBIGUOUS_IDENTITY


class InvariantViolation(SchemaDriftError):
    """Duplicate identity within one snapshot, or an orphaned child."""

    code = WarningCode.INVARIANT_VIOLATION


class SnapshotFormatError(ValueError):
    """A snapshot document or connection descriptor is structurally invalid."""
