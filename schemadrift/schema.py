"""
schema
======

Attribute schema per :class:`~schemadrift.models.Kind`.

Every attribute the engine knows how to canonicalize is declared here with an
:class:`AttrType`. Attributes missing from a kind's table are passed through
as-is by the normalizer and reported as "unnormalized".
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from .models import Kind


class AttrType(str, Enum):
    TEXT = "text"
    KEYWORD = "keyword"
    DIRECTION = "direction"
    IDENTIFIER = "identifier"
    IDENTIFIER_LIST = "identifier_list"
    IDENTIFIER_SET = "identifier_set"
    INT = "int"
    LENGTH = "length"
    BOOL = "bool"
    TYPE = "type"
    DEFAULT = "default"
    PREDICATE = "predicate"
    DEFINITION = "definition"
    QUERY_TEXT = "query_text"
    PARAMETERS = "parameters"


# Attributes compared through child diffs rather than as values.
STRUCTURAL_TYPES = frozenset({AttrType.PARAMETERS})

_T = AttrType

KIND_SCHEMAS: Dict[Kind, Dict[str, AttrType]] = {
    Kind.SCHEMA: {
        "Owner": _T.IDENTIFIER,
    },
    Kind.DATA_TYPE: {
        "BaseType": _T.TYPE,
        "Length": _T.LENGTH,
        "Precision": _T.INT,
        "Scale": _T.INT,
        "IsNullable": _T.BOOL,
        "IsTableType": _T.BOOL,
    },
    Kind.TABLE: {
        "IsMemoryOptimized": _T.BOOL,
        "TemporalType": _T.KEYWORD,
        "LockEscalation": _T.KEYWORD,
        "FileGroup": _T.IDENTIFIER,
    },
    Kind.COLUMN: {
        "OrdinalPosition": _T.INT,
        "DataType": _T.TYPE,
        "Length": _T.LENGTH,
        "Precision": _T.INT,
        "Scale": _T.INT,
        "IsNullable": _T.BOOL,
        "IsIdentity": _T.BOOL,
        "IdentitySeed": _T.INT,
        "IdentityIncrement": _T.INT,
        "DefaultValue": _T.DEFAULT,
        "IsComputed": _T.BOOL,
        "ComputedDefinition": _T.PREDICATE,
        "Collation": _T.IDENTIFIER,
    },
    Kind.INDEX: {
        "IndexType": _T.KEYWORD,
        "IsUnique": _T.BOOL,
        "IsPrimaryKey": _T.BOOL,
        "IsDisabled": _T.BOOL,
        "KeyColumns": _T.IDENTIFIER_LIST,
        "IncludedColumns": _T.IDENTIFIER_SET,
        "FilterDefinition": _T.PREDICATE,
    },
    Kind.CONSTRAINT: {
        "ConstraintType": _T.KEYWORD,
        "Definition": _T.PREDICATE,
        "Columns": _T.IDENTIFIER_LIST,
        "ReferencedTable": _T.IDENTIFIER,
        "ReferencedColumns": _T.IDENTIFIER_LIST,
        "OnDelete": _T.KEYWORD,
        "OnUpdate": _T.KEYWORD,
        "IsDisabled": _T.BOOL,
        "IsNotTrusted": _T.BOOL,
    },
    Kind.PROCEDURE: {
        "Definition": _T.DEFINITION,
        "Parameters": _T.PARAMETERS,
        "ExecuteAs": _T.KEYWORD,
        "IsNativelyCompiled": _T.BOOL,
    },
    Kind.FUNCTION: {
        "Definition": _T.DEFINITION,
        "Parameters": _T.PARAMETERS,
        "ReturnType": _T.TYPE,
        "FunctionType": _T.KEYWORD,
    },
    Kind.PARAMETER: {
        "Position": _T.INT,
        "DataType": _T.TYPE,
        "DefaultValue": _T.DEFAULT,
        "Direction": _T.DIRECTION,
        "IsReadOnly": _T.BOOL,
    },
    Kind.VIEW: {
        "Definition": _T.DEFINITION,
        "IsSchemaBound": _T.BOOL,
        "WithCheckOption": _T.BOOL,
    },
    Kind.USER: {
        "UserType": _T.KEYWORD,
        "LoginName": _T.IDENTIFIER,
        "DefaultSchema": _T.IDENTIFIER,
        "AuthenticationType": _T.KEYWORD,
    },
    Kind.ROLE: {
        "RoleType": _T.KEYWORD,
        "Owner": _T.IDENTIFIER,
        "Members": _T.IDENTIFIER_SET,
    },
    Kind.PERMISSION: {
        "Grantee": _T.IDENTIFIER,
        "Permission": _T.KEYWORD,
        "State": _T.KEYWORD,
        "SecurableClass": _T.KEYWORD,
        "Securable": _T.IDENTIFIER,
    },
    Kind.QUERY_STORE: {
        "ActualState": _T.KEYWORD,
        "DesiredState": _T.KEYWORD,
        "QueryCaptureMode": _T.KEYWORD,
        "SizeBasedCleanupMode": _T.KEYWORD,
        "MaxStorageSizeMb": _T.INT,
        "StaleQueryThresholdDays": _T.INT,
        "IntervalLengthMinutes": _T.INT,
    },
    Kind.QUERY_STORE_PLAN: {
        "QueryText": _T.QUERY_TEXT,
        "IsForced": _T.BOOL,
        "PlanForcingType": _T.KEYWORD,
        "ForceFailureCount": _T.INT,
        "LastForceFailureReason": _T.TEXT,
        "PlanId": _T.INT,
        "QueryId": _T.INT,
    },
}


def attr_type(kind: Kind, name: str) -> Optional[AttrType]:
    """Return the declared type of attribute *name* on *kind*, or None if undeclared."""
    return KIND_SCHEMAS.get(kind, {}).get(name)


def is_structural(kind: Kind, name: str) -> bool:
    return attr_type(kind, name) in STRUCTURAL_TYPES
