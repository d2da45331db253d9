"""
normalizer
==========

Canonicalize raw catalog attribute values so that textually different but
semantically identical definitions compare equal.

The rules applied per :class:`~schemadrift.schema.AttrType` are documented in
:mod:`schemadrift.policy`; the switches that alter them live on
:class:`~schemadrift.policy.NormalizationPolicy`.

Primary API
-----------
- :class:`Normalizer` (per-object canonicalization, collects warnings)
- :func:`canonical_type` / :func:`canonical_predicate` / :func:`canonical_definition`
  (pure helpers, usable on their own)
- :func:`routine_signature` (secondary identity key for overloaded routines)

Failure handling
----------------
A value that cannot be parsed is kept raw, its attribute is listed in
``CatalogObject.unnormalized`` and a ``NormalizationFailure`` warning is
produced. The object itself is still diffed.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlparse import lexer
from sqlparse import tokens as T

from .errors import NormalizationFailure
from .models import CatalogObject, DiffWarning, Kind
from .policy import DEFAULT_POLICY, NormalizationPolicy, QueryTextPolicy
from .schema import AttrType, KIND_SCHEMAS

logger = logging.getLogger(__name__)

MAX_LENGTH = "max"

_TRUE_WORDS = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS = frozenset({"0", "false", "f", "no", "n", "off"})
_DIRECTIONS = {"IN": "IN", "INPUT": "IN", "OUT": "OUT", "OUTPUT": "OUT", "INOUT": "OUT", "IN OUT": "OUT"}

_WORD_CHAR_RE = re.compile(r"\w")
_WS_RE = re.compile(r"\s+")
_VARIABLE_PREFIXES = frozenset({"@", "@@", "#", "##"})

_IDENT_PART_RE = re.compile(r'\[(?:[^\]]|\]\])*\]|"(?:[^"]|"")*"|[^.]+')
_NUMBER_RE = re.compile(r"^\d+(?:\.\d*)?$")
_TYPE_RE = re.compile(
    r"""
    ^\s*
    (?P<name>
        (?:\[[^\]]+\]|"[^"]+"|[A-Za-z_][\w$#@]*)
        (?:\s*\.\s*(?:\[[^\]]+\]|"[^"]+"|[A-Za-z_][\w$#@]*))*
        (?:\s+(?:varying|precision))?
    )
    \s*
    (?:\(\s*(?P<args>[^()]*?)\s*\))?
    \s*$
    """,
    re.VERBOSE | re.IGNORECASE,
)
_PARAM_DIRECTION_RE = re.compile(r"\s+(OUTPUT|OUT|READONLY)\s*$", re.IGNORECASE)

Token = Tuple[str, str]


# ---- SQL text ----
def _token_kind(ttype: Any, value: str) -> str:
    if ttype in T.Comment:
        return "line" if ttype in T.Comment.Single else "block"
    if ttype in T.Whitespace:
        return "ws"
    if ttype in T.String.Symbol:
        return "quoted"
    if ttype in T.String:
        return "string"
    if len(value) > 1 and value.startswith("[") and value.endswith("]"):
        return "bracket"
    if _WORD_CHAR_RE.search(value):
        return "word"
    return "punct"


def tokenize_sql(text: str) -> List[Token]:
    """Split SQL text into ``(kind, text)`` tokens using the sqlparse lexer.

    Kinds: ``string``, ``block``, ``line``, ``ws``, ``bracket``, ``quoted``,
    ``word``, ``punct``. Every character of *text* belongs to exactly one token.
    ``N'...'`` literals and ``@name``/``#name`` variables come out as one token.
    """
    out: List[Token] = []
    for ttype, value in lexer.tokenize(text):
        kind = _token_kind(ttype, value)
        if kind == "line" and value.endswith(("\n", "\r")):
            body = value.rstrip("\r\n")
            out.append((kind, body))
            out.append(("ws", value[len(body):]))
            continue
        if out:
            prev_kind, prev = out[-1]
            if kind == "string" and prev_kind == "word" and prev in ("N", "n"):
                out[-1] = ("string", prev + value)
                continue
            if kind == "word" and prev_kind == "punct" and prev in _VARIABLE_PREFIXES:
                out[-1] = ("word", prev + value)
                continue
        out.append((kind, value))
    return out


def _unquote(token: str) -> str:
    if token.startswith("[") and token.endswith("]"):
        return token[1:-1].replace("]]", "]")
    if token.startswith('"') and token.endswith('"') and len(token) >= 2:
        return token[1:-1].replace('""', '"')
    return token


def _normalize_number(word: str) -> str:
    try:
        value = Decimal(word)
    except InvalidOperation:
        return word
    return format(value.normalize(), "f")


def _sql_tokens(
    text: str,
    *,
    fold_case: bool,
    strip_comments: bool,
    unquote: bool,
    tight: bool,
) -> List[Token]:
    """Canonical token stream for SQL text.

    Whitespace runs collapse to a single ``ws`` token. With *tight*, whitespace
    next to punctuation is dropped as well, so ``a > 0`` equals ``a>0``.
    String literals are never altered.
    """
    out: List[Token] = []
    for kind, tok in tokenize_sql(text):
        if kind in ("block", "line"):
            if strip_comments:
                kind, tok = "ws", " "
        elif kind == "ws":
            tok = " "
        elif kind in ("bracket", "quoted"):
            if unquote:
                kind, tok = "word", _unquote(tok)
            if fold_case:
                tok = tok.casefold()
        elif kind == "word":
            # multi-word keywords such as NOT NULL or ORDER BY lex as one token
            tok = _WS_RE.sub(" ", tok)
            if fold_case:
                tok = tok.casefold()

        if kind == "ws" and out and out[-1][0] == "ws":
            continue
        out.append((kind, tok))

    while out and out[0][0] == "ws":
        out.pop(0)
    while out and out[-1][0] == "ws":
        out.pop()

    if tight:
        tightened: List[Token] = []
        for i, (kind, tok) in enumerate(out):
            if kind == "ws":
                prev_kind = out[i - 1][0] if i > 0 else "punct"
                next_kind = out[i + 1][0] if i + 1 < len(out) else "punct"
                if prev_kind == "punct" or next_kind == "punct":
                    continue
            tightened.append((kind, tok))
        out = tightened
    return out


def _join(tokens: Sequence[Token]) -> str:
    return "".join(tok for _, tok in tokens)


def _is_atom(token: Token) -> bool:
    return token[0] in ("word", "string")


def _matching_paren(tokens: Sequence[Token], start: int) -> int:
    depth = 0
    for i in range(start, len(tokens)):
        if tokens[i] == ("punct", "("):
            depth += 1
        elif tokens[i] == ("punct", ")"):
            depth -= 1
            if depth == 0:
                return i
    return -1


def _strip_parens(tokens: List[Token]) -> List[Token]:
    """Drop parentheses around single atoms and around the whole expression.

    ``([UnitPrice]>(0))`` and ``UnitPrice > 0`` reduce to the same tokens.
    Parentheses that follow a word (function calls such as ``getdate()``) are kept.
    """
    changed = True
    while changed:
        changed = False
        for i in range(len(tokens) - 2):
            if (
                tokens[i] == ("punct", "(")
                and _is_atom(tokens[i + 1])
                and i + 2 < len(tokens)
                and tokens[i + 2] == ("punct", ")")
                and not (i > 0 and tokens[i - 1][0] == "word")
            ):
                tokens = tokens[:i] + [tokens[i + 1]] + tokens[i + 3:]
                changed = True
                break
    while len(tokens) >= 2 and tokens[0] == ("punct", "(") and _matching_paren(tokens, 0) == len(tokens) - 1:
        tokens = tokens[1:-1]
    return tokens


def canonical_predicate(text: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> str:
    """Canonical form of a check/filter predicate or computed-column expression."""
    tokens = _sql_tokens(
        text,
        fold_case=not policy.case_sensitive,
        strip_comments=True,
        unquote=True,
        tight=True,
    )
    tokens = [(k, _normalize_number(t)) if k == "word" and _NUMBER_RE.match(t) else (k, t) for k, t in tokens]
    return _join(_strip_parens(tokens))


def canonical_default(text: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> str:
    """Canonical form of a column/parameter default expression.

    SQL Server stores ``DEFAULT 0`` as ``((0))``; both reduce to ``0``.
    Literal forms listed in ``policy.boolean_literals`` are rewritten.
    """
    result = canonical_predicate(text, policy)
    literal = policy.boolean_literals.get(result.casefold())
    if literal is not None:
        return literal
    return result


def canonical_definition(text: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> str:
    """Canonical form of a procedure/function/view body."""
    tokens = _sql_tokens(
        text,
        fold_case=not policy.case_sensitive,
        strip_comments=policy.strip_comments,
        unquote=True,
        tight=True,
    )
    result = _join(tokens)
    if policy.canonicalize_create_header:
        result = re.sub(r"^(create)\s+or\s+alter\b", r"\1", result, flags=re.IGNORECASE)
        result = re.sub(
            r"^(create\s+)(proc)\b",
            lambda m: m.group(1) + ("PROCEDURE" if m.group(2).isupper() else "procedure"),
            result,
            flags=re.IGNORECASE,
        )
    return result


def canonical_query_text(text: str, rules: QueryTextPolicy) -> str:
    """Canonical form of Query Store query text, governed by its own policy."""
    if not rules.collapse_whitespace and not rules.strip_comments and not rules.fold_case:
        return text
    out: List[str] = []
    for kind, tok in tokenize_sql(text):
        if kind in ("block", "line") and rules.strip_comments:
            kind, tok = "ws", " "
        if kind == "ws" and rules.collapse_whitespace:
            if out and out[-1] == " ":
                continue
            tok = " "
        elif kind in ("word", "bracket", "quoted"):
            if kind == "word" and rules.collapse_whitespace:
                tok = _WS_RE.sub(" ", tok)
            if rules.fold_case:
                tok = tok.casefold()
        out.append(tok)
    result = "".join(out)
    return result.strip() if rules.collapse_whitespace else result


# ---- identifiers / types ----
def canonical_identifier(value: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> str:
    """``[dbo].[Employees]`` -> ``dbo.employees`` (casefolded unless case-sensitive)."""
    parts = [_unquote(p.strip()).strip() for p in _IDENT_PART_RE.findall(value.strip())]
    return policy.fold(".".join(p for p in parts if p))


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split *text* on *sep* outside parentheses, brackets and string literals."""
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    for kind, tok in tokenize_sql(text):
        if kind == "punct" and tok == "(":
            depth += 1
        elif kind == "punct" and tok == ")":
            depth -= 1
        elif kind == "punct" and tok == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(tok)
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return parts


def _list_items(value: Any) -> List[str]:
    if isinstance(value, str):
        return [p for p in split_top_level(value) if p]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise NormalizationFailure(f"expected a list or comma-separated text, got {type(value).__name__}")


def _canonical_list_item(item: str, policy: NormalizationPolicy) -> str:
    m = re.match(r"^(?P<ident>.+?)\s+(?P<dir>ASC|DESC)\s*$", item.strip(), re.IGNORECASE)
    if m:
        ident = canonical_identifier(m.group("ident"), policy)
        return f"{ident} DESC" if m.group("dir").upper() == "DESC" else ident
    return canonical_identifier(item, policy)


def canonical_length(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if text.lower() == MAX_LENGTH:
            return MAX_LENGTH
        try:
            value = int(text)
        except ValueError:
            raise NormalizationFailure(f"not a length: {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, int):
        raise NormalizationFailure(f"not a length: {value!r}")
    return MAX_LENGTH if value == -1 else value


def canonical_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise NormalizationFailure(f"not an integer: {value!r}") from None


def canonical_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().casefold()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise NormalizationFailure(f"not a boolean: {value!r}")


def canonical_direction(value: Any) -> str:
    """Parameter direction: ``OUTPUT`` and ``OUT`` become ``OUT``, ``INPUT`` and ``IN`` become ``IN``."""
    word = re.sub(r"[\s_]+", " ", str(value).strip()).upper()
    try:
        return _DIRECTIONS[word]
    except KeyError:
        raise NormalizationFailure(f"not a parameter direction: {value!r}") from None


def canonical_type(value: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> str:
    """Canonical type signature.

    ``NVARCHAR(255)`` and ``nvarchar ( 255 )`` both become ``nvarchar(255)``;
    ``DECIMAL(10, 02)`` becomes ``decimal(10,2)``; ``nvarchar(MAX)`` and
    ``nvarchar(-1)`` become ``nvarchar(max)``.

    Raises:
        NormalizationFailure: if the signature cannot be parsed.
    """
    m = _TYPE_RE.match(value)
    if not m:
        raise NormalizationFailure(f"unparseable type signature: {value!r}")
    raw_name = re.sub(r"\s+", " ", m.group("name"))
    if "." in raw_name:
        name = canonical_identifier(raw_name, policy)
    else:
        name = _unquote(raw_name).casefold()

    args_text = m.group("args")
    if args_text is None:
        return name
    args: List[str] = []
    for arg in args_text.split(","):
        arg = arg.strip()
        if arg.lower() == MAX_LENGTH or arg == "-1":
            args.append(MAX_LENGTH)
            continue
        try:
            args.append(str(int(arg)))
        except ValueError:
            raise NormalizationFailure(f"unparseable type argument {arg!r} in {value!r}") from None
    return f"{name}({','.join(args)})"


# ---- routine parameters ----
def parse_parameters(value: Any, routine: str) -> List[CatalogObject]:
    """Turn a raw parameter list into raw :class:`CatalogObject` parameters.

    Accepts declaration text (``@CustomerID INT, @StartDate DATE = NULL``) or
    a list of mappings with ``name``/``type``/``default``/``direction`` keys
    (schema attribute names such as ``DataType`` are accepted too).
    """
    if isinstance(value, str):
        entries = [_parse_parameter_text(p) for p in split_top_level(value) if p]
    elif isinstance(value, (list, tuple)):
        entries = [_parameter_from_mapping(p) for p in value]
    else:
        raise NormalizationFailure(f"unsupported parameter list: {type(value).__name__}")

    params: List[CatalogObject] = []
    for position, (name, attrs) in enumerate(entries, start=1):
        attrs.setdefault("Position", position)
        params.append(
            CatalogObject(kind=Kind.PARAMETER, qualified_name=f"{routine}.{name}", attributes=attrs)
        )
    return params


def _parse_parameter_text(text: str) -> Tuple[str, Dict[str, Any]]:
    attrs: Dict[str, Any] = {"Direction": "IN"}
    m = _PARAM_DIRECTION_RE.search(text)
    if m:
        flag = m.group(1).upper()
        if flag == "READONLY":
            attrs["IsReadOnly"] = True
        else:
            attrs["Direction"] = "OUT"
        text = text[: m.start()]

    parts = split_top_level(text, "=")
    declaration = parts[0].strip()
    default: Optional[str] = "=".join(parts[1:]).strip() if len(parts) > 1 else None

    pieces = declaration.split(None, 1)
    if len(pieces) != 2 or not pieces[0].startswith("@"):
        raise NormalizationFailure(f"unparseable parameter declaration: {text.strip()!r}")
    name, type_text = pieces
    type_text = re.sub(r"^AS\s+", "", type_text.strip(), flags=re.IGNORECASE)
    attrs["DataType"] = type_text
    attrs["DefaultValue"] = default
    return name, attrs


def _parameter_from_mapping(entry: Any) -> Tuple[str, Dict[str, Any]]:
    if not isinstance(entry, Mapping):
        raise NormalizationFailure(f"parameter entry must be a mapping, got {type(entry).__name__}")
    name = entry.get("name") or entry.get("Name")
    if not name:
        raise NormalizationFailure(f"parameter entry without a name: {dict(entry)!r}")
    aliases = {
        "type": "DataType",
        "default": "DefaultValue",
        "direction": "Direction",
        "position": "Position",
        "readonly": "IsReadOnly",
    }
    attrs: Dict[str, Any] = {}
    for key, val in entry.items():
        if key in ("name", "Name"):
            continue
        attrs[aliases.get(key, key)] = val
    attrs.setdefault("Direction", "IN")
    attrs.setdefault("DefaultValue", None)
    return str(name), attrs


def parameter_key(param: CatalogObject, policy: NormalizationPolicy = DEFAULT_POLICY) -> Tuple[int, str]:
    """Natural key of a parameter within its routine: ``(position, name)``."""
    position = param.attributes.get("Position")
    return (position if isinstance(position, int) else 0, policy.fold(param.name))


def _signature_of(children: Sequence[CatalogObject]) -> str:
    params = sorted((c for c in children if c.kind is Kind.PARAMETER), key=parameter_key)
    return "(" + ",".join(str(p.attributes.get("DataType", "?")) for p in params) + ")"


def routine_signature(obj: CatalogObject) -> str:
    """Canonical parameter-type signature, e.g. ``(int,date,date)``."""
    return _signature_of(obj.children)


# ---- object normalization ----
class Normalizer:
    """Apply a :class:`NormalizationPolicy` to catalog objects.

    Parameters
    ----------
    policy:
        Rule set to apply. Defaults to :data:`schemadrift.policy.DEFAULT_POLICY`.
    """

    def __init__(self, policy: NormalizationPolicy = DEFAULT_POLICY):
        self.policy = policy

    def normalize_value(self, attr: AttrType, value: Any) -> Any:
        """Canonicalize one value of declared type *attr*.

        ``None`` (a catalog NULL) stays ``None``. Raises
        :class:`NormalizationFailure` for values that cannot be parsed.
        """
        if value is None:
            return None
        policy = self.policy
        if attr is AttrType.TEXT:
            return value.strip() if isinstance(value, str) else value
        if isinstance(value, str) and not value.strip() and attr is not AttrType.DEFINITION:
            return None
        if attr is AttrType.KEYWORD:
            return re.sub(r"[\s_]+", " ", str(value).strip()).upper()
        if attr is AttrType.DIRECTION:
            return canonical_direction(value)
        if attr is AttrType.IDENTIFIER:
            return canonical_identifier(str(value), policy)
        if attr is AttrType.IDENTIFIER_LIST:
            return tuple(_canonical_list_item(v, policy) for v in _list_items(value))
        if attr is AttrType.IDENTIFIER_SET:
            return tuple(sorted({canonical_identifier(v, policy) for v in _list_items(value)}))
        if attr is AttrType.INT:
            return canonical_int(value)
        if attr is AttrType.LENGTH:
            return canonical_length(value)
        if attr is AttrType.BOOL:
            return canonical_bool(value)
        if attr is AttrType.TYPE:
            return canonical_type(str(value), policy)
        if attr is AttrType.DEFAULT:
            return canonical_default(str(value), policy)
        if attr is AttrType.PREDICATE:
            return canonical_predicate(str(value), policy)
        if attr is AttrType.DEFINITION:
            return canonical_definition(str(value), policy)
        if attr is AttrType.QUERY_TEXT:
            return canonical_query_text(str(value), policy.query_text)
        raise NormalizationFailure(f"no rule for attribute type {attr.value}")

    def normalize_object(self, obj: CatalogObject, side: str = "") -> Tuple[CatalogObject, List[DiffWarning]]:
        """Return a canonical copy of *obj* (children included) and the warnings raised."""
        warnings: List[DiffWarning] = []
        schema = KIND_SCHEMAS.get(obj.kind, {})
        attributes: Dict[str, Any] = {}
        unnormalized: List[str] = list(obj.unnormalized)
        raw_params: Any = None

        for name, raw in obj.attributes.items():
            attr = schema.get(name)
            if attr is None:
                attributes[name] = raw
                if name not in unnormalized:
                    unnormalized.append(name)
                continue
            if attr is AttrType.PARAMETERS:
                raw_params = raw
                attributes[name] = raw
                continue
            try:
                attributes[name] = self.normalize_value(attr, raw)
            except NormalizationFailure as exc:
                attributes[name] = raw
                if name not in unnormalized:
                    unnormalized.append(name)
                warnings.append(self._failure(obj, name, raw, exc, side))

        children: List[CatalogObject] = list(obj.children)
        # explicit Parameter children take precedence over the raw list
        if raw_params is not None and not obj.children_of(Kind.PARAMETER):
            try:
                children.extend(parse_parameters(raw_params, obj.qualified_name))
            except NormalizationFailure as exc:
                unnormalized.append("Parameters")
                warnings.append(self._failure(obj, "Parameters", raw_params, exc, side))

        normalized_children: List[CatalogObject] = []
        for child in children:
            norm_child, child_warnings = self.normalize_object(child, side)
            normalized_children.append(norm_child)
            warnings.extend(child_warnings)

        normalized_children_t = tuple(normalized_children)
        if raw_params is not None and "Parameters" not in unnormalized:
            attributes["Parameters"] = _signature_of(normalized_children_t)
        return (
            CatalogObject(
                kind=obj.kind,
                qualified_name=obj.qualified_name,
                attributes=attributes,
                children=normalized_children_t,
                unnormalized=tuple(unnormalized),
            ),
            warnings,
        )

    def normalize_objects(
        self, objects: Iterable[CatalogObject], side: str = ""
    ) -> Tuple[Tuple[CatalogObject, ...], List[DiffWarning]]:
        out: List[CatalogObject] = []
        warnings: List[DiffWarning] = []
        for obj in objects:
            norm, obj_warnings = self.normalize_object(obj, side)
            out.append(norm)
            warnings.extend(obj_warnings)
        if warnings:
            logger.debug("normalization produced %d warning(s) on %s", len(warnings), side or "snapshot")
        return tuple(out), warnings

    @staticmethod
    def _failure(obj: CatalogObject, field: str, raw: Any, exc: NormalizationFailure, side: str) -> DiffWarning:
        prefix = f"{side}: " if side else ""
        return NormalizationFailure(
            f"{prefix}{field} kept raw ({exc.message}); raw value {raw!r}",
            kind=obj.kind,
            qualified_name=obj.qualified_name,
            field=field,
        ).to_warning()
