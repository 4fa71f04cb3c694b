"""Binding descriptors and their conversion into SQLAlchemy bound parameters."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Tuple, Union

from sqlalchemy import bindparam, text
from sqlalchemy.sql.elements import BindParameter, TextClause
from sqlalchemy.types import Boolean, Integer, LargeBinary, NullType, String, TypeEngine

from sqlconduit.exceptions import BindingError
from sqlconduit.formatting import (
    DATE_FORMAT,
    DATETIME_FORMAT,
    TIME_FORMAT,
    format_bytes,
    format_time,
    sanitize_match,
)


class BindType(str, Enum):
    """Semantic types understood by the binder."""
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    BOOL = "bool"
    NULL = "null"
    INT = "int"
    LIMIT = "limit"
    OFFSET = "offset"
    STRING = "string"
    TEXT = "text"
    FLOAT = "float"
    LIKE = "like"
    MATCH = "match"
    BYTES = "bytes"
    BITS = "bits"
    BLOB = "blob"
    IN = "in"

    @classmethod
    def parse(cls, label: str) -> Optional["BindType"]:
        """Resolve a label (aliases included) to a member, or None if unknown."""
        label = label.strip().lower()
        label = _ALIASES.get(label, label)
        try:
            return cls(label)
        except ValueError:
            return None


_ALIASES = {
    "boolean": "bool",
    "integer": "int",
    "number": "int",
    "str": "string",
    "varchar": "string",
    "varchar2": "string",
    "lob": "blob",
    "large": "blob",
    "object": "blob",
}

_INTEGER_TYPES = (BindType.INT, BindType.LIMIT, BindType.OFFSET)
_STRING_TYPES = (BindType.STRING, BindType.TEXT, BindType.FLOAT)
_TEMPORAL_FORMATS = {
    BindType.DATE: DATE_FORMAT,
    BindType.TIME: TIME_FORMAT,
    BindType.DATETIME: DATETIME_FORMAT,
}
_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})
_PLACEHOLDER_NAME = re.compile(r'^\w+$')

BindTarget = Union[BindType, TypeEngine, str]


def _normalize_type(bind_type: Any) -> BindTarget:
    if bind_type is None:
        return BindType.STRING
    if isinstance(bind_type, BindType) or isinstance(bind_type, TypeEngine):
        return bind_type
    if isinstance(bind_type, type) and issubclass(bind_type, TypeEngine):
        return bind_type()
    if isinstance(bind_type, str):
        # unknown labels are kept for diagnostics and bound as strings
        return BindType.parse(bind_type) or bind_type
    raise BindingError(f"Unsupported binding type `{bind_type!r}`", bind_type=repr(bind_type))


def type_label(bind_type: BindTarget) -> str:
    if isinstance(bind_type, BindType):
        return bind_type.value
    if isinstance(bind_type, TypeEngine):
        return type(bind_type).__name__
    return str(bind_type)


@dataclass(frozen=True)
class Binding:
    """A value paired with the semantic type that drives its coercion.

    ``type`` is a :class:`BindType` (or one of its labels), a SQLAlchemy type
    used as-is, or an unrecognised label that binds as a string.
    ``element_type`` only matters for ``in`` bindings, whose ``value`` must be
    a list.
    """

    value: Any
    type: Any = BindType.STRING
    element_type: Any = BindType.STRING

    def __post_init__(self) -> None:
        object.__setattr__(self, 'type', _normalize_type(self.type))
        object.__setattr__(self, 'element_type', _normalize_type(self.element_type))

        if self.type is BindType.IN:
            if not isinstance(self.value, (list, tuple, set, frozenset)):
                raise BindingError(
                    "When using `in` binding only a list is allowed",
                    bind_type=BindType.IN.value,
                    value=self.value,
                )
            if self.element_type is BindType.IN:
                raise BindingError(
                    "Can't use `in` type when already using `in` binding",
                    bind_type=BindType.IN.value,
                    value=self.value,
                )


def placeholder_name(key: str) -> str:
    """Strip the optional leading colon from a binding key."""
    name = key[1:] if key.startswith(':') else key
    if not _PLACEHOLDER_NAME.match(name):
        raise BindingError(f"Invalid placeholder name `{key}`", placeholder=key)
    return name


def placeholder_pattern(name: str) -> Pattern:
    """Regex matching ``:name`` as a whole placeholder token."""
    return re.compile(r'(?<![:\w\\]):' + re.escape(name) + r'(?![\w:])')


def expand_in_bindings(statement: str, bindings: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Unpack ``in`` bindings into one placeholder per list element.

    ``:ids`` bound to ``Binding([4, 5], "in", "int")`` turns into
    ``:ids_0, :ids_1`` with two ``int`` bindings.

    Returns:
        Rewritten statement and the new bindings map, keyed without colons.
    """
    plain: Dict[str, Any] = {}
    unpacked: Dict[str, Any] = {}

    for key, value in bindings.items():
        name = placeholder_name(key)
        if not (isinstance(value, Binding) and value.type is BindType.IN):
            plain[name] = value
            continue

        items = list(value.value)
        if not items:
            raise BindingError(
                f"`in` binding `{name}` received an empty list",
                placeholder=name,
                bind_type=BindType.IN.value,
                value=value.value,
            )

        names = [f"{name}_{index}" for index in range(len(items))]
        replacement = ", ".join(f":{item_name}" for item_name in names)
        statement = placeholder_pattern(name).sub(lambda _: replacement, statement)
        for item_name, item in zip(names, items):
            unpacked[item_name] = Binding(item, value.element_type)

    plain.update(unpacked)
    return statement, plain


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return value.encode('utf-8', 'replace').decode('utf-8')
    return value


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(float(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


class Binder:
    """Turns statements plus binding maps into executable ``TextClause`` objects."""

    def __init__(
        self,
        time_formatter: Callable[[Any, str], str] = format_time,
        byte_formatter: Callable[..., str] = format_bytes,
        match_sanitizer: Callable[[str], str] = sanitize_match,
    ) -> None:
        self.time_formatter = time_formatter
        self.byte_formatter = byte_formatter
        self.match_sanitizer = match_sanitizer

    def prepare(self, statement: str, bindings: Optional[Mapping[str, Any]]) -> Tuple[str, Dict[str, Any]]:
        """Expand ``in`` bindings, then drop bindings the statement never uses."""
        if not bindings:
            return statement, {}

        statement, expanded = expand_in_bindings(statement, bindings)
        used = {
            name: value for name, value in expanded.items()
            if placeholder_pattern(name).search(statement)
        }
        return statement, used

    def bind(self, statement: str, bindings: Optional[Mapping[str, Any]] = None) -> TextClause:
        """Build a ``TextClause`` with every used placeholder bound.

        Raises:
            BindingError: If a value cannot be coerced to its declared type.
        """
        params = []
        for key, value in (bindings or {}).items():
            name = placeholder_name(key)
            if not placeholder_pattern(name).search(statement):
                continue
            try:
                params.append(self._bind_param(name, value))
            except BindingError:
                raise
            except Exception as exc:
                if isinstance(value, Binding):
                    message = (
                        f"Failed to bind variable `{name}` of type `{type_label(value.type)}` "
                        f"with value `{value.value!r}`"
                    )
                    raise BindingError(message, name, type_label(value.type), value.value) from exc
                raise BindingError(
                    f"Failed to bind variable `{name}` with value `{value!r}`", name, None, value
                ) from exc

        clause = text(statement)
        return clause.bindparams(*params) if params else clause

    def _bind_param(self, name: str, value: Any) -> BindParameter:
        if not isinstance(value, Binding):
            return bindparam(name, _scrub(value))

        raw = _scrub(value.value)
        bind_type = value.type

        if isinstance(bind_type, TypeEngine):
            return bindparam(name, raw, type_=bind_type)
        if bind_type in _TEMPORAL_FORMATS:
            return bindparam(name, self.time_formatter(raw, _TEMPORAL_FORMATS[bind_type]), type_=String())
        if bind_type is BindType.BOOL:
            return bindparam(name, _to_bool(raw), type_=Boolean())
        if bind_type is BindType.NULL:
            return bindparam(name, None, type_=NullType())
        if bind_type in _INTEGER_TYPES:
            return bindparam(name, _to_int(raw), type_=Integer())
        if bind_type is BindType.LIKE:
            return bindparam(name, f"%{raw}%", type_=String())
        if bind_type is BindType.MATCH:
            return bindparam(name, self.match_sanitizer(str(raw)), type_=String())
        if bind_type in (BindType.BYTES, BindType.BITS):
            formatted = self.byte_formatter(str(raw), 1024, bits=bind_type is BindType.BITS)
            return bindparam(name, formatted, type_=String())
        if bind_type is BindType.BLOB:
            data = bytes(raw) if isinstance(raw, (bytes, bytearray, memoryview)) else str(raw).encode('utf-8')
            return bindparam(name, data, type_=LargeBinary(length=len(data)))
        if bind_type is BindType.IN:
            raise BindingError(
                f"`in` binding `{name}` must be expanded before binding",
                name, BindType.IN.value, raw,
            )
        # string family and unrecognised labels
        return bindparam(name, str(raw), type_=String())
