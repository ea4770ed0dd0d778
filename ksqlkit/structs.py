"""Reading ``ksql`` field metadata from dataclass records."""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import threading
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Tuple, Union, get_args, get_origin

from .modifiers import AttrModifier, load_global_modifier

KSQL_TAG = "ksql"
TABLENAME_TAG = "tablename"


def ksql_field(tag: str, **kwargs: Any) -> Any:
    """A dataclass field mapped to a column, e.g. ``ksql_field("address,json")``."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[KSQL_TAG] = tag
    return field(metadata=metadata, **kwargs)


def nested_field(tablename: str, **kwargs: Any) -> Any:
    """A dataclass field holding a whole record of the table ``tablename``."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TABLENAME_TAG] = tablename
    return field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class FieldInfo:
    """Metadata about one tagged field of a record type."""

    attr_name: str = ""
    column_name: str = ""
    index: int = 0
    # False only for the placeholder returned when a lookup finds nothing.
    valid: bool = False
    modifier: AttrModifier = field(default_factory=AttrModifier)
    annotation: Any = None


_INVALID_FIELD = FieldInfo()


class StructInfo:
    """Tagged fields of a record type, looked up by position or column name."""

    def __init__(self, is_nested_struct: bool = False) -> None:
        self.is_nested_struct = is_nested_struct
        self._by_index: Dict[int, FieldInfo] = {}
        self._by_name: Dict[str, FieldInfo] = {}

    def by_index(self, idx: int) -> FieldInfo:
        """Field at position ``idx``, or an invalid placeholder."""
        return self._by_index.get(idx, _INVALID_FIELD)

    def by_name(self, name: str) -> FieldInfo:
        """Field mapped to column ``name``, or an invalid placeholder."""
        return self._by_name.get(name, _INVALID_FIELD)

    def num_fields(self) -> int:
        """Number of tagged fields."""
        return len(self._by_index)

    def __iter__(self) -> Iterator[FieldInfo]:
        return iter(sorted(self._by_index.values(), key=lambda info: info.index))

    def __repr__(self) -> str:
        columns = [info.column_name for info in self]
        return f"StructInfo(is_nested_struct={self.is_nested_struct}, columns={columns})"

    def _add(self, info: FieldInfo) -> None:
        info = dataclasses.replace(info, valid=True)
        self._by_index[info.index] = info
        self._by_name[info.column_name] = info
        # Some databases report column names in lower case.
        self._by_name.setdefault(info.column_name.lower(), info)


_tag_info_cache: Dict[type, StructInfo] = {}
_cache_lock = threading.Lock()

_TYPING_NAMES: Dict[str, Any] = {
    "Any": Any,
    "Optional": typing.Optional,
    "Union": Union,
    "List": typing.List,
    "Dict": typing.Dict,
    "Tuple": typing.Tuple,
    "Set": typing.Set,
    "typing.Any": Any,
    "typing.Optional": typing.Optional,
    "typing.Union": Union,
    "typing.List": typing.List,
    "typing.Dict": typing.Dict,
    "typing.Tuple": typing.Tuple,
    "typing.Set": typing.Set,
    "datetime.datetime": datetime.datetime,
    "datetime.date": datetime.date,
    "datetime.time": datetime.time,
    "datetime.timedelta": datetime.timedelta,
    "decimal.Decimal": decimal.Decimal,
}

_BUILTIN_TYPES: Dict[str, Any] = {
    "int": int,
    "float": float,
    "complex": complex,
    "str": str,
    "bool": bool,
    "bytes": bytes,
    "bytearray": bytearray,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "object": object,
    "type": type,
}


def _split_top_level(text: str, sep: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    parts.append("".join(current).strip())
    return parts


def _lookup_name(name: str, namespace: Mapping[str, Any]) -> Any:
    if name in namespace:
        return namespace[name]
    if name in _TYPING_NAMES:
        return _TYPING_NAMES[name]
    if name == "None":
        return None
    if name in _BUILTIN_TYPES:
        return _BUILTIN_TYPES[name]
    raise LookupError(name)


def _resolve_annotation_text(text: str, namespace: Mapping[str, Any]) -> Any:
    text = text.strip()
    alternatives = _split_top_level(text, "|")
    if len(alternatives) > 1:
        resolved = tuple(_resolve_annotation_text(alt, namespace) for alt in alternatives)
        return Union[resolved]

    if text.endswith("]") and "[" in text:
        base_text, inner = text.split("[", 1)
        base = _lookup_name(base_text.strip(), namespace)
        args = tuple(
            _resolve_annotation_text(arg, namespace)
            for arg in _split_top_level(inner[:-1], ",")
        )
        return base[args if len(args) > 1 else args[0]]

    return _lookup_name(text, namespace)


def _resolve_annotation(annotation: Any, namespace: Mapping[str, Any]) -> Any:
    """Resolve a string annotation of simple names; leave it as is when unsure."""
    if not isinstance(annotation, str):
        return annotation
    try:
        return _resolve_annotation_text(annotation, namespace)
    except (LookupError, AttributeError, TypeError):
        return annotation


def _class_namespace(cls: type) -> Mapping[str, Any]:
    init = getattr(cls, "__init__", None)
    return getattr(init, "__globals__", {}) or {}


def _type_hints(cls: type) -> Dict[str, Any]:
    """Resolved annotations of the fields of a dataclass type."""
    namespace = _class_namespace(cls)
    return {
        fld.name: _resolve_annotation(fld.type, namespace)
        for fld in dataclasses.fields(cls)
    }


def _build_tag_info(cls: type) -> StructInfo:
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"expected a dataclass but got {cls.__name__}")

    fields = dataclasses.fields(cls)
    namespace = _class_namespace(cls)
    info = StructInfo()

    for index, fld in enumerate(fields):
        if fld.name.startswith("_"):
            raise ValueError(
                "all fields using the ksql tags must be public, "
                f"but {cls.__name__}.{fld.name} is private"
            )

        tag = fld.metadata.get(KSQL_TAG, "")
        if not tag:
            continue

        name, *options = tag.split(",")
        modifier = AttrModifier()
        if options:
            try:
                modifier = load_global_modifier(options[0])
            except LookupError as exc:
                raise ValueError(
                    f"attribute contains invalid modifier name: {exc}"
                ) from exc

        if name in info._by_name:
            raise ValueError(
                f"struct contains multiple attributes with the same ksql tag name: '{name}'"
            )

        info._add(
            FieldInfo(
                attr_name=fld.name,
                column_name=name,
                index=index,
                modifier=modifier,
                annotation=_resolve_annotation(fld.type, namespace),
            )
        )

    if info.num_fields() > 0:
        return info

    # Without ksql tags the record may be a join of whole tables.
    for index, fld in enumerate(fields):
        tablename = fld.metadata.get(TABLENAME_TAG, "")
        if not tablename:
            continue
        info._add(
            FieldInfo(
                attr_name=fld.name,
                column_name=tablename,
                index=index,
                annotation=_resolve_annotation(fld.type, namespace),
            )
        )

    if info.num_fields() == 0:
        raise ValueError("the struct must contain at least one attribute with the ksql tag")

    info.is_nested_struct = True
    return info


def get_tag_info(record_type: Any) -> StructInfo:
    """Return the cached field metadata of a dataclass type (or instance)."""
    cls = record_type if isinstance(record_type, type) else type(record_type)
    with _cache_lock:
        cached = _tag_info_cache.get(cls)
    if cached is not None:
        return cached

    info = _build_tag_info(cls)
    with _cache_lock:
        return _tag_info_cache.setdefault(cls, info)


def struct_to_map(obj: Any) -> Dict[str, Any]:
    """Map column names to field values; None values are left out unless nullable."""
    if isinstance(obj, type) or not dataclasses.is_dataclass(obj):
        raise TypeError("input must be a dataclass instance")

    info = get_tag_info(type(obj))
    result: Dict[str, Any] = {}
    for field_info in info:
        value = getattr(obj, field_info.attr_name)
        if value is None and not field_info.modifier.nullable:
            continue
        result[field_info.column_name] = value
    return result


_UNION_ORIGINS = (Union, types.UnionType)


def _split_optional(dest_type: Any) -> Tuple[Tuple[Any, ...], bool]:
    if get_origin(dest_type) in _UNION_ORIGINS:
        args = get_args(dest_type)
        candidates = tuple(arg for arg in args if arg is not type(None))
        return candidates, len(candidates) != len(args)
    if dest_type is None or dest_type is type(None):
        return (), True
    return (dest_type,), False


def _type_name(tp: Any) -> str:
    if isinstance(tp, type):
        return tp.__name__
    return str(tp)


def _is_instance(value: Any, tp: Any) -> bool:
    if tp is Any:
        return True
    origin = get_origin(tp) or tp
    if isinstance(origin, type):
        return isinstance(value, origin)
    # Annotations that cannot be checked at runtime are accepted as is.
    return True


def convert_value(value: Any, dest_type: Any) -> Any:
    """Convert ``value`` to ``dest_type``; None becomes the zero value unless optional."""
    candidates, optional = _split_optional(dest_type)

    if value is None:
        if optional or not candidates or Any in candidates:
            return None
        target = get_origin(candidates[0]) or candidates[0]
        try:
            return target()
        except TypeError as exc:
            raise TypeError(
                f"cannot build a zero value for type {_type_name(dest_type)}"
            ) from exc

    for candidate in candidates:
        if _is_instance(value, candidate):
            return value

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        for candidate in candidates:
            if candidate in (int, float):
                return candidate(value)

    raise TypeError(
        f"cannot convert from type {type(value).__name__} to type {_type_name(dest_type)}"
    )


_CO_VARARGS = 0x04
_CO_VARKEYWORDS = 0x08


def _callback_function(fn: Any) -> Tuple[Any, int]:
    """The plain function behind ``fn`` and how many leading parameters are bound."""
    if isinstance(fn, types.MethodType):
        return fn.__func__, 1
    if isinstance(fn, types.FunctionType):
        return fn, 0
    call = getattr(type(fn), "__call__", None)
    if isinstance(call, types.FunctionType):
        return call, 1
    raise TypeError("the ForEachChunk callback must be a function")


def parse_input_func(fn: Any) -> type:
    """Check a chunk callback and return the record type of its list argument."""
    if fn is None:
        raise TypeError("the ForEachChunk attribute is required and cannot be None")
    if not callable(fn):
        raise TypeError("the ForEachChunk callback must be a function")

    func, bound = _callback_function(fn)
    code = func.__code__
    positional = code.co_varnames[: code.co_argcount][bound:]
    if (
        len(positional) != 1
        or code.co_kwonlyargcount
        or code.co_flags & (_CO_VARARGS | _CO_VARKEYWORDS)
    ):
        raise TypeError("the ForEachChunk callback must have 1 argument")

    namespace = getattr(func, "__globals__", {}) or {}
    annotations = getattr(func, "__annotations__", {}) or {}

    if "return" in annotations:
        return_annotation = _resolve_annotation(annotations["return"], namespace)
        if return_annotation not in (None, type(None)):
            raise TypeError(
                "the ForEachChunk callback must return None and raise to report errors"
            )

    annotation = _resolve_annotation(annotations.get(positional[0]), namespace)
    if get_origin(annotation) is not list:
        raise TypeError(
            "the argument of the ForEachChunk callback must be a list of dataclasses"
        )

    args = get_args(annotation)
    if len(args) != 1 or not (isinstance(args[0], type) and dataclasses.is_dataclass(args[0])):
        raise TypeError(
            "the argument of the ForEachChunk callback must be a list of dataclasses"
        )

    return args[0]