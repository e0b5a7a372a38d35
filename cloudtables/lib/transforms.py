"""Column value transforms.

A column's value is produced by a ``TransformChain``: one *source* that reads
a raw value from the item (a dotted field path, the whole item, a qualifier,
a constant) followed by zero or more pure *steps* applied left to right.

Example:
    # Tags arrive as [{"Key": ..., "Value": ...}] from a hydration call
    chain = from_field("Tags.Items").transform(tags_to_map)

    # Hosted zones have no ARN of their own
    chain = from_field("Name").transform(route53_name_to_akas)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from cloudtables.lib.errors import TransformError

logger = logging.getLogger(__name__)

__all__ = [
    "MISSING",
    "TransformChain",
    "TransformContext",
    "apply_chain",
    "arn_to_akas",
    "from_camel",
    "from_field",
    "from_qual",
    "get_path",
    "has_path",
    "null_if_zero",
    "parse_json",
    "route53_name_to_akas",
    "synthesize_akas",
    "tags_to_map",
    "to_camel",
]


class _Missing:
    """Sentinel for a field that is absent (as opposed to present and null)."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def get_path(data: Any, path: str) -> Any:
    """Return the value at a dotted path, or MISSING if any segment is absent.

    Segments index dicts by key and lists by integer position.

    Example:
        >>> get_path({"Config": {"Comment": "x"}}, "Config.Comment")
        'x'
        >>> get_path({"Config": None}, "Config.Comment")
        MISSING
    """
    obj = data
    if not path:
        return obj
    for segment in path.split("."):
        if isinstance(obj, Mapping):
            if segment not in obj:
                return MISSING
            obj = obj[segment]
        elif isinstance(obj, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            if index >= len(obj) or index < -len(obj):
                return MISSING
            obj = obj[index]
        else:
            return MISSING
    return obj


def has_path(data: Any, path: str) -> bool:
    return get_path(data, path) is not MISSING


def to_camel(name: str) -> str:
    """Convert a snake_case column name to the provider's CamelCase field name.

    Example:
        >>> to_camel("e_tag")
        'ETag'
        >>> to_camel("resource_record_set_count")
        'ResourceRecordSetCount'
    """
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


@dataclass
class TransformContext:
    """What a transform source can see while producing one column value.

    Attributes:
        column: Column name being produced
        data: The data the column reads from (hydration result or base item)
        item: The whole base item
        quals: Equality qualifier values keyed by column name
    """

    column: str
    data: Any
    item: Any = None
    quals: Mapping[str, Any] = field(default_factory=dict)


Source = Callable[[TransformContext], Any]
Step = Callable[[Any], Any]


@dataclass(frozen=True)
class TransformChain:
    """A value source plus a left-to-right chain of pure steps.

    ``field_path`` is set when the source reads a plain field, so the
    hydration resolver can tell whether the value is already on the item.
    """

    source: Source
    steps: Tuple[Step, ...] = ()
    field_path: Optional[str] = None
    description: str = ""

    def transform(self, step: Step) -> "TransformChain":
        """Return a new chain with ``step`` appended."""
        return TransformChain(
            source=self.source,
            steps=self.steps + (step,),
            field_path=self.field_path,
            description=self.description,
        )

    def null_if_zero(self) -> "TransformChain":
        return self.transform(null_if_zero)

    def resolve_path(self, column: str) -> Optional[str]:
        """Field path this chain reads for ``column``, if it reads one."""
        if self.field_path == _CAMEL:
            return to_camel(column)
        return self.field_path


# Marker for "path derived from the column name"
_CAMEL = "\x00camel"


def from_field(path: str) -> TransformChain:
    """Read a dotted field path from the column's data."""

    def source(ctx: TransformContext) -> Any:
        return get_path(ctx.data, path)

    return TransformChain(source=source, field_path=path, description=f"field {path}")


def from_camel() -> TransformChain:
    """Read the CamelCase form of the column name (the default source)."""

    def source(ctx: TransformContext) -> Any:
        return get_path(ctx.data, to_camel(ctx.column))

    return TransformChain(source=source, field_path=_CAMEL, description="field <CamelCase column>")


def from_qual(column: str) -> TransformChain:
    """Echo the equality qualifier supplied for ``column``."""

    def source(ctx: TransformContext) -> Any:
        return ctx.quals.get(column)

    return TransformChain(source=source, description=f"qualifier {column}")


def apply_chain(chain: TransformChain, ctx: TransformContext) -> Any:
    """Run a chain for one column.

    A MISSING source value enters the steps as None.

    Raises:
        TransformError: when the source or a step fails
    """
    try:
        value = chain.source(ctx)
    except Exception as e:
        raise TransformError(
            f"Could not read source value ({chain.description or 'source'})",
            column=ctx.column,
            cause=e,
        ) from e

    if value is MISSING:
        value = None

    for step in chain.steps:
        try:
            value = step(value)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(
                f"Transform step {getattr(step, '__name__', step)!s} failed",
                column=ctx.column,
                value=value,
                cause=e,
            ) from e
    return value


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def tags_to_map(tags: Optional[List[Mapping[str, Any]]]) -> Optional[Dict[str, Any]]:
    """Turn a provider tag list into a key/value mapping.

    None stays None so "untagged" differs from "tagged with nothing" ({}).
    Duplicate keys resolve last-wins.
    """
    if tags is None:
        return None
    result: Dict[str, Any] = {}
    for tag in tags:
        result[tag["Key"]] = tag.get("Value")
    return result


def arn_to_akas(arn: Optional[str]) -> Optional[List[str]]:
    if arn is None:
        return None
    return [arn]


def synthesize_akas(prefix: str) -> Step:
    """Build a step that makes akas from a fixed ARN prefix plus a name."""

    def name_to_akas(name: Optional[str]) -> Optional[List[str]]:
        if name is None:
            return None
        return [prefix + name]

    name_to_akas.__name__ = f"synthesize_akas({prefix})"
    return name_to_akas


route53_name_to_akas = synthesize_akas("arn:aws:route53:::")


def null_if_zero(value: Any) -> Any:
    """Map zero values (0, "", False, empty containers) to None."""
    if value is None or isinstance(value, bool) and value is False:
        return None
    if isinstance(value, (int, float)) and value == 0:
        return None
    if isinstance(value, (str, list, dict, tuple)) and len(value) == 0:
        return None
    return value


def parse_json(value: Any) -> Any:
    """Decode a JSON document; non-string values pass through."""
    if isinstance(value, (str, bytes, bytearray)):
        return json.loads(value)
    return value
