"""
Document Field Access and Partition Key Resolution
Schema-free documents are read through failable lookups that never raise on absence
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

MAX_PARTITION_KEY_DEPTH = 3


@dataclass(frozen=True)
class FieldLookup:
    """Result of looking up one (possibly nested) field in a document"""
    found: bool
    value: Any = None
    matched_path: Tuple[str, ...] = ()
    exact: bool = True

    @property
    def is_null(self) -> bool:
        return not self.found or self.value is None


MISSING = FieldLookup(found=False)


def _lookup_key(mapping: Mapping[str, Any], name: str) -> Tuple[Optional[str], bool]:
    """Find a key by exact match first, then case-insensitively."""
    if name in mapping:
        return name, True
    lowered = name.lower()
    for key in mapping:
        if isinstance(key, str) and key.lower() == lowered:
            return key, False
    return None, False


def lookup_field(document: Mapping[str, Any], field_path: Union[str, Sequence[str]]) -> FieldLookup:
    """
    Look up a field in a document.

    Each component of a nested path ("address/city") is matched exactly first and
    then case-insensitively, which tolerates casing drift across documents.
    """
    parts = split_field_path(field_path) if isinstance(field_path, str) else tuple(field_path)
    if not parts:
        return MISSING

    current: Any = document
    matched = []
    exact = True
    for part in parts:
        if not isinstance(current, Mapping):
            return MISSING
        key, is_exact = _lookup_key(current, part)
        if key is None:
            return MISSING
        matched.append(key)
        exact = exact and is_exact
        current = current[key]

    return FieldLookup(found=True, value=current, matched_path=tuple(matched), exact=exact)


def split_field_path(field_path: str) -> Tuple[str, ...]:
    """Split "/address/city" or "address.city" into its components"""
    cleaned = field_path.strip().strip("/")
    if not cleaned:
        return ()
    separator = "/" if "/" in cleaned else "."
    return tuple(part for part in cleaned.split(separator) if part)


def document_identity(document: Mapping[str, Any]) -> str:
    """Identifier used in error and skip messages"""
    for key in ("id", "_id"):
        value = document.get(key)
        if value is not None:
            return str(value)
    return "unknown"


def stringify_key_component(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PartitionKeyPath:
    """Ordered hierarchical partition key definition of a destination container"""

    def __init__(self, paths: Sequence[str]):
        segments = tuple(split_field_path(path) for path in paths)
        if not 1 <= len(segments) <= MAX_PARTITION_KEY_DEPTH:
            raise ValueError(f"Partition key must have 1 to {MAX_PARTITION_KEY_DEPTH} paths, got {len(segments)}")
        if any(not segment for segment in segments):
            raise ValueError(f"Empty partition key path in {list(paths)}")
        self._segments = segments

    @property
    def segments(self) -> Tuple[Tuple[str, ...], ...]:
        return self._segments

    @property
    def fields(self) -> Tuple[str, ...]:
        """Segments as slash-joined field names without a leading slash"""
        return tuple("/".join(segment) for segment in self._segments)

    @property
    def paths(self) -> Tuple[str, ...]:
        """Segments in Cosmos DB path notation ("/tenantId")"""
        return tuple("/" + field for field in self.fields)

    @property
    def is_hierarchical(self) -> bool:
        return len(self._segments) > 1

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self):
        return iter(self.fields)

    def __eq__(self, other) -> bool:
        return isinstance(other, PartitionKeyPath) and self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"PartitionKeyPath({list(self.paths)!r})"


@dataclass(frozen=True)
class PartitionKeyValue:
    """Resolved key of one document: one stringified component per path segment"""
    path: PartitionKeyPath
    components: Tuple[str, ...]
    raw_values: Tuple[Any, ...]
    matched_paths: Tuple[Tuple[str, ...], ...]

    def __post_init__(self):
        size = len(self.path)
        if len(self.components) != size or len(self.raw_values) != size or len(self.matched_paths) != size:
            raise ValueError("Partition key value does not match its path length")
        if any(component is None for component in self.components):
            raise ValueError("Partition key components cannot be null")

    @property
    def is_exact(self) -> bool:
        """True when every segment matched the document field name exactly"""
        return all(matched == segment for matched, segment in zip(self.matched_paths, self.path.segments))

    def as_list(self):
        return list(self.components)


@dataclass(frozen=True)
class MissingField:
    """A document lacks (or has null for) one of the partition key fields"""
    field: str
    available_keys: Tuple[str, ...] = ()


def resolve_partition_key(path: PartitionKeyPath, document: Mapping[str, Any]) -> Union[PartitionKeyValue, MissingField]:
    """Derive the ordered partition key of a document, or report the first missing field"""
    components = []
    raw_values = []
    matched_paths = []
    for field, segment in zip(path.fields, path.segments):
        lookup = lookup_field(document, segment)
        if lookup.is_null:
            return MissingField(field=field, available_keys=tuple(str(key) for key in list(document)[:10]))
        components.append(stringify_key_component(lookup.value))
        raw_values.append(lookup.value)
        matched_paths.append(lookup.matched_path)

    return PartitionKeyValue(
        path=path,
        components=tuple(components),
        raw_values=tuple(raw_values),
        matched_paths=tuple(matched_paths),
    )


def with_canonical_key_fields(document: Dict[str, Any], key: PartitionKeyValue) -> Dict[str, Any]:
    """
    Return the document with key values present under the canonical path names.

    Stores that route by reading the key from the body need this when a segment was
    only found through the case-insensitive fallback. The input is never mutated.
    """
    if key.is_exact:
        return document

    body = dict(document)
    for segment, matched, value in zip(key.path.segments, key.matched_paths, key.raw_values):
        if matched == segment:
            continue
        target = body
        for part in segment[:-1]:
            child = target.get(part)
            child = dict(child) if isinstance(child, Mapping) else {}
            target[part] = child
            target = child
        target[segment[-1]] = value
    return body
