"""
Canonical CBOR encoding of claims graphs.

Claims graphs are serialized as deterministic CBOR (``cbor2`` in canonical
mode):

- map keys are either a dictionary term code (unsigned integer) or a UTF-8
  literal (text string)
- dates are tag 100 (days since 1970-01-01), datetimes tag 1 (whole UTC
  seconds) or tag 0 (RFC 3339 text in UTC) when they carry microseconds
- floats use the shortest width that keeps their value

Decoding accepts only canonical input: the decoded graph must encode back
to exactly the same bytes.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

import cbor2
from cbor2 import CBORTag

from vc_barcodes.dictionary import DEFAULT_DICTIONARY, Term, TermDictionary, ValueType
from vc_barcodes.errors import MalformedGraph
from vc_barcodes.multibase import multibase_decode, multibase_encode

ClaimsGraph = Mapping[str, Any]

TAG_DATETIME_STRING = 0
TAG_EPOCH_DATETIME = 1
TAG_EPOCH_DATE = 100
# Only used in dictionary-substituted claims, never in canonical bytes
TAG_VALUE_CODE = 176

MAX_DEPTH = 32

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
EPOCH_DATE = date(1970, 1, 1)
_SECOND = timedelta(seconds=1)

_DECODE_ERRORS = (cbor2.CBORDecodeError, ValueError, OverflowError, RecursionError)


def value_type_of(value: Any) -> ValueType | None:
    """Get the value type of a claim value, or None for null.

    Raises:
        MalformedGraph: If the value has no canonical representation.
    """
    if value is None:
        return None
    # bool is a subclass of int, datetime of date
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, int):
        return ValueType.INTEGER
    if isinstance(value, float):
        return ValueType.FLOAT
    if isinstance(value, str):
        return ValueType.STRING
    if isinstance(value, (bytes, bytearray)):
        return ValueType.BYTES
    if isinstance(value, datetime):
        return ValueType.DATETIME
    if isinstance(value, date):
        return ValueType.DATE
    if isinstance(value, (list, tuple)):
        return ValueType.LIST
    if isinstance(value, Mapping):
        return ValueType.MAP
    raise MalformedGraph(f"Unsupported claim value type: {type(value).__name__}")


class CanonicalEncoder:
    """Deterministic mapping between claims graphs and canonical bytes."""

    def __init__(self, dictionary: TermDictionary = DEFAULT_DICTIONARY) -> None:
        self.dictionary = dictionary

    # -- encoding ---------------------------------------------------------

    def encode(self, graph: ClaimsGraph, substitute_values: bool = False) -> bytes:
        """Encode a claims graph into canonical bytes.

        Args:
            graph: Mapping of claim names to typed values.
            substitute_values: Replace strings found in the dictionary's
                value table with tagged value codes. The result is the
                dictionary-substituted form, not canonical bytes.

        Returns:
            The CBOR encoding.

        Raises:
            MalformedGraph: If a key or value cannot be represented, or a
                value contradicts the type its dictionary term declares.
        """
        if not isinstance(graph, Mapping):
            raise MalformedGraph("Claims graph must be a mapping")
        item = self._map_item(graph, 0, substitute_values)
        try:
            return cbor2.dumps(item, canonical=True)
        except (cbor2.CBOREncodeError, ValueError) as e:
            raise MalformedGraph(f"Claims graph cannot be encoded: {e}") from e

    def _map_item(
        self, mapping: Mapping[Any, Any], depth: int, substitute_values: bool
    ) -> dict[Any, Any]:
        if depth > MAX_DEPTH:
            raise MalformedGraph(f"Claims graph nests deeper than {MAX_DEPTH}")
        item: dict[Any, Any] = {}
        for key, value in mapping.items():
            if not isinstance(key, str):
                raise MalformedGraph(f"Claim names must be strings, got {key!r}")
            code = self.dictionary.term_code(key)
            if code is not None:
                self._check_term_type(self.dictionary.terms[code], value)
                item[code] = self._value_item(value, depth, substitute_values)
            else:
                item[key] = self._value_item(value, depth, substitute_values)
        return item

    def _value_item(self, value: Any, depth: int, substitute_values: bool) -> Any:
        if depth > MAX_DEPTH:
            raise MalformedGraph(f"Claims graph nests deeper than {MAX_DEPTH}")

        kind = value_type_of(value)
        if kind is ValueType.INTEGER:
            if not INT64_MIN <= value <= INT64_MAX:
                raise MalformedGraph(f"Integer out of 64-bit range: {value}")
            return int(value)
        if kind is ValueType.FLOAT:
            if math.isnan(value):
                raise MalformedGraph("NaN has no canonical representation")
            # Normalize -0.0 so that equal graphs encode equally
            return value + 0.0 if value == 0 else value
        if kind is ValueType.STRING:
            code = self.dictionary.value_code(value) if substitute_values else None
            return value if code is None else CBORTag(TAG_VALUE_CODE, code)
        if kind is ValueType.BYTES:
            return bytes(value)
        if kind is ValueType.DATETIME:
            return _datetime_item(value)
        if kind is ValueType.DATE:
            return CBORTag(TAG_EPOCH_DATE, (value - EPOCH_DATE).days)
        if kind is ValueType.LIST:
            return [self._value_item(item, depth + 1, substitute_values) for item in value]
        if kind is ValueType.MAP:
            return self._map_item(value, depth + 1, substitute_values)
        return value

    def _check_term_type(self, term: Term, value: Any) -> None:
        if term.value_type is ValueType.ANY:
            return
        if value_type_of(value) is not term.value_type:
            raise MalformedGraph(
                f"Claim {term.name!r} must hold a {term.value_type.value} value"
            )

    # -- decoding ---------------------------------------------------------

    def decode(self, data: bytes) -> dict[str, Any]:
        """Decode canonical bytes back into a claims graph.

        Raises:
            MalformedGraph: If the bytes are not the canonical encoding of
                a claims graph under this dictionary.
        """
        data = bytes(data)
        graph = self._load(data, value_codes=False)
        # Catches key order, duplicate keys, trailing bytes and
        # non-preferred integer, float or length encodings
        if self.encode(graph) != data:
            raise MalformedGraph("Claims graph is not canonically encoded")
        return graph

    def decode_substituted(self, data: bytes) -> dict[str, Any]:
        """Decode dictionary-substituted CBOR into a claims graph.

        Raises:
            MalformedGraph: If the bytes are not a claims graph, or hold an
                unknown term or value code.
        """
        return self._load(bytes(data), value_codes=True)

    def _load(self, data: bytes, value_codes: bool) -> dict[str, Any]:
        try:
            item = cbor2.loads(data)
        except _DECODE_ERRORS as e:
            raise MalformedGraph(f"Invalid CBOR claims: {e}") from e
        if not isinstance(item, dict):
            raise MalformedGraph("Canonical bytes must hold a map")
        return self._graph_map(item, 0, value_codes)

    def _graph_map(self, item: dict[Any, Any], depth: int, value_codes: bool) -> dict[str, Any]:
        if depth > MAX_DEPTH:
            raise MalformedGraph(f"Claims graph nests deeper than {MAX_DEPTH}")
        result: dict[str, Any] = {}
        for key, value in item.items():
            if isinstance(key, int) and not isinstance(key, bool):
                term = self.dictionary.term(key)
                if term is None:
                    raise MalformedGraph(f"Unknown term code {key}")
                graph_value = self._graph_value(value, depth, value_codes)
                self._check_term_type(term, graph_value)
                result[term.name] = graph_value
            elif isinstance(key, str):
                if self.dictionary.term_code(key) is not None:
                    raise MalformedGraph(f"Literal key {key!r} shadows a dictionary term")
                result[key] = self._graph_value(value, depth, value_codes)
            else:
                raise MalformedGraph(f"Unsupported map key {key!r}")
        return result

    def _graph_value(self, value: Any, depth: int, value_codes: bool) -> Any:
        if depth > MAX_DEPTH:
            raise MalformedGraph(f"Claims graph nests deeper than {MAX_DEPTH}")
        if isinstance(value, CBORTag):
            return self._graph_tag(value, value_codes)
        if isinstance(value, dict):
            return self._graph_map(value, depth + 1, value_codes)
        if isinstance(value, list):
            return [self._graph_value(item, depth + 1, value_codes) for item in value]
        if value is None or isinstance(value, (bool, int, float, str, bytes, date)):
            return value
        raise MalformedGraph(f"Unsupported CBOR item: {type(value).__name__}")

    def _graph_tag(self, tag: CBORTag, value_codes: bool) -> Any:
        # Tags cbor2 leaves undecoded
        if tag.tag == TAG_EPOCH_DATE and type(tag.value) is int:
            try:
                return EPOCH_DATE + timedelta(days=tag.value)
            except OverflowError:
                raise MalformedGraph(f"Date out of range: {tag.value}") from None
        if value_codes and tag.tag == TAG_VALUE_CODE and type(tag.value) is int:
            value = self.dictionary.value(tag.value)
            if value is None:
                raise MalformedGraph(f"Unknown value code {tag.value}")
            return value
        raise MalformedGraph(f"Unknown CBOR tag {tag.tag}")


def _datetime_item(value: datetime) -> CBORTag:
    if value.tzinfo is None or value.utcoffset() is None:
        raise MalformedGraph(f"Datetime claims must be timezone-aware: {value}")
    try:
        value = value.astimezone(timezone.utc)
    except OverflowError:
        raise MalformedGraph(f"Datetime out of range: {value}") from None
    if value.microsecond:
        return CBORTag(TAG_DATETIME_STRING, value.isoformat().replace("+00:00", "Z"))
    return CBORTag(TAG_EPOCH_DATETIME, (value - EPOCH) // _SECOND)


# -- JSON conversion ------------------------------------------------------


def claims_from_json(
    document: Mapping[str, Any],
    dictionary: TermDictionary = DEFAULT_DICTIONARY,
) -> dict[str, Any]:
    """Convert a parsed JSON credential into a typed claims graph.

    Strings held by date, datetime and bytes typed terms are parsed
    (ISO-8601 and multibase base64url respectively); everything else is
    taken as is.

    Raises:
        MalformedGraph: If a typed term holds an unparseable string.
    """
    return _from_json_map(document, dictionary)


def _from_json_map(document: Mapping[str, Any], dictionary: TermDictionary) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in document.items():
        code = dictionary.term_code(key)
        value_type = dictionary.terms[code].value_type if code is not None else ValueType.ANY
        result[key] = _from_json_value(key, value, value_type, dictionary)
    return result


def _from_json_value(
    key: str, value: Any, value_type: ValueType, dictionary: TermDictionary
) -> Any:
    if isinstance(value, Mapping):
        return _from_json_map(value, dictionary)
    if isinstance(value, list):
        return [_from_json_value(key, item, ValueType.ANY, dictionary) for item in value]
    if not isinstance(value, str):
        return value
    try:
        if value_type == ValueType.DATETIME:
            return datetime.fromisoformat(_normalize_zulu(value))
        if value_type == ValueType.DATE:
            return date.fromisoformat(value)
        if value_type == ValueType.BYTES:
            return multibase_decode(value)
    except ValueError as e:
        raise MalformedGraph(f"Invalid {value_type.value} value for {key!r}: {e}") from e
    return value


def _normalize_zulu(value: str) -> str:
    if value.endswith("Z"):
        return value[:-1] + "+00:00"
    return value


def claims_to_json(graph: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a claims graph into JSON-compatible values."""
    return {key: _to_json_value(value) for key, value in graph.items()}


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return claims_to_json(value)
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    if isinstance(value, datetime):
        if value.utcoffset() == timedelta(0):
            return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return multibase_encode(bytes(value))
    return value
