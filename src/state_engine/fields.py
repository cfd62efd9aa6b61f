from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

TRUE_TOKENS = {"1", "true"}
FALSE_TOKENS = {"0", "false"}

RawInput = Mapping[str, Any]
Decoder = Callable[[str], Any]
Encoder = Callable[[Any], "str | None"]


class SchemaError(ValueError):
    """Raised when a field, view or constraint declaration is inconsistent."""


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality: sequences element-wise, booleans never equal to numbers."""
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (list, tuple)) or isinstance(right, (list, tuple)):
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def copy_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [copy_value(item) for item in value]
    return value


def decode_bool(raw: str) -> bool:
    token = str(raw).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    raise ValueError(f"invalid boolean value '{raw}'")


def encode_bool(value: Any) -> str | None:
    if value is None:
        return None
    return "1" if value else "0"


def decode_inverted_bool(raw: str) -> bool:
    return not decode_bool(raw)


def encode_inverted_bool(value: Any) -> str | None:
    if value is None:
        return None
    return encode_bool(not value)


def split_array(raw: Any) -> list[str]:
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    values: list[str] = []
    for item in items:
        values.extend(part.strip() for part in str(item).split(",") if part.strip())
    return values


def decode_choice(*choices: str) -> Decoder:
    allowed = tuple(choices)

    def _decode(raw: str) -> str:
        if raw not in allowed:
            raise ValueError(f"'{raw}' is not one of {', '.join(allowed)}")
        return raw

    return _decode


@dataclass(slots=True, frozen=True)
class LegacyKey:
    key: str
    decode: Decoder | None = None


@dataclass(slots=True, frozen=True)
class Field:
    name: str
    key: str
    decode: Decoder | None = None
    encode: Encoder | None = None
    is_array: bool = False
    legacy_keys: tuple[LegacyKey, ...] = ()

    @classmethod
    def boolean(cls, name: str, key: str, legacy_keys: Iterable[str | LegacyKey] = ()) -> Field:
        return cls(
            name=name,
            key=key,
            decode=decode_bool,
            encode=encode_bool,
            legacy_keys=_legacy(legacy_keys),
        )

    @classmethod
    def array(cls, name: str, key: str) -> Field:
        return cls(name=name, key=key, is_array=True)

    def decode_raw(self, raw: Any, decoder: Decoder | None = None) -> Any:
        decode = decoder or self.decode
        if self.is_array:
            values = split_array(raw)
            if decode is None:
                return values
            return [decode(value) for value in values]
        scalar = raw[0] if isinstance(raw, (list, tuple)) else raw
        if scalar is None:
            return None
        scalar = str(scalar)
        if decode is None:
            return scalar
        return decode(scalar)

    def encode_value(self, value: Any) -> str | None:
        if value is None:
            return None
        if self.is_array:
            values = value if isinstance(value, (list, tuple)) else [value]
            items = [self.encode(item) if self.encode else item for item in values]
            return ",".join(str(item) for item in items if item is not None)
        encoded = self.encode(value) if self.encode else value
        if encoded is None:
            return None
        return str(encoded)


def _legacy(keys: Iterable[str | LegacyKey]) -> tuple[LegacyKey, ...]:
    return tuple(key if isinstance(key, LegacyKey) else LegacyKey(key=key) for key in keys)


@dataclass(slots=True)
class FieldRegistry:
    fields: tuple[Field, ...]
    _by_name: dict[str, Field] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_name = {}
        seen_keys: dict[str, str] = {}
        for entry in self.fields:
            if entry.name in self._by_name:
                raise SchemaError(f"duplicate field: {entry.name}")
            for key in (entry.key, *(legacy.key for legacy in entry.legacy_keys)):
                if key in seen_keys:
                    raise SchemaError(f"external key '{key}' used by both {seen_keys[key]} and {entry.name}")
                seen_keys[key] = entry.name
            self._by_name[entry.name] = entry

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Field | None:
        return self._by_name.get(name)

    def key_for(self, name: str) -> str:
        entry = self._by_name.get(name)
        return entry.key if entry is not None else name

    @property
    def keys(self) -> set[str]:
        return {entry.key for entry in self.fields}


def _present(raw_input: RawInput, key: str) -> Any:
    value = raw_input.get(key)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = [item for item in value if item is not None and str(item) != ""]
        return value or None
    if str(value) == "":
        return None
    return value


def decode_fields(raw_input: RawInput, registry: FieldRegistry) -> tuple[dict[str, Any], list[str]]:
    """Decode every registered field present in the raw input.

    Returns the decoded values keyed by field name and a list of warnings for
    inputs that could not be decoded. A malformed field is skipped so it falls
    back to its default; the other fields are unaffected.
    """
    decoded: dict[str, Any] = {}
    warnings: list[str] = []

    for entry in registry:
        candidates = [(entry.key, None), *((legacy.key, legacy.decode) for legacy in entry.legacy_keys)]
        for key, decoder in candidates:
            raw = _present(raw_input, key)
            if raw is None:
                continue
            try:
                value = entry.decode_raw(raw, decoder)
            except Exception as exc:
                message = f"Skipping malformed input {key}={raw!r}: {exc}"
                warnings.append(message)
                logger.warning(
                    "field_decode_failed",
                    extra={"field": entry.name, "key": key, "raw": raw, "error": str(exc)},
                )
                break
            if value is not None:
                decoded[entry.name] = value
            break

    return decoded, warnings
