# File: placement_verifier/api/unstructured.py
"""
Typed access into loosely-typed nested documents (Kubernetes objects,
parsed YAML).

`lookup()` walks a key path and returns a tagged result instead of raising on
shape mismatch, so callers decide which outcomes are failures.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union


@dataclass(frozen=True)
class Found:
    value: Any


@dataclass(frozen=True)
class MissingKey:
    path: str
    key: str


@dataclass(frozen=True)
class WrongType:
    path: str
    expected: str
    actual: str


LookupResult = Union[Found, MissingKey, WrongType]


def _dotted(keys: Sequence[str]) -> str:
    return ".".join(keys)


def lookup(document: Any, *keys: str, expected_type: type = object) -> LookupResult:
    """
    Read `keys` out of `document`.

    Every intermediate level must be a mapping. The leaf must be an instance
    of `expected_type`. A present key holding `None` counts as missing.
    """
    current = document
    for depth, key in enumerate(keys):
        parent_path = _dotted(keys[:depth]) or "<root>"
        if not isinstance(current, Mapping):
            return WrongType(
                path=parent_path, expected="mapping", actual=type(current).__name__
            )
        if current.get(key) is None:
            return MissingKey(path=_dotted(keys[: depth + 1]), key=key)
        current = current[key]

    if not isinstance(current, expected_type):
        return WrongType(
            path=_dotted(keys),
            expected=expected_type.__name__,
            actual=type(current).__name__,
        )
    return Found(current)


def describe(result: LookupResult) -> str:
    """Human-readable description of a non-Found result."""
    if isinstance(result, MissingKey):
        return f"missing key '{result.key}' at {result.path}"
    if isinstance(result, WrongType):
        return f"expected {result.expected} at {result.path}, got {result.actual}"
    return "found"
