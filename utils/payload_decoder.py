"""
Ordered decoder for list payloads returned by the backend.

Endpoints answer in several envelope shapes. Each shape is a named strategy;
strategies are tried in priority order and the first that yields a list wins.
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    items: list[T]
    strategy: str


@dataclass(frozen=True)
class Err:
    reason: str


DecodeResult = Ok | Err
Strategy = tuple[str, Callable[[Any], Any]]


def _success_envelope(payload: Any, *path: str) -> Any:
    if not isinstance(payload, dict) or payload.get("success") is not True:
        return None
    value = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


ITEMS_STRATEGIES: list[Strategy] = [
    ("success.data", lambda p: _success_envelope(p, "data")),
    ("bare_array", lambda p: p),
]

EMPLOYEES_STRATEGIES: list[Strategy] = [
    ("success.employees", lambda p: _success_envelope(p, "employees")),
    ("success.data.employees", lambda p: _success_envelope(p, "data", "employees")),
    ("success.data", lambda p: _success_envelope(p, "data")),
    ("bare_array", lambda p: p),
]


def decode_list(payload: Any, strategies: list[Strategy]) -> DecodeResult:
    """Return Ok with the first list any strategy extracts, or Err naming the payload shape."""
    for name, extract in strategies:
        candidate = extract(payload)
        if isinstance(candidate, list):
            return Ok(items=candidate, strategy=name)
    if isinstance(payload, dict) and payload.get("success") is False:
        return Err(reason=str(payload.get("error") or "server reported failure"))
    return Err(reason=f"unrecognized payload shape: {type(payload).__name__}")


def decode_items(payload: Any) -> DecodeResult:
    return decode_list(payload, ITEMS_STRATEGIES)


def decode_employees(payload: Any) -> DecodeResult:
    return decode_list(payload, EMPLOYEES_STRATEGIES)
