from dataclasses import asdict
from enum import Enum

def serialize(obj) -> dict:
    return asdict(obj, dict_factory=_enum_values)

def _enum_values(items: list[tuple]) -> dict:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in items}
