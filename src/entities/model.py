import dataclasses
import enum

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


def _to_plain(obj):  # noqa: ANN001, ANN202, PLR0911
    """Recursively convert models, sets and enums into JSON-friendly values."""
    if isinstance(obj, PydanticBaseModel):
        return {name: _to_plain(getattr(obj, name)) for name in obj.__class__.model_fields}
    if isinstance(obj, (frozenset, set)):
        # Membership sets have no order; sort them so logs and payloads are stable.
        return sorted((_to_plain(item) for item in obj), key=str)
    if isinstance(obj, dict):
        return {_to_plain(key): _to_plain(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_plain(item) for item in obj]
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj


class BaseModel(PydanticBaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def dict(self, *args, **kwargs) -> dict:  # noqa: ANN101, ANN003, ANN002, ARG002
        return _to_plain(self)


def json_default(o: object) -> str | dict | list:
    if isinstance(o, PydanticBaseModel):
        return _to_plain(o)
    elif dataclasses.is_dataclass(o) and not isinstance(o, type):
        return _to_plain(dataclasses.asdict(o))
    elif isinstance(o, (frozenset, set)):
        return _to_plain(o)
    elif isinstance(o, enum.Enum):
        return o.value
    return str(o)
