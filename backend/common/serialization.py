"""
Serialization Utilities

Converts the domain dataclasses of the practice trainer (candles, annotations,
ground-truth items, validation results) into JSON-compatible dictionaries for
the API layer.
"""

import json
import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from dataclasses import is_dataclass, asdict


class SerializationFormat(Enum):
    """Supported serialization formats."""
    JSON = "json"
    DICT = "dict"


def serialize(
    obj: Any,
    format: SerializationFormat = SerializationFormat.DICT,
    exclude_none: bool = False
) -> Union[Dict[str, Any], List[Any], str, Any]:
    """
    Serialize an object to the specified format.

    Args:
        obj: The object to serialize
        format: Output format (JSON string or Python structure)
        exclude_none: Whether to drop None values from mappings

    Returns:
        Serialized object as a Python structure or JSON string
    """
    if format == SerializationFormat.JSON:
        return json.dumps(serialize(obj, SerializationFormat.DICT, exclude_none), ensure_ascii=False)

    if obj is None or isinstance(obj, (str, bool)):
        return obj

    # numpy scalars expose item(); plain ints/floats pass straight through
    if isinstance(obj, (int, float)):
        return obj
    if hasattr(obj, 'item') and callable(getattr(obj, 'item')) and not hasattr(obj, '__len__'):
        return obj.item()

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple)):
        return [serialize(item, format, exclude_none) for item in obj]

    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if exclude_none and value is None:
                continue
            result[key] = serialize(value, format, exclude_none)
        return result

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict(), format, exclude_none)

    if is_dataclass(obj):
        return serialize(asdict(obj), format, exclude_none)

    return str(obj)


def to_json(obj: Any, pretty: bool = False, exclude_none: bool = False) -> str:
    """Serialize an object to a JSON string."""
    indent = 2 if pretty else None
    dict_data = serialize(obj, SerializationFormat.DICT, exclude_none)
    return json.dumps(dict_data, indent=indent, ensure_ascii=False, default=str)


class SerializableMixin:
    """
    Mixin that provides serialization capabilities to a class.

    Classes using this mixin define:
    1. __serializable_fields__ - attribute names to include in serialization
    2. __optional_fields__ - attribute names that may be absent when deserializing
    3. __field_aliases__ - attribute name -> wire name (camelCase on the wire)
    """

    __serializable_fields__: List[str] = []
    __optional_fields__: List[str] = []
    __field_aliases__: Dict[str, str] = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary keyed by wire names."""
        result = {}
        for field in self.__serializable_fields__:
            if hasattr(self, field):
                key = self.__field_aliases__.get(field, field)
                result[key] = serialize(getattr(self, field), SerializationFormat.DICT)
        return result

    def to_json(self, pretty: bool = False) -> str:
        """Convert the object to a JSON string."""
        return to_json(self.to_dict(), pretty)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SerializableMixin':
        """Create an instance from a dictionary keyed by attribute or wire names."""
        init_kwargs = {}
        for field in cls.__serializable_fields__:
            alias = cls.__field_aliases__.get(field, field)
            if field in data:
                init_kwargs[field] = data[field]
            elif alias in data:
                init_kwargs[field] = data[alias]
            elif field not in cls.__optional_fields__:
                raise ValueError(f"Missing required field: {field}")

        return cls(**init_kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> 'SerializableMixin':
        """Create an instance from a JSON string."""
        return cls.from_dict(json.loads(json_str))
