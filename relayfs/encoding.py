"""
JSON serialization of the values that cross the wire between relay and client.

Plain JSON cannot represent everything a file system call returns, so a few types are
wrapped in marker objects:

* Bytes become {"__bytes__": "<base64>"}
    * File contents are binary, and base64 keeps them JSON safe.
* Registered dataclasses become {"__data__": {"type": ..., "data": ...}}
    * This is how Attributes (stat results) and DirEntry objects are transported.
* Exceptions become {"__exception__": {"name": ..., "args": ..., ...}}
    * Builtin exceptions like FileNotFoundError are recreated faithfully on the
    client side, as opposed to wrapping them all into a generic exception type.

Anything else that JSON supports natively is passed through as is.
"""

import base64
import builtins
from dataclasses import is_dataclass
import json
import typing
from typing import Any, Dict, List


class Encoding:
    """Serialization and deserialization of wire values using JSON."""

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """
        Register all dataclass types used within the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List and Optional.
        """
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def dumps(self, obj: Any) -> str:
        """Serialize an object to a JSON string."""
        return json.dumps(obj, default=self.serialize_obj)

    def loads(self, data: typing.Union[str, bytes]) -> Any:
        """
        Deserialize an object from a JSON string.

        Malformed JSON and malformed markers raise ValueError (or TypeError for
        dataclasses that can't be reconstructed).
        """
        return json.loads(data, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn bytes, a dataclass, or an exception into a JSON friendly value."""
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return self.serialize_bytes(bytes(obj))
        elif isinstance(obj, BaseException):
            return self.serialize_exception(obj)
        elif obj.__class__.__qualname__ in self._dataclasses:
            return self._serialize_dataclass(obj)
        elif isinstance(obj, (tuple, set, frozenset)):
            return list(obj)
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct bytes, a dataclass, or an exception from its JSON form."""
        if isinstance(obj, dict) and "__bytes__" in obj:
            return self.deserialize_bytes(obj)
        elif isinstance(obj, dict) and "__exception__" in obj:
            return self.deserialize_exception(obj)
        elif isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    #
    # Bytes serialization
    #

    @staticmethod
    def serialize_bytes(data: bytes) -> Dict:
        """Turn a byte string into a JSON friendly dict."""
        return {"__bytes__": base64.b64encode(data).decode("ascii")}

    @staticmethod
    def deserialize_bytes(obj: Dict) -> bytes:
        """Reconstruct a byte string from its serialized representation."""
        try:
            return base64.b64decode(obj["__bytes__"], validate=True)
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid byte payload: {e}")

    #
    # Exception serialization
    #

    @staticmethod
    def serialize_exception(exc: BaseException) -> Dict:
        """
        Turn an exception into a JSON friendly dict.

        OS errors additionally carry their errno, strerror and filenames so that they
        can be recreated with all of their attributes intact.
        """
        info: Dict[str, Any] = {
            "name": exc.__class__.__qualname__,
            "args": [_jsonable(arg) for arg in exc.args],
        }

        if isinstance(exc, OSError):
            info["errno"] = exc.errno
            info["strerror"] = exc.strerror
            info["filename"] = _jsonable(exc.filename)
            info["filename2"] = _jsonable(exc.filename2)

        return {"__exception__": info}

    @staticmethod
    def deserialize_exception(obj: Dict) -> BaseException:
        """
        Reconstruct an exception from its serialized representation.

        If it was a builtin exception (like FileNotFoundError) then it is reconstructed
        faithfully, otherwise as a generic Exception with the original arguments.
        """
        info = obj["__exception__"]

        if not isinstance(info, dict) or not isinstance(info.get("name"), str):
            raise ValueError("invalid exception payload")

        name = info["name"]
        args = info.get("args") or []

        if not isinstance(args, list):
            raise ValueError("invalid exception payload: args must be a list")

        builtin_exc = getattr(builtins, name, None)

        if not isinstance(builtin_exc, type):
            return Exception(*args)

        if not issubclass(builtin_exc, Exception):
            return Exception(*args)

        if issubclass(builtin_exc, OSError) and info.get("errno") is not None:
            os_args = [info["errno"], info.get("strerror")]

            if info.get("filename") is not None:
                os_args.append(info["filename"])

                if info.get("filename2") is not None:
                    os_args.extend([None, info["filename2"]])

            args = os_args

        try:
            return builtin_exc(*args)
        except Exception as e:
            raise ValueError(f"invalid exception payload for {name}: {e}")

    #
    # Data class serialization
    #

    @classmethod
    def _serialize_dataclass(cls, obj: Any) -> Dict:
        """Turn a dataclass into a JSON friendly dict."""
        return {"__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}}

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """
        Reconstruct a dataclass from its serialized representation.

        Only previously registered dataclass types can be deserialized.
        """
        info = obj["__data__"]

        if (
            not isinstance(info, dict)
            or not isinstance(info.get("type"), str)
            or not isinstance(info.get("data"), dict)
        ):
            raise ValueError("invalid dataclass payload")

        type_name = info["type"]
        type_data = info["data"]

        if type_name in self._dataclasses:
            try:
                return self._dataclasses[type_name](**type_data)
            except Exception as e:
                raise TypeError(f"failed to deserialize {type_name}: {e}")
        else:
            raise TypeError(f"unknown dataclass '{type_name}'")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """
        Find all dataclass types used with the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List and Optional.
        """
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while len(candidates) > 0:
            candidate = candidates.pop()

            if candidate not in explored:
                explored.add(candidate)
            else:
                continue

            if is_dataclass(candidate):
                dataclasses.add(candidate)

                # Discover member types of dataclass
                for subtype in typing.get_type_hints(candidate).values():
                    candidates.add(subtype)
            elif hasattr(candidate, "__origin__"):
                # Discover types nested in constructs like Union[T] and List[T]
                for subtype in getattr(candidate, "__args__"):
                    candidates.add(subtype)

        return list(dataclasses)


def _jsonable(value: Any) -> Any:
    """Make exception arguments like byte paths representable in JSON."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    elif value is None or isinstance(value, (str, int, float, bool)):
        return value
    else:
        return str(value)
