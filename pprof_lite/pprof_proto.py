"""Runtime protobuf bindings for the pprof profile schema.

Registers ``perftools.profiles`` (google/pprof ``proto/profile.proto``) in the
default descriptor pool and hands out the generated message classes, so no
``protoc`` step is needed to build the package.
"""

from dataclasses import dataclass
from typing import Any, Type

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FILE_NAME = "perftools/profiles/profile.proto"
_PACKAGE = "perftools.profiles"

_FD = descriptor_pb2.FieldDescriptorProto
_INT64 = _FD.TYPE_INT64
_UINT64 = _FD.TYPE_UINT64
_BOOL = _FD.TYPE_BOOL
_STRING = _FD.TYPE_STRING
_MESSAGE = _FD.TYPE_MESSAGE
_REPEATED = _FD.LABEL_REPEATED
_OPTIONAL = _FD.LABEL_OPTIONAL


@dataclass(frozen=True)
class PprofMessages:
    """Message classes of the pprof schema."""

    Profile: Type[Any]
    ValueType: Type[Any]
    Sample: Type[Any]
    Label: Type[Any]
    Mapping: Type[Any]
    Location: Type[Any]
    Line: Type[Any]
    Function: Type[Any]


_MESSAGES: PprofMessages | None = None


def get_messages() -> PprofMessages:
    """Return the cached pprof message classes, registering the schema on first use."""

    global _MESSAGES
    if _MESSAGES is None:
        _MESSAGES = load_messages(descriptor_pool.Default())
    return _MESSAGES


def load_messages(pool: descriptor_pool.DescriptorPool) -> PprofMessages:
    """Builds the pprof message classes from `pool`, registering the schema if it is missing."""
    try:
        pool.FindMessageTypeByName(f"{_PACKAGE}.Profile")
    except KeyError:
        _register_profile_proto(pool)

    def cls(name):
        return message_factory.GetMessageClass(
            pool.FindMessageTypeByName(f"{_PACKAGE}.{name}")
        )

    return PprofMessages(
        Profile=cls("Profile"),
        ValueType=cls("ValueType"),
        Sample=cls("Sample"),
        Label=cls("Label"),
        Mapping=cls("Mapping"),
        Location=cls("Location"),
        Line=cls("Line"),
        Function=cls("Function"),
    )


def parse_profile(data: bytes):
    """Decodes serialized pprof bytes into a ``Profile`` message."""
    return get_messages().Profile.FromString(data)


def _register_profile_proto(pool: descriptor_pool.DescriptorPool) -> None:
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = _FILE_NAME
    file_proto.package = _PACKAGE
    file_proto.syntax = "proto3"

    profile = file_proto.message_type.add()
    profile.name = "Profile"
    _add_field(profile, "sample_type", 1, _MESSAGE, type_name="ValueType", label=_REPEATED)
    _add_field(profile, "sample", 2, _MESSAGE, type_name="Sample", label=_REPEATED)
    _add_field(profile, "mapping", 3, _MESSAGE, type_name="Mapping", label=_REPEATED)
    _add_field(profile, "location", 4, _MESSAGE, type_name="Location", label=_REPEATED)
    _add_field(profile, "function", 5, _MESSAGE, type_name="Function", label=_REPEATED)
    _add_field(profile, "string_table", 6, _STRING, label=_REPEATED)
    _add_field(profile, "drop_frames", 7, _INT64)
    _add_field(profile, "keep_frames", 8, _INT64)
    _add_field(profile, "time_nanos", 9, _INT64)
    _add_field(profile, "duration_nanos", 10, _INT64)
    _add_field(profile, "period_type", 11, _MESSAGE, type_name="ValueType")
    _add_field(profile, "period", 12, _INT64)
    _add_field(profile, "comment", 13, _INT64, label=_REPEATED)
    _add_field(profile, "default_sample_type", 14, _INT64)

    value_type = file_proto.message_type.add()
    value_type.name = "ValueType"
    _add_field(value_type, "type", 1, _INT64)
    _add_field(value_type, "unit", 2, _INT64)

    sample = file_proto.message_type.add()
    sample.name = "Sample"
    _add_field(sample, "location_id", 1, _UINT64, label=_REPEATED)
    _add_field(sample, "value", 2, _INT64, label=_REPEATED)
    _add_field(sample, "label", 3, _MESSAGE, type_name="Label", label=_REPEATED)

    label = file_proto.message_type.add()
    label.name = "Label"
    _add_field(label, "key", 1, _INT64)
    _add_field(label, "str", 2, _INT64)
    _add_field(label, "num", 3, _INT64)
    _add_field(label, "num_unit", 4, _INT64)

    mapping = file_proto.message_type.add()
    mapping.name = "Mapping"
    _add_field(mapping, "id", 1, _UINT64)
    _add_field(mapping, "memory_start", 2, _UINT64)
    _add_field(mapping, "memory_limit", 3, _UINT64)
    _add_field(mapping, "file_offset", 4, _UINT64)
    _add_field(mapping, "filename", 5, _INT64)
    _add_field(mapping, "build_id", 6, _INT64)
    _add_field(mapping, "has_functions", 7, _BOOL)
    _add_field(mapping, "has_filenames", 8, _BOOL)
    _add_field(mapping, "has_line_numbers", 9, _BOOL)
    _add_field(mapping, "has_inline_frames", 10, _BOOL)

    location = file_proto.message_type.add()
    location.name = "Location"
    _add_field(location, "id", 1, _UINT64)
    _add_field(location, "mapping_id", 2, _UINT64)
    _add_field(location, "address", 3, _UINT64)
    _add_field(location, "line", 4, _MESSAGE, type_name="Line", label=_REPEATED)
    _add_field(location, "is_folded", 5, _BOOL)

    line = file_proto.message_type.add()
    line.name = "Line"
    _add_field(line, "function_id", 1, _UINT64)
    _add_field(line, "line", 2, _INT64)

    function = file_proto.message_type.add()
    function.name = "Function"
    _add_field(function, "id", 1, _UINT64)
    _add_field(function, "name", 2, _INT64)
    _add_field(function, "system_name", 3, _INT64)
    _add_field(function, "filename", 4, _INT64)
    _add_field(function, "start_line", 5, _INT64)

    pool.Add(file_proto)


def _add_field(message, name, number, field_type, *, type_name=None, label=_OPTIONAL):
    field = message.field.add()
    field.name = name
    field.number = number
    field.label = label
    field.type = field_type
    if type_name:
        field.type_name = f".{_PACKAGE}.{type_name}"


__all__ = ["PprofMessages", "get_messages", "load_messages", "parse_profile"]
