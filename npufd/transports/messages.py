"""Protobuf message types for the rbln-daemon services API.

Only the messages and fields npufd reads are declared. Devices received from
the daemon are sent back unchanged, so fields not declared here survive the
round trip as unknown fields.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "rblnservices"
SERVICE = f"{PACKAGE}.RBLNServices"

_FIELD = descriptor_pb2.FieldDescriptorProto


def _file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name="npufd/rblnservices.proto",
        package=PACKAGE,
        syntax="proto3",
    )
    proto.message_type.add(name="Empty")

    device = proto.message_type.add(name="Device")
    device.field.add(name="dev_id", number=1, type=_FIELD.TYPE_STRING, label=_FIELD.LABEL_OPTIONAL)

    version_info = proto.message_type.add(name="VersionInfo")
    version_info.field.add(name="drv_version", number=1, type=_FIELD.TYPE_STRING, label=_FIELD.LABEL_OPTIONAL)
    return proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_file_descriptor().SerializeToString())

Empty = message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.Empty"))
Device = message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.Device"))
VersionInfo = message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.VersionInfo"))
