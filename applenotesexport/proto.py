"""Protobuf schema of the note payload stored in ZICNOTEDATA.ZDATA.

The schema is described declaratively and compiled into message classes
once per process, so no protoc step is needed.
"""

from functools import lru_cache

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "notes"

_F = descriptor_pb2.FieldDescriptorProto
OPTIONAL = _F.LABEL_OPTIONAL
REPEATED = _F.LABEL_REPEATED

# message name -> [(field name, number, type, label, message type, default)]
DESCRIPTOR = {
    "Color": [
        ("red", 1, _F.TYPE_FLOAT, OPTIONAL, None, None),
        ("green", 2, _F.TYPE_FLOAT, OPTIONAL, None, None),
        ("blue", 3, _F.TYPE_FLOAT, OPTIONAL, None, None),
        ("alpha", 4, _F.TYPE_FLOAT, OPTIONAL, None, None),
    ],
    "AttachmentInfo": [
        ("attachment_identifier", 1, _F.TYPE_STRING, OPTIONAL, None, None),
        ("type_uti", 2, _F.TYPE_STRING, OPTIONAL, None, None),
    ],
    "Font": [
        ("font_name", 1, _F.TYPE_STRING, OPTIONAL, None, None),
        ("point_size", 2, _F.TYPE_FLOAT, OPTIONAL, None, None),
        ("font_hints", 3, _F.TYPE_INT32, OPTIONAL, None, None),
    ],
    "Checklist": [
        ("uuid", 1, _F.TYPE_BYTES, OPTIONAL, None, None),
        ("done", 2, _F.TYPE_INT32, OPTIONAL, None, None),
    ],
    "ParagraphStyle": [
        ("style_type", 1, _F.TYPE_INT32, OPTIONAL, None, "-1"),
        ("alignment", 2, _F.TYPE_INT32, OPTIONAL, None, None),
        ("indent_amount", 4, _F.TYPE_INT32, OPTIONAL, None, None),
        ("checklist", 5, _F.TYPE_MESSAGE, OPTIONAL, "Checklist", None),
        ("block_quote", 8, _F.TYPE_INT32, OPTIONAL, None, None),
    ],
    "AttributeRun": [
        ("length", 1, _F.TYPE_INT32, OPTIONAL, None, None),
        ("paragraph_style", 2, _F.TYPE_MESSAGE, OPTIONAL, "ParagraphStyle", None),
        ("font", 3, _F.TYPE_MESSAGE, OPTIONAL, "Font", None),
        ("font_weight", 5, _F.TYPE_INT32, OPTIONAL, None, None),
        ("underlined", 6, _F.TYPE_INT32, OPTIONAL, None, None),
        ("strikethrough", 7, _F.TYPE_INT32, OPTIONAL, None, None),
        ("superscript", 8, _F.TYPE_INT32, OPTIONAL, None, None),
        ("link", 9, _F.TYPE_STRING, OPTIONAL, None, None),
        ("color", 10, _F.TYPE_MESSAGE, OPTIONAL, "Color", None),
        ("attachment_info", 12, _F.TYPE_MESSAGE, OPTIONAL, "AttachmentInfo", None),
    ],
    "Note": [
        ("note_text", 2, _F.TYPE_STRING, OPTIONAL, None, None),
        ("attribute_run", 5, _F.TYPE_MESSAGE, REPEATED, "AttributeRun", None),
    ],
    "Document": [
        ("version", 2, _F.TYPE_INT32, OPTIONAL, None, None),
        ("note", 3, _F.TYPE_MESSAGE, OPTIONAL, "Note", None),
    ],
    "NoteStoreProto": [
        ("document", 2, _F.TYPE_MESSAGE, OPTIONAL, "Document", None),
    ],
}


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Build the FileDescriptorProto for DESCRIPTOR."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="notestore.proto",
        package=PACKAGE,
        syntax="proto2",
    )
    for message_name, fields in DESCRIPTOR.items():
        message = file_proto.message_type.add(name=message_name)
        for name, number, field_type, label, type_name, default in fields:
            field = message.field.add(name=name, number=number, type=field_type, label=label)
            if type_name:
                field.type_name = f".{PACKAGE}.{type_name}"
            if default is not None:
                field.default_value = default
    return file_proto


@lru_cache(maxsize=None)
def _pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(build_file_descriptor().SerializeToString())
    return pool


@lru_cache(maxsize=None)
def lookup_type(full_name: str):
    """Return the message class for a fully qualified name like ``notes.Note``.

    Raises KeyError for unknown names.
    """
    descriptor = _pool().FindMessageTypeByName(full_name)
    return message_factory.GetMessageClass(descriptor)
