"""
Text messages exchanged between peers.

A message is a sequence of "field:value" lines closed by an empty line. The
first line is always the operation:

    operation:file
    data:aGVsbG8=
    seq:0

Field names are case-insensitive when parsing. Each operation only admits its
own fields, in its own order.
"""
from dataclasses import dataclass, field
from typing import ClassVar, Tuple

from protocol.errors import PeerProtocolError
from utils.fileinfo import FileInfo

DELIMITER = ":"
END_LINE = "\n"

FIELDNAME_OPERATION = "operation"
FIELDNAME_FILEHASH = "hash"
FIELDNAME_FILEDATA = "data"
FIELDNAME_FILENAME = "name"
FIELDNAME_FILESIZE = "size"
FIELDNAME_SEQUENCE = "seq"

OP_DOWNLOAD = "download"
OP_FILE = "file"
OP_FILENOTFOUND = "fileNotFound"
OP_QUERYFILES = "getFiles"
OP_SERVEDFILES = "servedFiles"
OP_CLOSE = "close"

SERVED_FILE_FIELDS = (FIELDNAME_FILENAME, FIELDNAME_FILESIZE, FIELDNAME_FILEHASH)

_OPERATIONS = {}


def _operation(cls):
    _OPERATIONS[cls.operation] = cls
    return dataclass(frozen=True)(cls)


class PeerMessage:
    operation: ClassVar[str]

    def fields(self):
        """(field, value) pairs after the operation line."""
        return []

    @classmethod
    def from_fields(cls, fields):
        if fields:
            raise PeerProtocolError(f"'{cls.operation}' takes no fields, got {[f for f, _ in fields]}")
        return cls()


@_operation
class FileNotFound(PeerMessage):
    operation = OP_FILENOTFOUND


@_operation
class GetFiles(PeerMessage):
    operation = OP_QUERYFILES


@_operation
class Close(PeerMessage):
    operation = OP_CLOSE


@_operation
class Download(PeerMessage):
    operation = OP_DOWNLOAD
    hash: str

    def fields(self):
        return [(FIELDNAME_FILEHASH, self.hash)]

    @classmethod
    def from_fields(cls, fields):
        _expect_layout(cls.operation, fields, (FIELDNAME_FILEHASH,))
        return cls(fields[0][1])


@_operation
class FileData(PeerMessage):
    """One chunk of a file; seq counts down and 0 marks the last chunk."""
    operation = OP_FILE
    data: str
    seq: int

    @property
    def last(self):
        return self.seq <= 0

    def fields(self):
        return [(FIELDNAME_FILEDATA, self.data), (FIELDNAME_SEQUENCE, str(self.seq))]

    @classmethod
    def from_fields(cls, fields):
        _expect_layout(cls.operation, fields, (FIELDNAME_FILEDATA, FIELDNAME_SEQUENCE))
        return cls(fields[0][1], _to_int(FIELDNAME_SEQUENCE, fields[1][1]))


@_operation
class ServedFiles(PeerMessage):
    operation = OP_SERVEDFILES
    files: Tuple[FileInfo, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "files", tuple(self.files))

    def fields(self):
        out = []
        for f in self.files:
            out.append((FIELDNAME_FILENAME, f.name))
            out.append((FIELDNAME_FILESIZE, str(f.size)))
            out.append((FIELDNAME_FILEHASH, f.hash))
        return out

    @classmethod
    def from_fields(cls, fields):
        n = len(SERVED_FILE_FIELDS)
        if len(fields) % n:
            raise PeerProtocolError(f"'{cls.operation}' fields must come in (name, size, hash) triples")
        files = []
        for i in range(0, len(fields), n):
            triple = fields[i:i + n]
            _expect_layout(cls.operation, triple, SERVED_FILE_FIELDS)
            files.append(FileInfo(name=triple[0][1], hash=triple[2][1],
                                  size=_to_int(FIELDNAME_FILESIZE, triple[1][1])))
        return cls(tuple(files))


def _expect_layout(operation, fields, expected):
    names = tuple(f for f, _ in fields)
    if names != expected:
        raise PeerProtocolError(f"'{operation}' expects fields {list(expected)}, got {list(names)}")


def _to_int(name, value):
    try:
        return int(value)
    except ValueError:
        raise PeerProtocolError(f"Field '{name}' is not an integer: {value!r}") from None


def render(message: PeerMessage) -> str:
    """Encode a message as field:value lines plus the closing empty line."""
    lines = [(FIELDNAME_OPERATION, message.operation)] + message.fields()
    out = []
    for name, value in lines:
        if END_LINE in value or "\r" in value:
            raise ValueError(f"Field '{name}' cannot contain line breaks")
        out.append(name + DELIMITER + value + END_LINE)
    out.append(END_LINE)
    return "".join(out)


def parse(text: str) -> PeerMessage:
    """
    Build a message from its text form. Raises PeerProtocolError for an
    unknown operation or fields that do not belong to it.
    """
    fields = []
    terminated = False
    # the piece after the last line break is not a complete line
    for line in text.split(END_LINE)[:-1]:
        line = line.rstrip("\r")
        if line == "":
            terminated = True
            break
        index = line.find(DELIMITER)
        if index < 0:
            raise PeerProtocolError(f"Line without '{DELIMITER}': {line!r}")
        # the value is kept exactly, file names may start or end with spaces
        fields.append((line[:index].strip().lower(), line[index + 1:]))
    if not terminated:
        raise PeerProtocolError("Message is not terminated by an empty line")
    if not fields or fields[0][0] != FIELDNAME_OPERATION:
        raise PeerProtocolError("First field must be the operation")
    cls = _OPERATIONS.get(fields[0][1])
    if cls is None:
        raise PeerProtocolError(f"Unknown operation {fields[0][1]!r}")
    return cls.from_fields(fields[1:])
