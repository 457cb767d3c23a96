"""
Binary messages exchanged between peers and the directory over UDP.

Every datagram starts with a one-byte opcode followed by the fields of that
operation, in a fixed order. Integers are big-endian; strings are UTF-8
preceded by their byte length as an int32.

Each operation is its own frozen dataclass, so a message can only carry the
fields that are legal for its opcode.
"""
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Dict, Optional, Tuple, Type

from utils.fileinfo import FileInfo

PACKET_MAX_SIZE = 65507

OPCODE_SIZE_BYTES = 1

# Appended to the nickname of serving peers in USER_LIST
SERVER_IDENTIFIER = "   <SERVER>"

_INT = struct.Struct(">i")
_LONG = struct.Struct(">q")


class Opcode(IntEnum):
    LOGIN = 1
    LOGIN_OK = 2
    REGISTER = 3
    REGISTER_OK = 4
    REGISTER_FAIL = 5
    GET_USERS = 6
    USER_LIST = 7
    SERVE_FILES = 8
    SERVE_FILES_OK = 9
    LOOKUP = 10
    LOOKUP_FOUND = 11
    LOOKUP_NOT_FOUND = 12
    LOGOFF = 13
    QUIT = 14
    STOP_SERVING = 15
    STOP_SERVING_OK = 16
    GET_FILES = 17
    FILE_LIST = 18


def opcode_to_operation(opcode) -> str:
    try:
        return Opcode(opcode).name
    except ValueError:
        return f"UNKNOWN({opcode})"


class _Writer:
    def __init__(self, opcode):
        self.buf = bytearray([int(opcode)])

    def int32(self, value):
        self.buf += _INT.pack(value)

    def int64(self, value):
        self.buf += _LONG.pack(value)

    def string(self, value):
        raw = value.encode("utf-8")
        self.int32(len(raw))
        self.buf += raw

    def files(self, files):
        for f in files:
            self.string(f.name)
            self.string(f.hash)
            self.int64(f.size)


class _Reader:
    def __init__(self, data):
        self.data = data
        self.offset = OPCODE_SIZE_BYTES

    def _take(self, n):
        if n < 0 or self.offset + n > len(self.data):
            raise ValueError("truncated message")
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def int32(self):
        return _INT.unpack(self._take(_INT.size))[0]

    def int64(self):
        return _LONG.unpack(self._take(_LONG.size))[0]

    def string(self):
        return self._take(self.int32()).decode("utf-8")

    def count(self):
        n = self.int32()
        if n < 0:
            raise ValueError(f"negative element count {n}")
        return n

    def files(self, n):
        return tuple(FileInfo(name=self.string(), hash=self.string(), size=self.int64())
                     for _ in range(n))

    def at_end(self):
        return self.offset == len(self.data)


_REGISTRY: Dict[int, Type["DirMessage"]] = {}


def _message(cls):
    _REGISTRY[int(cls.opcode)] = cls
    return dataclass(frozen=True)(cls)


class DirMessage:
    opcode: ClassVar[Opcode]

    def _freeze(self, name):
        object.__setattr__(self, name, tuple(getattr(self, name)))

    def _write(self, w):
        pass

    @classmethod
    def _read(cls, r):
        return cls()

    def encode(self) -> bytes:
        w = _Writer(self.opcode)
        self._write(w)
        return bytes(w.buf)

    @property
    def operation(self):
        return self.opcode.name


# -- operation-only messages --

@_message
class Login(DirMessage):
    opcode = Opcode.LOGIN


@_message
class RegisterOk(DirMessage):
    opcode = Opcode.REGISTER_OK


@_message
class RegisterFail(DirMessage):
    opcode = Opcode.REGISTER_FAIL


@_message
class GetUsers(DirMessage):
    opcode = Opcode.GET_USERS


@_message
class ServeFilesOk(DirMessage):
    opcode = Opcode.SERVE_FILES_OK


@_message
class LookupNotFound(DirMessage):
    opcode = Opcode.LOOKUP_NOT_FOUND


@_message
class Quit(DirMessage):
    opcode = Opcode.QUIT


@_message
class StopServingOk(DirMessage):
    opcode = Opcode.STOP_SERVING_OK


@_message
class GetFiles(DirMessage):
    opcode = Opcode.GET_FILES


# -- messages carrying a nickname --

class _NicknameMessage(DirMessage):
    nickname: str

    def _write(self, w):
        w.string(self.nickname)

    @classmethod
    def _read(cls, r):
        return cls(r.string())


@_message
class Register(_NicknameMessage):
    opcode = Opcode.REGISTER
    nickname: str


@_message
class Lookup(_NicknameMessage):
    opcode = Opcode.LOOKUP
    nickname: str


@_message
class Logoff(_NicknameMessage):
    opcode = Opcode.LOGOFF
    nickname: str


@_message
class StopServing(_NicknameMessage):
    opcode = Opcode.STOP_SERVING
    nickname: str


# -- composite messages --

@_message
class LoginOk(DirMessage):
    opcode = Opcode.LOGIN_OK
    servers: int

    def _write(self, w):
        w.int32(self.servers)

    @classmethod
    def _read(cls, r):
        return cls(r.int32())


@dataclass(frozen=True)
class UserEntry:
    name: str
    serving: bool = False


@_message
class UserList(DirMessage):
    opcode = Opcode.USER_LIST
    users: Tuple[UserEntry, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self._freeze("users")

    def _write(self, w):
        w.int32(len(self.users))
        for user in self.users:
            w.string(user.name + SERVER_IDENTIFIER if user.serving else user.name)

    @classmethod
    def _read(cls, r):
        users = []
        for _ in range(r.count()):
            name = r.string()
            if name.endswith(SERVER_IDENTIFIER):
                users.append(UserEntry(name[:-len(SERVER_IDENTIFIER)], True))
            else:
                users.append(UserEntry(name))
        return cls(tuple(users))


@_message
class ServeFiles(DirMessage):
    opcode = Opcode.SERVE_FILES
    nickname: str
    port: int
    files: Tuple[FileInfo, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self._freeze("files")

    def _write(self, w):
        w.string(self.nickname)
        w.int32(self.port)
        w.int32(len(self.files))
        w.files(self.files)

    @classmethod
    def _read(cls, r):
        nickname = r.string()
        port = r.int32()
        return cls(nickname, port, r.files(r.count()))


@_message
class LookupFound(DirMessage):
    opcode = Opcode.LOOKUP_FOUND
    host: str
    port: int

    @property
    def address(self):
        return (self.host, self.port)

    def _write(self, w):
        w.string(f"{self.host}:{self.port}")

    @classmethod
    def _read(cls, r):
        host, sep, port = r.string().rpartition(":")
        if not sep or not host:
            raise ValueError("LOOKUP_FOUND address is not ip:port")
        return cls(host, int(port))


@_message
class FileList(DirMessage):
    opcode = Opcode.FILE_LIST
    files: Tuple[FileInfo, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self._freeze("files")

    def _write(self, w):
        w.int32(len(self.files))
        w.files(self.files)

    @classmethod
    def _read(cls, r):
        return cls(r.files(r.count()))


def encode(message: DirMessage) -> bytes:
    if not isinstance(message, DirMessage):
        raise TypeError(f"Not a directory message: {message!r}")
    return message.encode()


def decode(data: bytes) -> Optional[DirMessage]:
    """
    Build the message contained in a received datagram.

    Returns None when the opcode is unknown or the payload does not match the
    layout of its operation (truncated fields, trailing bytes, bad UTF-8).
    """
    if not data:
        return None
    cls = _REGISTRY.get(data[0])
    if cls is None:
        return None
    reader = _Reader(bytes(data))
    try:
        message = cls._read(reader)
    except (ValueError, struct.error, UnicodeDecodeError):
        return None
    if not reader.at_end():
        return None
    return message
