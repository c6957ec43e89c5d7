import os, sys, re, struct, json, traceback
from collections import namedtuple, defaultdict
from io import BytesIO, StringIO

def eprint(*args, **kwargs):
    """like print, but prints to stderr"""
    print(*args, file=sys.stderr, **kwargs)

def debug(*msg):
    """Print a message to stderr only if debugging is enabled"""
    if debug.enabled:
        eprint(*msg)

debug.enabled = os.getenv("Z8_DEBUG", "") not in ("", "0")

class CheckError(Exception):
    """An error raised by throw/check - reported to the user without a traceback"""

def throw(msg):
    """Raise a CheckError with the given message"""
    raise CheckError(msg)

def check(cond, msg):
    """Raise a CheckError with the given message if 'cond' is false"""
    if not cond:
        throw(msg)

def fail(msg=None):
    """Fail, optionally with message (for internal errors)"""
    assert False, msg

def e(value):
    """Return if 'value' is not None (for my sanity)"""
    return value is not None

def default(value, defval):
    """Return 'defval' if 'value' is None"""
    return value if e(value) else defval

def byte(x):
    """Return bytes from a single byte"""
    return bytes((x,))

def context_manager(method_name = "close"):
    """Adds __enter__/__exit__ support for a class, using a specified method_name as the 'close' method"""

    def decorator(cls):
        method = getattr(cls, method_name)

        def __enter__(m):
            return m
        def __exit__(m, t, v, s):
            method(m)

        cls.__enter__ = __enter__
        cls.__exit__ = __exit__
        return cls
    return decorator

def _is_class_member(name, value):
    return name.startswith("_") or callable(value) or isinstance(value, (property, staticmethod, classmethod))

class EnumMetaclass(type):
    def __new__(meta, cls_name, cls_bases, cls_dict):
        if not cls_bases or Enum not in cls_bases:
            return super().__new__(meta, cls_name, cls_bases, cls_dict)

        # 'name = ...' gives a value equal to the name
        values = {}
        enum_dict = {}
        for k, v in cls_dict.items():
            if _is_class_member(k, v):
                enum_dict[k] = v
            else:
                values[k] = k if v is ... else v

        def __str__(m):
            return m._names[m.value]

        def __repr__(m):
            return "%s.%s" % (cls_name, m._names[m.value])

        enum_dict.setdefault("__str__", __str__)
        enum_dict.setdefault("__repr__", __repr__)
        enum_dict["__slots__"] = ("value",)
        enum_dict["_values"] = values
        enum_dict["_names"] = {v: k for k, v in values.items()}

        cls_bases = tuple(base for base in cls_bases if base is not Enum)
        enum_class = super().__new__(meta, cls_name, cls_bases, enum_dict)

        instances = {}
        for k, v in values.items():
            inst = object.__new__(enum_class)
            inst.value = v
            instances[v] = inst
            type.__setattr__(enum_class, k, inst)
        type.__setattr__(enum_class, "_instances", instances)
        return enum_class

    def __call__(cls, value):
        if not hasattr(cls, "_instances"):
            return super().__call__(value)
        if value in cls._instances:
            return cls._instances[value]
        if value in cls._values:
            return cls._instances[cls._values[value]]
        raise ValueError("%s not value of %s" % (value, cls.__name__))

    def __iter__(cls):
        return iter(cls._instances.values())

class Enum(metaclass=EnumMetaclass):
    """If a class has Enum as a direct baseclass, it's transformed into an enum.
    Each plain attribute becomes a member; 'name = ...' gives the member a value equal to its name.
    Members are singletons, so they compare and hash by identity."""

class TupleMetaclass(type):
    def __new__(meta, cls_name, cls_bases, cls_dict):
        if not cls_bases or Tuple not in cls_bases:
            return super().__new__(meta, cls_name, cls_bases, cls_dict)

        # 'a = b = ...' declares fields without defaults, 'c = 1' a field with a default
        fields, defaults = [], []
        tuple_dict = {}
        for k, v in cls_dict.items():
            if _is_class_member(k, v):
                tuple_dict[k] = v
            else:
                fields.append(k)
                if v is not ...:
                    defaults.append(v)
                elif defaults:
                    raise Exception(f"Tuple field {k} without default follows fields with defaults")

        base = namedtuple(cls_name, fields, defaults=defaults)
        tuple_dict["__slots__"] = ()
        cls_bases = (base,) + tuple(b for b in cls_bases if b is not Tuple)
        return super().__new__(meta, cls_name, cls_bases, tuple_dict)

class Tuple(metaclass=TupleMetaclass):
    """If a class has Tuple as a direct baseclass, it's transformed into a named tuple.
    Plain attributes become the fields (in order), with '...' meaning 'no default'."""

class Point(Tuple):
    """An (x,y) tuple representing a 2d point"""
    x = y = ...

class Rect(Tuple):
    """An (x,y,w,h) tuple representing a 2d rectangle"""
    x = y = w = h = ...

class MultidimArray(object):
    """A multi-dimensional array of a fixed size"""
    def __init__(m, size, defval=None):
        m.dim = len(size)
        m.size = tuple(size)
        count = 1
        for dim_size in size:
            count *= dim_size
        m.array = [defval] * count

    def _getindex(m, indices):
        # the first index varies fastest, so (x, y) maps to y * width + x
        array_index = 0
        for index, size in zip(reversed(indices), reversed(m.size)):
            if not (0 <= index < size):
                raise IndexError(indices)
            array_index = array_index * size + index
        return array_index

    def __getitem__(m, indices):
        return m.array[m._getindex(indices)]

    def __setitem__(m, indices, value):
        m.array[m._getindex(indices)] = value

    def __eq__(m, other):
        return isinstance(other, MultidimArray) and m.size == other.size and m.array == other.array

    def __len__(m):
        return len(m.array)

def u8(n):
    return n & 0xff
def u16(n):
    return n & 0xffff
def u32(n):
    return n & 0xffffffff

u8.struct_le = u8.struct_be = struct.Struct("=B")
u16.struct_le, u16.struct_be = struct.Struct("<H"), struct.Struct(">H")
u32.struct_le, u32.struct_be = struct.Struct("<I"), struct.Struct(">I")

@context_manager("close")
class BinaryBase(object):
    def close(m):
        m.f.close()

    def len(m):
        old_pos = m.pos()
        m.f.seek(0, 2)
        len = m.pos()
        m.setpos(old_pos)
        return len

    def pos(m):
        return m.f.tell()
    def setpos(m, val):
        m.f.seek(val, 0)
    def addpos(m, val):
        m.f.seek(val, 1)
    def subpos(m, val):
        m.addpos(-val)

    def flush(m):
        m.f.flush()

class BinaryReader(BinaryBase):
    """Wraps a stream, allowing to easily read binary data from it"""

    def __init__(m, f, big_end = False):
        m.f = f
        m.big_end = big_end

    def _unpack(m, type, size):
        data = m.f.read(size)
        if len(data) != size:
            raise struct.error("end of file")
        return (type.struct_be if m.big_end else type.struct_le).unpack(data)[0]

    def u8(m):
        return m._unpack(u8, 1)
    def u16(m):
        return m._unpack(u16, 2)
    def u32(m):
        return m._unpack(u32, 4)

    def bytes(m, size, allow_eof=False):
        result = m.f.read(size)
        if len(result) != size and not allow_eof:
            raise struct.error("end of file")
        return result

    def zbytes(m, size, allow_eof=False):
        """Read up to 'size' bytes, stopping (and cutting) at the first zero byte"""
        result = m.bytes(size, allow_eof)
        zero = result.find(0)
        return result if zero < 0 else result[:zero]

class BinaryBitReader(BinaryBase):
    """Wraps a stream, allowing to easily read bits from it (least significant bit first)"""

    def __init__(m, f):
        m.f = f
        m._byte = 0
        m._bit = 8

    def _u8(m):
        value = m.f.read(1)
        if not value:
            raise struct.error("end of file")
        return value[0]

    def bits(m, n):
        value = 0
        target_bit = 0
        while n > 0:
            if m._bit >= 8:
                m._bit = 0
                m._byte = m._u8()

            count = min(n, 8 - m._bit)
            value |= ((m._byte >> m._bit) & ((1 << count) - 1)) << target_bit
            m._bit += count
            target_bit += count
            n -= count
        return value

    def bit(m):
        return m.bits(1) != 0

class BinaryWriter(BinaryBase):
    """Wraps a stream, allowing to easily write binary data to it"""

    def __init__(m, f, big_end = False):
        m.f = f
        m.big_end = big_end

    def _pack(m, type, v):
        m.f.write((type.struct_be if m.big_end else type.struct_le).pack(v))

    def u8(m, v):
        m._pack(u8, v)
    def u16(m, v):
        m._pack(u16, v)
    def u32(m, v):
        m._pack(u32, v)

    def bytes(m, v):
        m.f.write(v)

class BinaryBitWriter(BinaryBase):
    """Wraps a stream, allowing to easily write bits to it (least significant bit first)"""

    def __init__(m, f):
        m.f = f
        m._byte = 0
        m._bit = 0

    def bits(m, n, v):
        source_bit = 0
        while n > 0:
            if m._bit >= 8:
                m.flush()

            count = min(n, 8 - m._bit)
            m._byte |= ((v >> source_bit) & ((1 << count) - 1)) << m._bit
            m._bit += count
            source_bit += count
            n -= count

    def bit(m, v):
        m.bits(1, 1 if v else 0)

    def flush(m):
        if m._bit > 0:
            m.f.write(byte(m._byte))
            m._byte = m._bit = 0

def file_open(path):
    """Open a binary file for reading"""
    return open(path, "rb")

def file_create(path):
    """Create or replace a binary file for writing"""
    return open(path, "wb")

def file_read(path):
    """Read all data from a binary file"""
    with file_open(path) as f:
        return f.read()

def file_read_text(path, encoding = "utf-8", errors = None, newline = ""):
    """Read all text from a text file (line endings are kept as-is by default)"""
    with open(path, "r", encoding=encoding, errors=errors, newline=newline) as f:
        return f.read()

def file_write(path, value):
    """Create or replace a binary file, writing 'value' into it"""
    with file_create(path) as f:
        f.write(value)

def file_write_text(path, value, encoding = "utf-8", errors = None, newline = "\n"):
    """Create or replace a text file, writing 'value' into it"""
    with open(path, "w", encoding=encoding, errors=errors, newline=newline) as f:
        f.write(value)

def try_file_read(path, defval = None):
    """Read all data from a binary file, or return 'defval' if it cannot be read"""
    try:
        return file_read(path)
    except OSError:
        return defval

path_dirname = os.path.dirname
path_resolve = os.path.realpath
path_join = os.path.join
path_exists = os.path.exists

def path_extension(path):
    """Return the lower-cased extension of 'path', including the dot"""
    return os.path.splitext(path)[1].lower()

def dir_ensure_exists(path):
    """Create the directory 'path' if it doesn't exist yet"""
    os.makedirs(path, exist_ok=True)

def maybe_int(value, defval=None, base=10):
    """Convert 'value' to an int, returning 'defval' if not possible"""
    try:
        return int(value, base) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        return defval

def count_significant_bits(a):
    """Return how many significant bits (all but leading zero bits) 'a' has"""
    assert a >= 0
    return a.bit_length()

def make_mask(pos, size):
    """Create a mask with 'size' ones at bit 'pos'"""
    return ((1 << size) - 1) << pos

def round_up(a, b):
    """Round 'a' up by 'b'"""
    assert b > 0
    m = a % b
    return a + (b - m) if m else a
