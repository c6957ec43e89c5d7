from z8_utils import *
from z8_defs import *
from z8_compress import compress, decompress, get_compressed_size, CodeOverflowError
from z8_sections import read_p8_source, pack_sections, write_cart_to_source
from z8_image import read_cart_from_image, write_cart_to_image, read_label_image, write_label_image
from z8_jsdata import read_cart_bin_from_js, write_cart_to_js

class CartFormat(Enum):
    """An enum representing the supported cart formats (named after their file extensions)"""
    p8 = lua = png = js = rom = ...

    @staticmethod
    def from_path(path):
        """Return the format matching the extension of 'path', or None"""
        ext = path_extension(path)[1:]
        return CartFormat(ext) if ext in CartFormat._values else None

class CartError(Enum):
    """The kinds of failures of loading or saving a cart"""
    io = structure = overflow = unsupported = ...

class CartResult(Tuple):
    """The outcome of loading or saving a cart - true on success, else holds the error & message"""
    error = message = None

    def __bool__(m):
        return m.error is None

def _run_cart_op(func, desc):
    try:
        func()
    except OSError as err:
        return CartResult(CartError.io, f"{desc}: {err}")
    except CodeOverflowError as err:
        return CartResult(CartError.overflow, f"{desc}: {err}")
    except (CheckError, UnicodeDecodeError) as err:
        return CartResult(CartError.structure, f"{desc}: {err}")

    return CartResult()

class Cart:
    """A cart, including its rom (as a Memory), code (as a p8str), label (as an optional MultidimArray) and more"""

    def __init__(m, path=""):
        m.rom = Memory()
        m.code = ""
        m.label = None
        m.version_id = get_default_version_id()
        m.version_minor = 0
        m.meta = defaultdict(list)
        m.path = path
        m.stored_code_size = None # as found in a binary cart
        m._code_cache = None

    def _commit(m, src):
        m.rom, m.code, m.label = src.rom, src.code, src.label
        m.version_id, m.version_minor = src.version_id, src.version_minor
        m.meta = src.meta
        m.path = src.path
        m.stored_code_size = src.stored_code_size
        m._code_cache = None

    # binary container

    def set_bin(m, data):
        """Set the cart from a binary image - the memory, with the code compressed inside, then the version trailer"""
        check(len(data) <= k_memory_size + k_trailer_size, "binary cart too large")

        rom = bytes(data[:k_memory_size]).ljust(k_memory_size, b"\0")
        m.code = decompress(rom[k_mem_code_addr:])
        m.stored_code_size = get_compressed_size(BinaryReader(BytesIO(rom[k_mem_code_addr:]), big_end=True))
        m.rom.replace(rom)
        m.rom.fill8(k_mem_code_addr, 0, k_code_size) # the code is only kept uncompressed

        trailer = bytes(data[k_memory_size:])
        if trailer:
            trailer = trailer.ljust(k_trailer_size, b"\0")
            m.version_id = trailer[0]
            m.version_minor = int.from_bytes(trailer[1:], "big")
        m._code_cache = None

    def compressed_code(m):
        """Return the code in compressed form (cached until the code changes)"""
        if m._code_cache is None or m._code_cache[0] != m.code:
            m._code_cache = (m.code, compress(m.code))
        return m._code_cache[1]

    def get_binary_image(m, with_minor=False):
        """Return the binary image of the cart. Only the major version trailer byte is included unless 'with_minor'"""
        io = BytesIO(bytes(k_memory_size))
        with BinaryWriter(io, big_end=True) as w:
            w.bytes(m.rom.get_block(0, k_mem_code_addr))
            w.bytes(m.compressed_code())

            w.setpos(k_memory_size)
            w.u8(u8(m.version_id))
            if with_minor:
                w.u32(u32(m.version_minor))

            return io.getvalue()

    # loading

    def _read(m, path, format):
        debug(f"reading {path} as {format}")
        if format == CartFormat.p8:
            source = read_p8_source(file_read_text(path, errors="replace"))
            m.version_id = source.version
            m.code = source.code
            m.label = pack_sections(m.rom, source.sections)
            m.meta = source.meta

        elif format == CartFormat.lua:
            m.code = to_p8str(file_read_text(path, errors="replace").replace("\r\n", "\n"))

        elif format == CartFormat.png:
            data, m.label = read_cart_from_image(file_read(path))
            m.set_bin(data)

        elif format == CartFormat.js:
            m.set_bin(read_cart_bin_from_js(file_read_text(path)))

        elif format == CartFormat.rom:
            m.set_bin(file_read(path))

        else:
            fail(format)

        debug(f"version: {m.version_id}.{m.version_minor}, code: {len(m.code)} chars")

    def load(m, path, format=None):
        """Load the cart from 'path', in the given format or else per its extension.
        On failure, the cart is left unchanged"""
        format = format or CartFormat.from_path(path)
        if format is None:
            return CartResult(CartError.unsupported, f"{path}: unsupported file extension")

        staging = Cart(path)
        result = _run_cart_op(lambda: staging._read(path, format), path)
        if result:
            m._commit(staging)
        return result

    def load_label(m, path):
        """Load the cart's label from a 128x128 png"""
        def read():
            label = read_label_image(file_read(path))
            m.label = label
        return _run_cart_op(read, path)

    # saving

    def _write(m, path, format, template_image=None, with_minor=False):
        debug(f"writing {path} as {format}")
        if format == CartFormat.p8:
            file_write_text(path, write_cart_to_source(m))
        elif format == CartFormat.lua:
            file_write_text(path, from_p8str(m.code))
        elif format == CartFormat.png:
            file_write(path, write_cart_to_image(m, template_image))
        elif format == CartFormat.js:
            file_write_text(path, write_cart_to_js(m))
        elif format == CartFormat.rom:
            file_write(path, m.get_binary_image(with_minor))
        else:
            fail(format)

    def save(m, path, format=None, template_image=None, with_minor=False):
        """Save the cart to 'path', in the given format or else per its extension.
        'with_minor' adds the minor version to the trailer of rom files"""
        format = format or CartFormat.from_path(path)
        if format is None:
            return CartResult(CartError.unsupported, f"{path}: unsupported file extension")

        return _run_cart_op(lambda: m._write(path, format, template_image, with_minor), path)

    def save_text(m, path):
        return m.save(path, CartFormat.p8)

    def save_image(m, path, template_image=None):
        return m.save(path, CartFormat.png, template_image)

    def save_rom(m, path, with_minor=False):
        return m.save(path, CartFormat.rom, with_minor=with_minor)

    def save_js(m, path):
        return m.save(path, CartFormat.js)

    def save_label(m, path):
        """Save the cart's label as a 128x128 png"""
        return _run_cart_op(lambda: file_write(path, write_label_image(m.label)), path)
