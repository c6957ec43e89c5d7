from z8_utils import *

# thin wrapper over pil, used as a black-box png codec

class Color(Tuple):
    r = g = b = ...; a = 0xff

k_png_magic = b"\x89PNG\r\n\x1a\n"

def _pil_module():
    try:
        from PIL import Image # type: ignore
    except ImportError:
        throw("You need pillow to read/write PNGs (do 'python -m pip install pillow')")
    return Image

class Surface:
    """An rgba8 image"""

    @staticmethod
    def load(f):
        """Load a png from an in-memory file object, converting it to rgba8"""
        r = BinaryReader(f)
        if r.bytes(8, allow_eof=True) != k_png_magic:
            throw("Not a valid png")
        r.subpos(8)

        try:
            pil = _pil_module().open(f)
            pil.load()
        except OSError as err: # (the data is in memory, so this is about the content)
            throw(f"Invalid png: {err}")

        if pil.mode != "RGBA":
            pil = pil.convert("RGBA")
        return Surface(pil)

    @staticmethod
    def create(w, h, color=Color(0, 0, 0, 0)):
        return Surface(_pil_module().new("RGBA", (w, h), tuple(color)))

    def __init__(m, pil):
        m.pil = pil

    def save(m, dest=None):
        """Save as png - to 'dest' if given, else returns the png bytes"""
        if dest is None:
            dest = BytesIO()
            m.save(dest)
            return dest.getvalue()

        m.pil.save(dest, "png")

    @property
    def width(m):
        return m.pil.width
    @property
    def height(m):
        return m.pil.height
    @property
    def size(m):
        return Point(m.width, m.height)

    @property
    def pixels(m):
        """A pixel access object, indexed by (x, y), giving/taking (r, g, b, a) tuples"""
        return m.pil.load()

    def fill(m, color, rect=None):
        box = None if rect is None else (rect.x, rect.y, rect.x + rect.w, rect.y + rect.h)
        m.pil.paste(tuple(color), box)
