from z8_utils import *
from z8_defs import *
import math

k_js_var_prefix = "var _cartdat="
k_js_data_size = k_memory_size + k_trailer_size
k_js_line_values = 0x40

@context_manager("close")
class ArrayLiteralParser:
    """A scoped parser of array literals, which must be closed once done.
    'live_count' counts the parsers not yet closed"""
    live_count = 0

    def __init__(m):
        m.closed = False
        ArrayLiteralParser.live_count += 1

    def close(m):
        if not m.closed:
            m.closed = True
            ArrayLiteralParser.live_count -= 1

    def parse(m, text):
        """Parse 'text' as an array literal, returning a list"""
        check(not m.closed, "parser already closed")
        try:
            value = json.loads(text)
        except json.JSONDecodeError as err:
            throw(f"Invalid array literal in js file: {err}")

        check(isinstance(value, list), "Invalid array literal in js file (not an array)")
        return value

def _js_string_to_number(text):
    text = text.strip()
    if not text:
        return 0
    sign, body = 1, text
    if body[:1] in "+-":
        sign, body = (-1 if body[0] == "-" else 1), body[1:]
        if body[:2].lower() in ("0x", "0o", "0b"):
            return math.nan # no sign allowed before a radix prefix

    if body == "Infinity":
        return sign * math.inf
    elif re.fullmatch(r"0[xX][0-9a-fA-F]+", body):
        return sign * int(body[2:], 16)
    elif re.fullmatch(r"0[oO][0-7]+", body):
        return sign * int(body[2:], 8)
    elif re.fullmatch(r"0[bB][01]+", body):
        return sign * int(body[2:], 2)
    elif re.fullmatch(r"(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", body):
        return sign * float(body)
    else:
        return math.nan

def literal_to_byte(value):
    """Convert an array element to a byte the way js's ToUint32 does, then keep the low 8 bits.
    Strings are parsed as js numbers, objects become NaN (and so 0)"""
    if value is None or isinstance(value, bool):
        return int(bool(value))
    elif isinstance(value, int):
        return value & 0xff
    elif isinstance(value, str):
        value = _js_string_to_number(value)
    elif not isinstance(value, float):
        value = math.nan

    if math.isnan(value) or math.isinf(value):
        return 0
    return u32(math.trunc(value)) & 0xff

def read_cart_bin_from_js(text):
    """Find & decode the cart data array in the contents of a js file, returning the binary image.
    A short array leaves the rest of the image zeroed"""
    start = text.find(k_js_var_prefix)
    check(start >= 0, "No cart data in js file")
    start = text.find("[", start + len(k_js_var_prefix))
    check(start >= 0, "No cart data array in js file")
    end = text.find("]", start)
    check(end >= 0, "Unterminated cart data array in js file")

    with ArrayLiteralParser() as parser:
        values = parser.parse(text[start:end + 1])

    data = bytearray(k_js_data_size)
    count = min(len(values), k_js_data_size)
    for i in range(count):
        data[i] = literal_to_byte(values[i])

    debug(f"js data: {count}/{k_js_data_size:#x}")
    return bytes(data)

def write_cart_to_js(cart):
    """Return the contents of a js file defining the cart data array"""
    data = cart.get_binary_image(with_minor=True)
    lines = [",".join(str(b) for b in data[i:i + k_js_line_values]) for i in range(0, len(data), k_js_line_values)]
    return k_js_var_prefix + "[" + ",\n".join(lines) + "];\n"
