from z8_utils import *
from z8_defs import *
from z8_media import Surface, Color

k_cart_image_size = Point(160, 205)
k_cart_image_data_size = k_memory_size + k_trailer_size

k_carrier_color = Color(0x1d, 0x1d, 0x21)
k_carrier_label_color = Color(0x00, 0x00, 0x00)
k_carrier_rect_color = Color(0x5f, 0x57, 0x4f)

def load_image_of_size(f, valid_size):
    image = Surface.load(f)
    if image.size != valid_size:
        throw(f"Png has wrong size ({image.width}x{image.height}, expected {valid_size.x}x{valid_size.y})")
    return image

def decode_bytes_from_image(image, count):
    """Decode 'count' bytes hidden in the low 2 bits of each channel of the image's pixels"""
    width = image.width
    check(count <= width * image.height, "Png too small for its data")
    pixels = image.pixels

    data = bytearray(count)
    for i in range(count):
        r, g, b, a = pixels[i % width, i // width]
        data[i] = ((a & 3) << 6) | ((r & 3) << 4) | ((g & 3) << 2) | (b & 3)
    return bytes(data)

def encode_bytes_in_image(image, data):
    """Hide 'data' in the low 2 bits of each channel of the image's pixels, a byte per pixel"""
    width = image.width
    check(len(data) <= width * image.height, "Png too small for its data")
    pixels = image.pixels

    for i, byte in enumerate(data):
        x, y = i % width, i // width
        r, g, b, a = pixels[x, y]
        r = (r & ~3) | ((byte >> 4) & 3)
        g = (g & ~3) | ((byte >> 2) & 3)
        b = (b & ~3) | (byte & 3)
        a = (a & ~3) | ((byte >> 6) & 3)
        pixels[x, y] = (r, g, b, a)

def surface_pixels_to_label(pixels, offset=Point(0, 0)):
    label = MultidimArray(k_label_size, 0)
    for y in range(k_label_size.y):
        for x in range(k_label_size.x):
            r, g, b, a = pixels[offset.x + x, offset.y + y]
            label[x, y] = palette_best(r, g, b)
    return label

def draw_label(image, label, offset=Point(0, 0)):
    """Draw the label onto the image, using the exact palette colors"""
    pixels = image.pixels
    for y in range(k_label_size.y):
        for x in range(k_label_size.x):
            pixels[offset.x + x, offset.y + y] = tuple(palette_color(label[x, y]))

def create_blank_carrier():
    """Create a plain cart-shaped carrier image"""
    image = Surface.create(*k_cart_image_size, color=k_carrier_color)
    image.fill(k_carrier_rect_color, Rect(k_label_offset.x - 4, k_label_offset.y - 4, k_label_size.x + 8, k_label_size.y + 8))
    image.fill(k_carrier_label_color, Rect(*k_label_offset, *k_label_size))
    return image

def read_cart_from_image(data):
    """Read the binary image & label of a cart from the contents of a png"""
    image = load_image_of_size(BytesIO(data), k_cart_image_size)
    binary = decode_bytes_from_image(image, k_cart_image_data_size)

    label = None
    if image.width >= k_label_offset.x + k_label_size.x and image.height >= k_label_offset.y + k_label_size.y:
        label = surface_pixels_to_label(image.pixels, k_label_offset)

    return binary, label

def write_cart_to_image(cart, template_image=None):
    """Return the contents of a png holding the given cart, drawn over the template image (if given)"""
    output = cart.get_binary_image(with_minor=True)

    if template_image:
        with file_open(template_image) as template_f:
            image = load_image_of_size(template_f, k_cart_image_size)
    else:
        image = create_blank_carrier()

    if cart.label:
        draw_label(image, cart.label, k_label_offset)

    encode_bytes_in_image(image, output)
    return image.save()

def read_label_image(data):
    """Read a label from the contents of a 128x128 png"""
    image = load_image_of_size(BytesIO(data), k_label_size)
    return surface_pixels_to_label(image.pixels)

def write_label_image(label):
    """Return the contents of a 128x128 png showing the label"""
    image = Surface.create(*k_label_size, color=palette_color(0))
    if label:
        draw_label(image, label)
    return image.save()
