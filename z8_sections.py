from z8_utils import *
from z8_defs import *

k_p8_prefix = "pico-8 cartridge"
k_p8_header = k_p8_prefix + " // http://www.pico-8.com"
k_version_prefix = "version "
k_meta_prefix = "meta:"
k_bom = "\ufeff"

k_base32_digits = "0123456789abcdefghijklmnopqrstuv"
k_hex_digits = frozenset("0123456789abcdefABCDEF")

k_sfx_text_size = 84 # 4 info bytes + 32 notes of 2.5 bytes
k_song_text_size = 5 # flags byte + 4 sfx bytes

class Section(Enum):
    """The sections of a p8 file, in the order they're matched against a section name"""
    lua = gfx = gff = map = sfx = music = label = ...

def get_section(name):
    """Return the Section whose tag is contained in 'name', or None"""
    for section in Section:
        if section.value in name:
            return section
    return None

class P8Source:
    """The parsed contents of a p8 file, before being packed into memory.
    'sections' maps each decoded Section (other than lua) to its bytes (or base32 values, for the label)"""

    def __init__(m, version=0):
        m.version = version
        m.code = ""
        m.sections = {}
        m.unknown_sections = []
        m.meta = defaultdict(list)

# helper codecs

def swap_nibbles(b):
    return ((b & 0xf) << 4) | (b >> 4)

def decode_hex(text, swapped=False):
    """Decode the hex digits in 'text' into bytes, in pairs, skipping any other characters.
    If 'swapped', the second digit of each pair is the high nibble"""
    digits = [ch for ch in text if ch in k_hex_digits]
    if len(digits) % 2:
        digits.append("0")

    result = bytearray(len(digits) // 2)
    for i in range(len(result)):
        value = int(digits[i * 2] + digits[i * 2 + 1], 16)
        result[i] = swap_nibbles(value) if swapped else value
    return bytes(result)

def encode_hex(data, swapped=False):
    return "".join("%02x" % (swap_nibbles(b) if swapped else b) for b in data)

def decode_base32(text):
    """Decode the base32 digits in 'text' (case insensitive) into a list of values, skipping any other characters"""
    result = []
    for ch in text.lower():
        value = k_base32_digits.find(ch)
        if value >= 0:
            result.append(value)
    return result

def encode_base32(values):
    return "".join(k_base32_digits[v & 0x1f] for v in values)

def _note_to_bits(note):
    return (note.key << 12) | (note.instrument << 8) | (note.volume << 4) | note.effect

def _note_from_bits(bits):
    return Note((bits >> 12) & 0x3f, (bits >> 8) & 0x7, (bits >> 4) & 0x7, bits & 0xf)

def decode_note_group(data):
    """Decode 5 bytes holding 2 notes of 20 bits each (in text form) into 2 Notes"""
    bits = int.from_bytes(data, "big")
    return _note_from_bits(bits >> 20), _note_from_bits(bits & 0xfffff)

def encode_note_group(note1, note2):
    """Encode 2 Notes into 5 bytes, as in the text form"""
    return ((_note_to_bits(note1) << 20) | _note_to_bits(note2)).to_bytes(5, "big")

def decode_song(data):
    """Decode the 5-byte text form of a song: a flags byte, then the 4 sfx indices"""
    flags = data[0]
    return Song(tuple(b & 0x7f for b in data[1:5]),
                start=bool(flags & 1), loop=bool(flags & 2), stop=bool(flags & 4), mode=bool(flags & 8))

def encode_song(song):
    flags = (1 if song.start else 0) | (2 if song.loop else 0) | (4 if song.stop else 0) | (8 if song.mode else 0)
    return bytes((flags,) + tuple(sfx & 0x7f for sfx in song.sfx))

# reading

class P8Reader:
    """Reads the text of a p8 file into a P8Source, line by line"""

    def __init__(m, text):
        if text.startswith(k_bom):
            text = text[len(k_bom):]
        m.text = text
        m.pos = 0

    def next_line(m):
        """Return the next line, including its line ending, or None at the end"""
        if m.pos >= len(m.text):
            return None
        end = m.text.find("\n", m.pos)
        end = len(m.text) if end < 0 else end + 1
        line = m.text[m.pos:end]
        m.pos = end
        return line

    def read_header(m):
        line = m.next_line()
        check(line is not None and line.startswith(k_p8_prefix), "Not a p8 file (missing header)")

        line = m.next_line()
        check(line is not None and line.startswith(k_version_prefix), "Invalid p8 file (missing version)")
        digits = re.match(r"\d*", line[len(k_version_prefix):]).group()
        return int(digits) if digits else 0

    def read(m):
        source = P8Source(m.read_header())
        debug(f"p8 version: {source.version}")

        code = []
        data = defaultdict(list)
        section = meta = None # (both None in the prelude & in unknown sections)

        while True:
            line = m.next_line()
            if line is None:
                break

            match = re.fullmatch(r"__([0-9A-Za-z:]+)__\r?\n?", line)
            if match:
                name = match.group(1)
                if name.startswith(k_meta_prefix):
                    section, meta = None, name[len(k_meta_prefix):]
                    source.meta[meta] # (even if empty)
                else:
                    section, meta = get_section(name), None
                    if section is None:
                        debug(f"ignoring unknown section {name}")
                        source.unknown_sections.append(name)

            elif section == Section.lua:
                code.append(line.replace("\r\n", "\n"))
            elif section:
                data[section].append(line)
            elif meta is not None:
                source.meta[meta].append(line.rstrip("\r\n"))

        source.code = to_p8str("".join(code))
        for section, lines in data.items():
            text = "".join(lines)
            if section == Section.label:
                source.sections[section] = decode_base32(text)
            else:
                source.sections[section] = decode_hex(text, swapped=section == Section.gfx)
        return source

def read_p8_source(text):
    """Parse the text of a p8 file into a P8Source"""
    return P8Reader(text).read()

# packing

def pack_sections(mem, sections):
    """Pack the decoded sections into 'mem', returning the label (or None)"""
    gfx = sections.get(Section.gfx)
    if gfx:
        debug(f"gfx: {len(gfx):#x}/{k_gfx_size:#x}")
        mem.set_block(k_mem_gfx_addr, gfx[:k_gfx_size])

    gff = sections.get(Section.gff)
    if gff:
        debug(f"gff: {len(gff):#x}/{k_flag_size:#x}")
        mem.set_block(k_mem_flag_addr, gff[:k_flag_size])

    map = sections.get(Section.map)
    if map:
        debug(f"map: {len(map):#x}/{k_map_size:#x}")
        mem.set_block(k_mem_map_addr, map[:k_map_size])
        if len(map) > k_map_size:
            debug(f"merging {len(map) - k_map_size:#x} bytes of map into gfx")
            merge_map_overflow(mem, map[k_map_size:])

    music = sections.get(Section.music)
    if music:
        count = min(len(music) // k_song_text_size, k_song_count)
        debug(f"music: {count}/{k_song_count}")
        for i in range(count):
            set_song(mem, i, decode_song(music[i * k_song_text_size : (i + 1) * k_song_text_size]))

    sfx = sections.get(Section.sfx)
    if sfx:
        count = min(len(sfx) // k_sfx_text_size, k_sfx_count)
        debug(f"sfx: {count}/{k_sfx_count}")
        for i in range(count):
            start = i * k_sfx_text_size
            set_sfx_info(mem, i, sfx[start : start + 4])
            for j in range(k_sfx_note_count // 2):
                group_start = start + 4 + j * 5
                note1, note2 = decode_note_group(sfx[group_start : group_start + 5])
                set_note(mem, i, j * 2, note1)
                set_note(mem, i, j * 2 + 1, note2)

    label = sections.get(Section.label)
    if label is None:
        return None

    debug(f"label: {len(label)}/{k_label_size.x * k_label_size.y}")
    result = MultidimArray(k_label_size, 0)
    count = min(len(label), len(result))
    result.array[:count] = label[:count]
    return result

# writing

def get_needed_lines(mem, addr, line_size, max_lines):
    """Return how many lines of 'line_size' bytes at 'addr' are needed to hold all non-zero bytes"""
    lines = max_lines
    while lines > 0 and mem.is_zero(addr + (lines - 1) * line_size, line_size):
        lines -= 1
    return lines

def write_cart_to_source(cart):
    """Return the text of a p8 file holding the given cart"""
    mem = cart.rom
    lines = [k_p8_header, f"version {cart.version_id}"]

    code = from_p8str(cart.code)
    lines.append("__lua__")
    if code:
        lines.append(code[:-1] if code.endswith("\n") else code) # (a final newline is always added)

    def add_section(name, count, line_func):
        if count:
            lines.append(f"__{name}__")
            for y in range(count):
                lines.append(line_func(y))

    add_section("gfx", get_needed_lines(mem, k_mem_gfx_addr, 0x40, 0x80),
                lambda y: encode_hex(mem.get_block(k_mem_gfx_addr + y * 0x40, 0x40), swapped=True))

    if cart.label and any(cart.label.array):
        add_section("label", k_label_size.y,
                    lambda y: encode_base32(cart.label[x, y] for x in range(k_label_size.x)))

    add_section("gff", get_needed_lines(mem, k_mem_flag_addr, 0x80, 2),
                lambda y: encode_hex(mem.get_block(k_mem_flag_addr + y * 0x80, 0x80)))

    add_section("map", get_needed_lines(mem, k_mem_map_addr, 0x80, 0x20),
                lambda y: encode_hex(mem.get_block(k_mem_map_addr + y * 0x80, 0x80)))

    def sfx_line(y):
        info = mem.get_block(mem_sfx_info_addr(y, 0), 4)
        notes = [get_note(mem, y, x) for x in range(k_sfx_note_count)]
        groups = b"".join(encode_note_group(notes[x], notes[x + 1]) for x in range(0, k_sfx_note_count, 2))
        return encode_hex(info + groups)

    add_section("sfx", get_needed_lines(mem, k_mem_sfx_addr, k_sfx_size, k_sfx_count), sfx_line)

    def music_line(y):
        data = encode_song(get_song(mem, y))
        return encode_hex(data[:1]) + " " + encode_hex(data[1:])

    add_section("music", get_needed_lines(mem, k_mem_music_addr, k_song_size, k_song_count), music_line)

    for meta, meta_lines in cart.meta.items():
        lines.append(f"__{k_meta_prefix}{meta}__")
        lines += meta_lines

    return "\n".join(lines) + "\n"
