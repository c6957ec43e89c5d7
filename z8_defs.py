from z8_utils import *
from z8_media import Color

k_memory_size = 0x8000 # size of the entire memory (and of the binary cart container, sans trailer)
k_trailer_size = 5 # version byte + 4-byte big-endian minor version, after the memory in binary containers

k_mem_gfx_addr = 0x0000
k_mem_map2_addr = 0x1000 # aliases the upper half of the gfx
k_mem_map_addr = 0x2000
k_mem_flag_addr = 0x3000
k_mem_music_addr = 0x3100
k_mem_sfx_addr = 0x3200
k_mem_code_addr = 0x4300
k_mem_persistent_addr = 0x5e00
k_mem_draw_state_addr = 0x5f00
k_mem_hw_state_addr = 0x5f40
k_mem_gpio_addr = 0x5f80
k_mem_screen_addr = 0x6000

k_gfx_size = 0x2000
k_map_size = 0x1000
k_map2_size = 0x1000
k_flag_size = 0x100
k_song_size = 4
k_song_count = 0x40
k_sfx_size = 0x44 # 32 notes of 2 bytes + 4 info bytes
k_sfx_count = 0x40
k_sfx_note_count = 0x20
k_code_size = k_memory_size - k_mem_code_addr # the code of a stored cart extends to the end of the container

# draw state registers
k_mem_draw_palette_addr = 0x5f00
k_mem_screen_palette_addr = 0x5f10
k_mem_clip_addr = 0x5f20
k_mem_pen_addr = 0x5f25
k_mem_cursor_addr = 0x5f26
k_mem_camera_addr = 0x5f28
k_mem_screen_mode_addr = 0x5f2c
k_mem_mouse_flag_addr = 0x5f2d
k_mem_palette_flag_addr = 0x5f2e
k_mem_pause_flag_addr = 0x5f30
k_mem_fillp_addr = 0x5f31
k_mem_fillp_trans_addr = 0x5f33
k_mem_fillp_flag_addr = 0x5f34
k_mem_polyline_flag_addr = 0x5f35
k_mem_tline_mask_addr = 0x5f38
k_mem_tline_offset_addr = 0x5f3a
k_mem_polyline_addr = 0x5f3c

# hardware state registers
k_mem_audio_fx_addr = 0x5f40 # half rate, reverb, distort, lowpass
k_mem_prng_addr = 0x5f44
k_mem_btn_state_addr = 0x5f4c
k_mem_btnp_delay_addr = 0x5f5c
k_mem_btnp_rate_addr = 0x5f5d
k_mem_bit_mask_addr = 0x5f5e
k_mem_raster_mode_addr = 0x5f5f
k_mem_raster_palette_addr = 0x5f60
k_mem_raster_bits_addr = 0x5f70

class Region(Tuple):
    """A named, fixed region of the memory"""
    name = addr = size = ...

    @property
    def end(m):
        return m.addr + m.size

k_regions = (
    Region("gfx", k_mem_gfx_addr, k_gfx_size),
    Region("map2", k_mem_map2_addr, k_map2_size),
    Region("map", k_mem_map_addr, k_map_size),
    Region("gfx_props", k_mem_flag_addr, k_flag_size),
    Region("song", k_mem_music_addr, k_song_size * k_song_count),
    Region("sfx", k_mem_sfx_addr, k_sfx_size * k_sfx_count),
    # runtime view only: stored carts hold compressed code up to k_code_size (through 0x7fff), which is the overflow limit
    Region("code", k_mem_code_addr, 0x1b00),
    Region("persistent", k_mem_persistent_addr, 0x100),
    Region("draw_state", k_mem_draw_state_addr, 0x40),
    Region("hw_state", k_mem_hw_state_addr, 0x40),
    Region("gpio", k_mem_gpio_addr, 0x80),
    Region("screen", k_mem_screen_addr, 0x2000),
)

k_region_map = {region.name: region for region in k_regions}

def get_region(name):
    """Return the Region with the given name"""
    return k_region_map[name]

def check_layout():
    """Verify the memory layout: the regions tile the memory exactly, map2 being the only alias"""
    addr = 0
    for region in k_regions:
        if region.name == "map2":
            gfx = k_region_map["gfx"]
            assert gfx.addr <= region.addr and region.end <= gfx.end, "map2 must alias the gfx"
            continue
        assert region.addr == addr, f"{region.name} should have offset {addr:#x}"
        addr = region.end

    assert addr == k_memory_size, f"memory should have size {k_memory_size:#x}"
    assert k_region_map["map2"].end == k_region_map["map"].addr
    assert k_region_map["sfx"].size == 0x1100 and k_sfx_size == k_sfx_note_count * 2 + 4
    assert k_region_map["song"].size == 0x100
    assert k_region_map["draw_state"].addr <= k_mem_polyline_addr < k_region_map["draw_state"].end
    assert k_region_map["hw_state"].addr <= k_mem_raster_bits_addr + 0xf < k_region_map["hw_state"].end

class Memory(bytearray):
    """A block of console memory - a bytearray with bounds-checked accessors like get/set16, get/set4, etc."""

    def __init__(m, src=k_memory_size):
        super().__init__(src)

    def replace(m, src):
        check(len(src) == len(m), "memory size mismatch")
        m[:] = src

    def _check(m, i, size=1):
        if not (0 <= i and i + size <= len(m)):
            raise IndexError(f"memory access out of range: {i:#x} (size {size:#x})")

    def get8(m, i):
        m._check(i)
        return m[i]

    def set8(m, i, v):
        m._check(i)
        m[i] = v & 0xff

    def get_block(m, start, size):
        m._check(start, size)
        return bytes(m[start:start+size])

    def set_block(m, start, src):
        m._check(start, len(src))
        m[start:start+len(src)] = src

    def fill8(m, dest, value, size):
        m.set_block(dest, bytes((value,)) * size)

    def is_zero(m, start, size):
        return not any(m.get_block(start, size))

    def get16(m, i):
        return m.get8(i) | (m.get8(i + 1) << 8)

    def set16(m, i, v):
        m.set8(i, v)
        m.set8(i + 1, v >> 8)

    def get32(m, i):
        return m.get16(i) | (m.get16(i + 2) << 16)

    def set32(m, i, v):
        m.set16(i, v)
        m.set16(i + 2, v >> 16)

    def get4(m, ix):
        i, high = ix
        return (m.get8(i) >> (4 if high else 0)) & 0xf

    def set4(m, ix, value):
        i, high = ix
        shift = 4 if high else 0
        m.set8(i, (m.get8(i) & ~(0xf << shift)) | ((value & 0xf) << shift))

    def pixel(m, x, y):
        """Return the final on-screen color of the (x,y) pixel, applying screen & raster modes"""
        mode = m.get8(k_mem_screen_mode_addr)

        if (mode & 0xbc) == 0x84:
            # rotation modes (0x84 to 0x87)
            if mode & 1:
                x, y = y, x
            x = 127 - x if mode & 2 else x
            y = 127 - y if (mode + 1) & 2 else y
        else:
            xmode, ymode = mode & 0xbd, mode & 0xbe
            x = min(x, 127 - x) if xmode == 0x05 else x // 2 if xmode == 0x01 else 127 - x if xmode == 0x81 else x
            y = min(y, 127 - y) if ymode == 0x06 else y // 2 if ymode == 0x02 else 127 - y if ymode == 0x82 else y

        c = m.get4(mem_screen_addr(x, y))

        raster_mode = m.get8(k_mem_raster_mode_addr)
        if raster_mode == 0x10:
            # alternate palette on flagged scanlines
            if mem_get_raster_bit(m, y):
                return m.get8(k_mem_raster_palette_addr + c)
        elif (raster_mode & 0x30) == 0x30:
            # gradient, for pixels of the selected color
            if (raster_mode & 0x0f) == c:
                c2 = (y // 8 + (1 if mem_get_raster_bit(m, y) else 0)) % 16
                return m.get8(k_mem_raster_palette_addr + c2)

        return m.get8(k_mem_screen_palette_addr + c)

def _check_coord(x, y, w, h):
    if not (0 <= x < w and 0 <= y < h):
        raise IndexError(f"coordinate out of range: ({x}, {y})")

def mem_sprite_addr(x, y):
    """Convert an (x,y) coord to a sprite address, for use with Memory.get/set4"""
    _check_coord(x, y, 128, 128)
    return k_mem_gfx_addr + y * 0x40 + (x >> 1), (x & 1)

def mem_screen_addr(x, y):
    """Convert an (x,y) coord to a screen address, for use with Memory.get/set4"""
    _check_coord(x, y, 128, 128)
    return k_mem_screen_addr + y * 0x40 + (x >> 1), (x & 1)

def mem_map_addr(x, y):
    """Convert an (x,y) coord to a map address - rows 0x20 and up live in map2"""
    _check_coord(x, y, 128, 64)
    if y >= 0x20: y -= 0x40
    return k_mem_map_addr + y * 0x80 + x

def mem_flag_addr(tile):
    """Convert a tile number to the sprite's flags address"""
    _check_coord(tile, 0, 0x100, 1)
    return k_mem_flag_addr + tile

def mem_music_addr(music, ch):
    """Returns the address of the given channel of the given music"""
    _check_coord(ch, music, 4, k_song_count)
    return k_mem_music_addr + music * k_song_size + ch

def mem_sfx_addr(sound, note):
    """Return the address of the given note of the given sfx"""
    _check_coord(note, sound, k_sfx_note_count + 2, k_sfx_count)
    return k_mem_sfx_addr + sound * k_sfx_size + note * 2

def mem_sfx_info_addr(sound, i):
    """Return the address of the i-th info byte (editor mode, speed, loop start, loop end) of the given sfx"""
    _check_coord(i, sound, 4, k_sfx_count)
    return mem_sfx_addr(sound, k_sfx_note_count) + i

def merge_map_overflow(mem, data):
    """OR the legacy second map block into map2.
    Old carts may hold both a full gfx and a full map+map2, so neither can be trusted to win;
    OR-ing is a best-effort compromise, not a recovery of the intended bits."""
    count = min(len(data), k_map2_size)
    for i in range(count):
        addr = k_mem_map2_addr + i
        mem.set8(addr, mem.get8(addr) | data[i])

class Note(Tuple):
    key = instrument = volume = effect = ...

def pack_note(note):
    """Pack a Note into its 16-bit in-memory form"""
    return (note.key & 0x3f) | ((note.instrument & 0x7) << 6) | ((note.volume & 0x7) << 9) | ((note.effect & 0xf) << 12)

def unpack_note(value):
    """Unpack the 16-bit in-memory form of a note"""
    return Note(value & 0x3f, (value >> 6) & 0x7, (value >> 9) & 0x7, (value >> 12) & 0xf)

def get_note(mem, sound, i):
    return unpack_note(mem.get16(mem_sfx_addr(sound, i)))

def set_note(mem, sound, i, note):
    mem.set16(mem_sfx_addr(sound, i), pack_note(note))

class SfxInfo(Tuple):
    editor_mode = speed = loop_start = loop_end = ...

def get_sfx_info(mem, sound):
    return SfxInfo(*(mem.get8(mem_sfx_info_addr(sound, i)) for i in range(4)))

def set_sfx_info(mem, sound, info):
    for i, value in enumerate(info):
        mem.set8(mem_sfx_info_addr(sound, i), value)

class Song(Tuple):
    """A row of the music sequencer - 4 sfx indices plus the start/loop/stop/mode flags"""
    sfx = start = loop = stop = mode = ...

def get_song(mem, music):
    chans = [mem.get8(mem_music_addr(music, ch)) for ch in range(4)]
    flags = [bool(ch & 0x80) for ch in chans]
    return Song(tuple(ch & 0x7f for ch in chans), *flags)

def set_song(mem, music, song):
    flags = (song.start, song.loop, song.stop, song.mode)
    for ch in range(4):
        mem.set8(mem_music_addr(music, ch), (song.sfx[ch] & 0x7f) | (0x80 if flags[ch] else 0))

def mem_get_raster_bit(mem, y):
    return bool(mem.get8(k_mem_raster_bits_addr + (y >> 3)) & (1 << (y & 7)))

def _s16(value):
    return (value & 0x7fff) - (value & 0x8000)

class DrawState(Tuple):
    draw_palette = screen_palette = clip = pen = cursor = camera = screen_mode = fillp = ...

def get_draw_state(mem):
    """Read the draw state registers"""
    return DrawState(
        draw_palette=mem.get_block(k_mem_draw_palette_addr, 16),
        screen_palette=mem.get_block(k_mem_screen_palette_addr, 16),
        clip=tuple(mem.get_block(k_mem_clip_addr, 4)), # (x1, y1, x2, y2)
        pen=mem.get8(k_mem_pen_addr),
        cursor=Point(*mem.get_block(k_mem_cursor_addr, 2)),
        camera=Point(_s16(mem.get16(k_mem_camera_addr)), _s16(mem.get16(k_mem_camera_addr + 2))),
        screen_mode=mem.get8(k_mem_screen_mode_addr),
        fillp=mem.get16(k_mem_fillp_addr))

class HwState(Tuple):
    audio_fx = prng = btn_state = btnp_delay = btnp_rate = bit_mask = raster_mode = raster_palette = ...

def get_hw_state(mem):
    """Read the hardware state registers"""
    return HwState(
        audio_fx=mem.get_block(k_mem_audio_fx_addr, 4),
        prng=(mem.get32(k_mem_prng_addr), mem.get32(k_mem_prng_addr + 4)),
        btn_state=mem.get_block(k_mem_btn_state_addr, 8),
        btnp_delay=mem.get8(k_mem_btnp_delay_addr),
        btnp_rate=mem.get8(k_mem_btnp_rate_addr),
        bit_mask=mem.get8(k_mem_bit_mask_addr),
        raster_mode=mem.get8(k_mem_raster_mode_addr),
        raster_palette=mem.get_block(k_mem_raster_palette_addr, 16))

check_layout()

# the label - an image stored apart from the memory
k_label_size = Point(128, 128)
k_label_offset = Point(16, 24) # within the png cart image

# the palette - 16 standard colors, then 16 alternate colors
k_palette = [
    Color(0x00, 0x00, 0x00), # black
    Color(0x1d, 0x2b, 0x53), # dark blue
    Color(0x7e, 0x25, 0x53), # dark purple
    Color(0x00, 0x87, 0x51), # dark green
    Color(0xab, 0x52, 0x36), # brown
    Color(0x5f, 0x57, 0x4f), # dark gray
    Color(0xc2, 0xc3, 0xc7), # light gray
    Color(0xff, 0xf1, 0xe8), # white
    Color(0xff, 0x00, 0x4d), # red
    Color(0xff, 0xa3, 0x00), # orange
    Color(0xff, 0xec, 0x27), # yellow
    Color(0x00, 0xe4, 0x36), # green
    Color(0x29, 0xad, 0xff), # blue
    Color(0x83, 0x76, 0x9c), # lavender
    Color(0xff, 0x77, 0xa8), # pink
    Color(0xff, 0xcc, 0xaa), # light peach
    Color(0x29, 0x18, 0x14),
    Color(0x11, 0x1d, 0x35),
    Color(0x42, 0x21, 0x36),
    Color(0x12, 0x53, 0x59),
    Color(0x74, 0x2f, 0x29),
    Color(0x49, 0x33, 0x3b),
    Color(0xa2, 0x88, 0x79),
    Color(0xf3, 0xef, 0x7d),
    Color(0xbe, 0x12, 0x50),
    Color(0xff, 0x6c, 0x24),
    Color(0xa8, 0xe7, 0x2e),
    Color(0x00, 0xb5, 0x43),
    Color(0x06, 0x5a, 0xb5),
    Color(0x75, 0x46, 0x65),
    Color(0xff, 0x6e, 0x59),
    Color(0xff, 0x9d, 0x81),
]
assert len(k_palette) == 32

k_palette_rgb_6bpp_map = {(c.r & ~3, c.g & ~3, c.b & ~3): i for i, c in enumerate(k_palette)}

def palette_color(i):
    """Return the exact color of palette index 'i' (only the low 5 bits are used)"""
    return k_palette[i & 0x1f]

def palette_best(r, g, b):
    """Return the palette index nearest to the given rgb color"""
    i = k_palette_rgb_6bpp_map.get((r & ~3, g & ~3, b & ~3))
    if i is None:
        i = min(range(len(k_palette)), key=lambda i: (k_palette[i].r - r) ** 2 + (k_palette[i].g - g) ** 2 + (k_palette[i].b - b) ** 2)
    return i

# the console character set
k_charset = [
    None, '¹', '²', '³', '⁴', '⁵', '⁶', '⁷', '⁸', '\t', '\n', 'ᵇ', 'ᶜ', '\r', 'ᵉ', 'ᶠ',
    '▮', '■', '□', '⁙', '⁘', '‖', '◀', '▶', '「', '」', '¥', '•', '、', '。', '゛', '゜'
]
for i in range(0x20, 0x7f):
    k_charset.append(chr(i))
k_charset += [
    '○',
    '█','▒','🐱','⬇️','░','✽','●','♥','☉','웃','⌂','⬅️','😐','♪','🅾️','◆','…','➡️','★','⧗','⬆️','ˇ','∧','❎','▤','▥',
    'あ','い','う','え','お','か','き','く','け','こ','さ','し','す','せ','そ','た','ち','つ','て','と','な','に','ぬ','ね','の','は','ひ','ふ','へ','ほ',
    'ま','み','む','め','も','や','ゆ','よ','ら','り','る','れ','ろ','わ','を','ん','っ','ゃ','ゅ','ょ','ア','イ','ウ','エ','オ','カ','キ','ク','ケ','コ','サ',
    'シ','ス','セ','ソ','タ','チ','ツ','テ','ト','ナ','ニ','ヌ','ネ','ノ','ハ','ヒ','フ','ヘ','ホ','マ','ミ','ム','メ','モ','ヤ','ユ','ヨ','ラ','リ','ル','レ',
    'ロ','ワ','ヲ','ン','ッ','ャ','ュ','ョ','◜','◝'
]
assert len(k_charset) == 0x100

# maps a unicode character to its console char index (emoji are keyed by their first codepoint)
k_charset_map = {ch[0]: i for i, ch in enumerate(k_charset) if ch != None}

k_variant_char = '\uFE0F'

# p8str - a str where each character is between '\0' and '\xff' and stands for
# the console character with that index.

def to_p8str(text):
    """Convert a unicode string to a p8str. Characters outside the charset become '?'"""
    result = []
    for ch in text:
        if ord(ch) < 0x80:
            result.append(ch)
        elif ch in k_charset_map:
            result.append(chr(k_charset_map[ch]))
        elif ch == k_variant_char:
            pass
        else:
            debug(f"unknown char {ch!r} ({ord(ch):#x}) replaced with '?'")
            result.append('?')
    return "".join(result)

def from_p8str(text):
    """Convert a p8str to a unicode string"""
    return "".join(k_charset[ord(ch)] or '\0' for ch in text)

def decode_p8str(data):
    """Decode bytes into a p8str"""
    return "".join(chr(b) for b in data)

# versions

k_default_version_id = 42

def get_default_version_id():
    """The version written to carts created from scratch (overridable via Z8_VERSION_ID)"""
    return maybe_int(os.getenv("Z8_VERSION_ID"), k_default_version_id)
