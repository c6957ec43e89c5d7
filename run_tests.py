#!/usr/bin/env python3
from test_utils import *
from z8_defs import *
from z8_compress import compress, decompress, get_compressed_size, CodeOverflowError, k_new_compressed_code_header
from z8_sections import *
from z8_image import read_cart_from_image, k_cart_image_size
from z8_jsdata import ArrayLiteralParser, read_cart_bin_from_js
from z8_media import Surface
from z8_cart import Cart, CartError, CartFormat, CartResult
import argparse, fnmatch, random

parser = argparse.ArgumentParser()
parser.add_argument("-t", "--test", action="append", help="specify a specific test to run, optionally with wildcards")
parser.add_argument("-v", "--verbose", action="store_true", help="print test successes")

# for test consistency:
os.environ["Z8_VERSION_ID"] = "42"

k_test_dir = path_dirname(path_resolve(__file__))

def get_test_path(*parts):
    return path_join(k_test_dir, *parts)

def output_path(name):
    dir_ensure_exists(get_test_path("test_output"))
    return get_test_path("test_output", name)

def run_test(name, input, output, *args, compare=None, from_output=False, exit_code=0):
    """Run the cli from 'input' to 'output', checking the output against the one in test_compare"""
    inpath = get_test_path("test_output" if from_output else "test_input", input)
    outpath = output_path(output)
    cmppath = get_test_path("test_compare", compare or output)

    run_success, stdout = run_code(inpath, outpath, *args, exit_code=exit_code)
    success = run_success
    if run_success and exit_code == 0 and try_file_read(outpath) != try_file_read(cmppath):
        stdout += f"\nERROR: Output difference: {outpath}, {cmppath}"
        success = False

    if not success:
        print(f"\nERROR - conversion {name} failed")
        print(f"Args: {args}")
        print(stdout)
    return success

def p8_text(*lines, version=42):
    return "\n".join((k_p8_header, f"version {version}") + lines) + "\n"

def load_p8_text(*lines, version=42):
    mem = Memory()
    source = read_p8_source(p8_text(*lines, version=version))
    label = pack_sections(mem, source.sections)
    return mem, source, label

def random_bytes(rng, size):
    return bytes(rng.randrange(0x100) for _ in range(size))

def create_test_cart(seed=1):
    rng = random.Random(seed)
    cart = Cart()
    cart.rom.set_block(0, random_bytes(rng, k_mem_code_addr))
    cart.code = to_p8str("-- test cart\nfor i=1,10 do\n print(i..' ♥')\nend\n") * 3
    cart.label = MultidimArray(k_label_size, 0)
    for y in range(k_label_size.y):
        for x in range(k_label_size.x):
            cart.label[x, y] = (x // 4 + y // 8) % 32
    return cart

# utils

def test_enum_tuple():
    assert CartFormat("png") is CartFormat.png and str(CartFormat.png) == "png"
    assert CartFormat.from_path("a/b.P8") is CartFormat.p8
    assert CartFormat.from_path("a/b.txt") is None

    result = CartResult()
    assert result and result.error is None
    result = CartResult(CartError.io, "missing")
    assert not result and result.error is CartError.io and result.message == "missing"
    assert Point(1, 2) == (1, 2) and Rect(1, 2, 3, 4).w == 3

# memory layout

def test_layout():
    check_layout()
    assert get_region("code").addr == 0x4300 and get_region("code").size == 0x1b00
    assert get_region("screen").end == k_memory_size
    assert sum(region.size for region in k_regions if region.name != "map2") == 0x8000

def test_memory_bounds():
    mem = Memory()
    for addr in (-1, k_memory_size, k_memory_size + 10):
        try:
            mem.get8(addr)
        except IndexError:
            pass
        else:
            assert False, addr
    try:
        mem.set16(k_memory_size - 1, 0x1234)
    except IndexError:
        pass
    else:
        assert False

def test_memory_accessors():
    mem = Memory()
    mem.set16(0x10, 0x1234)
    assert mem[0x10] == 0x34 and mem[0x11] == 0x12 and mem.get16(0x10) == 0x1234
    mem.set32(0x20, 0xdeadbeef)
    assert mem.get32(0x20) == 0xdeadbeef
    mem.set4(mem_sprite_addr(1, 0), 0xa)
    mem.set4(mem_sprite_addr(0, 0), 0x1)
    assert mem.get8(0) == 0xa1
    assert mem_map_addr(0, 0x20) == 0x1000 and mem_map_addr(5, 0x1f) == 0x2f85

def test_pixel_modes():
    mem = Memory()
    for c in range(16):
        mem.set8(k_mem_screen_palette_addr + c, c)
    mem.set4(mem_screen_addr(0, 0), 3)
    mem.set4(mem_screen_addr(127, 0), 4)
    mem.set4(mem_screen_addr(2, 0), 5)
    mem.set4(mem_screen_addr(0, 127), 6)

    assert mem.pixel(0, 0) == 3 and mem.pixel(127, 0) == 4
    mem.set8(k_mem_screen_mode_addr, 0x81) # flip x
    assert mem.pixel(0, 0) == 4
    mem.set8(k_mem_screen_mode_addr, 0x01) # stretch x
    assert mem.pixel(4, 0) == 5 and mem.pixel(5, 0) == 5
    mem.set8(k_mem_screen_mode_addr, 0x05) # mirror x
    assert mem.pixel(127, 0) == 3
    mem.set8(k_mem_screen_mode_addr, 0x82) # flip y
    assert mem.pixel(0, 127) == 3 and mem.pixel(0, 0) == 6
    mem.set8(k_mem_screen_mode_addr, 0x87) # rotate 270
    assert mem.pixel(0, 0) == 4

    mem.set8(k_mem_screen_mode_addr, 0)
    mem.set8(k_mem_raster_mode_addr, 0x10)
    mem.set8(k_mem_raster_palette_addr + 3, 12)
    assert mem.pixel(0, 0) == 3
    mem.set8(k_mem_raster_bits_addr, 1) # flag scanline 0
    assert mem.pixel(0, 0) == 12 and mem.pixel(127, 0) == 0

    mem.set8(k_mem_raster_mode_addr, 0x33) # gradient on color 3
    mem.set8(k_mem_raster_palette_addr + 1, 9)
    assert mem.pixel(0, 0) == 9 and mem.pixel(127, 0) == 4

def test_state_registers():
    mem = Memory()
    mem.set_block(k_mem_clip_addr, bytes((1, 2, 127, 100)))
    mem.set16(k_mem_camera_addr, 0xfff6)
    mem.set16(k_mem_camera_addr + 2, 20)
    mem.set8(k_mem_cursor_addr, 5)
    mem.set8(k_mem_raster_mode_addr, 0x10)
    mem.set32(k_mem_prng_addr, 0x12345678)
    mem.set8(mem_flag_addr(0xff), 0x81)

    draw = get_draw_state(mem)
    assert draw.clip == (1, 2, 127, 100) and draw.camera == Point(-10, 20) and draw.cursor == Point(5, 0)
    hw = get_hw_state(mem)
    assert hw.raster_mode == 0x10 and hw.prng[0] == 0x12345678
    assert mem[0x30ff] == 0x81

def test_note_bijection():
    for key in range(64):
        for instrument in range(8):
            for volume in range(8):
                for effect in range(16):
                    note = Note(key, instrument, volume, effect)
                    assert unpack_note(pack_note(note)) == note
    for value in range(0x10000):
        assert pack_note(unpack_note(value)) == value

def test_song_flags():
    sfx = (1, 2, 3, 10)
    for flags in range(16):
        mem = Memory()
        set_song(mem, 5, decode_song(bytes((flags,) + sfx)))
        song = get_song(mem, 5)
        assert song.sfx == sfx
        assert (song.start, song.loop, song.stop, song.mode) == tuple(bool(flags & (1 << i)) for i in range(4))
        assert encode_song(song) == bytes((flags,) + sfx)

def test_map_merge_commutative():
    rng = random.Random(2)
    gfx = random_bytes(rng, k_gfx_size)
    a, b = random_bytes(rng, k_map2_size), random_bytes(rng, 0x800)

    mem1, mem2 = Memory(), Memory()
    for mem, order in ((mem1, (a, b)), (mem2, (b, a))):
        mem.set_block(0, gfx)
        for data in order:
            merge_map_overflow(mem, data)

    assert mem1 == mem2
    for i in range(k_map2_size):
        expected = gfx[0x1000 + i] | a[i] | (b[i] if i < len(b) else 0)
        assert mem1[0x1000 + i] == expected

# section grammar

def test_header_only():
    for version in (0, 1, 16, 42, 12345):
        mem, source, label = load_p8_text(version=version)
        assert source.version == version and source.code == "" and label is None
        assert mem == Memory()

    assert read_p8_source("pico-8 cartridge\nversion \n").version == 0
    assert read_p8_source("pico-8 cartridge\nversion 8").version == 8
    assert read_p8_source("\ufeffpico-8 cartridge\r\nversion 29\r\n").version == 29

def test_bad_header():
    for text in ("", "hello\nversion 1\n", "pico-8 cartridge\n", "pico-8 cartridge\nversi0n 3\n"):
        try:
            read_p8_source(text)
        except CheckError:
            pass
        else:
            assert False, text

def test_decode_hex():
    assert decode_hex("a b") == decode_hex("ab") == b"\xab"
    assert decode_hex("1 2\n3 x 4\r\n") == b"\x12\x34"
    assert decode_hex("abc") == b"\xab\xc0"
    assert decode_hex("FFfe") == b"\xff\xfe"
    assert decode_hex("1a", swapped=True) == b"\xa1"

def test_swap_nibbles():
    for b in range(0x100):
        assert swap_nibbles(swap_nibbles(b)) == b
        assert decode_hex(encode_hex(bytes((b,)), swapped=True), swapped=True) == bytes((b,))

def test_base32():
    assert decode_base32("09avAV") == [0, 9, 10, 31, 10, 31]
    assert decode_base32("wxyzWXYZ-!. ") == []
    assert encode_base32(range(32)) == k_base32_digits

def test_gfx_section():
    mem, _, _ = load_p8_text("__gfx__", "1a")
    assert mem[0] == 0xa1
    assert mem.is_zero(1, k_memory_size - 1)

def test_music_section():
    mem, _, _ = load_p8_text("__music__", "09 0102030a")
    song = get_song(mem, 0)
    assert song.sfx == (1, 2, 3, 10)
    assert song.start and song.mode and not song.loop and not song.stop
    assert mem.get_block(k_mem_music_addr, 4) == bytes((0x81, 0x02, 0x03, 0x8a))

def test_sfx_section():
    mem, _, _ = load_p8_text("__sfx__", "011000080c35118240" + "0" * 150)
    assert get_sfx_info(mem, 0) == SfxInfo(1, 0x10, 0, 8)
    assert get_note(mem, 0, 0) == Note(0x0c, 3, 5, 1)
    assert get_note(mem, 0, 1) == Note(0x18, 2, 4, 0)
    assert get_note(mem, 0, 2) == Note(0, 0, 0, 0)
    assert mem.is_zero(mem_sfx_addr(1, 0), k_sfx_size)

    note1, note2 = Note(63, 7, 7, 15), Note(1, 2, 3, 4)
    assert decode_note_group(encode_note_group(note1, note2)) == (note1, note2)

def test_map_overflow_section():
    map_lines = ["00" * 0x80] * 0x20 + ["0f" + "00" * 0x7f]
    mem, _, _ = load_p8_text("__gfx__", "00" * 0x40 * 0x40 + "0f", "__map__", *map_lines)
    assert mem[0x1000] == 0xf0 | 0x0f
    assert mem.is_zero(k_mem_map_addr, k_map_size)

def test_label_section():
    _, _, label = load_p8_text("__label__", "01v", "W" + "V")
    assert label.size == tuple(k_label_size)
    assert label[0, 0] == 0 and label[1, 0] == 1 and label[2, 0] == 31 and label[3, 0] == 31 and label[4, 0] == 0

def test_code_section():
    _, source, _ = load_p8_text("__lua__", "a=1\r", "b=2", "__gfx__", "00")
    assert source.code == "a=1\nb=2\n"
    _, source, _ = load_p8_text("__lua__", "print('♥')")
    assert source.code == "print('" + chr(k_charset_map['♥']) + "')\n"

def test_unknown_sections():
    mem, source, _ = load_p8_text("__foo__", "0102", "__bar:baz__", "ff", "__gfx__ ", "ff", "__gff__", "03")
    assert source.unknown_sections == ["foo", "bar:baz"]
    assert mem.is_zero(0, k_gfx_size) and mem[k_mem_flag_addr] == 3
    assert set(source.sections) == {Section.gff}

def test_section_dispatch():
    assert get_section("lua") == Section.lua and get_section("xgfxmap") == Section.gfx
    assert get_section("musicmap") == Section.map and get_section("sfx_label") == Section.sfx
    assert get_section("labels") == Section.label and get_section("foo") is None

def test_prelude():
    mem, source, _ = load_p8_text("ff 00", "__lua__ then", "x", "__lua__", "y")
    assert source.code == "y\n" and mem == Memory()

def test_meta_sections():
    _, source, _ = load_p8_text("__meta:title__", "my cart", "", "__meta:empty__")
    assert source.meta == {"title": ["my cart", ""], "empty": []}

# text writing

def test_text_trimming():
    cart = Cart()
    cart.rom.set8(0x10, 0x12)
    cart.rom.set8(k_mem_map_addr + 0x85, 0x34)
    text = write_cart_to_source(cart)
    assert text == p8_text("__lua__", "__gfx__", "0" * 0x20 + "21" + "0" * 0x5e,
                           "__map__", "0" * 0x100, "0" * 0xa + "34" + "0" * 0xf4)

    cart.code = "x=1"
    assert write_cart_to_source(cart).startswith(p8_text("__lua__", "x=1"))

def test_text_roundtrip():
    cart = create_test_cart()
    cart.rom.set_block(k_mem_screen_addr, b"\x12\x34") # not saved
    cart.meta["notes"] = ["some", "notes"]

    path = output_path("roundtrip.p8")
    assert cart.save_text(path)
    assert file_read_text(path) == write_cart_to_source(cart)

    loaded = Cart()
    assert loaded.load(path)
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)
    assert loaded.rom.is_zero(k_mem_code_addr, k_code_size)
    assert loaded.code == cart.code and loaded.label == cart.label
    assert loaded.meta == cart.meta and loaded.version_id == 42

# image

def test_image_roundtrip():
    cart = create_test_cart()
    cart.version_id, cart.version_minor = 41, 0x01020304

    path = output_path("roundtrip.png")
    assert cart.save_image(path)

    loaded = Cart()
    assert loaded.load(path)
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)
    assert loaded.code == cart.code and loaded.label == cart.label
    assert (loaded.version_id, loaded.version_minor) == (41, 0x01020304)

    data, label = read_cart_from_image(file_read(path))
    assert data[:k_mem_code_addr] == cart.rom.get_block(0, k_mem_code_addr)
    assert data[k_mem_code_addr:k_mem_code_addr + 4] == k_new_compressed_code_header

def test_image_template():
    template = Surface.create(*k_cart_image_size, color=Color(0x80, 0x40, 0x20, 0xff))
    template_path = output_path("template.png")
    file_write(template_path, template.save())

    cart = create_test_cart(3)
    cart.label = None
    path = output_path("templated.png")
    assert cart.save_image(path, template_image=template_path)

    image = Surface.load(BytesIO(file_read(path)))
    r, g, b, a = image.pixels[159, 204]
    assert (r & ~3, g & ~3, b & ~3, a & ~3) == (0x80, 0x40, 0x20, 0xfc)

    loaded = Cart()
    assert loaded.load(path)
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)

def test_image_wrong_size():
    path = output_path("small.png")
    file_write(path, Surface.create(10, 10).save())

    cart = Cart()
    cart.code = "keep me"
    result = cart.load(path)
    assert not result and result.error == CartError.structure
    assert cart.code == "keep me"

    file_write(path, b"not a png at all")
    result = cart.load(path)
    assert not result and result.error == CartError.structure

def test_label_image():
    cart = create_test_cart()
    path = output_path("label.png")
    assert cart.save_label(path)

    loaded = Cart()
    assert loaded.load_label(path)
    assert loaded.label == cart.label

# binary container

def test_binary_image():
    cart = create_test_cart()
    cart.version_id, cart.version_minor = 39, 7

    data = cart.get_binary_image()
    assert len(data) == k_memory_size + 1 and data[-1] == 39
    data = cart.get_binary_image(with_minor=True)
    assert len(data) == k_memory_size + k_trailer_size and data[-5:] == bytes((39, 0, 0, 0, 7))

    loaded = Cart()
    loaded.set_bin(data)
    assert loaded.code == cart.code and (loaded.version_id, loaded.version_minor) == (39, 7)
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)

def test_rom_roundtrip():
    cart = create_test_cart()
    path = output_path("roundtrip.rom")
    assert cart.save_rom(path)
    assert len(file_read(path)) == k_memory_size + 1

    loaded = Cart()
    assert loaded.load(path)
    assert loaded.code == cart.code and loaded.label is None
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)

def test_raw_code():
    cart = Cart()
    cart.set_bin(bytes(k_mem_code_addr) + b"print(1)\0garbage")
    assert cart.code == "print(1)"
    assert cart.rom.is_zero(k_mem_code_addr, k_code_size)

# js

def test_js_roundtrip():
    cart = create_test_cart()
    path = output_path("roundtrip.js")
    assert cart.save_js(path)
    assert file_read_text(path).startswith("var _cartdat=[")

    loaded = Cart()
    assert loaded.load(path)
    assert loaded.code == cart.code
    assert loaded.rom.get_block(0, k_mem_code_addr) == cart.rom.get_block(0, k_mem_code_addr)

def test_js_values():
    data = read_cart_bin_from_js("junk;var _cartdat=[256,-1,1.9,true,null,4294967297,-2.5];more")
    assert data[:8] == bytes((0, 0xff, 1, 1, 0, 1, 0xfe, 0))
    data = read_cart_bin_from_js('var _cartdat=[1,2,"x",4,"5"," 0x10 ","",{"a":1},"-1.5","1e2","-0x1","Infinity"];')
    assert data[:13] == bytes((1, 2, 0, 4, 5, 0x10, 0, 0, 0xff, 100, 0, 0, 0))
    assert len(data) == k_memory_size + k_trailer_size

def test_js_failures():
    live = ArrayLiteralParser.live_count
    for text in ("no data here", "var _cartdat=", "var _cartdat=[1,2,3", "var _cartdat=[1,,2]", "var _cartdat=[1,2}]"):
        try:
            read_cart_bin_from_js(text)
        except CheckError:
            pass
        else:
            assert False, text
        assert ArrayLiteralParser.live_count == live

    with ArrayLiteralParser() as parser:
        assert ArrayLiteralParser.live_count == live + 1
        try:
            parser.parse('{"a": 1}')
        except CheckError:
            pass
        else:
            assert False
    assert ArrayLiteralParser.live_count == live

# compression

def test_compress_roundtrip():
    rng = random.Random(4)
    texts = ["", "a", "aaaa", "abcabcabcabc", "x" * 1000, "".join(chr(i) for i in range(0x100)),
             to_p8str("function _draw()\n cls()\n print('hello world', 10, 10, 7)\nend\n") * 50,
             "".join(rng.choice("abc \n") for _ in range(5000)),
             "".join(chr(rng.randrange(0x100)) for _ in range(3000)),
             "start" + "".join(chr(rng.randrange(0x20, 0x7f)) for _ in range(0x2000)) + "start"]
    for text in texts:
        data = compress(text)
        assert data[:4] == k_new_compressed_code_header
        assert decompress(data) == text

def test_compressed_size():
    data = compress("hello hello hello")
    assert get_compressed_size(BinaryReader(BytesIO(data + bytes(10)), big_end=True)) == len(data)
    assert get_compressed_size(BinaryReader(BytesIO(b"raw code\0\0\0"), big_end=True)) == len("raw code")

def test_old_compression():
    data = b":c:\0" + bytes((0, 4, 0, 0)) + bytes((0x0d, 0x00, ord('X'), 0x3c, 0x02, 0x00, 0x00))
    assert decompress(data) == "aXaX"

def test_compress_overflow():
    rng = random.Random(5)
    for text in ("".join(chr(rng.randrange(0x100)) for _ in range(0x5000)), "a" * 0x10000):
        try:
            compress(text)
        except CodeOverflowError:
            pass
        else:
            assert False

    cart = Cart()
    cart.code = "a" * 0x10000
    path = output_path("overflow.png")
    if path_exists(path):
        os.remove(path)
    result = cart.save_image(path)
    assert not result and result.error == CartError.overflow
    assert not path_exists(path)

# facade

def test_load_failures():
    cart = Cart()
    cart.code = "unchanged"

    result = cart.load(get_test_path("test_input", "missing.p8"))
    assert not result and result.error == CartError.io
    result = cart.load(get_test_path("test_input", "basic.txt"))
    assert not result and result.error == CartError.unsupported
    result = cart.load(get_test_path("test_input", "hello.lua"), CartFormat.p8)
    assert not result and result.error == CartError.structure
    assert cart.code == "unchanged"

def test_load_formats():
    cart = Cart()
    assert cart.load(get_test_path("test_input", "hello.lua"))
    assert cart.code == 'print("hi")\n' and cart.version_id == 42

    assert cart.load(get_test_path("test_input", "basic.p8"))
    assert cart.code.startswith("-- basic cart") and cart.label is None
    assert get_song(cart.rom, 1) == Song((0x41, 0x42, 0x43, 0x44), False, True, False, False)
    assert cart.rom.get8(k_mem_gfx_addr) == 0xa1 and cart.rom.get8(k_mem_flag_addr + 1) == 2

    crlf_path = output_path("crlf.lua")
    file_write(crlf_path, b"a=1\r\nb=2\r\n")
    assert cart.load(crlf_path)
    assert cart.code == "a=1\nb=2\n"

    # undecodable bytes become '?' rather than failing the load
    bad_lua_path = output_path("bad_utf8.lua")
    file_write(bad_lua_path, b"print('\xe9')\n")
    assert cart.load(bad_lua_path)
    assert cart.code == "print('?')\n"

    bad_p8_path = output_path("bad_utf8.p8")
    file_write(bad_p8_path, p8_text("__lua__", "print('\xe9')").encode("latin-1"))
    assert cart.load(bad_p8_path)
    assert cart.code == "print('?')\n"

def test_charset():
    assert to_p8str("abc") == "abc"
    assert to_p8str("a\u0100b") == "a?b"
    assert from_p8str(to_p8str("♥ ⬇️ あ")) == "♥ ⬇️ あ"
    assert decode_p8str(b"a\x80\xff") == "a\x80\xff"

# cli

def test_cli_p8():
    assert run_test("p8", "basic.p8", "basic.p8")
    assert run_test("messy", "messy.p8", "messy.p8")
    assert run_test("lua", "hello.lua", "hello.p8")

def test_cli_formats():
    for ext in ("png", "js", "rom"):
        success, stdout = run_code(get_test_path("test_input", "basic.p8"), output_path("basic." + ext))
        assert success, stdout
        assert run_test(ext + "-back", "basic." + ext, "basic-%s.p8" % ext, compare="basic.p8", from_output=True)

def test_cli_format_options():
    assert run_test("format", "hello.lua", "hello.txt", "-f", "p8", compare="hello.p8")
    assert run_test("input-format", "hello.lua", "hello-lua.p8", "-F", "lua", compare="hello.p8")
    assert run_test("bad-input", "hello.lua", "bad.p8", "-F", "p8", exit_code=1)
    assert run_test("bad-output", "hello.lua", "hello.bad", exit_code=1)

def test_cli_info():
    success, stdout = run_code(get_test_path("test_input", "basic.p8"), "--info")
    assert success, stdout
    assert "version: 42.0" in stdout
    assert "gfx: 2/128 lines used" in stdout and "map: 2/32 lines used" in stdout
    assert "music: 2/64 lines used" in stdout and "label: no" in stdout
    assert "stored code" not in stdout

    cart = Cart()
    assert cart.load(get_test_path("test_input", "basic.p8"))
    rom_path = output_path("info.rom")
    assert cart.save(rom_path)
    success, stdout = run_code(rom_path, "--info")
    assert success, stdout
    assert f"stored code: {len(cart.compressed_code())}/{k_code_size} bytes" in stdout
    assert "gfx: 2/128 lines used" in stdout

def test_cli_errors():
    assert run_code(exit_code=1)[0]
    assert run_code(get_test_path("test_input", "basic.p8"), exit_code=1)[0]
    assert run_code(get_test_path("test_input", "missing.p8"), "--info", exit_code=1)[0]

def run():
    for name, func in list(globals().items()):
        if not name.startswith("test_") or not callable(func):
            continue
        if g_opts.test and not any(fnmatch.fnmatch(name[5:], wanted) for wanted in g_opts.test):
            continue

        start_test()
        try:
            func()
        except Exception:
            print(f"\nERROR - test {name[5:]} failed")
            traceback.print_exc()
            fail_test()
        else:
            if g_opts.verbose:
                print(f"Test {name[5:]} passed")

def main(raw_args):
    global g_opts
    g_opts = parser.parse_args(raw_args)
    init_tests(g_opts)

    run()
    return end_tests()

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
