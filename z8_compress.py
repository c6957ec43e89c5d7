from z8_utils import *
from z8_defs import *

class CodeOverflowError(CheckError):
    """The code doesn't fit in the cart (too many chars, or too big when compressed)"""

k_max_code_chars = 0xffff

k_old_code_table = [
    None, '\n', ' ', '0', '1', '2', '3', '4', '5', '6', '7', '8', '9', # 00
    'a', 'b', 'c', 'd', 'e', 'f', 'g', 'h', 'i', 'j', 'k', 'l', 'm', # 0d
    'n', 'o', 'p', 'q', 'r', 's', 't', 'u', 'v', 'w', 'x', 'y', 'z', # 1a
    '!', '#', '%', '(', ')', '{', '}', '[', ']', '<', '>', # 27
    '+', '=', '/', '*', ':', ';', '.', ',', '~', '_' # 32
]

k_old_compressed_code_header = b":c:\0"
k_new_compressed_code_header = b"\0pxa"

k_min_match = 3
k_max_match_offset = 0x8000 # 15 bits (minus one)
k_match_chain_limit = 64 # how many previous positions to try per match lookup

class Lz77Entry(Tuple):
    """A copy of 'count' chars starting from an 'offset' to the left of the current position."""
    offset = count = ...

def update_mtf(mtf, idx, ch):
    del mtf[idx]
    mtf.insert(0, ch)

def uncompress_code(r, max_code_size=k_code_size):
    """Read code from 'r' - either compressed (in the new or old format) or raw & zero-terminated"""
    header = r.bytes(4, allow_eof=True)

    if header == k_new_compressed_code_header:
        # bit stream with move-to-front literals & lz77 matches
        unc_size = r.u16()
        com_size = r.u16()
        debug(f"compressed code: {com_size} bytes, {unc_size} chars")

        mtf = [chr(i) for i in range(0x100)]
        br = BinaryBitReader(r.f)

        code = []
        while len(code) < unc_size:
            if br.bit():
                extra = 0
                while br.bit():
                    extra += 1
                idx = br.bits(4 + extra) + make_mask(4, extra)
                code.append(mtf[idx])
                update_mtf(mtf, idx, code[-1])
            else:
                offlen = (5 if br.bit() else 10) if br.bit() else 15
                offset = br.bits(offlen) + 1

                if offset == 1 and offlen != 5:
                    # literal block, terminated by a zero
                    while True:
                        ch = br.bits(8)
                        if ch == 0:
                            break
                        code.append(chr(ch))
                else:
                    count = k_min_match
                    while True:
                        part = br.bits(3)
                        count += part
                        if part != 7:
                            break

                    check(offset <= len(code), "corrupted compressed code (bad offset)")
                    for _ in range(count):
                        code.append(code[-offset])

        check(len(code) == unc_size, "corrupted compressed code (bad size)")

    elif header == k_old_compressed_code_header:
        # byte stream with a table of common chars & short matches
        unc_size = r.u16()
        r.u16() # unused
        debug(f"old compressed code: {unc_size} chars")

        code = []
        while True:
            ch = r.u8()
            if ch == 0x00:
                ch2 = r.u8()
                if ch2 == 0x00:
                    break
                code.append(chr(ch2))

            elif ch <= 0x3b:
                code.append(k_old_code_table[ch])

            else:
                ch2 = r.u8()
                count = (ch2 >> 4) + 2
                offset = ((ch - 0x3c) << 4) + (ch2 & 0xf)
                check(0 < offset <= len(code), "corrupted compressed code (bad offset)")
                for _ in range(count):
                    code.append(code[-offset])

        if len(code) not in (unc_size, unc_size - 1): # (the final null may be dropped)
            debug(f"old compressed code size mismatch: {len(code)} vs {unc_size}")

    else:
        r.subpos(len(header))
        code = decode_p8str(r.zbytes(max_code_size, allow_eof=True))

    return "".join(code)

def get_compressed_size(r, max_code_size=k_code_size):
    """Return the size of the code stored at 'r' (as stored - compressed or not)"""
    start_pos = r.pos()
    header = r.bytes(4, allow_eof=True)

    if header == k_new_compressed_code_header:
        r.u16()
        return r.u16()

    elif header == k_old_compressed_code_header:
        r.u16()
        r.u16()
        while True:
            ch = r.u8()
            if ch == 0:
                if r.u8() == 0:
                    break
            elif ch > 0x3b:
                r.u8()
        return r.pos() - start_pos

    else:
        r.subpos(len(header))
        return len(r.zbytes(max_code_size, allow_eof=True))

def find_lz77_matches(code):
    """Greedily transform code into a sequence of literals (chars) and Lz77Entry-ies"""
    chains = defaultdict(list) # for each k_min_match-sized sequence - where it occurred

    def find_match(i):
        best_c, best_j = 0, -1
        for j in reversed(chains.get(code[i:i+k_min_match], ())[-k_match_chain_limit:]):
            if i - j > k_max_match_offset:
                break
            c = 0
            while i + c < len(code) and code[j + c] == code[i + c]:
                c += 1
            if c > best_c:
                best_c, best_j = c, j

        # a short far match costs more than its literals
        if best_c < k_min_match or (best_c == k_min_match and i - best_j > 0x400):
            return 0, -1
        return best_c, best_j

    def add_chains(start, end):
        for j in range(start, end):
            chains[code[j:j+k_min_match]].append(j)

    i = 0
    while i < len(code):
        best_c, best_j = find_match(i)
        if best_c > 0:
            # prefer a literal if the next position has a clearly better match
            add_chains(i, i + 1)
            next_c, _ = find_match(i + 1) if i + 1 < len(code) else (0, -1)
            if next_c > best_c + 1:
                yield code[i]
                i += 1
                continue

            yield Lz77Entry(i - best_j, best_c)
            add_chains(i + 1, i + best_c)
            i += best_c
        else:
            yield code[i]
            add_chains(i, i + 1)
            i += 1

def compress_code(w, code, fail_on_error=True):
    """Write 'code' (a p8str) to 'w' in the new compressed format"""
    start_pos = w.pos()
    w.bytes(k_new_compressed_code_header)
    w.u16(len(code) & 0xffff) # (checked below)
    len_pos = w.pos()
    w.u16(0) # revised below

    bw = BinaryBitWriter(w.f)
    mtf = [chr(i) for i in range(0x100)]

    def write_match(item):
        bw.bit(0)
        offset_val = item.offset - 1
        count_val = item.count - k_min_match

        offset_bits = max(round_up(count_significant_bits(offset_val), 5), 5)
        assert offset_bits in (5, 10, 15)
        bw.bit(offset_bits < 15)
        if offset_bits < 15:
            bw.bit(offset_bits < 10)
        bw.bits(offset_bits, offset_val)

        while count_val >= 7:
            bw.bits(3, 7)
            count_val -= 7
        bw.bits(3, count_val)

    def write_literal(ch):
        bw.bit(1)
        ch_i = mtf.index(ch)

        i_val = ch_i
        i_bits = 4
        while i_val >= (1 << i_bits):
            bw.bit(1)
            i_val -= 1 << i_bits
            i_bits += 1

        bw.bit(0)
        bw.bits(i_bits, i_val)
        update_mtf(mtf, ch_i, ch)

    for item in find_lz77_matches(code):
        if isinstance(item, Lz77Entry):
            write_match(item)
        else:
            write_literal(item)
    bw.flush()

    size = w.pos() - start_pos
    debug(f"compressed code length: {size}/{k_code_size}")

    if fail_on_error:
        if len(code) > k_max_code_chars:
            raise CodeOverflowError(f"cart has too many characters! ({len(code)}/{k_max_code_chars})")
        if size > k_code_size:
            raise CodeOverflowError(f"cart takes too much compressed space! ({size}/{k_code_size})")

    end_pos = w.pos()
    w.setpos(len_pos)
    w.u16(size & 0xffff)
    w.setpos(end_pos)

def compress(code):
    """Compress a p8str into bytes"""
    io = BytesIO()
    compress_code(BinaryWriter(io, big_end=True), code)
    return io.getvalue()

def decompress(data):
    """Decompress bytes (as stored in the code area of a cart) into a p8str"""
    with BinaryReader(BytesIO(data), big_end=True) as r:
        try:
            return uncompress_code(r)
        except (struct.error, IndexError):
            throw("corrupted compressed code (truncated)")
