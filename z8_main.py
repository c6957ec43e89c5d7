from z8_utils import *
from z8_defs import *
from z8_cart import Cart, CartFormat
import argparse

k_version = 'v1.0.0'

def EnumFromStr(enum_type):
    def cvt(name):
        return enum_type(name.replace("-", "_"))
    cvt.__name__ = enum_type.__name__
    return cvt

def EnumList(enum_type):
    return ", ".join(str.replace("_", "-") for str in enum_type._values)

def create_parser():
    parser = argparse.ArgumentParser(description="Convert carts between the p8, lua, png, js & rom formats")
    parser.add_argument("input", help="input cart", nargs='?')
    parser.add_argument("output", help="output cart", nargs='?')
    parser.add_argument("-f", "--format", type=EnumFromStr(CartFormat),
                        help="output cart format {%s} (default: per the output's extension)" % EnumList(CartFormat))
    parser.add_argument("-F", "--input-format", type=EnumFromStr(CartFormat),
                        help="input cart format {%s} (default: per the input's extension)" % EnumList(CartFormat))
    parser.add_argument("--info", action="store_true", help="print information about the input cart")
    parser.add_argument("-v", "--verbose", action="store_true", help="print debug information (same as setting Z8_DEBUG=1)")
    parser.add_argument("--version", action="store_true", help="print the version of z8cart and exit")

    pgroup = parser.add_argument_group("output options")
    pgroup.add_argument("--template-image", help="template image to use for png carts, instead of a plain generated one")
    pgroup.add_argument("--with-minor", action="store_true", help="write the minor version into the trailer of rom carts")
    pgroup.add_argument("--output-version", type=int, help="the version to write the cart as (same as 'version' field of p8 files)")
    pgroup.add_argument("--label", help="128x128 image to use as the label")
    pgroup.add_argument("--export-label", help="also write the label as a 128x128 image to this path")
    return parser

def print_info(cart):
    rom = cart.rom
    print(f"version: {cart.version_id}.{cart.version_minor}")
    print(f"code: {len(cart.code)} chars, {len(cart.compressed_code())}/{k_code_size} bytes compressed")
    if e(cart.stored_code_size):
        print(f"stored code: {cart.stored_code_size}/{k_code_size} bytes")

    for name, region_name, line_size in (("gfx", "gfx", 0x40), ("map", "map", 0x80), ("gff", "gfx_props", 0x80),
                                         ("sfx", "sfx", k_sfx_size), ("music", "song", k_song_size)):
        region = get_region(region_name)
        max_lines = region.size // line_size
        used = sum(1 for y in range(max_lines) if not rom.is_zero(region.addr + y * line_size, line_size))
        print(f"{name}: {used}/{max_lines} lines used")

    print(f"label: {'yes' if cart.label and any(cart.label.array) else 'no'}")
    for meta in cart.meta:
        print(f"meta: {meta}")

def check_result(result):
    if not result:
        throw(result.message)

def main_inner(args):
    if args.version:
        print(k_version)
        return 0

    if args.verbose:
        debug.enabled = True

    if not args.input:
        throw("No input file specified")
    if not args.output and not args.info and not args.export_label:
        throw("No operation (--info/--export-label) or output file specified")
    if args.format and not args.output:
        throw("Output should be specified under --format")

    cart = Cart()
    check_result(cart.load(args.input, args.input_format))

    if args.label:
        check_result(cart.load_label(args.label))
    if e(args.output_version):
        cart.version_id = args.output_version

    if args.info:
        print_info(cart)

    if args.output:
        check_result(cart.save(args.output, args.format, template_image=args.template_image, with_minor=args.with_minor))
    if args.export_label:
        check_result(cart.save_label(args.export_label))
    return 0

parser = create_parser()

def main(raw_args=None):
    try:
        raw_args = default(raw_args, sys.argv[1:])

        if not raw_args: # help is better than usage
            parser.print_help(sys.stderr)
            return 1

        args = parser.parse_args(raw_args)
        return main_inner(args)
    except CheckError as err:
        sys.stdout.flush()
        eprint("ERROR: " + str(err))
        return 1
