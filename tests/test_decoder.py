import struct
import zlib

import pytest

from micropng.decoder import (
    ColorType,
    Format,
    PngImage,
    State,
    determine_format,
    paeth_predictor,
    remove_padding_bits,
    unfilter,
    unfilter_scanline,
)
from micropng.errors import (
    InterlacedError,
    MalformedError,
    NotPngError,
    UnsupportedChunkError,
    UnsupportedFormatError,
)

SIGNATURE = b"\x89PNG\r\n\x1a\n"


def chunk(kind, payload):
    crc = zlib.crc32(kind + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", crc)


def ihdr(width, height, depth, color, compression=0, filter_method=0, interlace=0):
    return chunk(
        b"IHDR",
        struct.pack(">IIBBBBB", width, height, depth, color, compression, filter_method, interlace),
    )


def encode_rows(rows, bytewidth, filter_type):
    out = bytearray()
    previous = bytes(len(rows[0]))
    for row in rows:
        out.append(filter_type)
        for i, value in enumerate(row):
            left = row[i - bytewidth] if i >= bytewidth else 0
            up = previous[i]
            upper_left = previous[i - bytewidth] if i >= bytewidth else 0
            prediction = {
                0: 0,
                1: left,
                2: up,
                3: (left + up) // 2,
                4: paeth_predictor(left, up, upper_left),
            }[filter_type]
            out.append((value - prediction) & 0xFF)
        previous = row
    return bytes(out)


def make_png(width, height, depth, color, raw, extra=(), idat_parts=1, **header):
    compressed = zlib.compress(raw)
    step = max(1, -(-len(compressed) // idat_parts))
    idats = b"".join(
        chunk(b"IDAT", compressed[i:i + step]) for i in range(0, len(compressed), step)
    )
    return (
        SIGNATURE
        + ihdr(width, height, depth, color, **header)
        + b"".join(extra)
        + idats
        + chunk(b"IEND", b"")
    )


RGB_ROWS = [bytes([255, 0, 0, 0, 255, 0]), bytes([0, 0, 255, 10, 20, 30])]


def test_determine_format_known_pairs():
    assert determine_format(ColorType.RGBA, 8) is Format.RGBA8
    assert determine_format(ColorType.RGB, 16) is Format.RGB16
    assert determine_format(ColorType.LUM, 1) is Format.LUMINANCE1
    assert determine_format(ColorType.LUMA, 4) is Format.LUMINANCE_ALPHA4


@pytest.mark.parametrize("color, depth", [(3, 8), (2, 4), (0, 16), (6, 1), (1, 8)])
def test_determine_format_bad(color, depth):
    assert determine_format(color, depth) is Format.BADFORMAT


@pytest.mark.parametrize("a, b, c", [(1, 2, 3), (10, 200, 50), (0, 0, 0), (255, 3, 128)])
def test_paeth_returns_one_of_inputs(a, b, c):
    assert paeth_predictor(a, b, c) in (a, b, c)


def test_paeth_trivial_cases():
    assert paeth_predictor(77, 0, 0) == 77
    assert paeth_predictor(0, 42, 0) == 42


def test_unfilter_scanline_sub():
    assert unfilter_scanline(b"\x01\x01\x01", None, 1, 1) == b"\x01\x02\x03"


@pytest.mark.parametrize("filter_type", [0, 1, 2, 3, 4])
def test_unfilter_scanline_round_trip(filter_type):
    rows = [bytes([5, 200, 17, 90, 3, 250]), bytes([100, 7, 255, 0, 60, 128])]
    encoded = encode_rows(rows, 3, filter_type)
    first = unfilter_scanline(encoded[1:7], None, 3, encoded[0])
    second = unfilter_scanline(encoded[8:14], first, 3, encoded[7])
    assert first == rows[0]
    assert second == rows[1]


def test_unfilter_scanline_bad_type():
    with pytest.raises(MalformedError):
        unfilter_scanline(b"\x00\x00", None, 1, 5)


@pytest.mark.parametrize("filter_type", [0, 1, 2, 3, 4])
def test_unfilter_whole_image(filter_type):
    rows = [bytes([1, 2, 3, 4]), bytes([9, 8, 7, 6]), bytes([200, 100, 50, 25])]
    encoded = encode_rows(rows, 2, filter_type)
    assert unfilter(encoded, 2, 3, 16) == b"".join(rows)


def test_unfilter_short_data():
    with pytest.raises(MalformedError):
        unfilter(b"\x00\x01", 2, 2, 8)


def test_remove_padding_bits_packs_rows():
    assert remove_padding_bits(bytes([0b10100000, 0b01100000]), 3, 8, 2) == b"\xac"


def test_remove_padding_bits_identity_without_padding():
    data = bytes([0x12, 0x34, 0x56])
    assert remove_padding_bits(data, 8, 8, 3) == data


def test_remove_padding_bits_rejects_longer_output():
    with pytest.raises(ValueError):
        remove_padding_bits(b"\x00", 9, 8, 1)


def test_decode_rgb8():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0))
    image = PngImage.from_bytes(png)
    buffer = image.decode()
    assert buffer == b"".join(RGB_ROWS)
    assert image.format is Format.RGB8
    assert (image.width, image.height) == (2, 2)
    assert image.components == 3
    assert image.bpp == 24
    assert image.pixelsize == image.bpp
    assert image.size == len(buffer)
    assert image.state is State.DECODED


@pytest.mark.parametrize("filter_type", [1, 2, 3, 4])
def test_decode_filtered_rgba8(filter_type):
    rows = [bytes(range(8)), bytes(range(100, 108))]
    png = make_png(2, 2, 8, 6, encode_rows(rows, 4, filter_type))
    image = PngImage.from_bytes(png)
    assert image.decode() == b"".join(rows)
    assert image.format is Format.RGBA8


def test_decode_luminance8_and_luminance_alpha8():
    lum_rows = [bytes([0, 255]), bytes([128, 64])]
    lum = PngImage.from_bytes(make_png(2, 2, 8, 0, encode_rows(lum_rows, 1, 0)))
    assert lum.decode() == b"".join(lum_rows)
    assert lum.components == 1

    la_rows = [bytes([1, 2, 3, 4]), bytes([5, 6, 7, 8])]
    la = PngImage.from_bytes(make_png(2, 2, 8, 4, encode_rows(la_rows, 2, 0)))
    assert la.decode() == b"".join(la_rows)
    assert la.format is Format.LUMINANCE_ALPHA8


def test_decode_rgb16():
    rows = [bytes(range(12)), bytes(range(50, 62))]
    image = PngImage.from_bytes(make_png(2, 2, 16, 2, encode_rows(rows, 6, 0)))
    assert image.decode() == b"".join(rows)
    assert image.size == 2 * 2 * 48 // 8


def test_decode_non_square_rgb8():
    rows = [bytes(range(i, i + 6)) for i in (0, 10, 20)]
    image = PngImage.from_bytes(make_png(2, 3, 8, 2, encode_rows(rows, 3, 2)))
    assert image.decode() == b"".join(rows)
    assert image.size == image.width * image.height * 3


def test_decode_one_bit_luminance_removes_padding():
    rows = [bytes([0b10100000]), bytes([0b01100000])]
    image = PngImage.from_bytes(make_png(3, 2, 1, 0, encode_rows(rows, 1, 0)))
    assert image.decode() == b"\xac"
    assert image.format is Format.LUMINANCE1
    assert image.size == (3 * 2 + 7) // 8


def test_decode_luminance_alpha4_pixelsize():
    rows = [bytes([0x12, 0x34]), bytes([0x56, 0x78])]
    image = PngImage.from_bytes(make_png(2, 2, 4, 4, encode_rows(rows, 1, 0)))
    assert image.decode() == b"".join(rows)
    assert image.bpp == 8
    assert image.pixelsize == image.bpp


def test_decode_multiple_idat_chunks():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), idat_parts=3)
    assert PngImage.from_bytes(png).decode() == b"".join(RGB_ROWS)


def test_ancillary_chunk_is_ignored():
    extra = [chunk(b"tEXt", b"Comment\x00hello")]
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), extra=extra)
    assert PngImage.from_bytes(png).decode() == b"".join(RGB_ROWS)


def test_critical_unknown_chunk_is_rejected():
    extra = [chunk(b"PLTE", b"\x00\x00\x00")]
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), extra=extra)
    with pytest.raises(UnsupportedChunkError):
        PngImage.from_bytes(png).decode()


def test_read_header_then_decode():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0))
    image = PngImage.from_bytes(png)
    assert image.state is State.NEW
    image.read_header()
    assert image.state is State.HEADER
    assert image.buffer == b""
    assert image.decode() == b"".join(RGB_ROWS)


def test_decode_twice_keeps_buffer():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0))
    image = PngImage.from_bytes(png)
    first = image.decode()
    assert image.decode() == first


def test_from_file(tmp_path):
    path = tmp_path / "image.png"
    path.write_bytes(make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0)))
    assert PngImage.from_file(path).decode() == b"".join(RGB_ROWS)


def test_from_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        PngImage.from_file(tmp_path / "missing.png")


def test_too_short_is_not_png():
    with pytest.raises(NotPngError):
        PngImage.from_bytes(SIGNATURE + b"\x00" * 10).decode()


def test_bad_signature_is_not_png_and_error_persists():
    png = bytearray(make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0)))
    png[1] = ord("X")
    image = PngImage.from_bytes(png)
    with pytest.raises(NotPngError):
        image.decode()
    assert image.state is State.ERROR
    with pytest.raises(NotPngError):
        image.decode()


def test_first_chunk_not_ihdr():
    png = bytearray(make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0)))
    png[12:16] = b"IHDX"
    with pytest.raises(MalformedError):
        PngImage.from_bytes(png).read_header()


def test_palette_format_unsupported():
    png = make_png(2, 2, 8, 3, b"\x00\x00\x00" * 2)
    image = PngImage.from_bytes(png)
    with pytest.raises(UnsupportedFormatError):
        image.read_header()
    assert image.components == 0


def test_nonzero_compression_method():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), compression=1)
    with pytest.raises(MalformedError):
        PngImage.from_bytes(png).read_header()


def test_nonzero_filter_method():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), filter_method=1)
    with pytest.raises(MalformedError):
        PngImage.from_bytes(png).read_header()


def test_interlaced_rejected():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0), interlace=1)
    with pytest.raises(InterlacedError):
        PngImage.from_bytes(png).decode()


def test_truncated_chunk_is_malformed():
    png = make_png(2, 2, 8, 2, encode_rows(RGB_ROWS, 3, 0))
    with pytest.raises(MalformedError):
        PngImage.from_bytes(png[:40]).decode()


def test_missing_image_data_is_malformed():
    png = SIGNATURE + ihdr(2, 2, 8, 2) + chunk(b"IEND", b"")
    with pytest.raises(MalformedError):
        PngImage.from_bytes(png).decode()


def test_corrupt_zlib_header_is_malformed():
    png = SIGNATURE + ihdr(2, 2, 8, 2) + chunk(b"IDAT", b"\x00\x00\x00") + chunk(b"IEND", b"")
    image = PngImage.from_bytes(png)
    with pytest.raises(MalformedError):
        image.decode()
    assert image.buffer == b""


def test_bad_filter_type_in_image_is_malformed():
    raw = bytes([7]) + RGB_ROWS[0] + bytes([0]) + RGB_ROWS[1]
    image = PngImage.from_bytes(make_png(2, 2, 8, 2, raw))
    with pytest.raises(MalformedError):
        image.decode()
    assert image.size == 0