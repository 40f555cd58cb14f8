# micropng

A small PNG decoder written in pure Python. It has its own inflate
(DEFLATE/zlib) implementation and needs nothing beyond the standard library.

It decodes non-interlaced images in these formats:

- greyscale at 1, 2, 4 and 8 bits
- greyscale with alpha at 1, 2, 4 and 8 bits
- RGB at 8 and 16 bits
- RGBA at 8 and 16 bits

The decoded buffer holds the unfiltered pixel bytes exactly as the image
stores them; no conversion to another format is done.

## What it does not do

- Palette images, other colour types and unsupported bit depths are
  rejected with `UnsupportedFormatError`.
- Interlaced images are rejected with `InterlacedError`.
- Any critical chunk other than `IHDR`, `IDAT` and `IEND` is rejected with
  `UnsupportedChunkError`; ancillary chunks are skipped.
- Chunk CRCs and the zlib Adler-32 checksum are not verified.
- There is no encoder; the only output format is TGA, written by `png2tga`.

## Installation

```
pip install .
```

## Decoding an image

```python
from micropng.decoder import PngImage
from micropng.errors import PngError

try:
    image = PngImage.from_file("picture.png")
    pixels = image.decode()  # also kept in image.buffer
except PngError as exc:
    print("could not decode:", exc, exc.code)
else:
    print(image.width, image.height, image.bpp, image.format)
```

`PngImage.from_bytes(data)` does the same for data already in memory;
`from_file` raises `OSError` if the file cannot be read.

If only the dimensions and colour format are needed, call `read_header()`
instead of `decode()`; it fills in `width`, `height`, `color_type`,
`color_depth` and `format`.

Other members of `PngImage`:

- `components`, `bpp`, `pixelsize` and `size` are properties: channels per
  pixel, bits per pixel, bits per pixel rounded as `bpp + bpp % 8`, and the
  length of the decoded buffer.
- `state` is a `State` (`NEW`, `HEADER`, `DECODED` or `ERROR`).
- `error` holds the exception of a failed read; calling `read_header()` or
  `decode()` again raises it again.

The module also exposes the building blocks it uses: `determine_format`,
`paeth_predictor`, `unfilter_scanline`, `unfilter` and
`remove_padding_bits`, and the enums `Format` and `ColorType`.

## Errors

All errors raised while reading an image derive from
`micropng.errors.PngError`: `NotPngError`, `MalformedError`,
`UnsupportedChunkError`, `InterlacedError` and `UnsupportedFormatError`.
Each class has a `code` attribute holding an `ErrorCode`.
`error_for_code(code)` returns the exception class for a numeric code.

## Inflate on its own

```python
from micropng.inflate import inflate, zlib_decompress

raw = zlib_decompress(zlib_stream, out_size=limit)
raw = inflate(deflate_stream, out_size=limit)
```

`out_size` is an upper bound: the decompressed data must come out shorter
than it, or `MalformedError` is raised. `zlib_decompress` checks the zlib
header as PNG requires (method 8, window at most 32K, no preset
dictionary). `BitReader` and `HuffmanTree` are available as well.

## Converting to TGA

The `png2tga` command converts an 8-bit RGB or RGBA PNG into an uncompressed
TGA file, rows bottom first and channels in BGR(A) order:

```
png2tga input.png output.tga
```

It prints the image size (`width x height x bpp` and the buffer size) and
the numeric format. Images in other formats are decoded and reported but no
file is written. On failure it prints `error: <code>` with the numeric
`ErrorCode`. With fewer than two arguments it does nothing.

From Python, `micropng.png2tga.convert(source, destination)` does the same
and returns the decoded `PngImage`; `to_tga(image)` returns the TGA bytes
and `tga_header(width, height, bpp, bitdepth)` the 18-byte header.

## Running the tests

```
pip install .[test]
pytest
```