"""Pure-Python PNG decoding with a built-in inflate, plus a PNG to TGA converter."""

__version__ = "0.1.0"
__all__ = ["errors", "inflate", "decoder", "png2tga"]