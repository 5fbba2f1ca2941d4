"""
BMP codec translating between container bytes and canonical RGBA rasters.
"""

from .bitmap import ChannelMasks, convert, decode, encode, pack_bitfields

__all__ = ["ChannelMasks", "convert", "decode", "encode", "pack_bitfields"]
