from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from ..errors import FormatError
from ..raster import RasterImage

logger = logging.getLogger(__name__)

SIGNATURE = b"BM"
FILE_HEADER = struct.Struct("<2sIII")
INFO_HEADER = struct.Struct("<IiiHHIIiiII")
MASKS = struct.Struct("<IIII")
V4_TAIL = struct.Struct("<I36x12x")

V4_HEADER_SIZE = INFO_HEADER.size + MASKS.size + V4_TAIL.size
PIXEL_OFFSET = FILE_HEADER.size + V4_HEADER_SIZE
PIXELS_PER_METER = 3780
LCS_SRGB = 0x73524742

COMPRESSION_RGB = 0
COMPRESSION_RLE8 = 1
COMPRESSION_RLE4 = 2
COMPRESSION_BITFIELDS = 3

SUPPORTED_DEPTHS = (1, 4, 8, 16, 24, 32)

IntOrArray = Union[int, np.ndarray]


def bit_count(mask: int) -> int:
    """
    Number of set bits in a channel mask.
    """
    return bin(mask & 0xFFFFFFFF).count("1")


def bit_position(mask: int) -> int:
    """
    Index of the lowest set bit of a channel mask (0 for an empty mask).
    """
    if mask == 0:
        return 0
    return (mask & -mask).bit_length() - 1


def convert(value: IntOrArray, from_bits: int, to_bits: int) -> IntOrArray:
    """
    Rescale a channel value between bit widths.

    Narrowing drops the low bits. Widening shifts left and, for non-zero
    values, fills the vacated low bits with ones so that the maximal input
    maps to the maximal output. Accepts ints or unsigned integer arrays.
    """
    if to_bits < from_bits:
        return value >> (from_bits - to_bits)
    delta = to_bits - from_bits
    fill = (1 << delta) - 1
    shifted = value << delta
    if isinstance(shifted, np.ndarray):
        return np.where(shifted > 0, shifted | fill, shifted)
    return shifted | fill if shifted > 0 else shifted


@dataclass(slots=True, frozen=True)
class ChannelMasks:
    red: int
    green: int
    blue: int
    alpha: int = 0

    @property
    def total_bits(self) -> int:
        """
        Bits per pixel implied by the masks, rounded up to a whole byte.
        """
        bits = bit_count(self.red) + bit_count(self.green) + bit_count(self.blue) + bit_count(self.alpha)
        return (bits + 7) & ~7


ARGB_8888 = ChannelMasks(red=0x00FF0000, green=0x0000FF00, blue=0x000000FF, alpha=0xFF000000)
RGB_888 = ChannelMasks(red=0x00FF0000, green=0x0000FF00, blue=0x000000FF)
RGB_565 = ChannelMasks(red=0x0000F800, green=0x000007E0, blue=0x0000001F)

# (red, green, blue) bits of the fixed palettes used for indexed encoding.
PALETTE_LATTICES = {4: (2, 1, 1), 8: (3, 3, 2)}


@dataclass(slots=True)
class BitmapHeader:
    """
    Fields of the file and info headers that drive decoding.
    """

    bits_offset: int
    header_size: int
    width: int
    height: int
    top_down: bool
    bit_depth: int
    compression: int
    colors_used: int
    masks: Optional[ChannelMasks]

    @property
    def row_stride(self) -> int:
        return ((self.width * self.bit_depth + 31) // 32) * 4


def read_header(data: bytes) -> BitmapHeader:
    """
    Parse and validate the file and info headers.
    """
    if len(data) < FILE_HEADER.size + INFO_HEADER.size:
        raise FormatError("bitmap data is too short to hold its headers")

    signature, _file_size, _reserved, bits_offset = FILE_HEADER.unpack_from(data, 0)
    if signature != SIGNATURE:
        raise FormatError(f"bad bitmap signature {signature!r}")

    (
        header_size,
        width,
        height,
        _planes,
        depth,
        compression,
        _size_image,
        _ppm_x,
        _ppm_y,
        colors_used,
        _colors_important,
    ) = INFO_HEADER.unpack_from(data, FILE_HEADER.size)

    if header_size < INFO_HEADER.size:
        raise FormatError(f"unsupported info header size {header_size}")
    if width <= 0 or height == 0:
        raise FormatError(f"invalid bitmap dimensions {width}x{height}")
    if depth not in SUPPORTED_DEPTHS:
        raise FormatError(f"unsupported bit depth {depth}")
    if compression == COMPRESSION_RLE4:
        raise FormatError("4-bit run-length compression is not supported")
    if compression == COMPRESSION_RLE8 and depth != 8:
        raise FormatError(f"8-bit run-length compression cannot encode {depth}-bit pixels")
    if compression == COMPRESSION_BITFIELDS and depth not in (16, 32):
        raise FormatError(f"channel masks are not supported for {depth}-bit pixels")
    if compression not in (COMPRESSION_RGB, COMPRESSION_RLE8, COMPRESSION_BITFIELDS):
        raise FormatError(f"unsupported compression mode {compression}")

    top_down = height < 0
    if top_down and compression == COMPRESSION_RLE8:
        raise FormatError("run-length bitmaps cannot be stored top-down")

    masks = None
    if compression == COMPRESSION_BITFIELDS:
        masks = _read_masks(data, header_size)

    return BitmapHeader(
        bits_offset=bits_offset,
        header_size=header_size,
        width=width,
        height=abs(height),
        top_down=top_down,
        bit_depth=depth,
        compression=compression,
        colors_used=colors_used,
        masks=masks,
    )


def _read_masks(data: bytes, header_size: int) -> ChannelMasks:
    start = FILE_HEADER.size + INFO_HEADER.size
    # A bare 40-byte header stores three masks right after it.
    with_alpha = header_size >= INFO_HEADER.size + MASKS.size
    needed = MASKS.size if with_alpha else MASKS.size - 4
    if len(data) < start + needed:
        raise FormatError("bitmap data is too short to hold its channel masks")
    if with_alpha:
        red, green, blue, alpha = MASKS.unpack_from(data, start)
    else:
        red, green, blue = struct.unpack_from("<III", data, start)
        alpha = 0
    return ChannelMasks(red=red, green=green, blue=blue, alpha=alpha)


def read_palette(data: bytes, header: BitmapHeader) -> np.ndarray:
    """
    Load the colour table as a full-size ``(2**depth, 4)`` RGBA array.

    Entries past the declared count stay black. The reserved byte of each
    entry is ignored and alpha is opaque.
    """
    capacity = 1 << header.bit_depth
    declared = header.colors_used or capacity
    count = min(declared, capacity)

    start = FILE_HEADER.size + header.header_size
    end = start + count * 4
    if len(data) < end:
        raise FormatError(f"bitmap data is too short to hold {count} palette entries")

    entries = np.frombuffer(data, dtype=np.uint8, count=count * 4, offset=start).reshape(count, 4)
    palette = np.zeros((capacity, 4), dtype=np.uint8)
    palette[:count, 0] = entries[:, 2]
    palette[:count, 1] = entries[:, 1]
    palette[:count, 2] = entries[:, 0]
    palette[:, 3] = 255
    return palette


def decode(data: bytes) -> RasterImage:
    """
    Decode a BMP byte string into a top-left origin RGBA raster.
    """
    header = read_header(data)
    palette = read_palette(data, header) if header.bit_depth <= 8 else None

    if header.compression == COMPRESSION_RLE8 and palette is not None:
        pixels = palette[_decode_rle8(data, header)]
    else:
        rows = _read_rows(data, header)
        if header.masks is not None:
            pixels = _unpack_bitfields(rows, header.width, header.bit_depth, header.masks)
        elif palette is not None:
            pixels = palette[_unpack_indices(rows, header.width, header.bit_depth)]
        else:
            pixels = _unpack_direct(rows, header.width, header.bit_depth)

    if not header.top_down:
        pixels = pixels[::-1]

    logger.debug(
        "decoded %dx%d bitmap depth=%d compression=%d",
        header.width,
        header.height,
        header.bit_depth,
        header.compression,
    )
    return RasterImage(np.ascontiguousarray(pixels, dtype=np.uint8))


def _read_rows(data: bytes, header: BitmapHeader) -> np.ndarray:
    stride = header.row_stride
    needed = stride * header.height
    if header.bits_offset + needed > len(data):
        raise FormatError(
            f"pixel data truncated: need {needed} bytes at offset {header.bits_offset}, "
            f"have {max(0, len(data) - header.bits_offset)}"
        )
    raw = np.frombuffer(data, dtype=np.uint8, count=needed, offset=header.bits_offset)
    return raw.reshape(header.height, stride)


def _unpack_indices(rows: np.ndarray, width: int, depth: int) -> np.ndarray:
    if depth == 1:
        return np.unpackbits(rows, axis=1, bitorder="big")[:, :width]
    if depth == 4:
        nibbles = np.empty((rows.shape[0], rows.shape[1] * 2), dtype=np.uint8)
        nibbles[:, 0::2] = rows >> 4
        nibbles[:, 1::2] = rows & 0x0F
        return nibbles[:, :width]
    return rows[:, :width]


def _unpack_direct(rows: np.ndarray, width: int, depth: int) -> np.ndarray:
    height = rows.shape[0]
    pixels = np.empty((height, width, 4), dtype=np.uint8)

    if depth == 16:
        values = np.ascontiguousarray(rows[:, : width * 2]).view("<u2")
        pixels[..., 0] = ((values >> 10) & 0x1F) << 3
        pixels[..., 1] = ((values >> 5) & 0x1F) << 3
        pixels[..., 2] = (values & 0x1F) << 3
        pixels[..., 3] = 255
    elif depth == 24:
        bgr = rows[:, : width * 3].reshape(height, width, 3)
        pixels[..., :3] = bgr[..., ::-1]
        pixels[..., 3] = 255
    else:
        bgra = rows[:, : width * 4].reshape(height, width, 4)
        pixels[..., :3] = bgra[..., 2::-1]
        pixels[..., 3] = bgra[..., 3]
    return pixels


def _unpack_bitfields(rows: np.ndarray, width: int, depth: int, masks: ChannelMasks) -> np.ndarray:
    bytes_per_pixel = depth // 8
    dtype = "<u2" if depth == 16 else "<u4"
    values = np.ascontiguousarray(rows[:, : width * bytes_per_pixel]).view(dtype).astype(np.uint32)

    pixels = np.empty(values.shape + (4,), dtype=np.uint8)
    channels = (masks.red, masks.green, masks.blue, masks.alpha)
    for channel, mask in enumerate(channels):
        if channel == 3 and mask == 0:
            pixels[..., 3] = 255
            continue
        component = (values & np.uint32(mask)) >> np.uint32(bit_position(mask))
        pixels[..., channel] = convert(component, bit_count(mask), 8)
    return pixels


def _decode_rle8(data: bytes, header: BitmapHeader) -> np.ndarray:
    """
    Expand 8-bit run-length data into a bottom-up index array.
    """
    width, height = header.width, header.height
    indices = np.zeros((height, width), dtype=np.uint8)
    stream = memoryview(data)[header.bits_offset :]
    length = len(stream)

    def check_run(x: int, y: int, count: int) -> None:
        if y >= height or x + count > width:
            raise FormatError(f"run of {count} pixels at ({x}, {y}) exceeds {width}x{height} bitmap")

    pos = 0
    x = y = 0
    while pos + 1 < length:
        count, value = stream[pos], stream[pos + 1]
        pos += 2

        if count > 0:
            check_run(x, y, count)
            indices[y, x : x + count] = value
            x += count
        elif value == 0:
            x = 0
            y += 1
        elif value == 1:
            break
        elif value == 2:
            if pos + 1 >= length:
                raise FormatError("run-length delta truncated")
            x += stream[pos]
            y += stream[pos + 1]
            pos += 2
        else:
            if pos + value > length:
                raise FormatError("run-length absolute run truncated")
            check_run(x, y, value)
            indices[y, x : x + value] = np.frombuffer(stream[pos : pos + value], dtype=np.uint8)
            pos += value
            x += value
            if pos & 1:
                pos += 1

    return indices


def pack_bitfields(image: RasterImage, masks: ChannelMasks) -> bytes:
    """
    Pack an image into bottom-up, 4-byte padded scanlines using channel masks.
    """
    depth = masks.total_bits
    if depth == 0 or depth > 32:
        raise FormatError(f"channel masks need {depth} bits per pixel; at most 32 are supported")

    source = image.pixels[::-1].astype(np.uint32)
    values = np.zeros(source.shape[:2], dtype=np.uint32)
    channels = (masks.red, masks.green, masks.blue, masks.alpha)
    for channel, mask in enumerate(channels):
        if mask == 0:
            continue
        scaled = convert(source[..., channel], 8, bit_count(mask))
        values |= (scaled.astype(np.uint32) << np.uint32(bit_position(mask))) & np.uint32(mask)

    bytes_per_pixel = depth // 8
    height, width = values.shape
    packed = values.astype("<u4").view(np.uint8).reshape(height, width, 4)[..., :bytes_per_pixel]
    return _pad_rows(packed.reshape(height, width * bytes_per_pixel), width, depth)


def build_palette(depth: int) -> np.ndarray:
    """
    Fixed lattice palette for 4- or 8-bit encoding as a ``(2**depth, 4)`` RGBA array.
    """
    if depth not in PALETTE_LATTICES:
        raise FormatError(f"no palette available for {depth}-bit pixels")
    red_bits, green_bits, blue_bits = PALETTE_LATTICES[depth]

    index = np.arange(1 << depth, dtype=np.uint32)
    red = index & ((1 << red_bits) - 1)
    green = (index >> red_bits) & ((1 << green_bits) - 1)
    blue = index >> (red_bits + green_bits)

    palette = np.empty((1 << depth, 4), dtype=np.uint8)
    palette[:, 0] = convert(red, red_bits, 8)
    palette[:, 1] = convert(green, green_bits, 8)
    palette[:, 2] = convert(blue, blue_bits, 8)
    palette[:, 3] = 255
    return palette


def palette_indices(image: RasterImage, depth: int) -> np.ndarray:
    """
    Map pixels onto the lattice palette by truncating each channel's low bits.
    """
    if depth not in PALETTE_LATTICES:
        raise FormatError(f"no palette available for {depth}-bit pixels")
    red_bits, green_bits, blue_bits = PALETTE_LATTICES[depth]
    pixels = image.pixels
    red = pixels[..., 0] >> (8 - red_bits)
    green = pixels[..., 1] >> (8 - green_bits)
    blue = pixels[..., 2] >> (8 - blue_bits)
    return (red | (green << red_bits) | (blue << (red_bits + green_bits))).astype(np.uint8)


def _pack_indexed(image: RasterImage, depth: int) -> bytes:
    indices = palette_indices(image, depth)[::-1]
    height, width = indices.shape
    if depth == 4:
        if width % 2:
            indices = np.pad(indices, ((0, 0), (0, 1)))
        indices = (indices[:, 0::2] << 4) | indices[:, 1::2]
    return _pad_rows(indices, width, depth)


def _pad_rows(rows: np.ndarray, width: int, depth: int) -> bytes:
    stride = ((width * depth + 31) // 32) * 4
    padded = np.zeros((rows.shape[0], stride), dtype=np.uint8)
    padded[:, : rows.shape[1]] = rows
    return padded.tobytes()


def encode(image: RasterImage, bit_depth: int = 32) -> bytes:
    """
    Encode a raster as a bottom-up BMP with a V4 info header.

    32 and 16 bits use channel masks (ARGB 8-8-8-8 and RGB 5-6-5), 24 bits is
    plain BGR, 8 and 4 bits use a fixed lattice palette. Other depths raise
    FormatError.
    """
    palette: Optional[np.ndarray] = None
    masks = ChannelMasks(0, 0, 0, 0)

    if bit_depth == 32:
        compression = COMPRESSION_BITFIELDS
        masks = ARGB_8888
        body = pack_bitfields(image, masks)
    elif bit_depth == 24:
        compression = COMPRESSION_RGB
        body = pack_bitfields(image, RGB_888)
    elif bit_depth == 16:
        compression = COMPRESSION_BITFIELDS
        masks = RGB_565
        body = pack_bitfields(image, masks)
    elif bit_depth in PALETTE_LATTICES:
        compression = COMPRESSION_RGB
        palette = build_palette(bit_depth)
        body = _pack_indexed(image, bit_depth)
    else:
        raise FormatError(f"cannot encode {bit_depth}-bit bitmaps")

    palette_bytes = b""
    if palette is not None:
        bgr0 = np.zeros_like(palette)
        bgr0[:, :3] = palette[:, 2::-1]
        palette_bytes = bgr0.tobytes()

    bits_offset = PIXEL_OFFSET + len(palette_bytes)
    file_header = FILE_HEADER.pack(SIGNATURE, bits_offset + len(body), 0, bits_offset)
    info_header = INFO_HEADER.pack(
        V4_HEADER_SIZE,
        image.width,
        image.height,
        1,
        bit_depth,
        compression,
        len(body),
        PIXELS_PER_METER,
        PIXELS_PER_METER,
        0 if palette is None else len(palette),
        0,
    )
    mask_block = MASKS.pack(masks.red, masks.green, masks.blue, masks.alpha)
    return file_header + info_header + mask_block + V4_TAIL.pack(LCS_SRGB) + palette_bytes + body
