from __future__ import annotations

import struct
from typing import Optional, Sequence, Tuple

import numpy as np
import pytest

from bmpmatch.codec import ChannelMasks, convert, decode, encode, pack_bitfields
from bmpmatch.codec.bitmap import bit_count, bit_position, build_palette, read_header
from bmpmatch.errors import FormatError
from bmpmatch.raster import RasterImage

Color = Tuple[int, int, int]


def build_bitmap(
    width: int,
    height: int,
    depth: int,
    pixel_data: bytes,
    *,
    compression: int = 0,
    palette: Optional[Sequence[Color]] = None,
    colors_used: Optional[int] = None,
    masks: Optional[Tuple[int, int, int]] = None,
    top_down: bool = False,
) -> bytes:
    """
    Assemble a BMP with a 40-byte info header. ``pixel_data`` is in file order.
    """
    if colors_used is None:
        colors_used = len(palette) if palette else 0
    info = struct.pack(
        "<IiiHHIIiiII",
        40,
        width,
        -height if top_down else height,
        1,
        depth,
        compression,
        len(pixel_data),
        0,
        0,
        colors_used,
        0,
    )
    mask_bytes = struct.pack("<III", *masks) if masks else b""
    palette_bytes = b"".join(bytes((b, g, r, 0)) for r, g, b in palette or ())
    offset = 14 + len(info) + len(mask_bytes) + len(palette_bytes)
    file_header = struct.pack("<2sIII", b"BM", offset + len(pixel_data), 0, offset)
    return file_header + info + mask_bytes + palette_bytes + pixel_data


def test_decode_24_bit_flips_rows_to_top_left_origin() -> None:
    bottom = bytes([0, 0, 255, 0, 255, 0, 0, 0])
    top = bytes([255, 0, 0, 255, 255, 255, 0, 0])
    image = decode(build_bitmap(2, 2, 24, bottom + top))

    assert (image.width, image.height) == (2, 2)
    assert image.pixel(0, 0) == (0, 0, 255, 255)
    assert image.pixel(1, 0) == (255, 255, 255, 255)
    assert image.pixel(0, 1) == (255, 0, 0, 255)
    assert image.pixel(1, 1) == (0, 255, 0, 255)


def test_decode_top_down_bitmap_keeps_row_order() -> None:
    first = bytes([255, 0, 0, 0])
    second = bytes([0, 0, 255, 0])
    image = decode(build_bitmap(1, 2, 24, first + second, top_down=True))

    assert image.pixel(0, 0) == (0, 0, 255, 255)
    assert image.pixel(0, 1) == (255, 0, 0, 255)


def test_decode_32_bit_keeps_alpha() -> None:
    image = decode(build_bitmap(1, 1, 32, bytes([10, 20, 30, 40])))

    assert image.pixel(0, 0) == (30, 20, 10, 40)


def test_decode_16_bit_555_forces_opaque_alpha() -> None:
    value = (31 << 10) | (0 << 5) | 16
    image = decode(build_bitmap(1, 1, 16, struct.pack("<HH", value, 0)))

    assert image.pixel(0, 0) == (248, 0, 128, 255)


def test_decode_1_bit_expands_msb_first_and_skips_padding() -> None:
    rows = bytes([0b10110000, 0b01000000, 0xFF, 0xFF])
    image = decode(build_bitmap(10, 1, 1, rows, palette=[(0, 0, 0), (255, 255, 255)]))

    lit = [image.pixel(x, 0)[0] == 255 for x in range(10)]
    assert lit == [True, False, True, True, False, False, False, False, False, True]


def test_decode_4_bit_uses_full_size_palette() -> None:
    rows = bytes([0x10, 0x50, 0x00, 0x00])
    image = decode(build_bitmap(3, 1, 4, rows, palette=[(10, 20, 30), (40, 50, 60)]))

    assert image.pixel(0, 0) == (40, 50, 60, 255)
    assert image.pixel(1, 0) == (10, 20, 30, 255)
    # Index 5 is past the declared entries and reads as black.
    assert image.pixel(2, 0) == (0, 0, 0, 255)


def test_decode_8_bit_with_zero_colors_used_reads_full_table() -> None:
    palette = [(i, 255 - i, i // 2) for i in range(256)]
    rows = bytes([7, 200, 0, 0])
    image = decode(build_bitmap(2, 1, 8, rows, palette=palette, colors_used=0))

    assert image.pixel(0, 0) == (7, 248, 3, 255)
    assert image.pixel(1, 0) == (200, 55, 100, 255)


def test_decode_rle8_handles_runs_padding_delta_and_end_markers() -> None:
    palette = [(0, 0, 0), (255, 0, 0), (0, 255, 0), (0, 0, 255)]
    stream = bytes(
        [
            1, 1,              # one red pixel
            0, 3, 2, 3, 2, 0,  # absolute run of three, padded
            0, 0,              # end of line
            0, 2, 1, 1,        # delta to (1, 2)
            3, 3,              # three blue pixels
            0, 1,              # end of bitmap
        ]
    )
    image = decode(build_bitmap(4, 3, 8, stream, compression=1, palette=palette))

    red, green, blue, black = (255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255), (0, 0, 0, 255)
    assert [image.pixel(x, 0) for x in range(4)] == [black, blue, blue, blue]
    assert [image.pixel(x, 1) for x in range(4)] == [black] * 4
    assert [image.pixel(x, 2) for x in range(4)] == [red, green, blue, green]


def test_decode_rle8_rejects_runs_past_the_bitmap() -> None:
    stream = bytes([5, 1, 0, 1])
    with pytest.raises(FormatError):
        decode(build_bitmap(4, 1, 8, stream, compression=1, palette=[(0, 0, 0), (1, 1, 1)]))


def test_decode_bitfields_565_after_bare_info_header() -> None:
    values = struct.pack("<HHHH", 0xFFFF, 0x07E0, 0x0801, 0)
    data = build_bitmap(3, 1, 16, values, compression=3, masks=(0xF800, 0x07E0, 0x001F))
    image = decode(data)

    assert image.pixel(0, 0) == (255, 255, 255, 255)
    assert image.pixel(1, 0) == (0, 255, 0, 255)
    assert image.pixel(2, 0) == (15, 0, 15, 255)


def test_decode_rejects_bad_signature() -> None:
    data = bytearray(build_bitmap(1, 1, 24, bytes(4)))
    data[:2] = b"XY"
    with pytest.raises(FormatError):
        decode(bytes(data))


def test_decode_rejects_rle4() -> None:
    with pytest.raises(FormatError):
        decode(build_bitmap(2, 1, 4, bytes([0, 1]), compression=2, palette=[(0, 0, 0)]))


def test_decode_rejects_truncated_pixel_data() -> None:
    data = build_bitmap(4, 4, 24, bytes(48))
    with pytest.raises(FormatError):
        decode(data[:-10])


def test_read_header_rejects_unknown_depth() -> None:
    with pytest.raises(FormatError):
        read_header(build_bitmap(1, 1, 7, bytes(4)))


def test_encode_32_bit_round_trip_is_lossless() -> None:
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, size=(7, 5, 4), dtype=np.uint8)
    image = RasterImage(pixels)

    data = encode(image, 32)
    header = read_header(data)

    assert header.compression == 3
    assert header.masks == ChannelMasks(0x00FF0000, 0x0000FF00, 0x000000FF, 0xFF000000)
    assert np.array_equal(decode(data).pixels, pixels)


def test_encode_24_bit_round_trip_with_row_padding() -> None:
    rng = np.random.default_rng(5)
    image = RasterImage.from_rgb(rng.integers(0, 256, size=(3, 5, 3), dtype=np.uint8))

    decoded = decode(encode(image, 24))

    assert np.array_equal(decoded.pixels, image.pixels)


def test_encode_16_bit_stays_within_one_quantization_step() -> None:
    rng = np.random.default_rng(11)
    image = RasterImage.from_rgb(rng.integers(0, 256, size=(4, 6, 3), dtype=np.uint8))
    image.set_pixel(0, 0, (255, 255, 255, 255))

    decoded = decode(encode(image, 16))
    error = np.abs(decoded.pixels[..., :3].astype(int) - image.pixels[..., :3].astype(int))

    assert error[..., 0].max() < 8
    assert error[..., 1].max() < 4
    assert error[..., 2].max() < 8
    assert decoded.pixel(0, 0) == (255, 255, 255, 255)


def test_encode_8_bit_maps_pixels_by_truncation() -> None:
    image = RasterImage.from_rgb(np.array([[[200, 100, 50], [255, 255, 255], [0, 0, 0]]], dtype=np.uint8))

    decoded = decode(encode(image, 8))

    assert decoded.pixel(0, 0) == (223, 127, 0, 255)
    assert decoded.pixel(1, 0) == (255, 255, 255, 255)
    assert decoded.pixel(2, 0) == (0, 0, 0, 255)


def test_encode_4_bit_handles_odd_width() -> None:
    rgb = np.array(
        [
            [[255, 255, 255], [0, 0, 0], [192, 128, 0]],
            [[64, 0, 128], [255, 0, 0], [0, 255, 255]],
        ],
        dtype=np.uint8,
    )
    decoded = decode(encode(RasterImage.from_rgb(rgb), 4))

    assert decoded.pixel(0, 0) == (255, 255, 255, 255)
    assert decoded.pixel(1, 0) == (0, 0, 0, 255)
    assert decoded.pixel(2, 0) == (255, 255, 0, 255)
    assert decoded.pixel(0, 1) == (127, 0, 255, 255)
    assert decoded.pixel(1, 1) == (255, 0, 0, 255)
    assert decoded.pixel(2, 1) == (0, 255, 255, 255)


@pytest.mark.parametrize("depth", [1, 2, 12, 48])
def test_encode_rejects_unsupported_depths(depth: int) -> None:
    with pytest.raises(FormatError):
        encode(RasterImage.blank(2, 2), depth)


def test_pack_bitfields_rejects_more_than_32_bits() -> None:
    masks = ChannelMasks(red=0xFFFF0000, green=0x0000FFFF, blue=0x00FFFF00)
    with pytest.raises(FormatError):
        pack_bitfields(RasterImage.blank(1, 1), masks)


def test_build_palette_entries_follow_lattice() -> None:
    palette = build_palette(8)

    assert palette.shape == (256, 4)
    assert tuple(palette[0]) == (0, 0, 0, 255)
    assert tuple(palette[255]) == (255, 255, 255, 255)
    assert tuple(palette[1]) == (0x3F, 0, 0, 255)
    assert tuple(palette[1 << 6]) == (0, 0, 0x7F, 255)


def test_mask_helpers() -> None:
    assert bit_count(0x07E0) == 6
    assert bit_position(0x07E0) == 5
    assert bit_position(0) == 0
    assert ChannelMasks(0xF800, 0x07E0, 0x001F).total_bits == 16


@pytest.mark.parametrize("bits", range(1, 9))
def test_convert_keeps_maximum_and_stays_within_one_step(bits: int) -> None:
    assert convert(convert(0xFF, 8, bits), bits, 8) == 0xFF
    step = 1 << (8 - bits)
    for value in range(256):
        restored = convert(convert(value, 8, bits), bits, 8)
        assert abs(restored - value) < step


def test_convert_widening_fills_low_bits_only_for_nonzero_values() -> None:
    assert convert(0, 5, 8) == 0
    assert convert(1, 5, 8) == 0b00001111
    assert convert(1, 1, 8) == 0xFF
    values = np.array([0, 1, 31], dtype=np.uint32)
    assert convert(values, 5, 8).tolist() == [0, 15, 255]
