from __future__ import annotations

from pathlib import Path
from typing import Union

from ..codec import decode, encode
from ..errors import FormatError, PreconditionError
from ..raster import RasterImage

PathLike = Union[str, Path]


def load_raster(path: PathLike) -> RasterImage:
    """
    Read and decode a bitmap, reporting the failing stage on error.
    """
    source = Path(path)
    try:
        data = source.read_bytes()
    except OSError as exc:
        raise PreconditionError(source, "read", exc.strerror or str(exc)) from exc

    try:
        return decode(data)
    except FormatError as exc:
        raise PreconditionError(source, "decode", str(exc)) from exc


def save_raster(image: RasterImage, path: PathLike, bit_depth: int = 32) -> Path:
    """
    Encode ``image`` and write it to ``path``. Encoding errors propagate as FormatError.
    """
    target = Path(path)
    payload = encode(image, bit_depth)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(payload)
    return target
