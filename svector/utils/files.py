import asyncio
import base64
import mimetypes
import os
from pathlib import Path
from typing import Union

from ..core.runtime import FileTuple

PathLike = Union[str, "os.PathLike[str]"]


def _read_bytes(path: PathLike) -> bytes:
    with open(path, "rb") as f:
        return f.read()


async def read_bytes(path: PathLike) -> bytes:
    """Read a local file without blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _read_bytes, path)


async def read_upload(path: PathLike) -> FileTuple:
    """Build an upload tuple from a local path."""
    name = Path(path).name
    data = await read_bytes(path)
    return name, data, mimetypes.guess_type(name)[0] or "application/octet-stream"


async def image_to_data_url(path: PathLike) -> str:
    """Read a local image and return it as a base64 data URL."""
    data = await read_bytes(path)
    media_type = mimetypes.guess_type(str(path))[0] or "image/jpeg"
    return f"data:{media_type};base64,{base64.b64encode(data).decode('utf-8')}"
