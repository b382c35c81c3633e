"""Network-related helpers."""

from __future__ import annotations

import errno
from typing import BinaryIO

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    errno.ETIMEDOUT,
}
if hasattr(errno, "WSAECONNRESET"):
    DISCONNECT_ERRNOS.add(errno.WSAECONNRESET)  # pragma: no cover

STREAM_CHUNK_BYTES = 64 * 1024


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, ConnectionAbortedError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def stream_file(source: BinaryIO, target: BinaryIO, chunk_size: int = STREAM_CHUNK_BYTES) -> bool:
    """Copy ``source`` to a client socket; False if the client went away."""
    try:
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                return True
            target.write(chunk)
    except OSError as exc:
        if is_client_disconnect(exc):
            return False
        raise
