"""Read artifacts and captured streams back as text."""

from __future__ import annotations

from pathlib import Path

from playground_sandbox.sandbox.errors import EncodingError, OutputMissingError, ReadError


def read_artifact(directory: Path | str, filename: str) -> str | None:
    """Return the text of ``directory/filename``, or ``None`` when it does not exist.

    A missing artifact is an expected outcome (failed compilations produce
    nothing). Any other I/O failure raises ``ReadError``; undecodable content
    raises ``EncodingError``.
    """

    if not filename or Path(filename).name != filename:
        raise ValueError(f"artifact filename must be a bare file name, got {filename!r}")
    return _read_text(Path(directory) / filename)


def require_artifact(path: Path | str) -> str:
    """Return the text at ``path``; its absence raises ``OutputMissingError``."""

    target = Path(path)
    content = _read_text(target)
    if content is None:
        raise OutputMissingError("output was missing", path=target)
    return content


def decode_stream(data: bytes, stream_name: str) -> str:
    """Strictly decode captured process output."""

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(f"{stream_name} was not valid UTF-8") from exc


def _read_text(path: Path) -> str | None:
    try:
        payload = path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ReadError("unable to read output file", path=path) from exc

    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError("output file was not valid UTF-8", path=path) from exc


__all__ = ["decode_stream", "read_artifact", "require_artifact"]
