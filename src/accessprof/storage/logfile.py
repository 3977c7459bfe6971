"""Durable access log: one LTSV line per observation, appended to a file."""
import logging
import os
from datetime import datetime

from accessprof.capture.observation import Observation
from accessprof.errors import LogDecodeError, LogFileError

logger = logging.getLogger(__name__)

METHOD_LABEL = "method"
PATH_LABEL = "path"
STATUS_LABEL = "status"
RESPONSE_BODY_SIZE_LABEL = "response_body_size"
RESPONSE_TIME_LABEL = "response_time_nano"
ACCESSED_AT_LABEL = "accessed_at"

# Tabs and newlines are field/record separators, so they cannot appear raw in a value
_ESCAPES = {"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "r": "\r"}


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _unescape(value: str) -> str:
    if "\\" not in value:
        return value
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt not in _UNESCAPES:
            raise LogDecodeError(f"invalid escape sequence '\\{nxt}'")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


def encode_observation(obs: Observation) -> str:
    """Encode one observation as a newline-terminated LTSV line."""
    return (
        f"{METHOD_LABEL}:{_escape(obs.method)}\t"
        f"{PATH_LABEL}:{_escape(obs.path)}\t"
        f"{STATUS_LABEL}:{obs.status}\t"
        f"{RESPONSE_BODY_SIZE_LABEL}:{obs.response_body_size}\t"
        f"{RESPONSE_TIME_LABEL}:{obs.response_time_ns}\t"
        f"{ACCESSED_AT_LABEL}:{obs.accessed_at.isoformat()}\n"
    )


def _require(table: dict[str, str], label: str) -> str:
    try:
        return table[label]
    except KeyError:
        raise LogDecodeError(f"missing {label} label") from None


def _parse_int(table: dict[str, str], label: str) -> int:
    value = _require(table, label)
    try:
        return int(value)
    except ValueError:
        raise LogDecodeError(f"failed to parse {label}: {value!r}") from None


def decode_observation(line: str) -> Observation:
    """Decode one LTSV line. Raises LogDecodeError if a label is missing or invalid."""
    table: dict[str, str] = {}
    for column in line.rstrip("\r\n").split("\t"):
        label, sep, value = column.partition(":")
        if not sep:
            raise LogDecodeError(f"column {column!r} is not a label:value pair")
        table[label] = value

    accessed_at_raw = _require(table, ACCESSED_AT_LABEL)
    try:
        accessed_at = datetime.fromisoformat(accessed_at_raw)
    except ValueError:
        raise LogDecodeError(f"failed to parse {ACCESSED_AT_LABEL}: {accessed_at_raw!r}") from None

    return Observation(
        method=_unescape(_require(table, METHOD_LABEL)),
        path=_unescape(_require(table, PATH_LABEL)),
        status=_parse_int(table, STATUS_LABEL),
        response_body_size=_parse_int(table, RESPONSE_BODY_SIZE_LABEL),
        response_time_ns=_parse_int(table, RESPONSE_TIME_LABEL),
        accessed_at=accessed_at,
    )


def append_observations(path: str | os.PathLike, observations: list[Observation]) -> int:
    """
    Append observations to the log file, creating it if needed.

    Returns the number of observations written. On failure the LogFileError
    carries the number written before the fault as ``written``.
    """
    written = 0
    try:
        with open(path, "a", encoding="utf-8") as f:
            for obs in observations:
                f.write(encode_observation(obs))
                f.flush()
                written += 1
    except OSError as e:
        raise LogFileError(
            f"failed to write log file {os.fspath(path)!r}: {e}", written=written
        ) from e
    logger.debug("accessprof: appended %d observation(s) to %s", written, path)
    return written


def read_observations(path: str | os.PathLike) -> list[Observation]:
    """Read every observation from the log file in file order. A missing file is empty."""
    observations: list[Observation] = []
    try:
        with open(path, "rb") as f:
            for line_number, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                try:
                    observations.append(decode_observation(raw.decode("utf-8")))
                except UnicodeDecodeError as e:
                    raise LogDecodeError(f"invalid UTF-8: {e}", line_number=line_number) from None
                except LogDecodeError as e:
                    raise LogDecodeError(str(e), line_number=line_number) from None
    except FileNotFoundError:
        return []
    except OSError as e:
        raise LogFileError(f"failed to read log file {os.fspath(path)!r}: {e}") from e
    logger.debug("accessprof: loaded %d observation(s) from %s", len(observations), path)
    return observations


def truncate(path: str | os.PathLike) -> None:
    try:
        with open(path, "w", encoding="utf-8"):
            pass
    except OSError as e:
        raise LogFileError(f"failed to truncate log file {os.fspath(path)!r}: {e}") from e
