"""Parsing of clamd responses.

Functions here only deal with decoded text; they never touch sockets.
"""
import re

from .types import ClamdProtocolError, ScanResult, StreamResult

# whitespace plus the NUL clamd uses with z-prefixed commands
_TRIM_CHARS = " \t\n\r\x0b\x0c\x00"

stream_port_pattern = re.compile(r"PORT\s+(\d+)")
STREAM_PREFIX = "stream: "


def trim(raw_resp: str) -> str:
    return raw_resp.strip(_TRIM_CHARS)


def parse_pong(raw_resp: str) -> bool:
    """PING succeeded only if clamd replied exactly "PONG".
    """
    return raw_resp == "PONG"


def parse_version(raw_resp: str) -> str:
    return trim(raw_resp)


def parse_scan_line(line: str) -> ScanResult:
    """Parse a single "<path>: <status>" line.

    Split happens on the first colon, whatever follows is the status.

    :param line: One line of a SCAN/CONTSCAN response
    :return: Structured scan result
    :raises ClamdProtocolError: if the line has no colon
    """
    path, sep, status = line.partition(":")
    if not sep:
        raise ClamdProtocolError(
            f"Unable to parse clamd scan response line: {line!r}")
    return ScanResult(path=path.lstrip("\r\n\x00"), status=trim(status))


def parse_scan_response(raw_resp: str) -> list[ScanResult]:
    """Parse a SCAN/CONTSCAN response, one result per line.

    A single malformed line fails the whole response.
    """
    return [parse_scan_line(line) for line in trim(raw_resp).split("\n")]


def parse_stream_port(raw_resp: str) -> int:
    """Extract the data port from the reply to STREAM ("PORT <n>").
    """
    m = stream_port_pattern.match(trim(raw_resp))
    if not m:
        raise ClamdProtocolError(
            f"No port in clamd STREAM response: {raw_resp!r}")
    port = int(m.group(1))
    if not 0 < port < 65536:
        raise ClamdProtocolError(f"Invalid STREAM port from clamd: {port}")
    return port


def parse_stream_result(raw_resp: str) -> StreamResult:
    status = trim(raw_resp)
    if status.startswith(STREAM_PREFIX):
        status = status[len(STREAM_PREFIX):]
    return StreamResult(status=trim(status))
