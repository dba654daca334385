"""Fetch camera snapshots over HTTP."""
import asyncio
import logging
import ssl
from urllib.parse import unquote, urlparse

import async_timeout
import h11

from hapcam.const import DEFAULT_SNAPSHOT_TIMEOUT, __version__
from hapcam.util import to_base64_str

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536
USER_AGENT = "hapcam/{}".format(__version__)


class SnapshotError(Exception):
    """Raised when the snapshot URL did not return an image."""


async def _read_response(conn, reader):
    """Feed ``reader`` into ``conn`` until the response is complete."""
    response = None
    body = []
    while True:
        event = conn.next_event()
        if event is h11.NEED_DATA:
            conn.receive_data(await reader.read(READ_CHUNK_SIZE))
        elif isinstance(event, h11.Response):
            response = event
        elif isinstance(event, h11.Data):
            body.append(bytes(event.data))
        elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
            return response, b"".join(body)


async def fetch_snapshot(url, timeout=DEFAULT_SNAPSHOT_TIMEOUT):
    """GET ``url`` and return the response body.

    Credentials in the URL are sent with HTTP Basic authentication and left out
    of errors and logs.

    :raises SnapshotError: If the server does not answer with 200 OK or
        violates HTTP/1.1.
    :raises asyncio.TimeoutError: If the fetch takes longer than ``timeout``.

    :rtype: ``bytes``
    """
    if not url:
        raise SnapshotError("No snapshot URL configured")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise SnapshotError("Unsupported snapshot URL scheme: {}".format(parsed.scheme))
    is_https = parsed.scheme == "https"
    port = parsed.port or (443 if is_https else 80)
    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query

    host = parsed.netloc.rpartition("@")[2]
    safe_url = parsed._replace(netloc=host).geturl()
    headers = [
        ("Host", host),
        ("User-Agent", USER_AGENT),
        ("Accept", "image/*"),
        ("Connection", "close"),
    ]
    if parsed.username is not None:
        credentials = "{}:{}".format(
            unquote(parsed.username), unquote(parsed.password or "")
        )
        headers.append(
            ("Authorization", "Basic " + to_base64_str(credentials.encode("utf-8")))
        )

    async with async_timeout.timeout(timeout):
        reader, writer = await asyncio.open_connection(
            parsed.hostname, port, ssl=ssl.create_default_context() if is_https else None
        )
        try:
            conn = h11.Connection(h11.CLIENT)
            request = h11.Request(method="GET", target=target, headers=headers)
            writer.write(conn.send(request) + conn.send(h11.EndOfMessage()))
            await writer.drain()
            try:
                response, body = await _read_response(conn, reader)
            except h11.ProtocolError as err:
                raise SnapshotError(
                    "Invalid response from {}: {}".format(safe_url, err)
                ) from err
        finally:
            writer.close()

    if response is None or response.status_code != 200:
        status = response.status_code if response is not None else None
        raise SnapshotError(
            "Snapshot request to {} failed with status {}".format(safe_url, status)
        )

    logger.debug("Snapshot, Size = %d", len(body))
    return body
