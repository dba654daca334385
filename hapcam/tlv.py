"""Encodes and decodes Tag-Length-Value (tlv8) data."""
import struct

from hapcam import util


def encode(*args, to_base64=False):
    """Encode the given byte args in TLV format.

    :param args: Even-number, variable length positional arguments repeating a tag
        followed by a value.
    :type args: ``bytes``

    :param to_base64: Whether to encode the resulting TLV byte sequence to a
        base64 str.
    :type to_base64: ``bool``

    :return: The args in TLV format
    :rtype: ``bytes`` if ``to_base64`` is False and ``str`` otherwise.
    """
    if len(args) % 2 != 0:
        raise ValueError("Even number of args expected (%d given)" % len(args))

    pieces = []
    for x in range(0, len(args), 2):
        tag = args[x]
        data = args[x + 1]
        total_length = len(data)
        if total_length <= 255:
            pieces.append(tag + struct.pack("B", total_length) + data)
            continue

        # Values longer than 255 bytes are split into consecutive fragments
        # with the same tag.
        for start in range(0, total_length, 255):
            chunk = data[start : start + 255]
            pieces.append(tag + struct.pack("B", len(chunk)) + chunk)

    result = b"".join(pieces)

    return util.to_base64_str(result) if to_base64 else result


def decode(data, from_base64=False):
    """Decode the given TLV-encoded ``data`` to a ``dict``.

    Consecutive fragments of the same tag are joined back together.

    :param from_base64: Whether the given ``data`` should be base64 decoded first.
    :type from_base64: ``bool``

    :return: A ``dict`` containing the tags as keys and the values as values.
    :rtype: ``dict``
    """
    if from_base64:
        data = util.base64_to_bytes(data)

    objects = {}
    current = 0
    while current < len(data):
        # Slice instead of index so the tag stays ``bytes`` and not ``int``.
        tag = data[current : current + 1]
        length = data[current + 1]
        value = data[current + 2 : current + 2 + length]
        if tag in objects:
            objects[tag] = objects[tag] + value
        else:
            objects[tag] = value

        current = current + 2 + length

    return objects
