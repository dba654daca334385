import base64
import ipaddress
import socket

from .const import ADDRESS_TYPE_V4, ADDRESS_TYPE_V6


def get_local_address():
    """
    Grabs the local IP address using a socket.

    :return: Local IP Address in IPv4 format.
    :rtype: str
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # UDP connect sends nothing, it only selects the outgoing interface.
        s.connect(("8.8.8.8", 80))
        addr = s.getsockname()[0]
    finally:
        s.close()
    return addr


def address_type(address):
    """Classify ``address`` as ``"v4"`` or ``"v6"``.

    Anything that does not parse as an IPv4 address is reported as ``"v6"``.
    """
    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        return ADDRESS_TYPE_V6
    return ADDRESS_TYPE_V4


def to_base64_str(bytes_input) -> str:
    return base64.b64encode(bytes_input).decode("utf-8")


def base64_to_bytes(str_input) -> bytes:
    return base64.b64decode(str_input.encode("utf-8"))


def byte_bool(boolv):
    return b"\x01" if boolv else b"\x00"
