# NetSentinel Agent - Subnet Enumeration
"""
Subnet arithmetic on dotted-quad IPv4 addresses.
Pure functions, no I/O.
"""

from ipaddress import IPv4Address

from ..errors import InvalidAddressError

FULL_MASK = 0xFFFFFFFF


def parse_ipv4(text: str) -> int:
    """Parse a dotted-quad address into an integer, validating every octet."""
    if not isinstance(text, str):
        raise InvalidAddressError(str(text))

    parts = text.strip().split(".")
    if len(parts) != 4:
        raise InvalidAddressError(text)

    value = 0
    for part in parts:
        if not part.isdigit() or len(part) > 3:
            raise InvalidAddressError(text)
        octet = int(part)
        if octet > 255:
            raise InvalidAddressError(text)
        value = (value << 8) | octet
    return value


def format_ipv4(value: int) -> str:
    return str(IPv4Address(value))


def parse_netmask(text: str) -> int:
    """Parse a subnet mask; the ones must be contiguous."""
    mask = parse_ipv4(text)
    inverted = ~mask & FULL_MASK
    if inverted & (inverted + 1):
        raise InvalidAddressError(text, "non-contiguous subnet mask")
    return mask


def prefix_length(mask: str) -> int:
    return bin(parse_netmask(mask)).count("1")


def usable_host_count(mask: str) -> int:
    """Number of addresses strictly between network and broadcast."""
    host_bits = 32 - prefix_length(mask)
    return max(0, (1 << host_bits) - 2)


def network_address(address: str, mask: str) -> str:
    return format_ipv4(parse_ipv4(address) & parse_netmask(mask))


def broadcast_address(address: str, mask: str) -> str:
    return format_ipv4(parse_ipv4(address) | (~parse_netmask(mask) & FULL_MASK))


def enumerate_hosts(address: str, mask: str) -> list[str]:
    """
    List every usable host address in the subnet of `address`.

    The network address (address AND mask) and the broadcast address
    (address OR NOT mask) are excluded.

    Raises:
        InvalidAddressError: If the address or mask is malformed.
    """
    ip = parse_ipv4(address)
    netmask = parse_netmask(mask)

    network = ip & netmask
    broadcast = ip | (~netmask & FULL_MASK)

    return [format_ipv4(value) for value in range(network + 1, broadcast)]


def subnet_cidr(address: str, mask: str) -> str:
    return f"{network_address(address, mask)}/{prefix_length(mask)}"


def same_subnet(ip: str, reference: str, mask: str) -> bool:
    """Check whether `ip` shares the network portion of `reference`."""
    try:
        netmask = parse_netmask(mask)
        return (parse_ipv4(ip) & netmask) == (parse_ipv4(reference) & netmask)
    except InvalidAddressError:
        return False
