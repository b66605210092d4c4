"""
cidr.py: derive CIDR notation from the address/prefix pairs of a network declaration
"""
import ipaddress

from .errors import ConfigurationError


# version -> (address field, prefix field)
CIDR_FIELDS = {
    4: ('ip', 'ip_cidr'),
    6: ('ip6', 'ip6_cidr'),
}


def get_ip_cidr(network, version):
    """
    Get CIDR notation for the IPv4 or IPv6 address of a network declaration.

    :param network: PublicNetwork declaration
    :param version: 4 or 6
    :return: '<address>/<prefix>', or None if address or prefix is not declared
    """
    if version not in CIDR_FIELDS:
        raise ConfigurationError(f"Invalid CIDR type 'ip{version}': expected IPv4 or IPv6")
    address_field, prefix_field = CIDR_FIELDS[version]
    address = getattr(network, address_field, None)
    prefix = getattr(network, prefix_field, None)
    if address is None or prefix is None:
        return None
    try:
        parsed = ipaddress.ip_address(str(address))
    except ValueError:
        raise ConfigurationError(f"Invalid IP-Address supplied: {address}") from None
    if parsed.version != version:
        raise ConfigurationError(f"Invalid IP-Address supplied: {address} is not an IPv{version} address")
    return f"{address}/{prefix}"


def get_ip_cidr4(network):
    return get_ip_cidr(network, 4)


def get_ip_cidr6(network):
    return get_ip_cidr(network, 6)
