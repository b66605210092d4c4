"""
networks.py: container network configuration (net0, net1, ...)

Every interface becomes one clause string, in the order the node API expects:

    name=<string>[,bridge=<bridge>][,firewall=<1|0>][,gw=<GatewayIPv4>]
      [,gw6=<GatewayIPv6>][,hwaddr=<XX:XX:XX:XX:XX:XX>]
      [,ip=<IPv4/CIDR>|dhcp][,ip6=<IPv6/CIDR>|dhcp][,mtu=<integer>]
      [,rate=<mbps>][,tag=<integer>][,trunks=<vlanid[;vlanid...]>],type=veth
"""
import logging
import re
from typing import Dict, List

from .cidr import get_ip_cidr4, get_ip_cidr6
from .errors import ConfigurationError
from .models import ForwardedPort, PublicNetwork

logger = logging.getLogger(__name__)

NET_ID_REGEX = re.compile(r'^net(\d+)$')

LEADING_FIELDS = ('bridge', 'firewall', 'gw', 'gw6', 'hwaddr')
TRAILING_FIELDS = ('mtu', 'rate', 'tag', 'trunks')


def _is_empty(value):
    return value is None or str(value) == ''


def _render(value):
    if isinstance(value, bool):
        return str(int(value))
    return str(value)


def _describe(network):
    return network.model_dump(exclude_none=True)


def merge_network(network, default):
    """
    Merge a declaration with its default: declared values win, the default
    fills every field the declaration leaves unset.
    """
    data = default.model_dump(exclude_unset=True)
    data.update(network.model_dump(exclude_unset=True))
    data.pop('kind', None)
    return type(network).model_validate(data)


def merge_network_defaults(networks, defaults, dry=False) -> List:
    """
    Apply positional defaults to a list of network declarations.

    Entry i of defaults is merged into entry i of networks only when both
    are of the same kind. The input lists are left untouched.

    :param networks: declared networks
    :param defaults: positional defaults
    :param dry: log every merge (dry-run diagnostics)
    :return: new list of declarations
    """
    merged = []
    for i, network in enumerate(networks):
        default = defaults[i] if i < len(defaults) else None
        if default is not None and default.kind == network.kind:
            network = merge_network(network, default)
            if dry:
                logger.info(f"Network merged {_describe(network)}")
        merged.append(network)
    return merged


def interface_name(network):
    """
    Interface name inside the container: the declared one, else eth<N>
    derived from a net<N> slot id.

    :return: interface name or None if it cannot be derived
    """
    if not _is_empty(network.interface):
        return network.interface
    if network.net_id is None:
        return None
    match = NET_ID_REGEX.match(network.net_id)
    if not match:
        return None
    return f"eth{match.group(1)}"


def _address_clauses(network):
    clauses = []

    # IPv4 - primary ip protocol
    if network.type == 'dhcp' or network.ip == 'dhcp':
        if network.ip not in (None, 'dhcp') and network.ip_cidr is not None:
            logger.warning(f"Network {network.net_id} requests DHCP, ignoring static address {network.ip}/{network.ip_cidr}")
        clauses.append('ip=dhcp')
    else:
        cidr = get_ip_cidr4(network)
        if cidr:
            clauses.append(f"ip={cidr}")

    # IPv6 - additionally used ip protocol
    if network.ip6 == 'dhcp':
        clauses.append('ip6=dhcp')
    else:
        cidr = get_ip_cidr6(network)
        if cidr:
            clauses.append(f"ip6={cidr}")

    return clauses


def build_network_entry(network: PublicNetwork) -> str:
    """
    Build the clause string for one public network.

    :param network: PublicNetwork declaration, already merged with its default
    :return: comma separated clause string
    """
    for field in ('net_id', 'bridge'):
        value = getattr(network, field)
        if value is None:
            raise ConfigurationError(f"Network {_describe(network)} has no '{field}' element.")
        if _is_empty(value):
            raise ConfigurationError(f"Network {_describe(network)} has empty '{field}' element.")

    name = interface_name(network)
    if name is None:
        raise ConfigurationError(
            f"Network {_describe(network)} has no 'interface' element. Set it to 'eth0' or similar.")

    clauses = [f"name={name}"]
    for field in LEADING_FIELDS:
        value = getattr(network, field)
        if not _is_empty(value):
            clauses.append(f"{field}={_render(value)}")

    address = _address_clauses(network)
    if not address:
        raise ConfigurationError(
            f"Network {_describe(network)} has no 'ip' or 'ip6' element. You need to set an IP-Address")
    clauses.extend(address)

    for field in TRAILING_FIELDS:
        value = getattr(network, field)
        if not _is_empty(value):
            clauses.append(f"{field}={_render(value)}")

    clauses.append('type=veth')
    return ','.join(clauses)


def network_params(spec) -> Dict[str, str]:
    """
    Build the net<N> parameters of a container.

    :param spec: MachineSpec
    :return: dict of slot id -> clause string
    """
    networks = spec.networks
    if spec.use_network_defaults and spec.network_defaults:
        networks = merge_network_defaults(networks, spec.network_defaults, dry=spec.dry)

    params = {}
    has_public_network = False
    for network in networks:
        if isinstance(network, ForwardedPort):
            if spec.dry:
                logger.info(f"Network setup ignored for forwarded port {_describe(network)}")
            continue
        if not isinstance(network, PublicNetwork):
            raise ConfigurationError(f"Unsupported network declaration {network!r}")
        has_public_network = True
        entry = build_network_entry(network)
        logger.info(f"Network {network.net_id}: {entry}")
        params[network.net_id] = entry

    if not has_public_network:
        raise ConfigurationError(
            "Machine has no public_network. It won't be reachable. Please edit your config.")
    return params
