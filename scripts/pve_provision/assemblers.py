"""
assemblers.py: translate a MachineSpec into the parameter mapping of the node API

One assembler per backend kind. Every assembler is a pure function of the
spec: the same spec always yields the same mapping, and nothing is sent
anywhere from here. Optional fields that are not declared are left out of
the mapping so the node applies its own default.
"""
import logging
from typing import Any, Callable, Dict, Optional

from .errors import ConfigurationError
from .models import BackendKind, ForwardedPort, LxcSettings, MachineSpec, OpenvzSettings, QemuSettings
from .mounts import mount_point_params
from .networks import network_params

logger = logging.getLogger(__name__)

# initial root password of containers, expected to be replaced by provisioning
DEFAULT_PASSWORD = 'changeme'
LOOPBACK_ADDRESS = '127.0.0.1'


def rest_boolean(value) -> int:
    """Booleans are sent to the node API as 1/0."""
    return 1 if value else 0


def compose_description(spec: MachineSpec) -> str:
    if spec.use_plain_description:
        return spec.description
    return f"{spec.vm_name_prefix}{spec.machine_name}:{spec.description}"


def machine_hostname(spec: MachineSpec) -> str:
    return spec.hostname or spec.machine_name


def machine_macaddress(spec: MachineSpec) -> Optional[str]:
    networks = spec.public_networks()
    if not networks:
        return None
    return networks[0].hwaddr or None


def machine_ip_address(spec: MachineSpec, address_resolver: Optional[Callable[[], Any]] = None):
    """
    Primary address of the machine.

    A forwarded port with a non-loopback host_ip wins, then the address of
    the first public network. Only when neither is declared the guest is
    asked through address_resolver.

    :param spec: MachineSpec
    :param address_resolver: optional callable returning the guest address
    :return: address or None
    """
    for network in spec.networks:
        if isinstance(network, ForwardedPort) and network.host_ip and network.host_ip != LOOPBACK_ADDRESS:
            return network.host_ip
    networks = spec.public_networks()
    if networks and networks[0].ip and networks[0].ip != 'dhcp':
        return networks[0].ip
    if address_resolver is not None:
        return address_resolver()
    return None


def _settings(spec, expected):
    if not isinstance(spec.backend, expected):
        raise ConfigurationError(
            f"Machine {spec.machine_name} is configured for '{spec.backend.vm_type}', not for '{expected.model_fields['vm_type'].default}'")
    return spec.backend


def _require(spec, owner, fields):
    for field in fields:
        value = getattr(owner, field)
        if value is None or str(value) == '':
            raise ConfigurationError(f"Machine {spec.machine_name} has no '{field}' configured")


def _compact(params):
    return {key: value for key, value in params.items() if value is not None}


def qemu_network(spec: MachineSpec) -> str:
    settings = spec.backend
    macaddress = machine_macaddress(spec)
    if macaddress:
        return f"{settings.qemu_nic_model}={macaddress},bridge={settings.qemu_bridge}"
    return f"{settings.qemu_nic_model},bridge={settings.qemu_bridge}"


def create_params_qemu(spec: MachineSpec, vm_id) -> Dict[str, Any]:
    settings = _settings(spec, QemuSettings)
    _require(spec, settings, ('qemu_iso', 'qemu_storage', 'qemu_disk_size'))
    return _compact({
        'vmid': vm_id,
        'name': machine_hostname(spec),
        'ostype': settings.qemu_os,
        'ide2': f"{settings.qemu_iso},media=cdrom",
        'sata0': f"{settings.qemu_storage}:{settings.qemu_disk_size},"
                 f"format={settings.qemu_disk_format},cache={settings.qemu_cache}",
        'sockets': settings.qemu_sockets,
        'cores': settings.qemu_cores,
        'memory': spec.vm_memory,
        'net0': qemu_network(spec),
        'description': compose_description(spec),
        'agent': rest_boolean(settings.qemu_agent),
        'pool': spec.pool,
    })


def reconfigure_params_qemu(spec: MachineSpec, vm_id) -> Dict[str, Any]:
    """
    Parameters applied to a VM cloned from a template.

    Storage and network are inherited from the template and left alone.
    """
    settings = _settings(spec, QemuSettings)
    params = {
        'vmid': vm_id,
        'name': machine_hostname(spec),
        'sockets': settings.qemu_sockets,
        'cores': settings.qemu_cores,
        'memory': spec.vm_memory,
        'agent': rest_boolean(settings.qemu_agent),
        'description': compose_description(spec),
    }
    if settings.qemu_iso:
        params['ide2'] = f"{settings.qemu_iso},media=cdrom"
    return params


def create_params_openvz(spec: MachineSpec, vm_id, address_resolver=None) -> Dict[str, Any]:
    settings = _settings(spec, OpenvzSettings)
    _require(spec, settings, ('os_template',))
    params = {
        'vmid': vm_id,
        'ostemplate': settings.os_template,
        'hostname': machine_hostname(spec),
        'password': DEFAULT_PASSWORD,
        'memory': spec.vm_memory,
        'description': compose_description(spec),
    }
    ip_address = machine_ip_address(spec, address_resolver)
    if ip_address:
        params['ip_address'] = ip_address
    return params


def create_params_lxc(spec: MachineSpec, vm_id) -> Dict[str, Any]:
    settings = _settings(spec, LxcSettings)
    _require(spec, settings, ('os_template',))
    _require(spec, spec, ('vm_storage', 'vm_disk_size'))
    params = _compact({
        'vmid': vm_id,
        'ostemplate': settings.os_template,
        'hostname': machine_hostname(spec),
        'password': DEFAULT_PASSWORD,
        'rootfs': f"{spec.vm_storage}:{spec.vm_disk_size}",
        'memory': spec.vm_memory,
        'description': compose_description(spec),
        'cmode': str(settings.cmode),
        'cpulimit': settings.cpulimit,
        'cpuunits': settings.cpuunits,
        'swap': settings.swap,
        'tty': settings.tty,
        'pool': spec.pool,
        'ssh-public-keys': settings.ssh_public_keys,
    })
    if settings.nameserver:
        params['nameserver'] = str(settings.nameserver)
    params['onboot'] = rest_boolean(settings.onboot)
    params['protection'] = rest_boolean(settings.protection)
    params['console'] = rest_boolean(settings.console)
    params.update(network_params(spec))
    params.update(mount_point_params(settings))
    return params


def assemble_create_params(spec: MachineSpec, vm_id, address_resolver=None) -> Dict[str, Any]:
    """
    Build the parameters of a create call for any backend kind.

    :param spec: MachineSpec
    :param vm_id: identifier allocated for the new machine
    :param address_resolver: optional callable used by openvz to ask the guest for its address
    :return: parameter mapping
    """
    kind = spec.vm_type
    if kind is BackendKind.QEMU:
        params = create_params_qemu(spec, vm_id)
    elif kind is BackendKind.OPENVZ:
        params = create_params_openvz(spec, vm_id, address_resolver)
    elif kind is BackendKind.LXC:
        params = create_params_lxc(spec, vm_id)
    else:
        raise ConfigurationError(f"Unsupported backend '{kind}'")
    logger.debug(f"Assembled {kind.value} create params for {spec.machine_name}: {params}")
    return params


def assemble_reconfigure_params(spec: MachineSpec, vm_id) -> Dict[str, Any]:
    """
    Build the parameters of a reconfigure call. Only full VMs can be
    reconfigured after cloning.

    :param spec: MachineSpec
    :param vm_id: identifier of the existing machine
    :return: parameter mapping
    """
    kind = spec.vm_type
    if kind is not BackendKind.QEMU:
        raise ConfigurationError(f"Reconfiguring a cloned machine is not supported for '{kind.value}'")
    params = reconfigure_params_qemu(spec, vm_id)
    logger.debug(f"Assembled {kind.value} reconfigure params for {spec.machine_name}: {params}")
    return params
