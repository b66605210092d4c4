"""
Declarative machine specification.

A MachineSpec is read once per provisioning request and never mutated;
anything that has to change (e.g. the hostname after an id was allocated)
is done on a copy.
"""
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from .errors import ConfigurationError


class BackendKind(str, Enum):
    QEMU = "qemu"      # full hardware-virtualized VM
    OPENVZ = "openvz"  # container from an OS template
    LXC = "lxc"        # lightweight container


class Flag(IntEnum):
    """Tri-state option: omitted from the remote call, or rendered as 0/1."""
    NOT_APPLICABLE = -1
    FALSE = 0
    TRUE = 1


def _coerce_flag(value):
    if isinstance(value, Flag):
        return value
    if value is None or value is False:
        return Flag.FALSE
    if value is True:
        return Flag.TRUE
    if isinstance(value, str):
        value = value.strip().lower()
        if value in ('true', 'yes', 'on'):
            return Flag.TRUE
        if value in ('false', 'no', 'off', ''):
            return Flag.FALSE
        try:
            value = int(value)
        except ValueError:
            raise ValueError(f"Invalid flag value '{value}'") from None
    if isinstance(value, int) and value in (-1, 0, 1):
        return Flag(value)
    raise ValueError(f"Invalid flag value '{value}': expected true, false or -1")


def _size_to_str(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _join_trunks(value):
    if isinstance(value, (list, tuple)):
        return ';'.join(str(v) for v in value)
    return value


TriState = Annotated[Flag, BeforeValidator(_coerce_flag)]
# unset stays None, an explicit null is coerced like any other flag value
OptionalTriState = Annotated[Optional[Flag], BeforeValidator(_coerce_flag)]
# '20G' or a bare number of gigabytes
DiskSize = Annotated[Optional[str], BeforeValidator(_size_to_str)]


class SpecModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)


class ForwardedPort(SpecModel):
    """Host/guest port mapping. Not part of the remote network setup."""
    kind: Literal['forwarded_port'] = 'forwarded_port'
    id: Optional[str] = None
    guest: Optional[int] = None
    host: Optional[int] = None
    host_ip: Optional[str] = None


class PublicNetwork(SpecModel):
    """A routable interface of the machine (net0, net1, ...)."""
    kind: Literal['public_network'] = 'public_network'
    net_id: Optional[str] = None
    interface: Optional[str] = None
    bridge: Optional[str] = None
    firewall: Optional[bool] = None
    gw: Optional[str] = None
    gw6: Optional[str] = None
    hwaddr: Optional[str] = Field(default=None, validation_alias=AliasChoices('hwaddr', 'macaddress'))
    type: Optional[str] = None  # 'dhcp' requests DHCP for IPv4
    ip: Optional[str] = None
    ip_cidr: Optional[int] = Field(default=None, ge=0, le=32)
    ip6: Optional[str] = None
    ip6_cidr: Optional[int] = Field(default=None, ge=0, le=128)
    mtu: Optional[int] = None
    rate: Optional[Union[int, float]] = None
    tag: Optional[int] = None
    trunks: Annotated[Optional[str], BeforeValidator(_join_trunks)] = None


NetworkDecl = Annotated[Union[ForwardedPort, PublicNetwork], Field(discriminator='kind')]


class MountPoint(SpecModel):
    """
    One container mount point. volume, mp, backup and size are required once
    the declaration has been merged with the defaults.
    """
    volume: Optional[str] = None
    mp: Optional[str] = None
    backup: OptionalTriState = None
    size: Optional[int] = Field(default=None, ge=0)
    acl: TriState = Flag.NOT_APPLICABLE
    quota: TriState = Flag.NOT_APPLICABLE
    ro: TriState = Flag.NOT_APPLICABLE
    shared: TriState = Flag.NOT_APPLICABLE


class QemuSettings(SpecModel):
    vm_type: Literal['qemu'] = 'qemu'
    qemu_os: Optional[str] = None
    qemu_iso: Optional[str] = None
    qemu_nic_model: str = 'e1000'
    qemu_bridge: str = 'vmbr0'
    qemu_storage: Optional[str] = None
    qemu_disk_size: DiskSize = None
    qemu_disk_format: str = 'qcow2'
    qemu_cache: str = 'none'
    qemu_sockets: int = Field(default=1, ge=1)
    qemu_cores: int = Field(default=1, ge=1)
    qemu_agent: bool = False
    qemu_template: Optional[str] = None

    @property
    def kind(self) -> BackendKind:
        return BackendKind.QEMU


class OpenvzSettings(SpecModel):
    vm_type: Literal['openvz'] = 'openvz'
    os_template: Optional[str] = None

    @property
    def kind(self) -> BackendKind:
        return BackendKind.OPENVZ


class LxcSettings(SpecModel):
    vm_type: Literal['lxc'] = 'lxc'
    os_template: Optional[str] = None
    cmode: str = 'tty'
    cpulimit: Optional[int] = None
    cpuunits: Optional[int] = None
    swap: Optional[int] = None
    tty: Optional[int] = None
    ssh_public_keys: Optional[str] = None
    nameserver: Optional[str] = None
    onboot: bool = False
    protection: bool = False
    console: bool = True
    mount_points: Dict[str, MountPoint] = Field(default_factory=dict)
    mount_point_defaults: MountPoint = Field(default_factory=MountPoint)

    @property
    def kind(self) -> BackendKind:
        return BackendKind.LXC


BackendSettings = Annotated[Union[QemuSettings, OpenvzSettings, LxcSettings], Field(discriminator='vm_type')]


class MachineSpec(SpecModel):
    """
    Immutable declaration of one machine to provision.

    backend carries the fields that only make sense for one backend kind;
    everything else is shared by all of them.
    """
    machine_name: str = Field(..., min_length=1)
    hostname: Optional[str] = None
    vm_name_prefix: str = 'openclaw_'
    description: str = ''
    use_plain_description: bool = False
    hostname_append_id: bool = False
    vm_memory: int = Field(default=512, ge=16)
    vm_storage: Optional[str] = 'local'
    vm_disk_size: DiskSize = '20G'
    pool: Optional[str] = None
    dry: bool = False
    networks: List[NetworkDecl] = Field(default_factory=list)
    use_network_defaults: bool = False
    network_defaults: List[NetworkDecl] = Field(default_factory=list)
    backend: BackendSettings

    @property
    def vm_type(self) -> BackendKind:
        return self.backend.kind

    def public_networks(self) -> List[PublicNetwork]:
        return [n for n in self.networks if isinstance(n, PublicNetwork)]


@dataclass(frozen=True)
class MachineIdentity:
    """Where a provisioned machine lives: rendered as 'node/vm_id'."""
    node: str
    vm_id: int

    @classmethod
    def parse(cls, machine_id: str) -> 'MachineIdentity':
        node, _, vm_id = str(machine_id).rpartition('/')
        if not node or not vm_id.isdigit():
            raise ConfigurationError(f"Invalid machine id '{machine_id}': expected 'node/vm_id'")
        return cls(node, int(vm_id))

    def __str__(self):
        return f"{self.node}/{self.vm_id}"


def is_created(machine_id) -> bool:
    """A machine exists remotely once it has been given an identity."""
    return machine_id is not None and str(machine_id) != ''
