from .assemblers import assemble_create_params, assemble_reconfigure_params
from .config import load_machine_spec, load_machine_specs
from .errors import (
    ConfigurationError,
    DryRunError,
    FailureKind,
    ProvisionError,
    RemoteTaskError,
    VMCreateError,
    VMReconfigureError,
    classify_failure,
)
from .models import (
    BackendKind,
    Flag,
    ForwardedPort,
    LxcSettings,
    MachineIdentity,
    MachineSpec,
    MountPoint,
    OpenvzSettings,
    PublicNetwork,
    QemuSettings,
)
from .pipeline import Connection, ProvisionMode, ProvisionOutcome, ProvisionRun, ProvisionState, provision

__all__ = [
    'assemble_create_params', 'assemble_reconfigure_params',
    'load_machine_spec', 'load_machine_specs',
    'ConfigurationError', 'DryRunError', 'FailureKind', 'ProvisionError', 'RemoteTaskError',
    'VMCreateError', 'VMReconfigureError', 'classify_failure',
    'BackendKind', 'Flag', 'ForwardedPort', 'LxcSettings', 'MachineIdentity', 'MachineSpec',
    'MountPoint', 'OpenvzSettings', 'PublicNetwork', 'QemuSettings',
    'Connection', 'ProvisionMode', 'ProvisionOutcome', 'ProvisionRun', 'ProvisionState', 'provision',
]
