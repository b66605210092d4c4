"""
pipeline.py: drive one create or clone-reconfigure of a machine

    Idle -> IdentifierAllocated -> ParametersAssembled
         -> DryRunHalted | RemoteCallIssued -> Completed | Failed

The remote side is reached only through a Connection. It blocks until the
node has a definitive answer; timeouts and retries are its business.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from .assemblers import assemble_create_params, assemble_reconfigure_params, machine_hostname
from .errors import (
    ConfigurationError,
    DryRunError,
    RemoteTaskError,
    VMCreateError,
    VMReconfigureError,
    classify_failure,
)
from .models import MachineIdentity, MachineSpec, is_created

logger = logging.getLogger(__name__)

EXIT_STATUS_OK = 'OK'


class Connection(Protocol):
    """What the pipeline needs from a Proxmox API client."""

    def allocate_identifier(self):
        ...

    def create(self, node: str, vm_type: str, params: Dict[str, Any]) -> str:
        ...

    def reconfigure(self, node: str, vm_type: str, params: Dict[str, Any]) -> str:
        ...

    def resolve_guest_address(self, node: str, vm_id) -> Optional[str]:
        ...


class ProvisionMode(str, Enum):
    CREATE = "create"
    CLONE = "clone"


class ProvisionState(Enum):
    IDLE = "idle"
    IDENTIFIER_ALLOCATED = "identifier_allocated"
    PARAMETERS_ASSEMBLED = "parameters_assembled"
    DRY_RUN_HALTED = "dry_run_halted"
    REMOTE_CALL_ISSUED = "remote_call_issued"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProvisionOutcome:
    identity: MachineIdentity
    mode: ProvisionMode
    params: Dict[str, Any]
    state: ProvisionState

    @property
    def machine_id(self) -> str:
        return str(self.identity)


class ProvisionRun:
    """
    A single provisioning attempt. Holds the state of that attempt only and
    is discarded afterwards.
    """

    def __init__(self, connection: Connection, node: str, spec: MachineSpec,
                 mode: ProvisionMode = ProvisionMode.CREATE, machine_id=None):
        """
        :param connection: remote collaborator
        :param node: node the machine is created on
        :param spec: MachineSpec
        :param mode: create a new machine or reconfigure a cloned one
        :param machine_id: 'node/vm_id' of the existing machine (clone only)
        """
        self.connection = connection
        self.node = node
        self.spec = spec
        self.mode = ProvisionMode(mode)
        self.machine_id = machine_id
        self.state = ProvisionState.IDLE
        self.history: List[ProvisionState] = [ProvisionState.IDLE]
        self.vm_id = None
        self.params: Optional[Dict[str, Any]] = None
        self.identity: Optional[MachineIdentity] = None
        self.error: Optional[Exception] = None

    @property
    def action(self) -> str:
        return 'create_vm' if self.mode is ProvisionMode.CREATE else 'config_clone'

    def _transition(self, state: ProvisionState):
        logger.debug(f"{self.spec.machine_name}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _wrap_transport_error(self, e):
        error_class = VMCreateError if self.mode is ProvisionMode.CREATE else VMReconfigureError
        return error_class(f"{e} with params {self.params}", params=self.params)

    def execute(self) -> ProvisionOutcome:
        if self.state is not ProvisionState.IDLE:
            raise RuntimeError(f"Provision run for {self.spec.machine_name} was already executed")
        if self.mode is ProvisionMode.CREATE:
            logger.info(f"Creating machine {self.spec.machine_name} on node {self.node}")
        else:
            logger.info(f"Configuring cloned machine {self.spec.machine_name} on node {self.node}")
        try:
            self._allocate_identifier()
            self._assemble_parameters()
            self._check_dry_run()
            exit_status = self._issue_remote_call()
            self._interpret(exit_status)
        except DryRunError as e:
            self.error = e
            raise
        except Exception as e:
            self.error = e
            self._transition(ProvisionState.FAILED)
            logger.error(f"Failed to {self.mode.value} machine {self.spec.machine_name} "
                         f"({classify_failure(e).value}): {e}")
            raise
        logger.info(f"Machine {self.spec.machine_name} is {self.identity}")
        return ProvisionOutcome(self.identity, self.mode, self.params, self.state)

    def _allocate_identifier(self):
        if self.mode is ProvisionMode.CLONE:
            if not is_created(self.machine_id):
                raise ConfigurationError(
                    f"Machine {self.spec.machine_name} has not been cloned yet, nothing to configure")
            self.vm_id = MachineIdentity.parse(self.machine_id).vm_id
        else:
            try:
                self.vm_id = self.connection.allocate_identifier()
            except Exception as e:
                raise VMCreateError(f"Failed to allocate a machine id: {e}") from e
            logger.info(f"Allocated id {self.vm_id} for {self.spec.machine_name}")
            if self.spec.hostname_append_id:
                hostname = f"{machine_hostname(self.spec)}{self.vm_id}"
                self.spec = self.spec.model_copy(update={'hostname': hostname})
        self._transition(ProvisionState.IDENTIFIER_ALLOCATED)

    def _resolve_guest_address(self):
        try:
            return self.connection.resolve_guest_address(self.node, self.vm_id)
        except Exception as e:
            raise VMCreateError(f"Failed to resolve the address of {self.vm_id}: {e}") from e

    def _assemble_parameters(self):
        if self.mode is ProvisionMode.CLONE:
            self.params = assemble_reconfigure_params(self.spec, self.vm_id)
        else:
            resolver = self._resolve_guest_address
            if self.spec.dry:
                # no guest exists to ask during a dry run
                resolver = None
                logger.info(f"Dry run: guest address of {self.spec.machine_name} left unresolved")
            self.params = assemble_create_params(self.spec, self.vm_id, address_resolver=resolver)
        self._transition(ProvisionState.PARAMETERS_ASSEMBLED)

    def _check_dry_run(self):
        if not self.spec.dry:
            return
        self._transition(ProvisionState.DRY_RUN_HALTED)
        logger.info(f"Dry run of {self.action} with params {self.params}")
        raise DryRunError(f"Dry run enabled, {self.action} was not executed", params=dict(self.params))

    def _issue_remote_call(self):
        self._transition(ProvisionState.REMOTE_CALL_ISSUED)
        if self.mode is ProvisionMode.CREATE:
            call = self.connection.create
        else:
            call = self.connection.reconfigure
        try:
            return call(self.node, self.spec.vm_type.value, dict(self.params))
        except Exception as e:
            raise self._wrap_transport_error(e) from e

    def _interpret(self, exit_status):
        if exit_status != EXIT_STATUS_OK:
            raise RemoteTaskError(exit_status, params=self.params)
        self.identity = MachineIdentity(self.node, self.vm_id)
        self._transition(ProvisionState.COMPLETED)


def provision(connection: Connection, node: str, spec: MachineSpec,
              mode: ProvisionMode = ProvisionMode.CREATE, machine_id=None) -> ProvisionOutcome:
    """
    Create a machine, or reconfigure a machine cloned from a template.

    :param connection: remote collaborator
    :param node: target node
    :param spec: MachineSpec
    :param mode: ProvisionMode.CREATE or ProvisionMode.CLONE
    :param machine_id: 'node/vm_id' of the cloned machine (clone only)
    :return: ProvisionOutcome with the identity of the machine
    """
    return ProvisionRun(connection, node, spec, mode, machine_id).execute()
