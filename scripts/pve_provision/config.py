"""
config.py: load machine specifications from a YAML machines file

    defaults:            # merged under every machine, machine values win
      vm_memory: 1024
    machines:
      web:
        backend: {vm_type: lxc, os_template: 'local:vztmpl/debian-12.tar.zst'}
        networks:
          - {kind: public_network, net_id: net0, bridge: vmbr0, type: dhcp}
"""
import copy
import logging
import os
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import MachineSpec

logger = logging.getLogger(__name__)

MACHINES_FILE = 'machines.yaml'
WORKSPACE_ENV = 'OPENCLAW_WORKSPACE'
DRY_RUN_ENV = 'OPENCLAW_PROVISION_DRY_RUN'


def default_spec_path():
    """$OPENCLAW_WORKSPACE/machines.yaml, or machines.yaml next to scripts/."""
    skill_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    workspace = os.getenv(WORKSPACE_ENV) or skill_dir
    return os.path.join(workspace, MACHINES_FILE)


def merge_config(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Nested merge of update into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _env_flag(name):
    value = os.getenv(name)
    return value is not None and value.strip().lower() in ('1', 'true', 'yes')


def _read_yaml(path):
    if not os.path.exists(path):
        raise ConfigurationError(f"Machine file {path} not found")
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e


def parse_machine_spec(name, raw, defaults=None) -> MachineSpec:
    """
    Validate one machine entry.

    :param name: machine name, used unless the entry sets machine_name
    :param raw: mapping read from the machines file
    :param defaults: mapping merged under the entry
    :return: MachineSpec
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Machine '{name}' must be a mapping")
    data = merge_config(defaults or {}, raw)
    data.setdefault('machine_name', name)
    if _env_flag(DRY_RUN_ENV):
        data['dry'] = True
    try:
        return MachineSpec(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid machine '{name}': {e}") from e


def load_machine_specs(path=None) -> Dict[str, MachineSpec]:
    """
    Load every machine of a machines file.

    :param path: file path, defaults to default_spec_path()
    :return: dict of machine name -> MachineSpec
    """
    path = path or default_spec_path()
    raw_config = _read_yaml(path)
    if not isinstance(raw_config, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    defaults = raw_config.get('defaults') or {}
    machines = raw_config.get('machines') or {}
    if not isinstance(defaults, dict) or not isinstance(machines, dict):
        raise ConfigurationError(f"'defaults' and 'machines' in {path} must be mappings")
    specs = {name: parse_machine_spec(name, raw, defaults) for name, raw in machines.items()}
    logger.info(f"Loaded {len(specs)} machine(s) from {path}")
    return specs


def load_machine_spec(path=None, name=None) -> MachineSpec:
    """
    Load a single machine. name may be omitted when the file declares
    exactly one machine.
    """
    specs = load_machine_specs(path)
    if name is None:
        if len(specs) != 1:
            raise ConfigurationError(f"Machine name required, file declares {len(specs)} machines")
        return next(iter(specs.values()))
    if name not in specs:
        raise ConfigurationError(f"Machine '{name}' not found")
    return specs[name]
