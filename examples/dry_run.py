#!/usr/bin/env python3
"""
Example script to print the parameters a machine would be created with.

Usage: python dry_run.py <machines.yaml> <machine> [vmid]
"""

import logging
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from pve_provision import ProvisionError, assemble_create_params, load_machine_spec

def main():
    if len(sys.argv) not in (3, 4):
        print("Usage: python dry_run.py <machines.yaml> <machine> [vmid]")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    path = sys.argv[1]
    name = sys.argv[2]
    vmid = int(sys.argv[3]) if len(sys.argv) == 4 else 100

    try:
        spec = load_machine_spec(path, name)

        print(f"Assembling {spec.vm_type.value} parameters for {spec.machine_name} (vmid {vmid})...")
        params = assemble_create_params(spec, vmid)

        for key, value in params.items():
            print(f"  {key}: {value}")

    except ProvisionError as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
