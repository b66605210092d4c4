"""
mounts.py: container mount points (mp0 ... mp9)

Clause order expected by the node API:

    [volume=]<volume>,mp=<Path>[,acl=<1|0>][,backup=<1|0>][,quota=<1|0>]
      [,ro=<1|0>][,size=<DiskSize>]
"""
import logging
import re
from typing import Dict

from .errors import ConfigurationError
from .models import Flag, MountPoint

logger = logging.getLogger(__name__)

MOUNT_KEY_REGEX = re.compile(r'^mp\d$')

REQUIRED_KEYS = ('volume', 'mp', 'backup', 'size')
FLAG_KEYS = ('acl', 'backup', 'quota', 'ro')


def merge_mount_point(mount: MountPoint, defaults: MountPoint) -> MountPoint:
    data = defaults.model_dump(exclude_unset=True)
    data.update(mount.model_dump(exclude_unset=True))
    return MountPoint.model_validate(data)


def build_mount_point(key, mount, defaults=None) -> str:
    """
    Build the clause string for one mount point.

    :param key: mount point key, e.g. 'mp0'
    :param mount: MountPoint declaration
    :param defaults: MountPoint merged under the declaration
    :return: comma separated clause string
    """
    if not MOUNT_KEY_REGEX.match(str(key)):
        raise ConfigurationError(f"Invalid mount point {key} in config.")
    if defaults is not None:
        mount = merge_mount_point(mount, defaults)
    for required in REQUIRED_KEYS:
        if getattr(mount, required) is None:
            raise ConfigurationError(f"MountPoint {key} must have a '{required}' item")

    # a positive size is allocated together with the volume
    if mount.size > 0:
        volume = f"{mount.volume}:{mount.size}"
    else:
        volume = str(mount.volume)

    clauses = [f"volume={volume}", f"mp={mount.mp}"]
    for flag in FLAG_KEYS:
        value = Flag(getattr(mount, flag))
        if value is not Flag.NOT_APPLICABLE:
            clauses.append(f"{flag}={int(value)}")
    if mount.size == 0:
        clauses.append('size=0')
    return ','.join(clauses)


def mount_point_params(settings) -> Dict[str, str]:
    """
    Build the mp<N> parameters of a container.

    :param settings: LxcSettings
    :return: dict of mount point key -> clause string
    """
    params = {}
    for key, mount in settings.mount_points.items():
        params[key] = build_mount_point(key, mount, settings.mount_point_defaults)
        logger.info(f"MountPoint {key}: {params[key]}")
    return params
