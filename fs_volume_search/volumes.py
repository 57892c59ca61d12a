#!/usr/bin/env python3

"""Enumerate the storage volumes mounted on the host.

Volumes come from ``psutil.disk_partitions()`` and are classified as
local, removable, network or optical. Optical media are reported but never
scanned.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

import psutil

from .utils.size_formatter import format_size

logger = logging.getLogger(__name__)

OPTICAL_FSTYPES = {'iso9660', 'udf', 'cdfs'}
NETWORK_FSTYPES = {
    'nfs', 'nfs4', 'cifs', 'smbfs', 'smb3', 'afpfs', 'sshfs', 'fuse.sshfs', '9p', 'webdav',
}
REMOVABLE_MOUNT_PREFIXES = ('/media/', '/run/media/', '/Volumes/')


class VolumeType(Enum):
    LOCAL = 'local'
    REMOVABLE = 'removable'
    NETWORK = 'network'
    OPTICAL = 'optical'


@dataclass(frozen=True)
class Volume:
    """A mounted storage volume. Identity is the platform device identifier."""
    identifier: str
    mountpoint: str
    type: VolumeType
    fstype: str = ''
    total_bytes: int = 0
    free_bytes: int = 0

    @property
    def used_bytes(self) -> int:
        return max(0, self.total_bytes - self.free_bytes)

    @property
    def scannable(self) -> bool:
        return self.type is not VolumeType.OPTICAL

    def describe(self) -> str:
        return (
            f"{self.identifier} ({self.type.value}, {self.fstype or 'unknown'}) "
            f"mounted at {self.mountpoint}: {format_size(self.free_bytes)} free "
            f"of {format_size(self.total_bytes)}"
        )


def classify_partition(device: str, mountpoint: str, fstype: str, opts: str) -> VolumeType:
    """Classify a partition from its psutil description."""
    fstype = (fstype or '').lower()
    options = {o.strip().lower() for o in (opts or '').split(',')}

    if fstype in OPTICAL_FSTYPES or 'cdrom' in options:
        return VolumeType.OPTICAL
    if fstype in NETWORK_FSTYPES or device.startswith('//') or device.startswith('\\\\'):
        return VolumeType.NETWORK
    if 'removable' in options:
        return VolumeType.REMOVABLE
    if mountpoint != '/' and mountpoint.startswith(REMOVABLE_MOUNT_PREFIXES):
        return VolumeType.REMOVABLE
    return VolumeType.LOCAL


class VolumeEnumerator:
    """Lists the host's volumes once per call, in host enumeration order."""

    def __init__(self, include_all: bool = False,
                 disk_partitions: Optional[Callable] = None,
                 disk_usage: Optional[Callable] = None):
        """Initialize the enumerator.

        Args:
            include_all: Also report pseudo and duplicate filesystems
                (``psutil.disk_partitions(all=True)``)
            disk_partitions: Replacement for ``psutil.disk_partitions``
            disk_usage: Replacement for ``psutil.disk_usage``
        """
        self.include_all = include_all
        self._disk_partitions = disk_partitions or psutil.disk_partitions
        self._disk_usage = disk_usage or psutil.disk_usage

    def _usage(self, mountpoint: str):
        try:
            usage = self._disk_usage(mountpoint)
            return usage.total, usage.free
        except OSError as e:
            # Not-ready drives still get listed; opening them fails later.
            logger.debug(f"Cannot read usage for {mountpoint}: {e}")
            return 0, 0

    def enumerate(self) -> List[Volume]:
        """Return every volume, de-duplicated by device identifier."""
        try:
            partitions = self._disk_partitions(all=self.include_all)
        except OSError as e:
            logger.error(f"Error enumerating volumes: {e}")
            return []

        volumes: List[Volume] = []
        seen = set()
        for part in partitions:
            identifier = part.device or part.mountpoint
            if identifier in seen:
                logger.debug(f"Skipping duplicate mount {part.mountpoint} of {identifier}")
                continue
            seen.add(identifier)

            volume_type = classify_partition(part.device, part.mountpoint, part.fstype, part.opts)
            total, free = self._usage(part.mountpoint)
            volumes.append(Volume(
                identifier=identifier,
                mountpoint=part.mountpoint,
                type=volume_type,
                fstype=part.fstype,
                total_bytes=total,
                free_bytes=free,
            ))

        logger.debug(f"Enumerated {len(volumes)} volumes")
        return volumes


def eligible_volumes(volumes: Iterable[Volume],
                     include_types: Sequence[str] = ('local', 'removable', 'network')) -> List[Volume]:
    """Filter volumes down to the scan set, preserving enumeration order.

    Optical media are always excluded.
    """
    wanted = {VolumeType(t) for t in include_types}
    return [v for v in volumes if v.scannable and v.type in wanted]
