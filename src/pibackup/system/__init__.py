"""System capabilities: host facts, devices, mounts, copying, shrinking."""
from dataclasses import dataclass, field

from pibackup.system.base import (
    BlockCopier,
    BlockDeviceInfo,
    CommandResult,
    HostInfo,
    ImageShrinker,
    MountChecker,
    SpaceQuery,
)
from pibackup.system.local import (
    BlockdevInfo,
    DdCopier,
    DiskUsageQuery,
    LocalHost,
    MountpointChecker,
    PiShrinkShrinker,
    StreamCopier,
)


@dataclass
class SystemTools:
    """The set of capabilities a backup run uses."""

    host: HostInfo = field(default_factory=LocalHost)
    devices: BlockDeviceInfo = field(default_factory=BlockdevInfo)
    mounts: MountChecker = field(default_factory=MountpointChecker)
    space: SpaceQuery = field(default_factory=DiskUsageQuery)
    copier: BlockCopier = field(default_factory=DdCopier)
    shrinker: ImageShrinker = field(default_factory=PiShrinkShrinker)

    @classmethod
    def local(cls, shrink_tool: str = "pishrink", copy_method: str = "dd") -> "SystemTools":
        copier = StreamCopier() if copy_method == "python" else DdCopier()
        return cls(copier=copier, shrinker=PiShrinkShrinker(shrink_tool))


__all__ = [
    "BlockCopier",
    "BlockDeviceInfo",
    "BlockdevInfo",
    "CommandResult",
    "DdCopier",
    "DiskUsageQuery",
    "HostInfo",
    "ImageShrinker",
    "LocalHost",
    "MountChecker",
    "MountpointChecker",
    "PiShrinkShrinker",
    "SpaceQuery",
    "StreamCopier",
    "SystemTools",
]
