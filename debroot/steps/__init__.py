from .step_10_prepare_root import PrepareRootStep
from .step_20_skeleton import SkeletonStep
from .step_30_fetch_packages import FetchPackagesStep
from .step_40_enable_and_mount import EnableAndMountStep
from .step_50_install_packages import InstallPackagesStep
from .step_60_write_sources import WriteSourcesStep
from .step_70_sync_index import SyncIndexStep
from .step_80_normalize_permissions import NormalizePermissionsStep

__all__ = [
    "PrepareRootStep",
    "SkeletonStep",
    "FetchPackagesStep",
    "EnableAndMountStep",
    "InstallPackagesStep",
    "WriteSourcesStep",
    "SyncIndexStep",
    "NormalizePermissionsStep",
]
