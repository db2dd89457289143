"""Packager selection"""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Type

from ...api.exceptions import ConfigError
from ...constants import LOCKFILES, PackagerId
from ...utils.file_utils import find_up
from .base import Packager
from .npm import NpmPackager
from .pnpm import PnpmPackager
from .yarn import YarnPackager

logger = logging.getLogger(__name__)

PACKAGERS: Dict[PackagerId, Type[Packager]] = {
    PackagerId.NPM: NpmPackager,
    PackagerId.PNPM: PnpmPackager,
    PackagerId.YARN: YarnPackager,
}

# Checked in this order when several lockfiles share a directory
DETECTION_ORDER = (PackagerId.PNPM, PackagerId.YARN, PackagerId.NPM)


def get_packager(name: str, command: Optional[str] = None) -> Packager:
    """
    Packager instance by name

    Raises:
        ConfigError: Unknown packager
    """
    try:
        packager_id = PackagerId(name)
    except ValueError:
        supported = ", ".join(p.value for p in PackagerId)
        raise ConfigError(f"Unsupported packager '{name}' (expected one of: {supported})")
    return PACKAGERS[packager_id](command)


def detect_packager(cwd: Path) -> Tuple[Optional[PackagerId], Optional[Path]]:
    """
    Find the nearest directory holding a lockfile, walking up from ``cwd``

    Returns:
        (packager id, directory), or (None, None) if no lockfile exists
    """
    directory = find_up([LOCKFILES[p.value] for p in DETECTION_ORDER], cwd)
    if directory is None:
        return None, None
    for packager_id in DETECTION_ORDER:
        if (directory / LOCKFILES[packager_id.value]).exists():
            logger.debug(f"Detected {packager_id.value} from lockfile in {directory}")
            return packager_id, directory
    return None, None
