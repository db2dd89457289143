"""Package manager adapters"""

from .base import Packager, write_package_json
from .npm import NpmPackager
from .pnpm import PnpmPackager
from .yarn import YarnPackager
from .factory import PACKAGERS, detect_packager, get_packager

__all__ = [
    'Packager',
    'NpmPackager',
    'PnpmPackager',
    'YarnPackager',
    'PACKAGERS',
    'detect_packager',
    'get_packager',
    'write_package_json',
]
