"""Version information for intune-packager package"""

__version__ = "0.3.0"
__version_info__ = (0, 3, 0)
__author__ = "intune-packager contributors"
__license__ = "MIT"

VERSION_MAJOR = 0
VERSION_MINOR = 3
VERSION_PATCH = 0

VERSION_STRING = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"

assert __version__ == VERSION_STRING, "Version mismatch between __version__ and VERSION_STRING"
