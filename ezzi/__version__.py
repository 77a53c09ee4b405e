"""Version information for Ezzi."""

# Version components
VERSION_MAJOR = 0
VERSION_MINOR = 1
VERSION_PATCH = 0
VERSION_INFO = (VERSION_MAJOR, VERSION_MINOR, VERSION_PATCH)

__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"
__title__ = "ezzi"
__description__ = "Inconspicuous desktop overlay that captures coding problems and shows solutions"
__author__ = "Ezzi team"
__author_email__ = "team@ezzi.dev"
__license__ = "MIT"
__url__ = "https://github.com/ezzi-app/ezzi"
__maintainer__ = "Ezzi team"
__keywords__ = ["overlay", "screenshot", "coding", "interview", "desktop", "qt", "gui"]
