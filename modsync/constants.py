from pathlib import Path

CONFIG_DIR = Path.home() / '.config' / 'modsync'
CONFIG_FILE = CONFIG_DIR / 'config.yaml'
STATE_FILE = CONFIG_DIR / 'state.yaml'
LIBRARY_DIR = Path.home() / '.local' / 'share' / 'modsync' / 'modules'

DEFAULT_REPOSITORY = 'https://api.nuget.org/v3-flatcontainer'
PROTECTED_PACKAGES = ('NuGet.Packaging', 'NuGet.Protocol')
REQUEST_TIMEOUT = 30

# Archive entries that belong to the nupkg container, not the package payload
ARCHIVE_METADATA = ('[Content_Types].xml', '_rels/', 'package/')
