"""Module defining various global constants."""

# relayfs version
VERSION = "1.0.0"

# relayfs wire protocol
# The major version must be identical on client and relay.
#
# Adding options to existing operations does not require a protocol change, but any
# change to the operation set or the envelope format does.
PROTOCOL_VERSION = "1.0.0"

# Environment variable holding the shared secret on both relay and client side.
PASSWORD_ENV = "RELAYFS_PASSWORD"

# Environment variable that can point to an alternative config file.
CONFIG_ENV = "RELAYFS_CONFIG"

# Request headers
OPTIONS_HEADER = "options"
ARGS_HEADER = "args"
PROTOCOL_HEADER = "X-Relayfs-Protocol"

# Query parameter naming the operation
METHOD_PARAM = "method"

# Unauthenticated health check route
HEALTH_PATH = "/_health"

# Port the relay tries first, and the retry thresholds after it.
DEFAULT_PORT = 3000
SOFT_PORT_ATTEMPTS = 50
HARD_PORT_ATTEMPTS = 100

# Default directory of the persisted client state and of the config file.
STATE_DIR = ".relayfs"
CONFIG_PATH = "~/.relayfs/config"

# Names of the persisted client state, as files and as cookies.
URL_FILENAME = "url.txt"
TOKEN_FILENAME = "token.txt"
URL_COOKIE = "relayfs-url"
TOKEN_COOKIE = "relayfs-token"

# Special exit code for when relayfs itself fails.
RELAYFS_ERROR_CODE = 254
