"""
The relay: the process that performs file system operations on behalf of clients.

A relay consists of the Dispatcher, a WSGI application that authenticates, validates
and executes requests, and the Publisher, which binds the dispatcher to a local port and
optionally makes it reachable from the internet through a Tunnel.

Example:
```
dispatcher = Dispatcher(root="/srv/files", secret=os.environ["RELAYFS_PASSWORD"])
publisher = Publisher(dispatcher, port=3000, store=FileCredentialStore())
url = publisher.start()
```
"""

from .dispatcher import Dispatcher, RequestContext
from .ignore import IgnoreList
from .publisher import Publisher
from .tunnel import SshTunnel, Tunnel

__all__ = [
    "Dispatcher",
    "IgnoreList",
    "Publisher",
    "RequestContext",
    "SshTunnel",
    "Tunnel",
]
