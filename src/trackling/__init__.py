from ._version import __version__ as __version__
from .batcher import Batcher as Batcher
from .client import Client as Client
from .config import ClientConfig as ClientConfig
from .dispatcher import DispatchOutcome as DispatchOutcome
from .dispatcher import Dispatcher as Dispatcher
from .dispatcher import DispatchStatus as DispatchStatus
from .exceptions import BatchRejected as BatchRejected
from .exceptions import ClientError as ClientError
from .exceptions import DispatchError as DispatchError
from .exceptions import DispatchFailed as DispatchFailed
from .exceptions import DispatchIndeterminate as DispatchIndeterminate
from .exceptions import InvalidMessage as InvalidMessage
from .exceptions import MessageTooLarge as MessageTooLarge
from .exceptions import TransportError as TransportError
from .models import Alias as Alias
from .models import Batch as Batch
from .models import Group as Group
from .models import Identify as Identify
from .models import Message as Message
from .models import Page as Page
from .models import Screen as Screen
from .models import Track as Track
from .transport import HttpxTransport as HttpxTransport
from .transport import Transport as Transport
from .transport import TransportResponse as TransportResponse
from .utils.logging import setup_logging as setup_logging

__all__ = [
    "Client",
    "ClientConfig",
    "Batcher",
    "Dispatcher",
    "DispatchOutcome",
    "DispatchStatus",
    "Batch",
    "Message",
    "Identify",
    "Track",
    "Page",
    "Screen",
    "Group",
    "Alias",
    "ClientError",
    "InvalidMessage",
    "MessageTooLarge",
    "TransportError",
    "DispatchError",
    "BatchRejected",
    "DispatchFailed",
    "DispatchIndeterminate",
    "HttpxTransport",
    "Transport",
    "TransportResponse",
    "setup_logging",
]
