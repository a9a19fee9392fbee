"""Block-store gateways."""

from .base import (
    GatewayError,
    GatewayReadFailure,
    GatewayWriteFailure,
    PersistenceGateway,
)
from .logseq import LogseqGateway
from .memory import InMemoryGateway

__all__ = [
    "GatewayError",
    "GatewayReadFailure",
    "GatewayWriteFailure",
    "InMemoryGateway",
    "LogseqGateway",
    "PersistenceGateway",
]
