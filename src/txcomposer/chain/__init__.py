"""
Chain Integration Layer.

Provides abstracted access to the chain API: head block lookups, required
key resolution, transaction submission and contract ABIs.
"""

from txcomposer.chain.interface import ChainInfo, ChainInterface
from txcomposer.chain.http import HttpChainAdapter

__all__ = [
    "ChainInfo",
    "ChainInterface",
    "HttpChainAdapter",
]
