"""Prompt Chain - versioned text-to-image prompt chains with a provider proxy."""

__version__ = "0.1.0"

from promptchain.core.chain_store import ChainStore
from promptchain.core.config import PromptChainConfig, config
from promptchain.core.request_compiler import compile_request
from promptchain.core.response_decoder import decode_response

__all__ = [
    "ChainStore",
    "PromptChainConfig",
    "compile_request",
    "config",
    "decode_response",
]
