"""
补全 Provider
"""

from .base import CompletionProvider, classify_provider_error
from .openai import OpenAIHTTPProvider
from .openai_sdk import OpenAISDKProvider

__all__ = [
    "CompletionProvider",
    "OpenAIHTTPProvider",
    "OpenAISDKProvider",
    "classify_provider_error",
]
