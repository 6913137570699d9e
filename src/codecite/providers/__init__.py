"""
Embedding and chat providers.

Concrete providers are selected by configuration and consumed through the
``Embedder`` and ``ChatModel`` protocols.
"""

from codecite.config import Config
from codecite.providers.base import ChatModel, Embedder
from codecite.providers.chat import OpenAIChat
from codecite.providers.embeddings import HashingEmbedder, OpenAIEmbedder


def create_embedder(config: Config) -> Embedder:
    """Build the embedder named by ``config.embed_provider``."""
    if config.embed_provider == "hash":
        return HashingEmbedder(dimensions=config.embed_dimensions)
    return OpenAIEmbedder(
        model=config.embed_model,
        api_key=config.api_key if config.embed_provider == "openai" else "ollama",
        base_url=config.embed_base_url,
        timeout=config.provider_timeout,
    )


def create_chat(config: Config) -> ChatModel:
    """Build the chat model named by ``config.chat_provider``."""
    return OpenAIChat(
        model=config.chat_model,
        api_key=config.api_key if config.chat_provider == "openai" else "ollama",
        base_url=config.chat_base_url,
        timeout=config.provider_timeout,
    )


__all__ = [
    "ChatModel",
    "Embedder",
    "HashingEmbedder",
    "OpenAIChat",
    "OpenAIEmbedder",
    "create_chat",
    "create_embedder",
]
