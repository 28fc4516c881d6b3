"""Exceptions raised by the chat relay client."""


class ChatClientError(RuntimeError):
    """Base class for client-side failures."""


class StoreError(ChatClientError):
    """The row store could not be read or written."""


class TranslationError(ChatClientError):
    """The fallback translation endpoint failed."""


class SendError(ChatClientError):
    """A chat message could not be persisted; the caller should keep its input."""
