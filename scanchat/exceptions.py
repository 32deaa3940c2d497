"""Custom exceptions for scanchat."""


class ScanChatError(Exception):
    """Base exception for scanchat."""

    pass


class ConfigurationError(ScanChatError):
    """Configuration-related errors."""

    pass


class LLMError(ScanChatError):
    """LLM-related errors."""

    pass


class ProviderError(LLMError):
    """Error object returned by the model provider API.

    Mirrors the ``{"error": {"message", "type", "param", "code"}}`` payload
    of OpenAI-compatible endpoints.
    """

    def __init__(
        self,
        message: str,
        type: str | None = None,
        param: str | None = None,
        code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.type = type
        self.param = param
        self.code = code
        self.status_code = status_code


class ContextError(ScanChatError):
    """Context window errors."""

    pass


class UnknownModelError(ContextError):
    """Requested model has no configured token limit."""

    def __init__(self, model: str):
        super().__init__("Error: Model not found")
        self.model = model


class MessageTooLongError(ContextError):
    """The newest message alone does not fit the context window."""

    def __init__(self, token_limit: int, message_tokens: int):
        super().__init__(
            f"This message exceeds the model's maximum token limit of {token_limit}. "
            "Please shorten your message."
        )
        self.token_limit = token_limit
        self.message_tokens = message_tokens


class PluginError(ScanChatError):
    """Plugin-related errors."""

    pass


class PluginNotFoundError(PluginError):
    """No plugin registered under the given id."""

    def __init__(self, tool_id: str):
        super().__init__(f"Plugin not found: {tool_id}")
        self.tool_id = tool_id


class ValidationError(ScanChatError):
    """Validation errors."""

    pass
