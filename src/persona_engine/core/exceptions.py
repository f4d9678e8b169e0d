"""
Persona engine exceptions

Input and lookup errors propagate to the caller. Backend errors are
converted into fallback values by the assembler and never reach end users.
"""


class PersonaEngineError(Exception):
    """Base exception for the persona engine"""

    pass


class InvalidInput(PersonaEngineError):
    """A caller passed a value the engine refuses to store or process"""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid input for '{field}': {message}")


class InvalidQuery(InvalidInput):
    """Memory retrieval was asked with an empty query"""

    def __init__(self, message: str = "query must not be empty"):
        super().__init__("query", message)


class BackendUnavailable(PersonaEngineError):
    """The language-model backend failed or timed out"""

    pass


class MalformedBackendOutput(PersonaEngineError):
    """Backend text could not be parsed into the expected structure"""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class ProfileNotFoundError(PersonaEngineError):
    """No profile with the given id"""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile not found: {profile_id}")


class ChatNotFoundError(PersonaEngineError):
    """No chat with the given id for the profile"""

    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        super().__init__(f"Chat not found: {chat_id}")


class MessageNotFoundError(PersonaEngineError):
    """No message with the given id in the chat"""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Message not found: {message_id}")


class StorageError(PersonaEngineError):
    """Document store failure"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class MigrationError(PersonaEngineError):
    """Stored document could not be upgraded to the current schema"""

    def __init__(self, from_version: int, to_version: int, reason: str):
        self.from_version = from_version
        self.to_version = to_version
        self.reason = reason
        super().__init__(f"Migration v{from_version}→v{to_version} failed: {reason}")
