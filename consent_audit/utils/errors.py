"""
Error helpers shared by the network boundaries.
"""


def get_error_message(error: BaseException | object) -> str:
    """
    Safely extract an error message from an unknown error type.
    Falls back to the exception class name when the message is empty
    (``asyncio.TimeoutError()`` stringifies to ``""``).
    """
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return "Unknown error"
