"""Security utilities for preventing information disclosure."""

import re


def sanitize_error_message(error: Exception) -> str:
    """Create a user-facing error message without internal details.

    The raw exception is logged separately; this text is what ends up in
    RunResult.error and in chat replies.

    Args:
        error: The exception that occurred.

    Returns:
        A sanitized, user-friendly error message.
    """
    error_type = type(error).__name__
    error_str = str(error)

    error_str = re.sub(r"/[^\s]+", "[path]", error_str)
    error_str = re.sub(r"0x[0-9a-fA-F]+", "[address]", error_str)
    lowered = error_str.lower()

    if "Image" in error_type or "image" in lowered:
        return "I couldn't process the attached image. Please try a different format."
    elif "Connection" in error_type or "connection" in lowered:
        return "Unable to reach an upstream service. Please try again in a moment."
    elif "Timeout" in error_type or "timeout" in lowered or "timed out" in lowered:
        return "The request took too long to process. Please try again with a simpler request."
    elif "RateLimit" in error_type or "rate limit" in lowered:
        return "Too many requests. Please wait a moment and try again."
    elif "Authentication" in error_type or "api key" in lowered or "unauthorized" in lowered:
        return "Service credentials are missing or invalid. Please check the configuration."
    elif "NotFound" in error_type or "not found" in lowered:
        return "The requested resource was not found."
    elif "Validation" in error_type or "validation" in lowered:
        return "Invalid request format. Please check your input and try again."
    return "I encountered an issue processing your request. Please try again."
