"""
Exception formatting and logging helpers that never raise themselves.

Used on the proxy failure path, where the error text ends up in the JSON
envelope returned to the browser and must always be a usable string.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string, falling back to repr and finally the type name.

    Args:
        obj: The object to convert

    Returns:
        A string, even if __str__ and __repr__ both fail
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def _describe(exception) -> str:
    # httpx transport errors frequently carry an empty message
    text = _safe_str(exception)
    if text:
        return text
    return type(exception).__name__


def format_exception_message(exception: Exception) -> str:
    """
    Describe an exception for a client-facing error body.

    Exception groups list their sub-exceptions; an empty message is replaced
    by the exception type name.
    """
    if exception is None:
        return "None"
    try:
        subs = _sub_exceptions(exception)
        if not subs:
            return _describe(exception)
        parts = "; ".join(f"{type(sub).__name__}: {_describe(sub)}" for sub in subs)
        return f"{_describe(exception)} (Sub-exceptions: {parts})"
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, one entry per sub-exception for groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g. "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{prefix} Exception with {len(subs)} sub-exceptions: {_describe(exception)}",
            )
            for i, sub in enumerate(subs):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i + 1}: {type(sub).__name__}: {_describe(sub)}",
                    exc_info=sub,
                )
        else:
            logger.log(
                level,
                f"{prefix} Exception: {format_exception_message(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
