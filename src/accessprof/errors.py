class AccessProfError(Exception):
    """Base class for errors raised by accessprof."""


class LogFileError(AccessProfError):
    """The durable log could not be opened, read or written."""

    def __init__(self, message: str, written: int = 0) -> None:
        super().__init__(message)
        # Observations appended before the fault
        self.written = written


class LogDecodeError(AccessProfError):
    """A line of the durable log is malformed or missing a required label."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"failed to parse log at line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class PatternError(AccessProfError):
    """An aggregation pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"failed to compile pattern {pattern!r}: {reason}")
        self.pattern = pattern
