class DeduplicationError(Exception):
    """Fatal condition that aborts a deduplication run.

    Args:
        message: Description of what went wrong.
        component: Part of the pipeline that raised the error
            (e.g. "reader", "store").
    """

    def __init__(self, message: str, component: str = "engine"):
        super().__init__(message)
        self.component = component
        self.counters = None

    def __str__(self):
        return f"[{self.component}] {self.args[0]}"


class InputError(DeduplicationError):
    """Unreadable, unopenable or truncated FASTQ input."""

    def __init__(self, message: str, component: str = "reader"):
        super().__init__(message, component)


class DesynchronisedInputError(InputError):
    """Paired FASTQ streams no longer line up record for record."""


class BackendError(DeduplicationError):
    """Membership store could not be opened or written to."""

    def __init__(self, message: str, component: str = "store"):
        super().__init__(message, component)
