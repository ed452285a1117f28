from __future__ import annotations


class ExtractionError(Exception):
    pass


class BodyExtractionError(ExtractionError):
    """Raised when a message body cannot be read at all; the record is skipped."""


class ContainerError(ExtractionError):
    """Raised when a whole container cannot be extracted."""


class AllContainersFailedError(ExtractionError):
    def __init__(self, failures: list) -> None:
        self.failures = failures
        details = "\n\n".join(
            f"{idx}. {f.name}: {f.details or f.reason}" for idx, f in enumerate(failures, start=1)
        )
        super().__init__(f"All files failed to extract.\n\n{details}")


class SinkError(ExtractionError):
    pass
