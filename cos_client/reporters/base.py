"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cos_client.models import Part, UploadResult, UploadSession


class Reporter(ABC):
    """Abstract base class for multipart upload progress reporters."""

    @abstractmethod
    def on_upload_start(self, session: "UploadSession") -> None:
        """Called when an upload has been initiated."""
        pass

    @abstractmethod
    def on_part_complete(self, session: "UploadSession", part: "Part", size: int) -> None:
        """Called when a part has been uploaded."""
        pass

    @abstractmethod
    def on_upload_complete(self, result: "UploadResult") -> None:
        """Called when an upload has been completed."""
        pass

    @abstractmethod
    def on_upload_aborted(self, session: "UploadSession", error: BaseException) -> None:
        """Called when an upload has been aborted after ``error``."""
        pass


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using both ConsoleReporter and JsonReporter simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_upload_start(self, session) -> None:
        for reporter in self._reporters:
            reporter.on_upload_start(session)

    def on_part_complete(self, session, part, size) -> None:
        for reporter in self._reporters:
            reporter.on_part_complete(session, part, size)

    def on_upload_complete(self, result) -> None:
        for reporter in self._reporters:
            reporter.on_upload_complete(result)

    def on_upload_aborted(self, session, error) -> None:
        for reporter in self._reporters:
            reporter.on_upload_aborted(session, error)
