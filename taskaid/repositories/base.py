from abc import ABC, abstractmethod


class AbstractSubmissionLog(ABC):
    @abstractmethod
    def append(self, record: dict) -> None:
        """Durably append one submission record. Records are never rewritten or removed."""
