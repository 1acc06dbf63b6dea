"""Store-specific exceptions."""


class StoreError(Exception):
    """Base exception for relational store errors."""


class PaperNotFoundError(StoreError):
    """Raised when no paper exists with the requested id."""

    def __init__(self, paper_id: str) -> None:
        super().__init__(f"Paper '{paper_id}' not found.")
        self.paper_id = paper_id
