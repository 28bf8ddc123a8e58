class LightsMapError(Exception):
    """Base class for failures of a single user action."""


class InputError(LightsMapError):
    pass


class NotFound(LightsMapError):
    pass


class Unauthenticated(LightsMapError):
    def __init__(self, message: str = "Please log in on the Login page before voting.") -> None:
        super().__init__(message)


class DataStoreError(LightsMapError):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class DuplicateVoteError(DataStoreError):
    pass
