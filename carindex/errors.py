"""Exceptions raised while reading, writing and indexing CAR data."""


class CarError(Exception):
    """Base class for every error reported by this package."""


class CidTooLargeError(CarError):
    """A CID is too large to be included in a CARv2 index."""

    def __init__(self, max_size: int, current_size: int) -> None:
        self.max_size = max_size
        self.current_size = current_size
        super().__init__(
            f"cid size is larger than max allowed ({current_size} > {max_size})"
        )


class NotFoundError(CarError, LookupError):
    """A record is not present in an index."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)