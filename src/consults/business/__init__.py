"""Business directory registry. Defaults to InMemoryBusinessDirectory."""

from consults.business.fake_adapter import InMemoryBusinessDirectory
from consults.business.port import BusinessDirectory

_current_directory: BusinessDirectory | None = None


def get_business_directory() -> BusinessDirectory:
    global _current_directory
    if _current_directory is None:
        _current_directory = InMemoryBusinessDirectory()
    return _current_directory


def set_business_directory(directory: BusinessDirectory) -> None:
    global _current_directory
    _current_directory = directory


def reset_business_directory() -> None:
    global _current_directory
    _current_directory = None
