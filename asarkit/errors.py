class AsarError(Exception):
    """Base class for asarkit errors."""


# Lookup
class NotFoundError(AsarError):
    pass


class InvalidPathError(AsarError):
    pass


# Header / framing
class MalformedHeaderError(AsarError):
    pass


# Filesystem
class ArchiveIOError(AsarError):
    pass


# Facade mode
class InvalidOperationError(AsarError):
    pass
