class FrgError(RuntimeError):
    """Base class for all errors raised by the pf-FRG solver."""
    pass

class ConfigurationError(FrgError):
    """Invalid grids, task files, resources or option combinations."""
    pass

class CheckpointIOError(FrgError,OSError):
    """HDF5 files or groups that cannot be opened or created."""
    pass

class ProgrammingError(FrgError):
    """Violated precondition on grid access, channel selectors or iterator ranges."""
    pass

class InfrastructureError(FrgError):
    """Failure of the message passing layer."""
    pass

def check(condition,message):
    """Raises a ProgrammingError with message if condition is false."""
    if not condition:
        raise ProgrammingError(message)
