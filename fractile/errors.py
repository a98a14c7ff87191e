class FractileError(Exception):
    """Base class for errors a caller of the engine can act on."""


class BackendUnavailable(FractileError):
    """The requested compute backend cannot run on this machine."""


class ShaderBuildError(FractileError):
    """A GPU program variant failed to compile or link."""
