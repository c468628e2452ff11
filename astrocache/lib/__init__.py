from astrocache.lib import exceptions, log, settings

__all__ = (
    "exceptions",
    "log",
    "settings",
)
