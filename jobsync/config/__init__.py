"""
Library config module. All values may be overridden with environment variables
(e.g. NAMESPACE=foo) or with the matching command line flag (--namespace foo).
Keys are read as module attributes: `config.namespace`.
"""

# Local
from .config import library_config


def __getattr__(name):
    """Read unknown module attributes from the library config"""
    try:
        return library_config[name]
    except KeyError:
        raise AttributeError(f"jobsync has no config key [{name}]") from None


def __dir__():
    return sorted(list(globals().keys()) + list(library_config.keys()))


__all__ = list(library_config.keys())
