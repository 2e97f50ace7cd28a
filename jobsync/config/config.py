"""
Load and validate the jobsync library config at import time, then do the
initial log config so that import-time logging has a sensible level
"""

# Standard
import os

# First Party
import aconfig
import alog

# Local
from ..exceptions import assert_config
from .validation import get_invalid_params

_CONFIG_DIR = os.path.dirname(__file__)


def _load_yaml(file_name: str, override_env_vars: bool) -> aconfig.Config:
    return aconfig.Config.from_yaml(
        os.path.join(_CONFIG_DIR, file_name),
        override_env_vars=override_env_vars,
    )


# Defaults may be overridden by env vars (NAMESPACE, DRY_RUN, ...). The
# validation rules may not.
library_config = _load_yaml("config.yaml", override_env_vars=True)
validation_config = _load_yaml("config_validation.yaml", override_env_vars=False)

invalid_params = get_invalid_params(library_config, validation_config)
assert_config(
    not invalid_params,
    f"Library configuration found invalid values: {invalid_params}",
)

alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)
