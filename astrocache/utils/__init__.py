from astrocache.utils.env import get_config_val, get_env
from astrocache.utils.sync_tools import run_

__all__ = (
    "get_config_val",
    "get_env",
    "run_",
)
