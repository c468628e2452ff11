import multiprocessing
import platform

from astrocache import lib, schemas, services, utils

__all__ = (
    "lib",
    "schemas",
    "services",
    "utils",
)

if platform.system() == "Darwin":
    multiprocessing.set_start_method("fork", force=True)
