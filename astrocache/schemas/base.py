from typing import Any

import msgspec


class BaseStruct(msgspec.Struct):
    """Base Struct"""


class CamelizedBaseStruct(BaseStruct, rename="camel"):
    """Camelized Base Struct"""


def drop_none(struct: msgspec.Struct) -> dict[str, Any]:
    """Convert ``struct`` to a dict without the fields left as ``None``."""
    return {key: value for key, value in msgspec.structs.asdict(struct).items() if value is not None}
