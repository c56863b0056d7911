from typing import Literal

from pydantic import BaseModel

ConfigValueType = Literal["string", "number", "bool", "list"]


class EnvConfig(BaseModel):
    """One configuration key a client needs.

    Attributes:
        env_key (str): Key without the {CLIENT_TYPE}_{ENGINE}_ prefix, e.g. "BASE_URL".
        val_type (str): How the raw value is parsed: "string", "number", "bool" or "list".
        default: Fallback when the key is unset. None marks the key as required.
    """

    env_key: str
    val_type: ConfigValueType = "string"
    default: str | int | float | bool | list | None = None
