import enum

from pydantic import BaseModel, ConfigDict


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Identity(BaseModel):
    """Caller identity as supplied by the upstream identity provider.

    The value is trusted as-is; no verification happens here.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role = Role.USER
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
