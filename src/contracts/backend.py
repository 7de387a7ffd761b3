from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BackendRole(str, Enum):
    PRIMARY = "primary"
    STANDBY = "standby"


class Backend(BaseModel):
    """
    Data model representing one upstream pool member.

    Backends are immutable once configured; per-backend health lives in the
    HealthTracker, keyed by the backend itself.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    role: BackendRole = BackendRole.STANDBY
    max_fails: int = Field(default=1, ge=1)
    fail_timeout: float = Field(default=5.0, gt=0)

    def with_role(self, role: BackendRole) -> "Backend":
        """
        Return a copy of this backend with a different role.
        """
        return self.model_copy(update={"role": role})

    def __repr__(self):
        return f"Backend(name={self.name}, address={self.address}, role={self.role.value})"
