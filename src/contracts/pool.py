from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from contracts.backend import Backend, BackendRole


class PoolConfiguration(BaseModel):
    """
    Ordered failover pool: one primary followed by one or more standbys.
    """

    model_config = ConfigDict(frozen=True)

    primary: Backend
    standbys: Tuple[Backend, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_members(self):
        if self.primary.role != BackendRole.PRIMARY:
            raise ValueError(f"primary {self.primary.name} must have role 'primary'")
        for standby in self.standbys:
            if standby.role != BackendRole.STANDBY:
                raise ValueError(f"standby {standby.name} must have role 'standby'")
        names = [b.name for b in self.members]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate pool names: {names}")
        addresses = [b.address for b in self.members]
        if len(set(addresses)) != len(addresses):
            raise ValueError(f"duplicate pool addresses: {addresses}")
        return self

    @property
    def members(self) -> List[Backend]:
        return [self.primary, *self.standbys]

    def find(self, name: str) -> Optional[Backend]:
        for backend in self.members:
            if backend.name == name:
                return backend
        return None


class PoolSwapRequest(BaseModel):
    active_pool: str


class PoolStatusResponse(BaseModel):
    primary: Backend
    standbys: List[Backend]
    eligible: Dict[str, bool]
