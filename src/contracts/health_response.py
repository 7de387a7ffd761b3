from pydantic import BaseModel


class HealthResponse(BaseModel):
    """
    Data model representing a backend's health or version payload.
    """

    status: str
    pool: str
    release: str
