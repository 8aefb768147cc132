from pydantic import BaseModel

class Actor(BaseModel):
    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
