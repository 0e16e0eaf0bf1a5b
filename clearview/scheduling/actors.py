from dataclasses import dataclass

ROLE_CLIENT = 'client'
ROLE_ADMIN = 'admin'


@dataclass(frozen=True)
class Actor:
    """The caller of a scheduling operation, as vouched for by the auth layer."""
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def owns(self, client_id: int | None) -> bool:
        return client_id is not None and self.user_id == client_id
