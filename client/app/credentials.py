from typing import Optional, Protocol


class CredentialProvider(Protocol):
    """Where the client keeps the bearer token and the signed-in user."""

    def get_token(self) -> Optional[str]: ...

    def set_token(self, token: str) -> None: ...

    def get_user(self) -> Optional[dict]: ...

    def set_user(self, user: dict) -> None: ...

    def clear(self) -> None: ...


class InMemoryCredentialProvider:
    def __init__(self, token: Optional[str] = None, user: Optional[dict] = None):
        self._token = token
        self._user = user

    def get_token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def get_user(self) -> Optional[dict]:
        return self._user

    def set_user(self, user: dict) -> None:
        self._user = user

    def clear(self) -> None:
        self._token = None
        self._user = None
