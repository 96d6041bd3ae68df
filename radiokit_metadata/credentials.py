from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from radiokit_metadata.errors import InvalidArgument
from radiokit_metadata.interface import AccessTokenFunction


class CredentialSource(ABC):
    """Give the access token to use for a connection attempt."""

    @abstractmethod
    def resolve(self) -> str: ...


@dataclass(frozen=True)
class StaticToken(CredentialSource):
    token: str = field(repr=False)

    def resolve(self) -> str:
        return self.token


@dataclass(frozen=True)
class TokenProvider(CredentialSource):
    """Call the provider every time, tokens can be rotated between connections."""

    provider: AccessTokenFunction

    def resolve(self) -> str:
        token = self.provider()
        if not isinstance(token, str):
            raise InvalidArgument("access token function returned non-string")
        return token


def credential_source(
    value: str | AccessTokenFunction | CredentialSource,
) -> CredentialSource:
    match value:
        case CredentialSource():
            return value
        case str():
            return StaticToken(value)
        case _ if callable(value):
            return TokenProvider(value)
    raise InvalidArgument("access token is neither a string nor a function")
