from typing import Dict


class OAuthException(Exception):
    """
    A protocol-level rejection of the current request.

    Carries the HTTP status, the RFC 6749 error code and a human readable
    description. The transport layer decides whether it is rendered as a
    JSON body or carried on a redirect.
    """

    def __init__(self, http_status: int, error: str, error_description: str):
        super().__init__(error)
        self.http_status = http_status
        self.error = error
        self.error_description = error_description

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.error, "error_description": self.error_description}

    def __repr__(self) -> str:
        return f"OAuthException({self.http_status}, {self.error!r}, {self.error_description!r})"


class StorageError(Exception):
    """Credential store fault (duplicate key, lost connection). Not a client error."""
    pass


def invalid_request(description: str) -> OAuthException:
    return OAuthException(400, "invalid_request", description)

def missing_parameter(name: str) -> OAuthException:
    return invalid_request(f'missing "{name}" parameter')

def invalid_grant(description: str) -> OAuthException:
    return OAuthException(400, "invalid_grant", description)

def invalid_client(description: str, http_status: int = 401) -> OAuthException:
    return OAuthException(http_status, "invalid_client", description)
