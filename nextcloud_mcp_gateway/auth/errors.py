"""Error types for the embedded OAuth authorization server.

Protocol errors on the OAuth endpoints use the MCP SDK types
(``TokenError``, ``RegistrationError``, ``AuthorizeError``); the classes
here cover configuration, access token verification and the Nextcloud
credential check.
"""


class ConfigurationError(Exception):
    """Raised when required server configuration is missing or invalid.

    Kept outside the OAuth error types so it is never mistaken for a
    client-side rejection.
    """

    pass


class InvalidTokenError(Exception):
    """Access token failed signature, structure or expiry checks."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(description)


class NextcloudAuthenticationError(Exception):
    """Nextcloud rejected the submitted username/password."""

    pass


class NextcloudUnavailableError(Exception):
    """Nextcloud could not be reached to verify credentials."""

    pass
