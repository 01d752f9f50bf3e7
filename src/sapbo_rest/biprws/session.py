"""Session handles and log-on payloads for the BusinessObjects REST API.

A :class:`Session` is returned by ``SapBoRestClient.log_on`` and passed
explicitly to every later call. It only holds the logon token; requests are
issued by the client.
"""

import enum
from xml.etree import ElementTree

import structlog

logger = structlog.get_logger(__name__)

TOKEN_HEADER = "X-SAP-LogonToken"

BIP_NAMESPACE = "http://www.sap.com/rws/bip"


class AuthType(str, enum.Enum):
    """Authentication types accepted by ``/biprws/logon/long``."""

    ENTERPRISE = "secEnterprise"
    LDAP = "secLDAP"
    WIN_AD = "secWinAD"
    SAP_R3 = "secSAPR3"


DEFAULT_AUTH_TYPE = AuthType.LDAP


class SessionState(enum.Enum):
    """Whether a session currently holds a logon token."""

    NONE = "none"
    ACTIVE = "active"


class Session:
    """Logon token holder for one BusinessObjects session.

    There is no expiry tracking; an expired token is only discovered when the
    server rejects a request. Instances are not locked, so sharing one
    session between threads is up to the caller.
    """

    def __init__(self, token: str | None = None):
        self._token = token or None

    @property
    def token(self) -> str | None:
        """The raw logon token, or None when logged off."""
        return self._token

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._token else SessionState.NONE

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def activate(self, token: str) -> None:
        """Store a new token, replacing any token already held."""
        if not token:
            msg = "token cannot be empty"
            raise ValueError(msg)
        if self._token is not None:
            logger.debug("Replacing active logon token")
        self._token = token

    def clear(self) -> None:
        """Drop the token, returning the session to the NONE state."""
        self._token = None

    def auth_headers(self) -> dict[str, str]:
        """Headers authenticating a request, empty when no token is held."""
        if self._token is None:
            return {}
        return {TOKEN_HEADER: self._token}

    def __repr__(self) -> str:
        # Never include the token itself.
        return f"Session(state={self.state.value})"


def parse_auth_type(auth_type: str | AuthType) -> AuthType:
    """Validate an authentication type name.

    Raises:
        ValueError: If the name is not one of the supported types.
    """
    try:
        return AuthType(auth_type)
    except ValueError:
        allowed = ", ".join(a.value for a in AuthType)
        msg = (
            f"Unsupported authentication type {auth_type!r}, "
            f"expected one of: {allowed}"
        )
        raise ValueError(msg) from None


def logon_body(
    username: str,
    password: str,
    auth_type: str | AuthType = DEFAULT_AUTH_TYPE,
) -> str:
    """Build the XML credentials document posted to ``/biprws/logon/long``.

    Values are XML-escaped by ElementTree, so credentials containing ``<`` or
    ``&`` are sent verbatim to the server.

    Args:
        username: BusinessObjects user name.
        password: BusinessObjects password.
        auth_type: One of the :class:`AuthType` values.

    Returns:
        The serialized ``<attrs>`` document.

    Raises:
        ValueError: If ``auth_type`` is not supported.
    """
    auth = parse_auth_type(auth_type)

    root = ElementTree.Element("attrs", xmlns=BIP_NAMESPACE)
    fields = [
        ("password", password, {}),
        ("auth", auth.value, {"possibilities": ",".join(a.value for a in AuthType)}),
        ("userName", username, {}),
    ]
    for name, value, extra in fields:
        attr = ElementTree.SubElement(root, "attr", name=name, type="string", **extra)
        attr.text = value

    return ElementTree.tostring(root, encoding="unicode")
