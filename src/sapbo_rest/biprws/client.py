"""BusinessObjects REST API client.

Provides HTTP client with logon-token authentication, thread-local
connections and response validation. Read endpoints return flattened
tables; spreadsheet uploads return the server's success envelope.
"""

import json
import mimetypes
import threading
import time
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from ..errors import ProtocolError, RequestError
from ..flatten import CollisionPolicy, FlatTable, flatten
from ..metrics import RequestMetrics
from .session import (
    DEFAULT_AUTH_TYPE,
    TOKEN_HEADER,
    AuthType,
    Session,
    logon_body,
    parse_auth_type,
)
from .types import ErrorBody, UploadResult

logger = structlog.get_logger(__name__)

API_ROOT = "/biprws"

DEFAULT_TIMEOUT = 30.0

JSON_CONTENT_TYPE = "application/json"


def _media_type(response: httpx.Response) -> str:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


def _error_message(response: httpx.Response) -> str:
    """Extract the server's error message, falling back to the reason phrase."""
    try:
        body = ErrorBody.model_validate(response.json())
    except ValueError:
        return response.reason_phrase
    return body.message or response.reason_phrase


def check_response(response: httpx.Response, expect_body: bool = True) -> None:
    """Validate status code and content type of an API response.

    Args:
        response: The response to check.
        expect_body: When False, an empty body is accepted without a
            content type.

    Raises:
        RequestError: If the status code is not 2xx.
        ProtocolError: If the body is not ``application/json``.
    """
    if not response.is_success:
        raise RequestError(response.status_code, _error_message(response))

    if not expect_body and not response.content:
        return
    if _media_type(response) != JSON_CONTENT_TYPE:
        content_type = response.headers.get("content-type", "")
        msg = f"API did not return json (content type {content_type!r})"
        raise ProtocolError(msg)


def _json(response: httpx.Response) -> Any:
    """Decode a JSON body.

    Raises:
        ProtocolError: If the body is not valid JSON.
    """
    try:
        return response.json()
    except ValueError as e:
        msg = "API did not return valid json"
        raise ProtocolError(msg) from e


def _collection(data: Any, *keys: str) -> Any:
    """Walk into a response envelope, returning [] if a key is absent."""
    for key in keys:
        if not isinstance(data, dict) or data.get(key) is None:
            return []
        data = data[key]
    return data


class SapBoRestClient:
    """HTTP client for the SAP BusinessObjects REST API (``/biprws``).

    Logon state lives in :class:`Session` objects returned by
    :meth:`log_on`; every authenticated method takes one explicitly.

    Thread-safe through thread-local storage of httpx.Client instances.
    The logon cookie is cleared from the client's jar once the handshake
    finishes, so it is not sent with later requests or other logons.
    Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        metrics: RequestMetrics | None = None,
        collision: CollisionPolicy | str = CollisionPolicy.OVERWRITE,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the REST API client.

        Args:
            base_url: Server URL without the ``/biprws`` suffix
                (e.g., "https://bo.example.com:6405").
            timeout: Request timeout in seconds (default: 30.0).
            metrics: Optional request metrics to record into.
            collision: Column collision policy used when flattening.
            transport: Optional httpx transport, mainly for tests.

        Raises:
            ValueError: If base_url is empty or timeout is not positive.
        """
        if not base_url:
            msg = "base_url cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._metrics = metrics
        self._collision = CollisionPolicy(collision)
        self._transport = transport
        self._headers = {"Accept": JSON_CONTENT_TYPE}

        # Use thread-local storage for httpx.Client (thread safety)
        self._local = threading.local()

    @property
    def client(self) -> httpx.Client:
        """Get or create thread-local httpx client."""
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    def _request(  # noqa: PLR0913
        self,
        method: str,
        endpoint: str,
        session: Session | None = None,
        *,
        path_params: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        content: str | None = None,
        files: dict[str, Any] | None = None,
        expect_body: bool = True,
    ) -> httpx.Response:
        """Make HTTP request to the BusinessObjects REST API.

        Args:
            method: HTTP method.
            endpoint: Path template below ``/biprws``
                (e.g., "/raylight/v1/documents/{document_id}").
            session: Session whose token authenticates the call. A session
                without a token sends no auth header.
            path_params: Values substituted into ``endpoint``.
            params: Query parameters; None values are dropped.
            headers: Extra request headers.
            content: Raw request body.
            files: Multipart body parts.
            expect_body: Whether an empty body is a protocol error.

        Returns:
            The validated response.

        Raises:
            httpx.HTTPError: If the HTTP request itself fails.
            RequestError: If the server returns a non-2xx status.
            ProtocolError: If the response is not JSON.
        """
        path = endpoint.format(
            **{k: quote(str(v), safe="") for k, v in (path_params or {}).items()},
        )
        request_headers = session.auth_headers() if session is not None else {}
        request_headers.update(headers or {})
        query = {k: v for k, v in (params or {}).items() if v is not None}

        start_time = time.time()
        try:
            logger.debug(
                "Making API request",
                method=method,
                endpoint=path,
                params=query,
                authenticated=TOKEN_HEADER in request_headers,
            )
            response = self.client.request(
                method,
                API_ROOT + path,
                params=query,
                headers=request_headers,
                content=content,
                files=files,
            )
        except httpx.HTTPError:
            duration = time.time() - start_time
            logger.exception(
                "API request failed",
                method=method,
                endpoint=path,
                duration_seconds=round(duration, 3),
            )
            if self._metrics is not None:
                self._metrics.observe(method, endpoint, None, duration)
            raise

        duration = time.time() - start_time
        logger.debug(
            "API request completed",
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        if self._metrics is not None:
            self._metrics.observe(method, endpoint, response.status_code, duration)

        try:
            check_response(response, expect_body=expect_body)
        except RequestError as e:
            logger.error(
                "API error response",
                endpoint=path,
                status_code=e.status_code,
                error_message=e.message,
            )
            raise
        return response

    def _get_table(
        self,
        session: Session,
        endpoint: str,
        keys: tuple[str, ...],
        path_params: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> FlatTable:
        response = self._request(
            "GET",
            endpoint,
            session,
            path_params=path_params,
            params=params,
        )
        return flatten(_collection(_json(response), *keys), self._collision)

    # -- Session -----------------------------------------------------------

    def log_on(
        self,
        username: str,
        password: str,
        auth_type: str | AuthType = DEFAULT_AUTH_TYPE,
    ) -> Session:
        """Log on and return a new active session.

        Fetches a session cookie from ``/biprws/logon/long``, then posts the
        XML credentials with that cookie. The token comes back in the
        ``X-SAP-LogonToken`` response header.

        Args:
            username: BusinessObjects user name.
            password: BusinessObjects password.
            auth_type: One of secEnterprise, secLDAP, secWinAD, secSAPR3
                (default: secLDAP).

        Returns:
            An active Session holding the logon token.

        Raises:
            ValueError: If auth_type is not supported.
            RequestError: If the server rejects either request.
            ProtocolError: If the response is not JSON or carries no token.
        """
        body = logon_body(username, password, auth_type)

        # The handshake cookie belongs to this logon only.
        self.client.cookies.clear()
        try:
            cookie_response = self._request("GET", "/logon/long", expect_body=False)
            headers = {"Content-Type": "application/xml"}
            cookies = [f"{c.name}={c.value}" for c in cookie_response.cookies.jar]
            if cookies:
                headers["Cookie"] = "; ".join(cookies)

            response = self._request(
                "POST",
                "/logon/long",
                headers=headers,
                content=body,
            )
        finally:
            self.client.cookies.clear()

        token = response.headers.get(TOKEN_HEADER)
        if not token:
            msg = f"Logon response did not include a {TOKEN_HEADER} header"
            raise ProtocolError(msg)

        logger.info(
            "Logon successful",
            username=username,
            auth_type=parse_auth_type(auth_type).value,
        )
        return Session(token)

    def log_off(self, session: Session) -> None:
        """Log off and clear the session's token.

        A session that holds no token is still sent to the server, without
        an auth header; the server decides the outcome.

        Raises:
            RequestError: If the server rejects the request.
            ProtocolError: If a non-empty response is not JSON.
        """
        if not session.is_active:
            logger.warning("Logging off a session without a logon token")
        self._request("POST", "/logoff", session, expect_body=False)
        session.clear()
        logger.info("Logoff successful")

    # -- Documents and schedules ------------------------------------------

    def get_documents(
        self,
        session: Session,
        offset: int | None = None,
        limit: int | None = None,
    ) -> FlatTable:
        """List Web Intelligence documents.

        Args:
            session: Active session.
            offset: Index of the first document, passed through as is.
            limit: Maximum number of documents, passed through as is.
        """
        return self._get_table(
            session,
            "/raylight/v1/documents",
            ("documents", "document"),
            params={"offset": offset, "limit": limit},
        )

    def get_document(self, session: Session, document_id: int | str) -> FlatTable:
        """Get the details of one document as a single-row table."""
        return self._get_table(
            session,
            "/raylight/v1/documents/{document_id}",
            ("document",),
            path_params={"document_id": document_id},
        )

    def get_schedules(self, session: Session, document_id: int | str) -> FlatTable:
        """List the schedules of a document."""
        return self._get_table(
            session,
            "/raylight/v1/documents/{document_id}/schedules",
            ("schedules", "schedule"),
            path_params={"document_id": document_id},
        )

    def get_schedule(
        self,
        session: Session,
        document_id: int | str,
        schedule_id: int | str,
    ) -> FlatTable:
        return self._get_table(
            session,
            "/raylight/v1/documents/{document_id}/schedules/{schedule_id}",
            ("schedule",),
            path_params={"document_id": document_id, "schedule_id": schedule_id},
        )

    # -- Connections and universes -----------------------------------------

    def get_connections(
        self,
        session: Session,
        offset: int | None = None,
        limit: int | None = None,
    ) -> FlatTable:
        """List data source connections."""
        return self._get_table(
            session,
            "/raylight/v1/connections",
            ("connections", "connection"),
            params={"offset": offset, "limit": limit},
        )

    def get_universes(
        self,
        session: Session,
        offset: int | None = None,
        limit: int | None = None,
    ) -> FlatTable:
        """List universes."""
        return self._get_table(
            session,
            "/raylight/v1/universes",
            ("universes", "universe"),
            params={"offset": offset, "limit": limit},
        )

    def get_universe(self, session: Session, universe_id: int | str) -> FlatTable:
        return self._get_table(
            session,
            "/raylight/v1/universes/{universe_id}",
            ("universe",),
            path_params={"universe_id": universe_id},
        )

    # -- Repository folders -------------------------------------------------

    def get_folder_children(
        self,
        session: Session,
        folder_id: int | str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> FlatTable:
        """List the objects inside a repository folder.

        An empty folder yields an empty table.

        Args:
            session: Active session.
            folder_id: SI_ID of the folder.
            page: Page number, passed through as is.
            page_size: Entries per page, passed through as is.
        """
        return self._get_table(
            session,
            "/infostore/{folder_id}/children",
            ("entries",),
            path_params={"folder_id": folder_id},
            params={"page": page, "pageSize": page_size},
        )

    # -- Spreadsheets ---------------------------------------------------------

    def _send_spreadsheet(  # noqa: PLR0913
        self,
        method: str,
        endpoint: str,
        session: Session,
        file_path: Path,
        infos: dict[str, Any],
        path_params: dict[str, Any] | None = None,
    ) -> UploadResult:
        content_type = (
            mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        )
        with file_path.open("rb") as f:
            files = {
                "attachmentInfos": (None, json.dumps(infos), JSON_CONTENT_TYPE),
                "attachmentContent": (file_path.name, f, content_type),
            }
            response = self._request(
                method,
                endpoint,
                session,
                path_params=path_params,
                files=files,
            )

        success = _collection(_json(response), "success") or {}
        if not isinstance(success, dict):
            msg = f"Unexpected success envelope: {success!r}"
            raise ProtocolError(msg)
        result = UploadResult.model_validate(success)
        logger.info(
            "Spreadsheet stored",
            method=method,
            file=file_path.name,
            spreadsheet_id=result.id,
            server_message=result.message,
        )
        return result

    def upload_spreadsheet(
        self,
        session: Session,
        file_path: str | Path,
        folder_id: int | str,
        name: str | None = None,
    ) -> UploadResult:
        """Upload a spreadsheet into a repository folder.

        Args:
            session: Active session.
            file_path: Local file to upload.
            folder_id: SI_ID of the target folder.
            name: Name in the repository (default: the file name).

        Returns:
            The server's success message and the new spreadsheet id.

        Raises:
            FileNotFoundError: If file_path does not exist.
            RequestError: If the server rejects the upload.
            ProtocolError: If the response is not JSON.
        """
        path = Path(file_path)
        if not path.is_file():
            msg = f"Spreadsheet not found: {file_path}"
            raise FileNotFoundError(msg)

        infos = {"spreadsheet": {"name": name or path.name, "folderId": folder_id}}
        return self._send_spreadsheet(
            "POST",
            "/raylight/v1/spreadsheets",
            session,
            path,
            infos,
        )

    def update_spreadsheet(
        self,
        session: Session,
        spreadsheet_id: int | str,
        file_path: str | Path,
    ) -> UploadResult:
        """Replace the content of an existing spreadsheet.

        Raises:
            FileNotFoundError: If file_path does not exist.
            RequestError: If the server rejects the update.
            ProtocolError: If the response is not JSON.
        """
        path = Path(file_path)
        if not path.is_file():
            msg = f"Spreadsheet not found: {file_path}"
            raise FileNotFoundError(msg)

        infos = {"spreadsheet": {"name": path.name}}
        return self._send_spreadsheet(
            "PUT",
            "/raylight/v1/spreadsheets/{spreadsheet_id}",
            session,
            path,
            infos,
            path_params={"spreadsheet_id": spreadsheet_id},
        )
