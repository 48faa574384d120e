# tsdb_cli/__init__.py
import requests
import json
import logging
from urllib.parse import urlencode, urljoin
from typing import List, Optional, Dict, Any, Iterable, Mapping
from tsdb_cli.utils import (
    ResultTable,
    _influx_result_dict_to_tables,
    points_to_line_protocol,
)

# --------------------
# consts
# --------------------

__version__ = "0.3.0"
CLI_EPILOG = """Commands:
  backfill SERIES START END INTERVAL TEMPLATE
                        Write synthetic points every INTERVAL ms from START
                        (inclusive) to END (exclusive), copying the JSON
                        TEMPLATE and adding a random 'count' field.
  dropseries SERIES     Drop a series.
  series                List series names.
  query QUERY           Run a query and print the result tables.
  gen-config            Write a default config file.

Enable shell completion with this command:
    eval "$(register-python-argcomplete %(prog)s)"
"""


# --------------------
# logger
# --------------------

logger = logging.getLogger(__name__)

# --- Custom Exceptions ---


class TSDBError(Exception):
    """Base exception for tsdb_cli errors."""

    pass


class TSDBConnectionError(TSDBError):
    """Raised for network-related errors (connection, timeout, failed handshake)."""

    pass


class TSDBAPIError(TSDBError):
    """Raised for errors reported by the database (e.g., bad query, failed write)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    def __str__(self) -> str:
        if self.status_code:
            return f"HTTP {self.status_code}: {super().__str__()}"
        return super().__str__()


class TSDBRequestError(TSDBError):
    """Raised when a post-connect operation fails; wraps the cause with context."""

    def __init__(self, context: str, cause: Exception):
        super().__init__(f"{context}: {cause}")
        self.context = context
        self.cause = cause


class ConfigError(TSDBError):
    """Raised when the config file is missing, unreadable or invalid."""

    pass


class ArgumentError(TSDBError):
    """Raised for bad command-line input, before any network activity."""

    pass


class UnknownCommandError(ArgumentError):
    """Raised when the command name is not one of the known commands."""

    def __init__(self, name: str):
        super().__init__(f"unknown command '{name}'")
        self.name = name


class ConnectionStateError(RuntimeError):
    """Raised when the connection facade is used out of order (a programming error)."""

    pass


# --- Client Class ---


class TSDBClient:
    """
    A client for the InfluxDB 1.x HTTP API.
    """

    DEFAULT_PORT = 8086  # Default HTTP API port
    DEFAULT_TIMEOUT = 60  # Default request timeout in seconds

    def __init__(
        self,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        scheme: str = "http",  # Allow overriding scheme if needed (e.g., https)
    ):
        """
        Initializes the HTTP API client.

        Args:
            host: Database server host.
            port: HTTP API port.
            user: Username for basic authentication (optional).
            password: Password for basic authentication (optional).
            database: Database every request is scoped to.
            timeout: Request timeout in seconds.
            scheme: URL scheme (http or https).
        """
        if not host:
            raise ValueError("Host cannot be empty")
        if not isinstance(port, int) or port <= 0:
            raise ValueError("Port must be a positive integer")
        if not database:
            raise ValueError("Database cannot be empty")

        self.base_url = f"{scheme}://{host}:{port}/"
        self.database = database
        self.timeout = timeout
        self.auth = (user, password) if user else None
        logger.debug(f"TSDBClient initialized for {self.base_url} (db={database})")

    def _build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Builds the full URL for an API endpoint."""
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        if params:
            # Filter out None values before encoding
            filtered_params = {k: v for k, v in params.items() if v is not None}
            if filtered_params:
                url += "?" + urlencode(filtered_params)
        return url

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Makes an HTTP request to the database.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint path (e.g., '/query').
            params: URL query parameters.
            data: Request body (form fields or line-protocol text).
            headers: Custom HTTP headers.

        Returns:
            requests.Response object.

        Raises:
            TSDBConnectionError: If a connection or timeout error occurs.
            TSDBAPIError: If the API returns an error status code.
            TSDBError: For other unexpected errors during the request.
        """
        full_url = self._build_url(endpoint, params)
        req_headers = headers or {}

        logger.debug(f"Request: {method} {full_url}")
        if self.auth:
            logger.debug("Using basic authentication.")
        if req_headers:
            logger.debug(f"Headers: {req_headers}")
        if isinstance(data, dict):
            logger.debug(f"Form: {data}")
        elif data:
            logger.debug(f"Body: {len(data)} bytes")

        try:
            response = requests.request(
                method,
                full_url,
                auth=self.auth,
                data=data,
                headers=req_headers,
                timeout=self.timeout,
            )
            logger.debug(f"Response Status: {response.status_code}")
            response.raise_for_status()  # Raise HTTPError for 4xx/5xx
            return response

        except requests.exceptions.ConnectionError as e:
            msg = f"Could not connect to the database at {self.base_url}. Details: {e}"
            logger.debug(msg)
            raise TSDBConnectionError(msg) from e
        except requests.exceptions.Timeout as e:
            msg = f"Request timed out after {self.timeout} seconds."
            logger.debug(msg)
            raise TSDBConnectionError(msg) from e
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code
            reason = e.response.reason
            error_data = None
            err_msg = reason or "request failed"
            try:
                error_data = e.response.json()
                # The API reports failures as {"error": "..."}
                if isinstance(error_data, dict) and "error" in error_data:
                    err_msg = error_data["error"]
                logger.debug(f"Response Body: {json.dumps(error_data)}")
            except ValueError:
                logger.debug(f"Raw Response Body: {e.response.text}")

            raise TSDBAPIError(
                err_msg, status_code=status_code, response_data=error_data
            ) from e
        except requests.exceptions.RequestException as e:
            msg = f"An unexpected request error occurred: {e}"
            logger.debug(msg)
            raise TSDBError(msg) from e

    def _query(self, query: str, method: str = "GET") -> List[Dict[str, Any]]:
        """
        Runs one or more statements on the /query endpoint.

        Returns:
            The 'results' list of the response, one entry per statement.

        Raises:
            TSDBAPIError: If any statement reports an error.
            TSDBError: For connection or JSON parsing issues.
        """
        params = {"db": self.database}
        if method == "GET":
            params["q"] = query
            response = self._request("GET", "/query", params=params)
        else:
            response = self._request("POST", "/query", params=params, data={"q": query})

        try:
            body = response.json()
        except ValueError as e:
            msg = f"Failed to decode JSON response from /query. Content: {response.text[:200]}"
            logger.debug(msg)
            raise TSDBError(msg) from e

        results = body.get("results", []) if isinstance(body, dict) else []
        if not isinstance(results, list):
            raise TSDBError(f"Unexpected /query response: {str(body)[:200]}")
        for result in results:
            if isinstance(result, dict) and "error" in result:
                raise TSDBAPIError(result["error"], response_data=body)
        return results

    def _query_tables(self, query: str, method: str = "GET") -> List[ResultTable]:
        results = self._query(query, method=method)
        try:
            return _influx_result_dict_to_tables({"results": results})
        except (TypeError, KeyError) as e:
            raise TSDBError(f"Unexpected /query response: {e}") from e

    @staticmethod
    def _is_read_only(query: str) -> bool:
        """True if every ';'-separated statement is a SELECT or SHOW."""
        keywords = [
            statement.split(None, 1)[0].upper()
            for statement in query.split(";")
            if statement.strip()
        ]
        return bool(keywords) and all(k in ("SELECT", "SHOW") for k in keywords)

    def query(self, query: str) -> List[ResultTable]:
        """
        Executes a query string and returns its result tables.

        Queries made only of SELECT and SHOW statements are sent with GET;
        anything else (DROP, CREATE, DELETE, ...) needs POST.

        Args:
            query: The query string, possibly several ';'-separated statements.

        Returns:
            One ResultTable per returned series, in response order.

        Raises:
            ValueError: If the query is empty.
            TSDBError: For API, connection, or JSON parsing issues.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValueError("Query must be a non-empty string.")

        method = "GET" if self._is_read_only(query) else "POST"
        return self._query_tables(query, method=method)

    def get_list_series(self) -> List[str]:
        """
        Lists the series (measurement) names of the database.

        Returns:
            Series names in the order returned by the server.
        """
        names = []
        for table in self._query_tables("SHOW MEASUREMENTS"):
            for row in table.rows:
                if not row:
                    raise TSDBError(f"Unexpected empty row in series '{table.name}'")
                names.append(row[0])
        return names

    def delete_series(self, series: str) -> None:
        """
        Drops a series (measurement) and all of its points.

        Raises:
            ValueError: If series is empty.
            TSDBError: For API or connection issues.
        """
        if not series or not isinstance(series, str):
            raise ValueError("series must be a non-empty string.")

        safe_series = series.replace("\\", "\\\\").replace('"', '\\"')
        self._query(f'DROP MEASUREMENT "{safe_series}"', method="POST")

    def write_points(
        self, series: str, points: Iterable[Mapping[str, Any]]
    ) -> int:
        """
        Writes points to a series with one /write request.

        Args:
            series: The series (measurement) to write to.
            points: Mappings of field name to value; the 'time' key holds a
                    datetime or epoch milliseconds.

        Returns:
            The number of points sent.

        Raises:
            TSDBError: For API or connection issues.
        """
        lines = points_to_line_protocol(series, points)
        if not lines:
            return 0

        params = {"db": self.database, "precision": "ms"}
        body = "\n".join(lines).encode("utf-8")
        self._request(
            "POST",
            "/write",
            params=params,
            data=body,
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        return len(lines)
