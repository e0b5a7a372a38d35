"""AWS transport.

Thin wrapper over boto3 clients: one session per transport, one client per
service (created on first use), throttling retries through tenacity, and
botocore errors translated into the query error hierarchy.

Example:
    transport = AwsTransport(ConnectionConfig(profile="billing"))
    page = transport.call("ce", "get_cost_and_usage", TimePeriod={...}, Granularity="MONTHLY")
    transport.caller_identity()["Account"]
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from cloudtables.lib.config_loader import ConnectionConfig
from cloudtables.lib.errors import CloudTablesError, NotFoundError, TransportError
from cloudtables.lib.resilience import RetryConfig, retry_operation

logger = logging.getLogger(__name__)

__all__ = [
    "THROTTLING_ERROR_CODES",
    "AwsTransport",
    "is_throttling_error",
    "wrap_client_error",
]

THROTTLING_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "LimitExceededException",
        "PriorRequestNotComplete",
    }
)


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "Unknown")


def is_throttling_error(exc: BaseException) -> bool:
    return isinstance(exc, ClientError) and _error_code(exc) in THROTTLING_ERROR_CODES


def wrap_client_error(
    exc: Exception,
    service: str,
    operation: str,
    not_found_codes: Iterable[str] = (),
) -> CloudTablesError:
    """Convert boto3/botocore exceptions to NotFoundError or TransportError.

    A client error is "not found" when its code is listed by the caller or
    follows the ``NoSuch*`` / ``*NotFound*`` conventions.

    Args:
        exc: Original boto3/botocore exception
        service: AWS service name (ce, cloudfront, ...)
        operation: Client method name
        not_found_codes: Extra codes meaning the entity does not exist
    """
    if isinstance(exc, ClientError):
        error_code = _error_code(exc)
        status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        message = exc.response.get("Error", {}).get("Message", "")
        if (
            error_code in set(not_found_codes)
            or error_code.startswith("NoSuch")
            or "NotFound" in error_code
        ):
            return NotFoundError(
                f"{service}.{operation}: {error_code} {message}".strip(),
                error_code=error_code,
                cause=exc,
            )
        return TransportError(
            f"{service}.{operation} failed: {error_code} (HTTP {status_code})",
            service=service,
            operation=operation,
            error_code=error_code,
            status_code=status_code or None,
            cause=exc,
        )
    if isinstance(exc, BotoCoreError):
        return TransportError(
            f"{service}.{operation} failed: {type(exc).__name__}",
            service=service,
            operation=operation,
            cause=exc,
        )
    return TransportError(
        f"{service}.{operation} failed: {type(exc).__name__}: {exc}",
        service=service,
        operation=operation,
        cause=exc,
    )


class AwsTransport:
    """Provider transport backed by boto3.

    Clients are created lazily and shared across threads; boto3 clients are
    thread safe once constructed, sessions are not.
    """

    def __init__(self, config: Optional[ConnectionConfig] = None, session: Optional[boto3.Session] = None) -> None:
        self.config = config or ConnectionConfig()
        self.retry = RetryConfig(
            max_attempts=self.config.max_attempts,
            backoff_seconds=self.config.backoff_seconds,
        )
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._identity: Optional[Dict[str, Any]] = None

    @property
    def session(self) -> boto3.Session:
        with self._lock:
            if self._session is None:
                self._session = boto3.Session(profile_name=self.config.profile)
            return self._session

    def region_for(self, service: str) -> str:
        return self.config.region_for(service)

    def client(self, service: str) -> Any:
        session = self.session
        with self._lock:
            client = self._clients.get(service)
            if client is None:
                region = self.region_for(service)
                logger.debug("Creating %s client in %s", service, region)
                client = session.client(
                    service,
                    region_name=region,
                    endpoint_url=self.config.endpoint_url,
                    # Throttling retries are ours; keep botocore's to a minimum
                    config=BotoConfig(retries={"max_attempts": 1, "mode": "standard"}),
                )
                self._clients[service] = client
            return client

    def call(
        self,
        service: str,
        operation: str,
        not_found_codes: Iterable[str] = (),
        **params: Any,
    ) -> Dict[str, Any]:
        """Invoke one client operation.

        Raises:
            NotFoundError: the provider reports the entity does not exist
            TransportError: any other provider failure
        """
        method = getattr(self.client(service), operation)
        logger.debug("Calling %s.%s", service, operation)
        try:
            return retry_operation(
                lambda: method(**params),
                self.retry,
                f"{service}.{operation}",
                retry_if=is_throttling_error,
            )
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, service, operation, not_found_codes) from e

    def caller_identity(self) -> Dict[str, Any]:
        """The STS caller identity, fetched once per transport."""
        if self._identity is None:
            identity = self.call("sts", "get_caller_identity")
            self._identity = {k: v for k, v in identity.items() if k != "ResponseMetadata"}
        return self._identity
