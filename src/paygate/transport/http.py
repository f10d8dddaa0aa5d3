import logging
import time
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import requests

from paygate.errors import NetworkError, ProviderRejectedError
from paygate.models.call import ProviderCall
from paygate.models.config import DEFAULT_TIMEOUT_SECONDS
from paygate.transport.log import CallLog

logger = logging.getLogger(__name__)

ErrorExtractor = Callable[[int, Any], tuple[str | None, str | None] | None]


def default_error_extractor(status_code: int, body: Any) -> tuple[str | None, str | None] | None:
    """Pull ``(code, message)`` out of the common provider error shapes.

    Returns None when the body does not look like an error description.
    """
    if not isinstance(body, Mapping):
        return None
    error = body.get("error")
    if isinstance(error, Mapping):
        code = error.get("code") or error.get("type")
        message = error.get("message") or error.get("description")
    else:
        code = body.get("code") or body.get("name") or (error if isinstance(error, str) else None)
        message = body.get("message") or body.get("error_description") or body.get("description")
    if code is None and message is None:
        return None
    return (str(code) if code is not None else None, str(message) if message is not None else None)


class HttpTransport:
    """Sends one HTTP request per call and translates the outcome.

    2xx with a JSON body (or no body) returns the decoded dict. Any
    ``requests`` failure, a non-2xx reply without a usable error body, a
    5xx, or an undecodable 2xx body raises NetworkError. A 4xx with a
    parseable error body raises ProviderRejectedError. Nothing is retried.
    """

    def __init__(
        self,
        gateway: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        call_log: CallLog | None = None,
        session: requests.Session | None = None,
        error_extractor: ErrorExtractor = default_error_extractor,
        default_headers: Mapping[str, str] | None = None,
    ):
        self.gateway = gateway
        self.timeout = timeout
        self.call_log = call_log if call_log is not None else CallLog()
        self.session = session or requests.Session()
        self.error_extractor = error_extractor
        self.default_headers = {"Accept": "application/json", **(default_headers or {})}

    def request(
        self,
        method: str,
        url: str,
        json: Any = None,
        data: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> dict:
        method = method.upper()
        merged_headers = {**self.default_headers, **(headers or {})}

        start = time.monotonic()
        status_code = None
        error = None
        try:
            resp = self.session.request(
                method,
                url,
                json=json,
                data=data,
                params=params,
                headers=merged_headers,
                auth=auth,
                timeout=self.timeout,
            )
            status_code = resp.status_code
        except requests.exceptions.Timeout:
            error = "timeout"
        except requests.exceptions.ConnectionError:
            error = "connection_error"
        except requests.exceptions.RequestException as e:
            error = str(e)
        finally:
            elapsed_ms = (time.monotonic() - start) * 1000

        self.call_log.log(ProviderCall(
            call_id=f"call_{uuid.uuid4().hex[:16]}",
            gateway=self.gateway,
            method=method,
            url=url,
            status_code=status_code,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=elapsed_ms,
            error=error,
        ))

        if error is not None:
            logger.warning(
                "Provider call failed",
                extra={"gateway": self.gateway, "method": method, "url": url, "error": error},
            )
            raise NetworkError(
                f"{self.gateway} {method} {url} failed: {error}", gateway=self.gateway,
            )

        logger.debug(
            "Provider call completed",
            extra={
                "gateway": self.gateway,
                "method": method,
                "url": url,
                "status_code": status_code,
                "response_time_ms": round(elapsed_ms, 1),
            },
        )
        return self._handle_response(resp, method, url)

    def _handle_response(self, resp: requests.Response, method: str, url: str) -> dict:
        body = None
        if resp.content:
            try:
                body = resp.json()
            except ValueError:
                body = None
                parse_failed = True
            else:
                parse_failed = False
        else:
            parse_failed = False

        if 200 <= resp.status_code < 300:
            if parse_failed:
                raise NetworkError(
                    f"{self.gateway} returned a non-JSON body for {method} {url}",
                    status_code=resp.status_code,
                    gateway=self.gateway,
                )
            if body is None:
                return {}
            return body if isinstance(body, dict) else {"data": body}

        extracted = None
        if resp.status_code < 500 and body is not None:
            extracted = self.error_extractor(resp.status_code, body)
        if extracted is None:
            raise NetworkError(
                f"{self.gateway} answered HTTP {resp.status_code} for {method} {url}",
                status_code=resp.status_code,
                gateway=self.gateway,
            )

        provider_code, provider_message = extracted
        logger.info(
            "Provider rejected request",
            extra={
                "gateway": self.gateway,
                "status_code": resp.status_code,
                "provider_code": provider_code,
            },
        )
        raise ProviderRejectedError(
            provider_message or f"{self.gateway} rejected the request",
            provider_code=provider_code,
            provider_message=provider_message,
            status_code=resp.status_code,
            gateway=self.gateway,
        )

    def close(self) -> None:
        self.session.close()
