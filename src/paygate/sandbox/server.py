import json
import threading
import time
import uuid
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Self
from urllib.parse import parse_qs, urlsplit

# handler(request, params) -> (status_code, body)
RouteHandler = Callable[[dict, dict], tuple[int, Any]]


def _match(template: str, path: str) -> dict | None:
    template_parts = template.strip("/").split("/")
    path_parts = path.strip("/").split("/")
    if len(template_parts) != len(path_parts):
        return None
    params = {}
    for expected, actual in zip(template_parts, path_parts):
        if expected.startswith("{") and expected.endswith("}"):
            params[expected[1:-1]] = actual
        elif expected != actual:
            return None
    return params


class _ProviderHandler(BaseHTTPRequestHandler):
    """Answers provider API calls from the sandbox's scripted routes."""

    def _handle(self):
        state = self.server.state  # type: ignore[attr-defined]
        length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(length) if length else b""
        split = urlsplit(self.path)

        try:
            parsed = json.loads(raw) if raw else None
        except (json.JSONDecodeError, ValueError):
            parsed = None
        request = {
            "method": self.command,
            "path": split.path,
            "query": {k: v[-1] for k, v in parse_qs(split.query).items()},
            "headers": dict(self.headers),
            "body": raw,
            "json": parsed,
        }
        with state["lock"]:
            state["requests"].append(request)
            routes = list(state["routes"])
            delay = state["response_delay"]

        if delay > 0:
            time.sleep(delay)

        for method, template, handler in reversed(routes):
            if method != self.command:
                continue
            params = _match(template, split.path)
            if params is None:
                continue
            status, body = handler(request, params)
            self._respond(status, body)
            return
        self._respond(404, {"message": f"no sandbox route for {self.command} {split.path}"})

    def _respond(self, status: int, body: Any):
        if body is None:
            payload = b""
        elif isinstance(body, bytes):
            payload = body
        elif isinstance(body, str):
            payload = body.encode("utf-8")
        else:
            payload = json.dumps(body, default=str).encode("utf-8")
        self.send_response(status)
        if payload and not isinstance(body, (bytes, str)):
            self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if payload:
            self.wfile.write(payload)

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_PATCH = _handle
    do_DELETE = _handle

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class ProviderSandbox:
    """Local HTTP server that plays a payment provider's API.

    Routes are scripted per test with ``route``; later routes win over
    earlier ones for the same path. Every request is recorded.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self._host = host
        self._port = port
        self._state = {
            "routes": [],
            "requests": [],
            "response_delay": 0,
            "lock": threading.Lock(),
        }
        self._payments: dict[str, dict] = {}
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def route(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        handler: RouteHandler | None = None,
    ) -> Self:
        """Answer ``method path`` with ``status``/``body``, or via ``handler``.

        ``path`` may hold ``{name}`` segments, passed to ``handler`` as params.
        """
        if handler is None:
            def handler(request, params, _status=status, _body=body):
                return _status, _body
        with self._state["lock"]:
            self._state["routes"].append((method.upper(), path, handler))
        return self

    def set_response_delay(self, seconds: float) -> Self:
        with self._state["lock"]:
            self._state["response_delay"] = seconds
        return self

    # -- generic payments API, used by SandboxGateway ---------------------

    def install_payments(self, raw_status: str = "SUCCEEDED") -> Self:
        """Serve a small stateful payments API under ``/payments``.

        New payments take ``raw_status``. Refunds reduce the refundable
        balance and mark the payment REFUNDED once it reaches zero.
        """
        lock = self._state["lock"]

        def create(request, params):
            data = request["json"] or {}
            payment_id = f"pay_{uuid.uuid4().hex[:12]}"
            payment = {
                "id": payment_id,
                "reference": data.get("reference"),
                "amount": str(data.get("amount")),
                "currency": data.get("currency"),
                "status": raw_status,
                "refunded": "0",
            }
            with lock:
                self._payments[payment_id] = payment
            return 201, {**payment, "redirect_url": f"{self.base_url}/checkout/{payment_id}"}

        def fetch(request, params):
            with lock:
                payment = self._payments.get(params["payment_id"])
            if payment is None:
                return 404, {"code": "not_found", "message": "No such payment"}
            return 200, dict(payment)

        def refund(request, params):
            data = request["json"] or {}
            with lock:
                payment = self._payments.get(params["payment_id"])
                if payment is None:
                    return 404, {"code": "not_found", "message": "No such payment"}
                remaining = float(payment["amount"]) - float(payment["refunded"])
                amount = float(data["amount"]) if data.get("amount") is not None else remaining
                if amount > remaining + 1e-9:
                    return 400, {"code": "amount_too_large", "message": "Refund exceeds balance"}
                payment["refunded"] = f"{float(payment['refunded']) + amount:.2f}"
                if float(payment["refunded"]) >= float(payment["amount"]) - 1e-9:
                    payment["status"] = "REFUNDED"
            return 200, {"id": f"re_{uuid.uuid4().hex[:12]}", "amount": f"{amount:.2f}", "status": "SUCCEEDED"}

        self.route("POST", "/payments", handler=create)
        self.route("GET", "/payments/{payment_id}", handler=fetch)
        self.route("POST", "/payments/{payment_id}/refunds", handler=refund)
        return self

    def set_payment_status(self, payment_id: str, raw_status: str) -> Self:
        with self._state["lock"]:
            self._payments[payment_id]["status"] = raw_status
        return self

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ProviderHandler)
        self._server.state = self._state  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def base_url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    def get_requests(self, method: str | None = None, path: str | None = None) -> list[dict]:
        with self._state["lock"]:
            return [
                r for r in self._state["requests"]
                if (method is None or r["method"] == method.upper())
                and (path is None or r["path"] == path)
            ]

    def request_count(self) -> int:
        with self._state["lock"]:
            return len(self._state["requests"])

    def clear_requests(self) -> None:
        with self._state["lock"]:
            self._state["requests"].clear()
