"""Request logging and crash recovery for the Flask application."""

from __future__ import annotations

import json
import logging
import time
import traceback
from datetime import timedelta

from flask import Response, g, request

GREEN = "\033[97;42m"
WHITE = "\033[90;47m"
YELLOW = "\033[90;43m"
RED = "\033[97;41m"
BLUE = "\033[97;44m"
MAGENTA = "\033[97;45m"
CYAN = "\033[97;46m"
RESET = "\033[0m"

_METHOD_COLORS = {
    "GET": BLUE,
    "POST": CYAN,
    "PUT": YELLOW,
    "DELETE": RED,
    "PATCH": GREEN,
    "HEAD": MAGENTA,
    "OPTIONS": WHITE,
}

_ERRORS_KEY = "_eleclog_errors"
_START_KEY = "_eleclog_start"


def _status_color(status: int) -> str:
    if 100 <= status < 200:
        return WHITE
    if 200 <= status < 300:
        return GREEN
    if 300 <= status < 400:
        return WHITE
    if 400 <= status < 500:
        return YELLOW
    return RED


def _fraction(value: int, unit: int, digits: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    return f"{whole}.{frac:0{digits}d}".rstrip("0")


def format_duration(latency: timedelta) -> str:
    """Render a duration the way durations are printed in the dev log."""
    ns = ((latency.days * 86400 + latency.seconds) * 1_000_000 + latency.microseconds) * 1000
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_fraction(ns, 1_000, 3)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_fraction(ns, 1_000_000, 6)}ms"
    hours, rest = divmod(ns, 3600 * 10**9)
    minutes, rest = divmod(rest, 60 * 10**9)
    seconds = _fraction(rest, 10**9, 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return sign + seconds


def format_dev_line(status, latency, client_ip, method, path, errors):
    """Build the coloured one-line summary used in development mode."""
    line = (
        f"|{_status_color(status)} {status:3d} {RESET}| {format_duration(latency):>13} "
        f"| {client_ip:>15} |{_METHOD_COLORS.get(method, RESET)} {method:<7} {RESET} "
        f"{json.dumps(path, ensure_ascii=False)}"
    )
    if errors:
        line += " | errors: " + errors
    return line


def level_for_status(status):
    """Logging level for a response status."""
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def log_request(logger, dev, status, latency, client_ip, method, path, errors):
    """Log one finished request, as a coloured line or as structured fields."""
    if dev:
        logger.log(
            level_for_status(status),
            format_dev_line(status, latency, client_ip, method, path, errors),
        )
        return
    logger.info(
        "HTTP Request",
        extra={
            "status": status,
            "method": method,
            "path": path,
            "ip": client_ip,
            "errors": errors,
            "cost": latency,
        },
    )


def _collected_errors() -> str:
    messages = g.get(_ERRORS_KEY, [])
    return "".join(f"Error #{n:02d}: {message}\n" for n, message in enumerate(messages, 1))


def _dump_request() -> str:
    protocol = request.environ.get("SERVER_PROTOCOL", "HTTP/1.1")
    target = request.full_path if request.query_string else request.path
    lines = [f"{request.method} {target} {protocol}"]
    lines.extend(f"{name}: {value}" for name, value in request.headers.items())
    return "\r\n".join(lines) + "\r\n\r\n"


def _is_http_error(exc: BaseException) -> bool:
    """True for the framework's own HTTP errors (abort(404) and the like)."""
    return isinstance(getattr(exc, "code", None), int) and callable(
        getattr(exc, "get_response", None)
    )


def _is_broken_pipe(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError)):
        return True
    text = str(exc).lower()
    return isinstance(exc, OSError) and (
        "broken pipe" in text or "connection reset by peer" in text
    )


def install(app, dev, stack):
    """Attach request logging and exception recovery to ``app``."""
    logger = logging.getLogger("eleclog.http")

    @app.before_request
    def _start_timer():
        setattr(g, _START_KEY, time.perf_counter())

    @app.after_request
    def _log_response(response):
        started = g.get(_START_KEY, time.perf_counter())
        latency = timedelta(seconds=time.perf_counter() - started)
        path = request.path
        query = request.query_string.decode("latin-1")
        if query:
            path = f"{path}?{query}"
        log_request(
            logger,
            dev,
            response.status_code,
            latency,
            request.remote_addr or "",
            request.method,
            path,
            _collected_errors(),
        )
        return response

    def _recover(exc):
        if _is_http_error(exc):
            return exc
        dump = _dump_request()
        if _is_broken_pipe(exc):
            logger.error("Client disconnected", extra={"error": repr(exc), "request": dump})
            g.setdefault(_ERRORS_KEY, []).append(str(exc))
            return Response(status=500)
        extra = {"error": repr(exc), "request": dump}
        if stack:
            extra["stack"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        logger.error("[Recovery from panic]", extra=extra)
        return Response(status=500)

    app.register_error_handler(Exception, _recover)
    return app