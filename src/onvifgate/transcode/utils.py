from __future__ import annotations

import logging
import shlex
from urllib.parse import quote, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


def _redact_rtsp_url(url: str) -> str:
    if "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url
    _creds, host = rest.split("@", 1)
    return f"{scheme}://***:***@{host}"


def _format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in cmd])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in cmd])


def _redact_cmd(cmd: list[str]) -> list[str]:
    safe_cmd = list(cmd)
    for idx, arg in enumerate(safe_cmd[:-1]):
        if arg == "-i":
            safe_cmd[idx + 1] = _redact_rtsp_url(safe_cmd[idx + 1])
    return safe_cmd


def with_credentials(uri: str, username: str, password: str) -> str:
    """Inject percent-encoded user-info into ``uri`` when both parts are non-empty.

    Existing user-info in the URI is replaced.
    """
    if not username or not password:
        return uri
    parts = urlsplit(uri)
    if not parts.hostname:
        return uri
    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    userinfo = f"{quote(username, safe='')}:{quote(password, safe='')}"
    return urlunsplit(
        (parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment)
    )
