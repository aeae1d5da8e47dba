"""
Input Validation Utilities

Provides normalization for the values the relay takes from raw requests:
- Tenant host normalization (Host / X-Forwarded-Host)
- Header normalization for storage, masking for logs, filtering for forwarding
"""
import re
from typing import Iterable, Mapping


class ValidationPatterns:
    """Regex patterns for validation"""

    # port בסוף host: "example.com:8080" / "[::1]:8080"
    HOST_PORT = re.compile(r":\d+$")

    # תווי בקרה שאסור שיופיעו ב-host
    CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")


class HostValidator:
    """Tenant host normalization.

    Any non-empty host is a valid tenant; normalization only makes the same
    origin always map to the same tenant key.
    """

    MAX_LENGTH = 255

    @staticmethod
    def normalize(host: str | None) -> str:
        """
        Normalize a host header value to a tenant key.

        Lower-cases, strips whitespace, the port and a trailing dot.
        The first value of a comma-separated X-Forwarded-Host list wins.

        Returns:
            Normalized host, or "" if nothing usable is left
        """
        if not host:
            return ""
        value = host.split(",")[0].strip().lower()
        value = ValidationPatterns.CONTROL_CHARS.sub("", value)

        if value.startswith("["):
            # IPv6 literal: "[::1]:8080" → "[::1]"
            end = value.find("]")
            if end != -1:
                return value[: end + 1]
            return value

        value = ValidationPatterns.HOST_PORT.sub("", value)
        return value.rstrip(".")[: HostValidator.MAX_LENGTH]

    @staticmethod
    def validate(host: str | None) -> bool:
        """True when the host normalizes to a non-empty tenant key"""
        return bool(HostValidator.normalize(host))


class HeaderSanitizer:
    """Header handling for storage, logging and replication"""

    # ערכים שלא נכתבים ללוג
    SENSITIVE_HEADERS = frozenset({
        "authorization",
        "cookie",
        "set-cookie",
        "proxy-authorization",
        "x-admin-api-key",
        "x-api-key",
    })

    # hop-by-hop (RFC 7230 §6.1) + ערכים שהלקוח של ההעברה מחשב מחדש
    NON_FORWARDABLE_HEADERS = frozenset({
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    })

    @staticmethod
    def normalize(headers: Mapping[str, str] | Iterable[tuple[str, str]]) -> dict[str, str]:
        """
        Lower-case header names; repeated headers are joined with ", ".
        """
        items = headers.items() if isinstance(headers, Mapping) else headers
        result: dict[str, str] = {}
        for name, value in items:
            key = name.lower()
            if key in result:
                result[key] = f"{result[key]}, {value}"
            else:
                result[key] = value
        return result

    @staticmethod
    def mask(headers: Mapping[str, str]) -> dict[str, str]:
        """Mask sensitive header values for logging (privacy)"""
        return {
            name: ("****" if name.lower() in HeaderSanitizer.SENSITIVE_HEADERS else value)
            for name, value in headers.items()
        }

    @staticmethod
    def forwardable(headers: Mapping[str, str]) -> dict[str, str]:
        """Headers to replay verbatim to a forward target"""
        connection_tokens = {
            token.strip().lower()
            for name, value in headers.items()
            if name.lower() == "connection"
            for token in value.split(",")
        }
        return {
            name: value
            for name, value in headers.items()
            if name.lower() not in HeaderSanitizer.NON_FORWARDABLE_HEADERS
            and name.lower() not in connection_tokens
        }
