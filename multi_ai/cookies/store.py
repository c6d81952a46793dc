"""
Cookie storage and import for multi-ai.

Cookies let an agent skip interactive login: they are injected into the
service's browser context before the first navigation. This module parses
the two export formats browsers and extensions produce and keeps imported
cookies in a single JSON file keyed by service.

Supported import formats:
- Netscape cookies.txt (tab-separated, 7 fields per line)
- JSON array of cookie objects, or {"cookies": [...]} extension exports

Storage layout (~/.multi-ai/cookies.json):
    {
      "chatgpt": {
        "service": "chatgpt",
        "cookies": [{"name": "...", "value": "...", "domain": "chatgpt.com", ...}],
        "last_updated": "2025-11-02T08:00:00Z"
      }
    }

Security:
    - Cookie values are session secrets; the file is written with 0600
      permissions and values are never logged
    - JSON only (no pickle), UTF-8 encoding
"""

import json
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from pydantic import ValidationError

from ..exceptions import CookieImportError
from ..models import CookieRecord
from ..utils.time import utc_timestamp

logger = logging.getLogger(__name__)

COOKIES_ENV_VAR = "MULTI_AI_COOKIES"
HTTP_ONLY_PREFIX = "#HttpOnly_"
NETSCAPE_SUFFIXES = (".txt", ".cookies")


def default_cookies_path() -> Path:
    """Return $MULTI_AI_COOKIES, or ~/.multi-ai/cookies.json."""
    override = os.environ.get(COOKIES_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".multi-ai" / "cookies.json"


def _matches_domain(cookie_domain: str, domain: str | None) -> bool:
    return not domain or domain.lstrip(".").lower() in cookie_domain.lower()


def parse_netscape_cookies(text: str, domain: str | None = None) -> list[CookieRecord]:
    """
    Parse a Netscape cookies.txt export.

    Each data line has 7 tab-separated fields: domain, include-subdomains
    flag, path, secure, expiration, name, value. Lines starting with "#"
    are comments, except the "#HttpOnly_" domain prefix curl and most
    exporters use to mark HTTP-only cookies.

    Args:
        text: File contents
        domain: Keep only cookies whose domain contains this value

    Returns:
        list[CookieRecord]: Parsed cookies (malformed lines are skipped)

    Example:
        >>> line = ".chatgpt.com\\tTRUE\\t/\\tTRUE\\t0\\tsession\\tabc"
        >>> cookie = parse_netscape_cookies(line)[0]
        >>> cookie.domain, cookie.expires, cookie.same_site
        ('chatgpt.com', None, 'None')
    """
    cookies = []
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        http_only = False
        if line.startswith(HTTP_ONLY_PREFIX):
            http_only = True
            line = line[len(HTTP_ONLY_PREFIX) :]
        elif not line or line.startswith("#"):
            continue

        parts = line.split("\t")
        if len(parts) < 7:
            logger.debug(f"Skipping malformed cookie line {line_number}")
            continue

        cookie_domain, _subdomains, path, secure, expiration, name, value = parts[:7]
        if not _matches_domain(cookie_domain, domain):
            continue

        try:
            expires = int(expiration)
        except ValueError:
            expires = 0

        is_secure = secure.upper() == "TRUE"
        try:
            cookies.append(
                CookieRecord(
                    name=name,
                    value=value,
                    domain=cookie_domain.lstrip("."),
                    path=path or "/",
                    expires=expires,
                    http_only=http_only,
                    secure=is_secure,
                    same_site="None" if is_secure else "Lax",
                )
            )
        except ValidationError as e:
            logger.debug(f"Skipping invalid cookie on line {line_number}: {e}")

    return cookies


def parse_json_cookies(text: str, domain: str | None = None) -> list[CookieRecord]:
    """
    Parse a JSON cookie export.

    Accepts a top-level array of cookie objects or an object with a
    "cookies" array (the shape several browser extensions export). Field
    spellings such as httpOnly, sameSite and expirationDate are accepted.

    Args:
        text: File contents
        domain: Keep only cookies whose domain contains this value

    Returns:
        list[CookieRecord]: Parsed cookies

    Raises:
        CookieImportError: If the JSON is invalid or a cookie lacks
            name, value or domain
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CookieImportError(f"Failed to parse cookies JSON: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("cookies"), list):
        data = data["cookies"]
    if not isinstance(data, list):
        raise CookieImportError(
            "Failed to parse cookies JSON: expected an array of cookie objects"
        )

    cookies = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise CookieImportError(
                f"Failed to parse cookies JSON: item {index} is not an object"
            )
        try:
            cookie = CookieRecord.model_validate(item)
        except ValidationError as e:
            fields = ", ".join(".".join(str(x) for x in err["loc"]) for err in e.errors())
            raise CookieImportError(
                f"Failed to parse cookies JSON: item {index} is invalid ({fields})"
            ) from e
        if _matches_domain(cookie.domain, domain):
            cookies.append(cookie)

    return cookies


class CookieStore:
    """
    Per-service cookie storage backed by one JSON file.

    Attributes:
        path: Location of the cookies file

    Example:
        >>> store = CookieStore()
        >>> store.import_file("~/Downloads/chatgpt.com_cookies.txt", "chatgpt")
        12
        >>> sorted(store.cookies_for(["chatgpt", "claude"]))
        ['chatgpt']
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path).expanduser() if path else default_cookies_path()

    def load_all(self) -> dict[str, dict]:
        """
        Return the raw stored mapping (empty if the file doesn't exist).

        Raises:
            CookieImportError: If the file exists but can't be read
        """
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise CookieImportError(f"Failed to load cookies from {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CookieImportError(f"Cookie file {self.path} must contain an object")
        return data

    def _save_all(self, data: Mapping[str, dict]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Created 0600 up front so the secrets are never world-readable
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CookieImportError(f"Failed to save cookies to {self.path}: {e}") from e

    def get_cookies(self, service: str) -> list[CookieRecord]:
        """Return stored cookies for a service (empty if none)."""
        entry = self.load_all().get(service.strip().lower())
        if not entry:
            return []
        try:
            return [CookieRecord.model_validate(c) for c in entry.get("cookies", [])]
        except ValidationError as e:
            raise CookieImportError(
                f"Stored cookies for {service} are invalid: {e.error_count()} errors"
            ) from e

    def has_cookies(self, service: str) -> bool:
        return bool(self.get_cookies(service))

    def save_cookies(self, service: str, cookies: Iterable[CookieRecord]) -> int:
        """
        Replace the stored cookies for a service.

        Returns:
            int: Number of cookies stored
        """
        service = service.strip().lower()
        records = [c.model_dump() for c in cookies]
        data = self.load_all()
        data[service] = {
            "service": service,
            "cookies": records,
            "last_updated": utc_timestamp(),
        }
        self._save_all(data)
        logger.info(f"Stored {len(records)} cookies for {service}")
        return len(records)

    def delete_cookies(self, service: str) -> bool:
        """
        Remove stored cookies for a service.

        Returns:
            bool: True if something was deleted
        """
        service = service.strip().lower()
        data = self.load_all()
        if service not in data:
            return False
        del data[service]
        self._save_all(data)
        logger.info(f"Deleted cookies for {service}")
        return True

    def import_file(
        self, file_path: str | Path, service: str, domain: str | None = None
    ) -> int:
        """
        Parse a cookie export and store it for ``service``.

        The format is chosen by suffix (.txt/.cookies → Netscape,
        .json → JSON); other files are sniffed by their first character.

        Args:
            file_path: Export to import
            service: Service the cookies belong to
            domain: Keep only cookies whose domain contains this value

        Returns:
            int: Number of cookies imported

        Raises:
            CookieImportError: If the file can't be read or parsed, or
                yields no cookies
        """
        file_path = Path(file_path).expanduser()
        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise CookieImportError(
                f"Failed to import cookies from {file_path}: {e}"
            ) from e

        suffix = file_path.suffix.lower()
        if suffix in NETSCAPE_SUFFIXES:
            cookies = parse_netscape_cookies(text, domain)
        elif suffix == ".json" or text.lstrip().startswith(("[", "{")):
            cookies = parse_json_cookies(text, domain)
        else:
            cookies = parse_netscape_cookies(text, domain)

        if not cookies:
            raise CookieImportError(f"No cookies found in {file_path}")

        return self.save_cookies(service, cookies)

    def summary(self) -> list[dict]:
        """Return one row per stored service: service, count, last_updated."""
        rows = []
        for service, entry in sorted(self.load_all().items()):
            rows.append(
                {
                    "service": service,
                    "count": len(entry.get("cookies", [])),
                    "last_updated": entry.get("last_updated", ""),
                }
            )
        return rows

    def cookies_for(self, services: Iterable[str]) -> dict[str, list[CookieRecord]]:
        """Return cookies keyed by service, for services that have any."""
        result = {}
        for service in services:
            cookies = self.get_cookies(service)
            if cookies:
                result[service.strip().lower()] = cookies
        return result
