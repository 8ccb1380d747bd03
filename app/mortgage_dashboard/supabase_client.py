from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class SupabaseError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class SupabaseClient:
    """
    Thin REST client for the hosted backend (PostgREST tables under /rest/v1, GoTrue under /auth/v1).
    One call, one HTTP request: no retries, failures raise SupabaseError.
    """

    base_url: str
    api_key: str
    timeout_seconds: int = 30

    def _headers(self, access_token: str | None) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
            "Accept": "application/json",
        }

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        access_token: str | None = None,
        prefer: str | None = None,
    ) -> Any:
        url = self.base_url.rstrip("/") + path
        if params:
            url += "?" + urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})

        req = urllib.request.Request(url, method=method)
        for k, v in self._headers(access_token).items():
            req.add_header(k, v)
        data: bytes | None = None
        if body is not None:
            data = json.dumps(body, default=str).encode("utf-8")
            req.add_header("Content-Type", "application/json")
        if prefer:
            req.add_header("Prefer", prefer)

        try:
            with urllib.request.urlopen(req, data=data, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                detail = e.read().decode("utf-8", errors="ignore")
            except Exception:
                detail = ""
            raise SupabaseError(f"HTTP {e.code} from Supabase ({method} {path}): {detail[:300]}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise SupabaseError(f"Supabase request failed ({method} {path}): {e}") from e

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise SupabaseError(f"Invalid JSON from Supabase ({method} {path})") from e

    # ---------- PostgREST ----------
    def select(self, table: str, *, columns: str = "*", filters: dict[str, str] | None = None, access_token: str | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"select": columns}
        params.update(filters or {})
        rows = self.request_json("GET", f"/rest/v1/{urllib.parse.quote(table)}", params=params, access_token=access_token)
        return rows if isinstance(rows, list) else []

    def insert(self, table: str, rows: list[dict[str, Any]], *, access_token: str | None = None) -> list[dict[str, Any]]:
        out = self.request_json(
            "POST",
            f"/rest/v1/{urllib.parse.quote(table)}",
            body=rows,
            access_token=access_token,
            prefer="return=representation",
        )
        return out if isinstance(out, list) else []

    def update(self, table: str, values: dict[str, Any], *, filters: dict[str, str], access_token: str | None = None) -> None:
        self.request_json(
            "PATCH",
            f"/rest/v1/{urllib.parse.quote(table)}",
            params=filters,
            body=values,
            access_token=access_token,
            prefer="return=minimal",
        )

    def delete(self, table: str, *, filters: dict[str, str], access_token: str | None = None) -> None:
        self.request_json(
            "DELETE",
            f"/rest/v1/{urllib.parse.quote(table)}",
            params=filters,
            access_token=access_token,
            prefer="return=minimal",
        )

    # ---------- GoTrue ----------
    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        out = self.request_json(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            body={"email": email, "password": password},
        )
        return out if isinstance(out, dict) else {}

    def get_user(self, access_token: str) -> dict[str, Any] | None:
        try:
            out = self.request_json("GET", "/auth/v1/user", access_token=access_token)
        except SupabaseError as e:
            if e.status in (401, 403):
                return None
            raise
        return out if isinstance(out, dict) and out.get("id") else None

    def sign_out(self, access_token: str) -> None:
        self.request_json("POST", "/auth/v1/logout", access_token=access_token)


def eq(value: object) -> str:
    """PostgREST equality filter value."""
    return f"eq.{value}"
