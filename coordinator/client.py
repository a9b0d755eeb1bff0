import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

CODE_BY_STATUS = {
    400: "invalid_transition",
    401: "unauthenticated",
    403: "unauthorized",
    404: "not_found",
    409: "conflict",
    503: "upstream",
}


@dataclass(frozen=True)
class ApiResult:
    ok: bool
    status_code: int
    data: Any = None
    code: str = ""
    detail: str = ""
    partial: bool = False


class ApiClient:
    """Small JSON client for the order API.

    Never raises for HTTP or transport failures; every call returns an
    ``ApiResult`` the caller can branch on.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, payload=None, params=None) -> ApiResult:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            return ApiResult(ok=False, status_code=0, code="upstream", detail=str(exc))

        try:
            data = response.json()
        except ValueError:
            data = {"detail": response.text} if response.text else None

        body = data if isinstance(data, dict) else {}
        if response.ok:
            partial = response.status_code == 202 and bool(body.get("partial"))
            return ApiResult(
                ok=True,
                status_code=response.status_code,
                data=data,
                code=body.get("code", "") if partial else "",
                detail=body.get("detail", "") if partial else "",
                partial=partial,
            )

        code = body.get("code") or CODE_BY_STATUS.get(response.status_code, "error")
        detail = body.get("detail") or response.reason or "Request failed"
        logger.info("%s %s -> %s %s", method, url, response.status_code, code)
        return ApiResult(ok=False, status_code=response.status_code, data=data, code=code, detail=str(detail))

    def get(self, path: str, params=None) -> ApiResult:
        return self.request("GET", path, params=params)

    def post(self, path: str, payload=None) -> ApiResult:
        return self.request("POST", path, payload=payload or {})

    def patch(self, path: str, payload=None) -> ApiResult:
        return self.request("PATCH", path, payload=payload or {})

    def close(self) -> None:
        self.session.close()
