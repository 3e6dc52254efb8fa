import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from errors import UpstreamError
from token_manager import FreeAgentTokenManager


logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    status_code: int
    text: str
    token: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Dict:
        """Parsed body, or {} when the body is empty or not a JSON object"""
        if not self.text:
            return {}
        try:
            data = json.loads(self.text)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


class FreeAgentClient:
    """FreeAgent API client that retries once with a fresh token on 401"""

    def __init__(self, base_url: str, token_manager: FreeAgentTokenManager,
                 user_agent: str, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.token_manager = token_manager
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings, token_manager: FreeAgentTokenManager,
                      session: Optional[requests.Session] = None) -> "FreeAgentClient":
        return cls(
            base_url=settings.base_url,
            token_manager=token_manager,
            user_agent=settings.user_agent,
            timeout=settings.timeout_s,
            session=session,
        )

    def url_for(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    def headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def execute(self, send: Callable[[str], requests.Response]) -> ApiResponse:
        """Send with the current token; on 401 refresh once and send again.

        The second response is returned whatever its status, so a token that
        is rejected even after a refresh cannot cause a refresh loop.
        """
        token = self.token_manager.get_access_token()
        response = self._send(send, token)
        if response.status_code == 401:
            logger.info("🔄 401 from FreeAgent, refreshing token and retrying once")
            token = self.token_manager.refresh(stale_token=token)
            response = self._send(send, token)
        return ApiResponse(status_code=response.status_code, text=response.text or "", token=token)

    def _send(self, send: Callable[[str], requests.Response], token: str) -> requests.Response:
        try:
            return send(token)
        except requests.exceptions.Timeout as e:
            raise UpstreamError("FreeAgent request timed out", details=str(e)) from e
        except requests.exceptions.RequestException as e:
            raise UpstreamError("FreeAgent request failed", details=str(e)) from e

    def request(self, method: str, path_or_url: str, *, json: Optional[Dict] = None,
                data: Optional[Dict] = None, files: Optional[Dict] = None,
                params: Optional[Dict] = None) -> ApiResponse:
        url = self.url_for(path_or_url)
        logger.debug("%s %s", method, url)

        def send(token: str) -> requests.Response:
            # requests sets the JSON / multipart Content-Type itself
            return self.session.request(
                method,
                url,
                headers=self.headers(token),
                json=json,
                data=data,
                files=files,
                params=params,
                timeout=self.timeout,
            )

        return self.execute(send)

    def get(self, path_or_url: str, params: Optional[Dict] = None) -> ApiResponse:
        return self.request("GET", path_or_url, params=params)

    def post_json(self, path_or_url: str, body: Dict) -> ApiResponse:
        return self.request("POST", path_or_url, json=body)

    def put_json(self, path_or_url: str, body: Dict) -> ApiResponse:
        return self.request("PUT", path_or_url, json=body)


def raise_for_upstream(response: ApiResponse, message: str) -> None:
    if not response.ok:
        raise UpstreamError(message, details=response.text, status=response.status_code)
