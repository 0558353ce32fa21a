"""
Client for the remote video generation API (OpenAI /videos endpoints).
Every failure, transport or HTTP, surfaces as RemoteProviderError carrying
the remote status code when there is one.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ConfigDict

from videorelay.errors import ConfigError, RemoteProviderError
from videorelay.settings import Settings

logger = logging.getLogger(__name__)


class RemoteVideoError(BaseModel):
    message: str
    code: Optional[str] = None


class RemoteVideo(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "video"
    created_at: int
    status: str  # queued | in_progress | completed | failed
    model: Optional[str] = None
    progress: Optional[float] = None
    seconds: Optional[Union[str, int]] = None
    size: Optional[str] = None
    prompt: Optional[str] = None
    remix_of: Optional[str] = None
    error: Optional[RemoteVideoError] = None


class RemoteDeleteResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "video.deleted"
    deleted: bool = True


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300] or resp.reason or "Remote API error"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return err["message"]
        if isinstance(err, str):
            return err
    return resp.reason or "Remote API error"


class VideoApiClient:
    def __init__(self, api_key: str, base_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    @classmethod
    def from_settings(cls, settings: Settings) -> "VideoApiClient":
        if not settings.OPENAI_API_KEY:
            raise ConfigError("Server configuration error: API key not found.")
        return cls(settings.OPENAI_API_KEY, settings.OPENAI_API_BASE_URL, settings.OPENAI_TIMEOUT_SECONDS)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteProviderError(f"Request to video API failed: {e}") from e
        if resp.status_code >= 400:
            raise RemoteProviderError(_error_message(resp), resp.status_code)
        return resp

    def create(
        self,
        *,
        prompt: str,
        model: str,
        size: str,
        seconds: Union[str, int],
        input_reference: Optional[Tuple[str, bytes, str]] = None,
    ) -> RemoteVideo:
        # multipart form, same as the upstream SDK sends
        fields: Dict[str, Any] = {
            "prompt": (None, prompt),
            "model": (None, model),
            "size": (None, size),
            "seconds": (None, str(seconds)),
        }
        if input_reference is not None:
            fields["input_reference"] = input_reference
        resp = self._request("POST", "/videos", files=fields)
        return RemoteVideo.model_validate(resp.json())

    def remix(self, video_id: str, *, prompt: str) -> RemoteVideo:
        resp = self._request("POST", f"/videos/{video_id}/remix", json={"prompt": prompt})
        return RemoteVideo.model_validate(resp.json())

    def retrieve(self, video_id: str) -> RemoteVideo:
        resp = self._request("GET", f"/videos/{video_id}")
        return RemoteVideo.model_validate(resp.json())

    def download_content(self, video_id: str, variant: str = "video") -> bytes:
        resp = self._request("GET", f"/videos/{video_id}/content", params={"variant": variant})
        return resp.content

    def delete(self, video_id: str) -> RemoteDeleteResult:
        resp = self._request("DELETE", f"/videos/{video_id}")
        return RemoteDeleteResult.model_validate(resp.json())
