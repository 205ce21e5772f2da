import logging

import httpx

from dmchat.errors import UpstreamError

logger = logging.getLogger(__name__)


class HttpMediaStore:
    """Uploads base64 data URIs to an image host and returns the hosted URL."""

    def __init__(self, upload_url: str, client: httpx.AsyncClient | None = None):
        self.upload_url = upload_url
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def upload(self, data_uri: str) -> str:
        try:
            response = await self._client.post(self.upload_url, json={"file": data_uri})
            response.raise_for_status()
            secure_url = response.json().get("secure_url")
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("media upload failed url=%s", self.upload_url)
            raise UpstreamError("Image upload failed") from exc
        if not secure_url:
            logger.error("media upload returned no secure_url url=%s", self.upload_url)
            raise UpstreamError("Image upload failed")
        return secure_url

    async def aclose(self) -> None:
        await self._client.aclose()
