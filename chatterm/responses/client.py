"""HTTP client for the responses service and its ancillary endpoints."""

from __future__ import annotations

import logging
import time
from typing import IO, Any, Callable

import httpx

from chatterm.config import DEFAULT_BASE_URL, MAX_RETRIES, REQUEST_TIMEOUT, RETRY_BASE_DELAY
from chatterm.errors import (
    APIError,
    MalformedResponseError,
    RateLimitError,
    ServerError,
    TransportError,
)
from chatterm.responses.types import InputItemsPage, Response, ResponseRequest

logger = logging.getLogger("chatterm.responses")

USER_AGENT = "chatterm/0.4"


def error_from_response(resp: httpx.Response) -> APIError:
    """Decode an ``{"error": {message, type, code}}`` body into an APIError."""
    message, code, kind = resp.reason_phrase or "", "", ""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        err = body["error"]
        message = err.get("message") or message
        code = str(err.get("code") or "")
        kind = str(err.get("type") or "")
    elif resp.text:
        message = resp.text.strip()[:500]

    if resp.status_code == 429:
        cls = RateLimitError
    elif resp.status_code >= 500:
        cls = ServerError
    else:
        cls = APIError
    return cls(resp.status_code, message, code=code, type=kind)


class ResponsesClient:
    """Synchronous client with bounded exponential-backoff retries.

    Transport failures, 429 and 5xx are retried ``max_retries`` times in total
    with ``retry_base_delay * 2**attempt`` between attempts; anything else is
    raised straight away. Every operation accepts ``max_retries`` and
    ``timeout`` overrides for callers with tighter deadlines.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._http = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            headers={
                "Authorization": f"Bearer {api_key}",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ── Plumbing ────────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        ok: tuple[int, ...] = (200,),
        max_retries: int | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = max(1, max_retries if max_retries is not None else self.max_retries)
        if timeout is not None:
            kwargs["timeout"] = timeout

        last_error: Exception | None = None
        for attempt in range(attempts):
            started = time.monotonic()
            logger.debug("%s %s", method, path, extra={"attempt": attempt + 1})
            try:
                resp = self._http.request(method, path.lstrip("/"), **kwargs)
            except httpx.TransportError as e:
                last_error = TransportError(f"{method} {path} failed: {e}")
            else:
                duration = time.monotonic() - started
                if resp.status_code in ok:
                    logger.debug(
                        "%s %s -> %d", method, path, resp.status_code,
                        extra={"status_code": resp.status_code, "duration_s": round(duration, 3)},
                    )
                    return resp
                error = error_from_response(resp)
                if not error.retryable:
                    raise error
                last_error = error

            if attempt < attempts - 1:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Retry %d/%d for %s %s in %.1fs: %s", attempt + 1, attempts, method, path, delay, last_error,
                    extra={"attempt": attempt + 1},
                )
                self._sleep(delay)

        assert last_error is not None
        raise last_error

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"invalid JSON from {resp.request.url}: {e}") from e

    # ── Responses ───────────────────────────────────────────────────────

    def create(self, request: ResponseRequest, **overrides: Any) -> Response:
        resp = self._request("POST", "responses", json=request.to_dict(), **overrides)
        response = Response.from_dict(self._json(resp))
        logger.debug(
            "Created response %s", response.id,
            extra={"response_id": response.id, "model": request.model},
        )
        return response

    def get(self, response_id: str, **overrides: Any) -> Response:
        resp = self._request("GET", f"responses/{response_id}", **overrides)
        return Response.from_dict(self._json(resp))

    def delete(self, response_id: str, **overrides: Any) -> None:
        """Delete a stored response. A response that is already gone counts as deleted."""
        resp = self._request("DELETE", f"responses/{response_id}", ok=(200, 204, 404), **overrides)
        if resp.status_code == 404:
            logger.debug("Response %s already gone", response_id, extra={"response_id": response_id})

    def get_input_items(
        self,
        response_id: str,
        *,
        limit: int | None = None,
        after: str | None = None,
        before: str | None = None,
        order: str | None = None,
        **overrides: Any,
    ) -> InputItemsPage:
        params = {k: v for k, v in (("limit", limit), ("after", after), ("before", before), ("order", order)) if v is not None}
        resp = self._request("GET", f"responses/{response_id}/input_items", params=params, **overrides)
        return InputItemsPage.from_dict(self._json(resp))

    # ── Ancillary endpoints ─────────────────────────────────────────────

    def upload_file(self, filename: str, fileobj: IO[bytes], purpose: str = "assistants", **overrides: Any) -> dict:
        resp = self._request(
            "POST",
            "files",
            files={"file": (filename, fileobj)},
            data={"purpose": purpose},
            **overrides,
        )
        body = self._json(resp)
        if not isinstance(body, dict) or not body.get("id"):
            raise MalformedResponseError("file upload returned no id")
        return body

    def delete_file(self, file_id: str, **overrides: Any) -> None:
        self._request("DELETE", f"files/{file_id}", ok=(200, 204, 404), **overrides)

    def create_speech(
        self,
        text: str,
        model: str,
        voice: str,
        response_format: str = "mp3",
        **overrides: Any,
    ) -> bytes:
        resp = self._request(
            "POST",
            "audio/speech",
            json={"model": model, "voice": voice, "input": text, "response_format": response_format},
            **overrides,
        )
        return resp.content

    def generate_image(
        self,
        prompt: str,
        model: str,
        size: str,
        quality: str,
        style: str,
        n: int = 1,
        **overrides: Any,
    ) -> list[dict]:
        resp = self._request(
            "POST",
            "images/generations",
            json={"model": model, "prompt": prompt, "size": size, "quality": quality, "style": style, "n": n},
            **overrides,
        )
        body = self._json(resp)
        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            raise MalformedResponseError("image generation returned no data list")
        return body["data"]
