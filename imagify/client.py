"""
Imagify client implementation.

This module contains the ImagifyClient class, the error values it returns
and a few helpers. For usage examples, see the package docstring: help(imagify)
"""

import html
import json
import logging
import mimetypes
import os
import requests
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.imagify.io/api/"
DEFAULT_TIMEOUT = 45

LEVELS = ("normal", "aggressive", "ultra")

CredentialProvider = Callable[[], Optional[str]]


class ImagifyError(Exception):
    """
    Base class for error values returned by the client.

    Errors are returned, not raised, so callers can branch on ``code``.
    They are still exceptions, so ``raise result`` works when wanted.
    """

    def __init__(self, code: Any, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def __repr__(self):
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ImagifyTransportError(ImagifyError):
    """Request could not be sent or no response was received."""

    def __init__(self, reason: str):
        super().__init__("transport", reason)


class ImagifyAPIError(ImagifyError):
    """Structured ``{code, detail}`` error returned by the server."""

    pass


class ImagifyPayloadTooLargeError(ImagifyError):
    """HTTP 413."""

    MESSAGE = "Your image is too big to be uploaded on our server."

    def __init__(self):
        super().__init__(413, self.MESSAGE, status=413)


class ImagifyHTTPError(ImagifyError):
    """Non-200 status without a structured body."""

    pass


class ImagifyFileError(ImagifyError):
    """Local image file is missing or unreadable."""

    pass


def is_error(result: Any) -> bool:
    """Return True if ``result`` is an error value returned by the client."""
    return isinstance(result, ImagifyError)


class ResponseCache:
    """
    Caller-owned cache for a few read-only responses.

    The client stores successful results of ``get_user``, ``get_api_version``
    and ``get_status`` here when a cache is passed to it.
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: str, value: Any):
        self._entries[key] = value

    def clear(self):
        self._entries.clear()


def env_credential_provider(name: str = "IMAGIFY_API_KEY") -> CredentialProvider:
    """Build a provider that reads the API key from an environment variable."""

    def provider() -> Optional[str]:
        return os.environ.get(name) or None

    return provider


def chain_credential_providers(*providers: CredentialProvider) -> CredentialProvider:
    """Build a provider that returns the first non-empty key of ``providers``."""

    def provider() -> Optional[str]:
        for candidate in providers:
            key = candidate()
            if key:
                return key
        return None

    return provider


class ImagifyClient:
    """
    Imagify API client for account, pricing and image optimization calls.

    Every method issues exactly one HTTP request and returns either the
    decoded JSON body or an ImagifyError value.

    Args:
        api_key: Your Imagify API key
        base_url: Base URL of the API (default: https://app.imagify.io/api/)
        timeout: Default request timeout in seconds (default: 45)
        credential_provider: Callable returning the key, used when api_key is None
        cache: Optional ResponseCache for user, version and status lookups
        on_user_created: Callback invoked with the result of a successful create_user
        session_factory: Callable returning a requests.Session-like object
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        credential_provider: Optional[CredentialProvider] = None,
        cache: Optional[ResponseCache] = None,
        on_user_created: Optional[Callable[[Any], None]] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        if api_key is None and credential_provider is not None:
            api_key = credential_provider()
        self._api_key = api_key or ""
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.cache = cache
        self.on_user_created = on_user_created
        self.session_factory = session_factory

    @property
    def api_key(self) -> str:
        return self._api_key

    def _headers(
        self, api_key: Optional[str] = None, json_body: bool = True
    ) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"token {self._api_key if api_key is None else api_key}",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path.strip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send one request, picking multipart when the body holds a file."""
        url = self._url(path)
        timeout = self.timeout if timeout is None else timeout

        kwargs: Dict[str, Any] = {"params": params, "timeout": timeout}
        files = {k: v for k, v in (body or {}).items() if hasattr(v, "read")}
        if files:
            fields = {k: v for k, v in body.items() if k not in files}
            kwargs["headers"] = self._headers(api_key, json_body=False)
            kwargs["files"] = {
                name: (
                    os.path.basename(getattr(fh, "name", name)),
                    fh,
                    mimetypes.guess_type(getattr(fh, "name", ""))[0]
                    or "application/octet-stream",
                )
                for name, fh in files.items()
            }
            kwargs["data"] = {"data": json.dumps(fields)}
        else:
            kwargs["headers"] = self._headers(api_key)
            if body is not None:
                kwargs["json"] = body

        logger.debug("%s %s", method, url)
        try:
            with self.session_factory() as session:
                response = session.request(method, url, **kwargs)
        except requests.RequestException as e:
            error = ImagifyTransportError(str(e))
            logger.warning("Imagify %s %s failed: %s", method, path, error.message)
            return error

        result = self._handle_response(response)
        if is_error(result):
            logger.warning(
                "Imagify %s %s returned error %s: %s",
                method,
                path,
                result.code,
                result.message,
            )
        return result

    def _handle_response(self, response: requests.Response) -> Any:
        """Map an HTTP response to its decoded body or an error value."""
        try:
            data = response.json()
        except ValueError:
            data = None

        status = response.status_code

        structured = (
            isinstance(data, dict)
            and data.get("code") is not None
            and data.get("detail") is not None
        )
        if status != 200 and structured:
            detail = data["detail"]
            if not isinstance(detail, str):
                detail = json.dumps(detail)
            return ImagifyAPIError(data["code"], detail, status=status)

        if status == 413:
            return ImagifyPayloadTooLargeError()

        if status != 200:
            reason = (response.reason or "").strip()
            suffix = f" - {html.escape(reason)}" if reason else ""
            return ImagifyHTTPError(
                status, f"Unknown error occurred ({status}{suffix})", status=status
            )

        return data

    def _cached(self, key: str, fetch: Callable[[], Any]) -> Any:
        if self.cache is not None and key in self.cache:
            logger.debug("Imagify cache hit for %s", key)
            return self.cache.get(key)
        result = fetch()
        if self.cache is not None and not is_error(result):
            self.cache.set(key, result)
        return result

    def get_user(self, timeout: float = 10) -> Any:
        """
        Get your Imagify account info.

        Example:
            >>> user = client.get_user()
            >>> print(user["quota"])
        """
        return self._cached(
            "user", lambda: self._request("GET", "users/me", timeout=timeout)
        )

    def create_user(
        self,
        data: Mapping[str, Any],
        partner: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Create a user on Imagify.

        Args:
            data: User data (email, password, ...)
            partner: Optional partner/referral code
            timeout: Request timeout in seconds

        Returns:
            Created user, or an ImagifyError
        """
        payload = dict(data)
        payload["from_plugin"] = True
        if partner:
            payload["partner"] = partner

        result = self._request("POST", "users", body=payload, timeout=timeout)
        if not is_error(result) and self.on_user_created is not None:
            self.on_user_created(result)
        return result

    def update_user(self, data: Mapping[str, Any], timeout: float = 10) -> Any:
        """Update the current Imagify user."""
        return self._request("PUT", "users/me", body=dict(data), timeout=timeout)

    def get_status(
        self, test_api_key: str, partner: Optional[str] = None, timeout: float = 10
    ) -> Any:
        """
        Check the status of an API key.

        The request is authenticated with ``test_api_key``, not with the
        client's own key, so a key can be validated before it is stored.

        Args:
            test_api_key: API key to check
            partner: Optional partner code
            timeout: Request timeout in seconds (default: 10)
        """
        params = {"partner": partner} if partner else None
        return self._cached(
            f"status:{test_api_key}",
            lambda: self._request(
                "GET", "status", params=params, api_key=test_api_key, timeout=timeout
            ),
        )

    def get_api_version(self, timeout: float = 5) -> Any:
        """Get the Imagify API version."""
        return self._cached(
            "version", lambda: self._request("GET", "version", timeout=timeout)
        )

    def get_public_info(self, timeout: Optional[float] = None) -> Any:
        """Get public info."""
        return self._request("GET", "public-info", timeout=timeout)

    def upload_image(
        self,
        image: str,
        level: str = "aggressive",
        resize: Optional[Mapping[str, int]] = None,
        keep_exif: bool = False,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Optimize an image by uploading its binary content.

        Args:
            image: Path to the image file
            level: Optimization level: normal, aggressive (default) or ultra
            resize: Optional resize mapping, see resize_options()
            keep_exif: Keep EXIF data (default: False)
            timeout: Request timeout in seconds (default: 45)

        Returns:
            Optimization result, or an ImagifyError

        Example:
            >>> result = client.upload_image(
            ...     "photo.jpg", level="ultra", resize=resize_options(width=1200)
            ... )
        """
        if level not in LEVELS:
            raise ValueError(f"Unknown optimization level: {level!r}")

        if not isinstance(image, (str, os.PathLike)) or not os.path.isfile(image):
            return ImagifyFileError("invalid_file", "Image incorrect!")
        if not os.access(image, os.R_OK):
            return ImagifyFileError("unreadable_file", "Image not readable!")

        body: Dict[str, Any] = {
            "aggressive": level == "aggressive",
            "ultra": level == "ultra",
            "resize": dict(resize or {}),
            "keep_exif": keep_exif,
        }
        try:
            fh = open(image, "rb")
        except OSError:
            return ImagifyFileError("unreadable_file", "Image not readable!")
        with fh:
            body["image"] = fh
            return self._request("POST", "upload", body=body, timeout=timeout)

    def fetch_image(
        self, data: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Any:
        """
        Optimize an image from its URL.

        Args:
            data: Options, including the source ``url``
        """
        return self._request("POST", "fetch", body=dict(data), timeout=timeout)

    def get_plans_prices(self, timeout: Optional[float] = None) -> Any:
        """Get prices for plans."""
        return self._request("GET", "pricing/plan", timeout=timeout)

    def get_packs_prices(self, timeout: Optional[float] = None) -> Any:
        """Get prices for one-time packs."""
        return self._request("GET", "pricing/pack", timeout=timeout)

    def get_all_prices(self, timeout: Optional[float] = None) -> Any:
        """Get all prices (packs and plans)."""
        return self._request("GET", "pricing/all", timeout=timeout)

    def check_coupon_code(self, coupon: str, timeout: Optional[float] = None) -> Any:
        """Check a coupon code."""
        if not coupon or not coupon.strip():
            raise ValueError("Coupon code must not be blank")
        path = f"coupons/{quote(coupon, safe='')}"
        return self._request("GET", path, timeout=timeout)

    def check_discount(self, timeout: Optional[float] = None) -> Any:
        """Get information about the current discount."""
        return self._request("GET", "pricing/discount", timeout=timeout)


# Convenience functions for upload options


def resize_options(
    width: Optional[int] = None,
    height: Optional[int] = None,
    percent: Optional[int] = None,
) -> Dict[str, int]:
    """Build the ``resize`` option of upload_image, dropping unset values."""
    options = {"width": width, "height": height, "percent": percent}
    return {k: v for k, v in options.items() if v is not None}
