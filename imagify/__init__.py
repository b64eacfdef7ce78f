"""
Imagify Python SDK

Simple client library for interacting with the Imagify.io image optimization API.

Usage:
    from imagify import ImagifyClient, is_error, resize_options

    # Initialize client
    client = ImagifyClient(api_key="your_api_key")

    # Check a key before storing it
    status = client.get_status("candidate_key")

    # Optimize a local image
    result = client.upload_image("photo.jpg", level="ultra", resize=resize_options(width=1200))
    if is_error(result):
        print(result.code, result.message)

    # Optimize an image from its URL
    result = client.fetch_image({"url": "https://example.com/photo.jpg", "aggressive": True})

    # Pricing
    plans = client.get_plans_prices()
"""

from .client import (
    ImagifyClient,
    ImagifyError,
    ImagifyTransportError,
    ImagifyAPIError,
    ImagifyPayloadTooLargeError,
    ImagifyHTTPError,
    ImagifyFileError,
    ResponseCache,
    chain_credential_providers,
    env_credential_provider,
    is_error,
    resize_options,
)

__version__ = "0.1.0"

__all__ = [
    "ImagifyClient",
    "ImagifyError",
    "ImagifyTransportError",
    "ImagifyAPIError",
    "ImagifyPayloadTooLargeError",
    "ImagifyHTTPError",
    "ImagifyFileError",
    "ResponseCache",
    "chain_credential_providers",
    "env_credential_provider",
    "is_error",
    "resize_options",
]
