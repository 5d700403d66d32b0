import os
from dataclasses import dataclass
from enum import Enum


class S3Provider(Enum):
    S3 = "s3"  # generic S3
    BACKBLAZE = "b2"
    DIGITAL_OCEAN = "DigitalOcean"

    @staticmethod
    def from_str(value: str) -> "S3Provider":
        """Convert string to S3Provider."""
        for provider in S3Provider:
            if provider.value.lower() == value.lower():
                return provider
        raise ValueError(f"Unknown S3Provider: {value}")


@dataclass
class S3Credentials:
    """Credentials for accessing S3."""

    provider: S3Provider
    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    @staticmethod
    def from_env() -> "S3Credentials":
        access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        if not access_key_id or not secret_access_key:
            raise ValueError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set in the environment"
            )
        provider = os.getenv("S3_PROVIDER")
        return S3Credentials(
            provider=S3Provider.from_str(provider) if provider else S3Provider.S3,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=os.getenv("AWS_SESSION_TOKEN") or None,
            region_name=os.getenv("AWS_DEFAULT_REGION") or None,
            endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        )

