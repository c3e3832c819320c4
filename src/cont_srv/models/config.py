"""Server configuration model."""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class ServerConfig(BaseModel):
    """Runtime configuration for the content server."""

    address: str = "0.0.0.0"
    port: int = Field(default=1131, ge=1, le=65535)
    root_dir: Path = Path(".")
    cert_path: Path | None = None
    key_path: Path | None = None
    user_name: str | None = None
    password_hash: str | None = None
    workers: int = Field(default=1, ge=1)
    book_cache_size: int = Field(default=10, ge=1)
    stream_threshold: int = Field(default=4 * 1024 * 1024, ge=0)
    chunk_size: int = Field(default=64 * 1024, ge=1)

    @model_validator(mode="after")
    def _check_pairs(self) -> "ServerConfig":
        if (self.cert_path is None) != (self.key_path is None):
            raise ValueError(
                "Both cert file and key file are needed for HTTPS support"
            )
        if (self.user_name is None) != (self.password_hash is None):
            raise ValueError(
                "Both user name and password hash are needed for user authentication"
            )
        return self

    @property
    def tls_enabled(self) -> bool:
        return self.cert_path is not None and self.key_path is not None

    @property
    def auth_enabled(self) -> bool:
        return self.user_name is not None and self.password_hash is not None
