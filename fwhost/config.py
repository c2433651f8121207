from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SERVER_NAME: str = "fwhost"
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/postgres"
    LOG_LEVEL: str = "INFO"

    # "filesystem" or "minio"
    STORAGE_BACKEND: str = "filesystem"
    DOWNLOAD_DIR: str = "downloads"

    MINIO_ENDPOINT: str = "minio:9000"
    MINIO_ACCESS_KEY: str = "testadmin123"
    MINIO_SECRET_KEY: str = "testadmin321"
    MINIO_SECURE: bool = False
    MINIO_BUCKET: str = "firmware"

    # the vendor whose contact matches this address may use /admin
    SIGNING_CONTACT: str = "sign@fwupd.org"
    DEFAULT_CONTACT: str = ""

    MIN_UPLOAD_SIZE: int = 1280
    MAX_UPLOAD_SIZE: int = 102400
