import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # core
    APP_NAME: str = Field(default="Harmony Chat")
    ENV: str = Field(default=os.getenv("APP_ENV", "dev"))
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    # per-token traces (very noisy)
    LOG_TOKENS: bool = Field(default=False)

    # inference backend: "llama" (llama-cpp-python) or "echo" (no model file)
    INFERENCE_BACKEND: str = Field(default="llama")
    CONTEXT_SIZE_CAP: int = Field(default=8192)
    N_GPU_LAYERS: int = Field(default=-1)
    # generation sequences shared by warmup and all requests
    SEQUENCES: int = Field(default=4)
    PRELOAD_MODEL: bool = Field(default=False)

    # model artifact
    MODEL_URL: str | None = None
    MODEL_SHA256: str | None = None
    MODEL_NAME: str = Field(default="gpt-oss-20b-Q4_K_M.gguf")
    MODEL_CACHE_DIR: str = Field(default="model-cache")

    # read root-level .env.dev
    model_config = SettingsConfigDict(
        env_file=".env.dev",
        extra="ignore",
    )

    @property
    def app_name(self) -> str:
        return self.APP_NAME


settings = Settings()
