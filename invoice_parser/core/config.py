from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoice-line-parser", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Which document analysis service backs the pipeline
    ocr_provider: Literal["azure", "mistral"] = Field("azure", alias="OCR_PROVIDER")

    # Azure Document Intelligence
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model_id: str = Field("prebuilt-invoice", alias="AZ_DI_MODEL_ID")

    # LLM (noise filter and Mistral OCR share the same account)
    llm_base_url: str = Field("https://api.mistral.ai/v1", alias="LLM_BASE_URL")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_deployment: str = Field("mistral-medium-latest", alias="LLM_DEPLOYMENT")
    llm_temperature: float = Field(0.0, alias="LLM_TEMPERATURE")
    llm_timeout_seconds: float = Field(60.0, alias="LLM_TIMEOUT_SECONDS")
    mistral_ocr_model: str = Field("mistral-ocr-latest", alias="MISTRAL_OCR_MODEL")

    # Noise filter error policy: fail_open | fail_closed | retry
    noise_filter_on_error: Literal["fail_open", "fail_closed", "retry"] = Field(
        "fail_open", alias="NOISE_FILTER_ON_ERROR"
    )
    noise_filter_retries: int = Field(0, alias="NOISE_FILTER_RETRIES")

    # Parser validation harness
    parser_test_images_dir: str = Field("./tests/parser/test-images", alias="PARSER_TEST_IMAGES_DIR")
    parser_expected_dir: str = Field("./tests/parser/expected", alias="PARSER_EXPECTED_DIR")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
