from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_prefix='TYPEDLM_', extra='ignore')

    # Adapter used when a run does not name one
    adapter: Literal['default', 'chat', 'json', 'two_step'] = 'default'

    # Transport retries (LM call raised LMTransportError)
    max_retries: int = Field(default=3, ge=0)
    retry_sleep_seconds: float = Field(default=1.0, ge=0.0)

    # Output parse/validation retries, independent of max_retries
    max_output_retries: int = Field(default=0, ge=0)
    max_retry_error_lines: int = Field(default=10, ge=1)

    # Two-step extraction call
    extraction_temperature: float = 0.0
