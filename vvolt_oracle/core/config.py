from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "vVolt IoT Data Oracle"

    # Deployer becomes both the initial admin and the initial oracle operator
    deployer: str = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"

    # Storage
    sqlite_path: str = Field(default="oracle.db")

    # Logging
    log_file: str = "oracle.log"
    log_level: str = "INFO"

    # Identity and logical clock are supplied by the environment per call
    caller_header: str = "X-Caller"
    height_header: str = "X-Block-Height"

    # Upper bound for /events paging
    max_page_size: int = 500


settings = Settings()
