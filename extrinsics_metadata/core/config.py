from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    NODE_URL: str = "wss://gdev.coinduf.eu"
    OUTPUT_PATH: str = "V2__populate_modules_and_functions.sql"
    # None = wait for the node as long as it takes
    RPC_TIMEOUT: Optional[float] = None
    LOG_LEVEL: str = "INFO"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
