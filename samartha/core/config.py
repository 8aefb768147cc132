from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    jwt_secret: str = "dev"
    jwt_alg: str = "HS256"

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "samartha"

    # matching
    match_radius_km: float = 10.0
    match_limit: int = 10
    receiver_scan_cap: int = 50
    match_notify_top: int = 5

    # fallback routing
    fallback_radius_km: float = 15.0
    fallback_limit: int = 20
    facility_scan_cap: int = 20

    # expiry sweep
    sweeper_enabled: bool = True
    sweep_on_startup: bool = True
    sweep_interval_seconds: float = 300.0

    query_timeout_seconds: float = 5.0
    # compare-and-swap rounds before a write gives up with a retryable error
    write_max_attempts: int = 10

    geocoder_contact: str = "mailto:admin@example.com"
    geocode_timeout_seconds: float = 12.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
