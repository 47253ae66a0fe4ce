from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite:///./kind_food_erp.db'
    session_cookie_name: str = 'kind_food_erp_session'
    session_ttl_minutes: int = 480
    session_cookie_secure: bool = False
    session_cookie_samesite: str = 'lax'
    toast_cookie_name: str = 'kind_food_erp_toasts'

    log_level: str = 'INFO'

    identity_provider: str = 'mock'
    document_store: str = 'memory'
    blob_storage: str = 'local'

    firebase_project_id: str | None = None
    firebase_api_key: str | None = None
    firebase_auth_base_url: str = 'https://identitytoolkit.googleapis.com'
    firebase_timeout_seconds: int = 30
    firestore_database: str | None = None
    firestore_emulator_host: str | None = None
    storage_bucket: str | None = None
    upload_dir: str = './uploads'

    # Comma separated email:password:display name triples for the mock provider.
    mock_users: str = 'admin@kindfood.tw:kindfood123:管理員'

    auth_display_delay_seconds: float = 1.5
    page_size: int = 10
    pricing_keep_unmatched_items: bool = False

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url


settings = Settings()
