from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "taskboard"

    # ---------------------------------------------------------------------
    # API contract / OpenAPI
    # ---------------------------------------------------------------------

    api_version: str = "1.0.0"
    api_description: str = (
        "Taskboard API.\n\n"
        "Protected endpoints are headers-first. Required header: X-Actor-User-Id. "
        "X-Actor-Email is needed only to accept an invitation.\n\n"
        "Roles are never read from headers: they are resolved from workspace and "
        "project memberships."
    )

    env: str = "local"
    debug: bool = True
    log_level: str = "INFO"

    db_host: str = "127.0.0.1"
    db_port: int = 5432
    db_name: str = "taskboard"
    db_user: str = "taskboard"
    db_password: str = "taskboard"

    # Full URL override (e.g. sqlite for local experiments).
    db_url: str | None = None

    # ---------------------------------------------------------------------
    # Permissions
    # ---------------------------------------------------------------------

    permission_cache_ttl_seconds: int = 300

    # When on (and the database is Postgres), role lookups go through the
    # get_user_project_role / get_user_workspace_role SQL functions first.
    database_functions_enabled: bool = False

    invitation_expiry_days: int = 7

    default_page_size: int = 50
    max_page_size: int = 200

    @property
    def database_url(self) -> str:
        if self.db_url:
            return self.db_url
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
