from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    MYSQL_USER: str = "erp"
    MYSQL_PASS: str = ""
    MYSQL_HOST: str = "localhost"
    MYSQL_DB: str = "erp_clinico"
    MYSQL_PORT: int | None = 3306

    # Si viene, pisa la URL de MySQL (tests usan sqlite+aiosqlite)
    DATABASE_URL: str | None = None
    SQL_ECHO: bool = False

    CORS_ORIGINS: str = "http://localhost:5173"
    JWT_SECRET: SecretStr
    JWT_ALG: str = "HS256"
    ACCESS_MINUTES: int = 15
    REFRESH_DAYS: int = 15

    COOKIE_SAMESITE: str = "lax"
    COOKIE_SECURE: bool = False
    COOKIE_DOMAIN: str | None = None

    MEDIA_ROOT: str = "uploads"
    MEDIA_URL: str = "uploads"

    RESEND_API_KEY: str | None = None
    EMAIL_FROM: str | None = None
    FRONT_BASE_URL: str | None = None

    EVOLUCION_HORAS_EDICION: int = 24
    AGENDA_MAX_DIAS: int = 365

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    @property
    def MYSQL_URL(self) -> str:
        return (
            f"mysql+aiomysql://{self.MYSQL_USER}:"
            f"{self.MYSQL_PASS}@{self.MYSQL_HOST}:{self.MYSQL_PORT or 3306}/{self.MYSQL_DB}"
        )

    @property
    def SQLALCHEMY_URL(self) -> str:
        return self.DATABASE_URL or self.MYSQL_URL

    def CORS_LIST(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(',') if o.strip()]


# Carga valores desde .env o variables de entorno
settings = Settings()
