"""
config/settings.py - Configuration management
"""

import os
import json
from typing import Any, Dict, List, cast


class Config:
    """Base configuration class

    Settings come from environment variables first, then from the JSON file
    named by CONFIG_PATH (default config.json), then from built-in defaults.

    Database configuration via environment variables:
    - DATABASE_URL: full connection string (optional)
    - DATABASE_TYPE: sqlite (default), postgresql, or mysql
    - DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME: individual params
    """

    _config_data = None

    # Database connection pool settings (for PostgreSQL/MySQL)
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "20"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "40"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "3600"))

    # SQL debugging
    SQL_ECHO: bool = os.getenv("SQL_ECHO", "False").lower() == "true"

    @classmethod
    def _load_config(cls) -> Dict:
        """Load configuration from file"""
        if cls._config_data is None:
            config_path = os.getenv("CONFIG_PATH", "config.json")
            try:
                with open(config_path, "r") as f:
                    cls._config_data = json.load(f)
            except FileNotFoundError:
                cls._config_data = cls._get_default_config()
        return cls._config_data

    @classmethod
    def _get_default_config(cls) -> Dict:
        """Default configuration"""
        return {
            "data": {
                "database_path": "data/classfolio.db",
            },
            "currency": {
                "minor_unit_factor": 100,
            },
            "settlement": {
                "allow_oversell": True,
            },
        }

    @classmethod
    def reload(cls) -> None:
        """Drop the cached file configuration so the next read reloads it"""
        cls._config_data = None

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", cls._load_config()["data"]["database_path"])

    @classmethod
    def MINOR_UNIT_FACTOR(cls) -> int:
        if value := os.getenv("MINOR_UNIT_FACTOR"):
            return int(value)
        return cast(int, cls.get("currency.minor_unit_factor", 100))

    @classmethod
    def ALLOW_OVERSELL(cls) -> bool:
        if value := os.getenv("ALLOW_OVERSELL"):
            return value.lower() in ("1", "true", "yes")
        return cast(bool, cls.get("settlement.allow_oversell", True))

    @classmethod
    def database_url(cls) -> str:
        """Get database URL from environment or use SQLite default

        Environment variables checked (in order):
        1. DATABASE_URL - Full connection string
        2. DATABASE_TYPE - Type of database (sqlite, postgresql, mysql)
        3. Individual DB_* variables - For constructing URL
        """
        if db_url := os.getenv("DATABASE_URL"):
            return db_url

        db_type = os.getenv("DATABASE_TYPE", "sqlite").lower() or "sqlite"

        if db_type == "postgresql":
            user = os.getenv("DB_USER", "postgres")
            password = os.getenv("DB_PASSWORD", "password")
            host = os.getenv("DB_HOST", "localhost")
            port = os.getenv("DB_PORT", "5432")
            dbname = os.getenv("DB_NAME", "classfolio")
            return f"postgresql://{user}:{password}@{host}:{port}/{dbname}"

        elif db_type in ("mysql", "mariadb"):
            user = os.getenv("DB_USER", "root")
            password = os.getenv("DB_PASSWORD", "password")
            host = os.getenv("DB_HOST", "localhost")
            port = os.getenv("DB_PORT", "3306")
            dbname = os.getenv("DB_NAME", "classfolio")
            return f"mysql://{user}:{password}@{host}:{port}/{dbname}"

        db_path = cls.DATABASE_PATH()
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        return f"sqlite:///{db_path}"

    @classmethod
    def get(cls, path: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated path"""
        keys = path.split(".")
        value = cls._load_config()

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @classmethod
    def validate_config(cls) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        factor = cls.get("currency.minor_unit_factor", 100)
        if not isinstance(factor, int) or factor <= 0:
            issues.append("Invalid currency.minor_unit_factor")

        allow_oversell = cls.get("settlement.allow_oversell", True)
        if not isinstance(allow_oversell, bool):
            issues.append("settlement.allow_oversell must be true or false")

        return issues


# Environment-specific configurations
class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    TESTING = False

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return "data/dev_classfolio.db"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""

    DEBUG = True
    TESTING = True

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", "data/test_classfolio.db")


def get_config() -> type[Config]:
    """Get configuration based on environment"""
    env = os.getenv("CLASSFOLIO_ENV", "production")

    if env == "development":
        return DevelopmentConfig
    elif env == "testing":
        return TestingConfig
    else:
        return ProductionConfig
