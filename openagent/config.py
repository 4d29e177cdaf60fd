from typing import Optional, List
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

MIB = 1024 * 1024


class Settings(BaseSettings):
    # 基本配置
    APP_NAME: str = "OpenAgent"
    DEBUG: bool = False
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # 服务器配置
    HOST: str = "127.0.0.1"
    PORT: int = 3001
    CORS_ORIGINS: List[str] = ["*"]

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # 模型配置 (OpenAI 兼容接口, 默认本地 Ollama)
    MODEL_API_BASE: str = "http://127.0.0.1:11434/v1"
    MODEL_API_KEY: str = "ollama"
    DEFAULT_MODEL: str = "llama3.2:latest"
    PLANNER_MODEL: str = "llama3.2:latest"
    MODEL_TIMEOUT: float = 120.0

    # Agent 循环配置
    MAX_ITERATIONS: int = 10
    STREAM_FINAL_RESPONSE: bool = True
    SWARM_FALLBACK_TO_SINGLE_AGENT: bool = True

    # 命令执行配置
    COMMAND_TIMEOUT: float = 30.0
    COMMAND_MAX_OUTPUT_BYTES: int = 5 * MIB
    COMMAND_DEFAULT_CWD: Optional[str] = None  # None -> home directory
    EXTRA_BLOCKED_COMMAND_PATTERNS: List[str] = []

    # 文件系统配置
    READ_FILE_MAX_BYTES: int = 1 * MIB
    ALLOW_SYSTEM_PATHS: bool = False
    SYSTEM_PATH_PREFIXES: List[str] = [
        "/bin", "/boot", "/dev", "/etc", "/lib", "/lib32", "/lib64", "/proc",
        "/sbin", "/sys", "/usr", "/var/lib", "/System", "/Library",
    ]

    # Web 工具配置
    WEB_FETCH_TIMEOUT: float = 10.0
    WEB_FETCH_MAX_BYTES: int = 1 * MIB
    WEB_CONTENT_MAX_CHARS: int = 50000

    @field_validator("READ_FILE_MAX_BYTES")
    @classmethod
    def _read_ceiling_in_range(cls, v: int) -> int:
        if not MIB <= v <= 5 * MIB:
            raise ValueError("READ_FILE_MAX_BYTES must be between 1 MiB and 5 MiB")
        return v

    @field_validator("MAX_ITERATIONS", "COMMAND_MAX_OUTPUT_BYTES", "WEB_FETCH_MAX_BYTES")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("COMMAND_TIMEOUT", "WEB_FETCH_TIMEOUT", "MODEL_TIMEOUT")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """获取缓存的设置实例"""
    return Settings()
