"""全局配置加载模块：从环境变量构建运行参数并提供缓存访问。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """系统运行配置对象，从环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Verifyhub Integrated Server"
    api_prefix: str = "/api/v1"
    environment: str = "dev"
    server_host: str = "0.0.0.0"
    server_port: int = 3001
    cors_allowed_origins: str = ""
    cors_allowed_methods: str = "GET,POST,DELETE,OPTIONS"
    cors_allowed_headers: str = "Authorization,Content-Type,X-Request-Id"
    cors_allow_credentials: bool = False

    enable_async_jobs: bool = True
    execution_timeout_seconds: float = 30 * 60
    execution_mode: str = "direct"

    tool_artifact_root: Path = Field(default=Path("."))
    tool_build_path: str = "build/src/tests/with-sign"
    tool_runtime_command: str = "node"
    tool_runtime_flags: str = "--experimental-vm-modules,--experimental-wasm-modules"
    actus_server_url: str = "http://3.88.158.37:8083/eventsBatch"
    health_check_timeout_seconds: float = 10.0

    broadcast_queue_size: int = 256

    log_dir: Path = Field(default=Path("./logs"))
    log_level: str = "INFO"
    log_debug_modules: str = ""
    log_debug_job_ids: str = ""
    log_debug_tools: str = ""
    log_redaction_mode: str = "standard"
    log_payload_preview_chars: int = 2048
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5

    def cors_allowed_origins_list(self) -> list[str]:
        return _csv_to_list(self.cors_allowed_origins)

    def cors_allowed_methods_list(self) -> list[str]:
        return _csv_to_list(self.cors_allowed_methods)

    def cors_allowed_headers_list(self) -> list[str]:
        return _csv_to_list(self.cors_allowed_headers)

    def tool_runtime_flags_list(self) -> list[str]:
        return _csv_to_list(self.tool_runtime_flags)

    def log_debug_modules_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_modules)

    def log_debug_job_ids_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_job_ids)

    def log_debug_tools_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_tools)

    def tool_build_dir(self) -> Path:
        """编译产物所在目录（工具根目录 + 构建子路径）。"""
        return self.tool_artifact_root / self.tool_build_path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings，将相对路径统一解析为绝对路径。"""
    settings = Settings()
    # 相对路径统一按当前工作目录解析，避免不同启动方式下语义漂移。
    if not settings.tool_artifact_root.is_absolute():
        settings.tool_artifact_root = (Path.cwd() / settings.tool_artifact_root).resolve()
    return settings
