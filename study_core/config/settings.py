"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
代理服务端与桌面客户端共用同一份 settings。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("STUDY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class StudySettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 上游模型 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口的基础URL",
    )
    openai_model: Optional[str] = Field(
        default=None,
        description="覆盖 registry 中的默认模型 ID，例如 gpt-4.1-mini",
    )
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 模式与解码 ----
    default_mode_label: str = Field(default="Cheat Sheet", description="请求未携带 modeLabel 时使用的模式")
    structured_mode_label: str = Field(default="Cheat Sheet", description="要求结构化文档输出的模式")
    structured_temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="结构化调用的温度")
    text_temperature: float = Field(default=0.4, ge=0.0, le=2.0, description="纯文本调用（含降级）的温度")
    structured_fallback: bool = Field(
        default=True,
        description="结构化调用失败时是否降级为一次纯文本调用",
    )

    # ---- 会话 ----
    max_context_messages: int = Field(default=20, ge=1, le=100, description="发送给上游的最大历史消息数")
    max_input_chars: int = Field(default=8000, ge=1, description="单条用户输入的字符上限")

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 代理服务 ----
    server_host: str = Field(default="127.0.0.1", description="代理监听地址")
    server_port: int = Field(default=5050, ge=1, le=65535, description="代理监听端口")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="允许跨域的来源")
    proxy_url: str = Field(default="http://localhost:5050", description="客户端访问代理的地址")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = StudySettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = StudySettings
