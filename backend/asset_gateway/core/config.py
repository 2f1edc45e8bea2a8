from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    应用配置
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # 基础配置
    PROJECT_NAME: str = "Asset Gateway"
    ENVIRONMENT: str = "development"  # development/production/test

    # Redis 配置 (持久层缓存)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENCODING: str = "utf-8"

    # 缓存配置
    CACHE_PREFIX: str = "asset_gw:"
    ASSET_CACHE_DURABLE_TTL: int | None = None  # None 表示不过期，由数据存储自身策略淘汰
    ASSET_CACHE_VOLATILE_TTL: int = 3600  # 进程内缓存 1 小时
    ASSET_CACHE_VOLATILE_MAX_ENTRIES: int = 1024

    # 生成请求默认值
    ASSET_DEFAULT_SIZE: str = "1024x1024"
    ASSET_DEFAULT_FORMAT: str = "png"
    ASSET_DEFAULT_FOLDER: str = "generated"
    ASSET_PUBLIC_ID_MAX_SLUG: int = 48

    # 上游生成 provider 链（按优先级排序）
    ASSET_PROVIDER_CHAIN: list[str] = ["openai", "gemini", "stability"]
    PROVIDER_RETRY_DELAY: float = 1.0  # 重试间隔秒数
    PROVIDER_RETRY_BACKOFF: float = 2.0  # 重试退避倍数

    OPENAI_IMAGE_URL: str = "https://api.openai.com/v1/images/generations"
    OPENAI_IMAGE_MODEL: str = "gpt-image-1"
    OPENAI_IMAGE_TIMEOUT: float = 120.0
    OPENAI_IMAGE_MAX_RETRIES: int = 0  # 组织验证/参数错误不属于瞬时故障，不重试

    GEMINI_IMAGE_URL: str = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    GEMINI_IMAGE_MODEL: str = "gemini-2.0-flash-preview-image-generation"
    GEMINI_IMAGE_TIMEOUT: float = 90.0
    GEMINI_IMAGE_MAX_RETRIES: int = 2

    STABILITY_IMAGE_URL: str = "https://api.stability.ai/v2beta/stable-image/generate/core"
    STABILITY_IMAGE_TIMEOUT: float = 90.0
    STABILITY_IMAGE_MAX_RETRIES: int = 2

    # 生成结果校验
    ASSET_MIN_BYTES: int = 64  # 小于该字节数视为无效图片
    MAX_RESPONSE_BYTES: int = 20 * 1024 * 1024

    # 资产存储（签名上传）
    ASSET_STORE_UPLOAD_URL: str = "https://api.cloudinary.com/v1_1/{cloud_name}/{resource_type}/upload"
    ASSET_STORE_DELIVERY_URL: str = "https://res.cloudinary.com/{cloud_name}/{resource_type}/upload"
    ASSET_STORE_SIGNATURE_ALGORITHM: str = "sha1"  # sha1 | sha256
    ASSET_STORE_UPLOAD_TIMEOUT: float = 60.0
    ASSET_STORE_UPLOAD_MAX_RETRIES: int = 2
    UPLOAD_ERROR_BODY_LIMIT: int = 500

    # 凭证名称（通过 SecretSource 按名称读取，每次请求重新获取以支持轮换）
    OPENAI_API_KEY_NAME: str = "OPENAI_API_KEY"
    GEMINI_API_KEY_NAME: str = "GEMINI_API_KEY"
    STABILITY_API_KEY_NAME: str = "STABILITY_API_KEY"
    ASSET_STORE_CLOUD_NAME_KEY: str = "ASSET_STORE_CLOUD_NAME"
    ASSET_STORE_API_KEY_NAME: str = "ASSET_STORE_API_KEY"
    ASSET_STORE_API_SECRET_NAME: str = "ASSET_STORE_API_SECRET"

    # 生命周期事件
    ASSET_EVENT_LOG_ENABLED: bool = True

    # 日志配置 (Loguru)
    LOG_LEVEL: str = "INFO"
    LOG_JSON_FORMAT: bool = False
    LOG_ASYNC: bool = True
    LOG_FILE_PATH: str = ""
    LOG_ROTATION: str = "500 MB"  # 日志文件大小轮转
    LOG_RETENTION: str = "10 days"  # 日志保留时间


settings = Settings()
