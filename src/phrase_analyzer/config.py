from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - llm_*: 解析パイプラインが利用する LLM 呼出しの設定
    - retry_*: ゲートウェイの指数バックオフ設定
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level / ルートのログレベル",
    )
    llm_provider: str = Field(
        default="openai",
        description="LLM service provider / 利用するLLMプロバイダ",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="LLM model name / 利用するLLMモデル名",
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Sampling temperature / 生成温度",
    )
    llm_max_tokens: int = Field(
        default=2048,
        description="Max tokens for LLM completion output / LLM出力の最大トークン数",
    )

    # --- LLM 呼出しのタイムアウト/リトライ ---
    llm_timeout_ms: int = Field(
        default=30000,
        description="Per-attempt deadline for LLM calls (ms) / LLM呼出しの試行毎タイムアウト(ms)",
    )
    llm_max_retries: int = Field(
        default=3,
        description="Max attempts for LLM calls / LLM呼出しの最大試行回数",
    )
    llm_max_workers: int = Field(
        default=16,
        ge=1,
        description="Worker threads shared by LLM calls / LLM呼出し用スレッド数",
    )
    retry_base_delay_ms: int = Field(
        default=1000,
        description="Base delay for exponential backoff (ms) / バックオフの基準待機時間(ms)",
    )
    retry_max_delay_ms: int = Field(
        default=30000,
        description="Upper bound for backoff delay (ms) / バックオフ待機時間の上限(ms)",
    )

    # --- 解析パイプライン ---
    max_phrase_length: int = Field(
        default=500,
        description="Max characters for phrase/translation / 英文・訳文の最大文字数",
    )
    filter_confidence_threshold: float = Field(
        default=0.7,
        description="Confidence required by quick validation / 簡易検証で必要な確信度",
    )

    # --- 永続化 ---
    phrase_db_path: str = Field(
        default=".data/phrases.sqlite3",
        description="Path to phrase SQLite database / フレーズ保存用SQLite DBパス",
    )

    # --- API Keys ---
    openai_api_key: str | None = Field(default=None, description="OpenAI API Key")

    # --- Observability ---
    langfuse_enabled: bool = Field(default=False, description="Enable Langfuse tracing")
    langfuse_public_key: str | None = Field(default=None, description="Langfuse public key")
    langfuse_secret_key: str | None = Field(default=None, description="Langfuse secret key")
    langfuse_host: str | None = Field(default=None, description="Langfuse host URL")
    langfuse_release: str | None = Field(default=None, description="Release tag sent to Langfuse")
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN (enable if set)")

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"development", "dev", "local"}


settings = Settings()
