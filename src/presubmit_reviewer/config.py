"""
Configuration Management

시스템 설정 관리
"""

import os
import yaml
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Mapping
from pathlib import Path
import logging


DEFAULT_MAX_CODEBLOCK_LINES = 60
DEFAULT_MAX_REVIEW_CHARS = 725000
DEFAULT_REVIEW_SCOPES = ["security", "performance", "best-practices"]
CUSTOM_MODES = {"on", "off", "auto"}


class ConfigurationError(ValueError):
    """필수 설정 누락 또는 잘못된 설정"""


def _env(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    """환경 변수를 읽고, 없으면 GitHub Actions 입력(INPUT_*)을 확인"""
    value = env.get(name)
    if value:
        return value
    value = env.get(f"INPUT_{name}")
    if value:
        return value
    return default


def _positive_int(raw: Optional[str], default: int) -> int:
    """양의 정수가 아니면 기본값 반환"""
    try:
        value = int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _flag(raw: Optional[str], default: bool = False) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class GitHubConfig:
    """GitHub API 설정"""
    token: Optional[str] = None
    api_base_url: str = "https://api.github.com"
    server_url: str = "https://github.com"
    timeout_seconds: int = 30
    max_rate_limit_retries: int = 3


@dataclass
class LLMConfig:
    """LLM 제공자 설정"""
    provider: str = "openai-compatible"
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: int = 300


@dataclass
class ReviewConfig:
    """리뷰 생성 설정"""
    max_codeblock_lines: int = DEFAULT_MAX_CODEBLOCK_LINES
    max_review_chars: int = DEFAULT_MAX_REVIEW_CHARS
    custom_mode: str = "auto"
    review_scopes: List[str] = field(default_factory=lambda: list(DEFAULT_REVIEW_SCOPES))
    allow_title_update: bool = True
    style_guide_rules: Optional[str] = None
    inline_labels: List[str] = field(default_factory=lambda: ["typo"])
    dry_run: bool = False
    force_full_review: bool = False


@dataclass
class LoggingConfig:
    """로깅 설정"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class AppConfig:
    """전체 애플리케이션 설정"""
    github: GitHubConfig
    llm: LLMConfig
    review: ReviewConfig
    logging: LoggingConfig
    debug: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """환경 변수에서 설정 로드"""
        env = os.environ if env is None else env
        scopes_raw = _env(env, "REVIEW_SCOPES", ",".join(DEFAULT_REVIEW_SCOPES))
        inline_raw = _env(env, "INLINE_LABELS", "typo")
        return cls(
            github=GitHubConfig(
                token=env.get("GITHUB_TOKEN"),
                api_base_url=_env(env, "GITHUB_API_URL", "https://api.github.com"),
                server_url=_env(env, "GITHUB_SERVER_URL", "https://github.com"),
                timeout_seconds=_positive_int(env.get("GITHUB_TIMEOUT"), 30),
                max_rate_limit_retries=_positive_int(env.get("GITHUB_RATE_LIMIT_RETRIES"), 3),
            ),
            llm=LLMConfig(
                provider=_env(env, "LLM_PROVIDER", "openai-compatible"),
                model=_env(env, "LLM_MODEL"),
                api_key=env.get("LLM_API_KEY"),
                base_url=_env(env, "LLM_BASE_URL"),
                timeout_seconds=_positive_int(env.get("LLM_TIMEOUT"), 300),
            ),
            review=ReviewConfig(
                max_codeblock_lines=_positive_int(
                    _env(env, "REVIEW_MAX_CODEBLOCK_LINES") or _env(env, "MAX_CODEBLOCK_LINES"),
                    DEFAULT_MAX_CODEBLOCK_LINES,
                ),
                max_review_chars=_positive_int(
                    _env(env, "REVIEW_MAX_REVIEW_CHARS") or _env(env, "MAX_REVIEW_CHARS"),
                    DEFAULT_MAX_REVIEW_CHARS,
                ),
                custom_mode=_env(env, "CUSTOM_MODE", "auto").lower(),
                review_scopes=[s.strip().lower() for s in scopes_raw.split(",") if s.strip()],
                allow_title_update=_flag(_env(env, "ALLOW_TITLE_UPDATE"), default=True),
                style_guide_rules=_env(env, "STYLE_GUIDE_RULES"),
                inline_labels=[s.strip().lower() for s in inline_raw.split(",") if s.strip()],
                dry_run=_flag(env.get("DRY_RUN")),
                force_full_review=_flag(env.get("FORCE_FULL_REVIEW")),
            ),
            logging=LoggingConfig(
                level=env.get("LOG_LEVEL", "INFO"),
                format=env.get("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
                file_path=env.get("LOG_FILE"),
                max_file_size=_positive_int(env.get("LOG_MAX_SIZE"), 10 * 1024 * 1024),
                backup_count=_positive_int(env.get("LOG_BACKUP_COUNT"), 5),
            ),
            debug=_flag(env.get("DEBUG")),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "AppConfig":
        """YAML 파일에서 설정 로드"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        github_data = dict(config_data.get('github', {}))
        # 토큰은 파일보다 환경 변수를 우선
        github_data.setdefault('token', os.getenv("GITHUB_TOKEN"))

        return cls(
            github=GitHubConfig(**github_data),
            llm=LLMConfig(**config_data.get('llm', {})),
            review=ReviewConfig(**config_data.get('review', {})),
            logging=LoggingConfig(**config_data.get('logging', {})),
            debug=config_data.get('debug', False),
        )

    def validate(self) -> None:
        """설정 유효성 검사"""
        errors = []

        # GitHub 토큰 필수 확인
        if not self.github.token:
            errors.append("GITHUB_TOKEN is not set")

        # LLM 모델 필수 확인
        if not self.llm.model:
            errors.append("LLM_MODEL is not set")

        # 자체 호스팅(base_url 지정)이 아니면 API 키 필요
        if not self.llm.api_key and not self.llm.base_url:
            errors.append("LLM_API_KEY is not set")

        if self.review.custom_mode not in CUSTOM_MODES:
            errors.append(f"Invalid custom mode: {self.review.custom_mode}")

        if self.review.max_codeblock_lines <= 0:
            errors.append("max_codeblock_lines must be positive")

        if self.review.max_review_chars <= 0:
            errors.append("max_review_chars must be positive")

        # 로그 레벨 검증
        valid_log_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if self.logging.level.upper() not in valid_log_levels:
            errors.append(f"Invalid log level: {self.logging.level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """설정을 딕셔너리로 변환"""
        return {
            'github': {
                'api_base_url': self.github.api_base_url,
                'server_url': self.github.server_url,
                'timeout_seconds': self.github.timeout_seconds,
                'max_rate_limit_retries': self.github.max_rate_limit_retries,
                # 보안상 토큰은 제외
            },
            'llm': {
                'provider': self.llm.provider,
                'model': self.llm.model,
                'base_url': self.llm.base_url,
                'timeout_seconds': self.llm.timeout_seconds,
                # 보안상 API 키는 제외
            },
            'review': {
                'max_codeblock_lines': self.review.max_codeblock_lines,
                'max_review_chars': self.review.max_review_chars,
                'custom_mode': self.review.custom_mode,
                'review_scopes': list(self.review.review_scopes),
                'allow_title_update': self.review.allow_title_update,
                'style_guide_rules': self.review.style_guide_rules,
                'inline_labels': list(self.review.inline_labels),
                'dry_run': self.review.dry_run,
                'force_full_review': self.review.force_full_review,
            },
            'logging': {
                'level': self.logging.level,
                'format': self.logging.format,
                'file_path': self.logging.file_path,
                'max_file_size': self.logging.max_file_size,
                'backup_count': self.logging.backup_count,
            },
            'debug': self.debug,
        }


class ConfigManager:
    """설정 관리자"""

    def __init__(self, config: Optional[AppConfig] = None):
        self._config = config or AppConfig.from_env()
        self._config.validate()
        self._setup_logging()

    @property
    def config(self) -> AppConfig:
        """현재 설정 반환"""
        return self._config

    def update_config(self, **kwargs) -> None:
        """설정 업데이트 (예: 'review.dry_run'=True)"""
        for key, value in kwargs.items():
            if '.' in key:
                section, name = key.split('.', 1)
                target = getattr(self._config, section, None)
                if target is None or not hasattr(target, name):
                    raise ConfigurationError(f"Unknown setting: {key}")
                setattr(target, name, value)
            elif hasattr(self._config, key):
                setattr(self._config, key, value)
            else:
                raise ConfigurationError(f"Unknown setting: {key}")

        self._config.validate()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """로깅 설정"""
        logging.basicConfig(
            level=getattr(logging, self._config.logging.level.upper()),
            format=self._config.logging.format,
        )

        # 파일 로깅이 설정된 경우 로테이션 설정
        if self._config.logging.file_path:
            from logging.handlers import RotatingFileHandler

            root_logger = logging.getLogger()
            already_attached = any(
                isinstance(h, RotatingFileHandler)
                and getattr(h, 'baseFilename', None) == str(Path(self._config.logging.file_path).resolve())
                for h in root_logger.handlers
            )
            if already_attached:
                return

            handler = RotatingFileHandler(
                self._config.logging.file_path,
                maxBytes=self._config.logging.max_file_size,
                backupCount=self._config.logging.backup_count,
            )
            handler.setFormatter(logging.Formatter(self._config.logging.format))

            # 루트 로거에 핸들러 추가
            root_logger.addHandler(handler)
