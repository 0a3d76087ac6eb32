# === FILE: sitemap_builder/config.py ===
"""
Модуль для загрузки и валидации конфигурации генератора sitemap.
Используется Pydantic для описания схемы и проверки данных, YAML/JSON как
формат файла и переменные окружения SITEMAP_* для переопределения значений.
"""
from __future__ import annotations

import errno
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)

from sitemap_builder.models import ExclusionConfig

GenerateMode = Literal["crawl", "models", "hybrid"]

DEFAULT_SKIP_PATTERNS: Tuple[str, ...] = (
    "/login", "/logout", "/register", "/admin", "/cart", "/checkout",
    "wp-admin", "wp-login", "wp-content",
    "/feed/", "/search",
    ".jpg", ".jpeg", ".png", ".gif", ".css", ".js", ".pdf", ".zip",
    "/blog/category/", "/blog/tag/",
)

_DAILY_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class ScheduleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    daily_time: str = Field("00:00", description="Время ежедневной перегенерации (HH:MM).")

    @field_validator("daily_time")
    def _check_time(cls, v: str) -> str:
        if not _DAILY_TIME_RE.match(v):
            raise ValueError(f"daily_time должно быть в формате HH:MM, получено {v!r}")
        return v


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    root: Path = Field(Path("storage"), description="Корневая папка хранилища.")
    disk: str = Field("public", min_length=1, description="Идентификатор диска внутри root.")
    path: str = Field("sitemaps", description="Подпапка для файлов sitemap.")
    filename: str = Field("sitemap.xml", min_length=1, description="Имя файла sitemap.")

    @property
    def directory(self) -> Path:
        return self.root / self.disk / self.path


class IndexConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = False
    max_urls_per_sitemap: int = Field(50000, ge=1, le=50000)
    filename_pattern: str = "sitemap-%d.xml"
    index_filename: str = "sitemap.xml"

    @field_validator("filename_pattern")
    def _check_pattern(cls, v: str) -> str:
        try:
            v % 1
        except (TypeError, ValueError) as exc:
            raise ValueError(f"filename_pattern должен содержать один %d: {v!r}") from exc
        return v


class CrawlConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_depth: int = Field(30, ge=0, description="Максимальная глубина обхода ссылок.")
    concurrency: int = Field(5, ge=1, description="Число одновременных запросов.")
    timeout: float = Field(30.0, gt=0, description="Таймаут на один запрос (секунд).")
    user_agent: str = Field("SitemapBuilder/1.0", min_length=1, description="Заголовок User-Agent.")
    exclude: List[str] = Field(default_factory=list, description="Исключённые директории.")
    max_pagination_depth: int = Field(100, ge=0, description="Макс. номер ?page= (0 — без лимита).")
    max_pages: int = Field(0, ge=0, description="Жесткий лимит по числу страниц (0 — без лимита).")

    @field_validator("exclude", mode="before")
    def _split_exclude(cls, v: Any) -> Any:
        return _split_csv(v)


class RecordSourceConfig(BaseModel):
    """Описание источника записей; строки вида ``module:attr`` импортируются."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    records: str = Field(..., description="module:attr — итерируемое или функция без аргументов.")
    url: str = Field(..., description="module:attr или шаблон вида /posts/{slug}.")
    lastmod: Optional[str] = None
    changefreq: Optional[str] = None
    priority: Optional[Union[float, str]] = None
    query: Optional[str] = None
    chunk_size: int = Field(1000, ge=1)


class SitemapConfig(BaseModel):
    """Полная конфигурация генерации, хранения и раздачи sitemap."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    site_url: Optional[HttpUrl] = Field(None, description="Базовый URL сайта.")
    environment: str = Field("production", description="Окружение; в local авто-генерация отключена.")
    cooldown_hours: float = Field(24, ge=0, description="Пауза между генерациями (часы).")
    cache_dir: Path = Field(Path(".sitemap_cache"), description="Папка файлового кеша.")
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    skip_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_PATTERNS))
    index: IndexConfig = Field(default_factory=IndexConfig)
    generate_mode: GenerateMode = "crawl"
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    sources: Dict[str, RecordSourceConfig] = Field(default_factory=dict)

    @field_validator("skip_patterns", mode="before")
    def _split_skip(cls, v: Any) -> Any:
        return _split_csv(v)

    @property
    def base_url(self) -> Optional[str]:
        """site_url без завершающего слеша."""
        return str(self.site_url).rstrip("/") if self.site_url else None

    @property
    def main_filename(self) -> str:
        """Имя файла, отдаваемого по /sitemap.xml."""
        return self.index.index_filename if self.index.enabled else self.storage.filename

    def exclusion(self, **overrides: Any) -> ExclusionConfig:
        """Собирает ExclusionConfig для краулера; overrides со значением None игнорируются."""
        values: Dict[str, Any] = {
            "skip_patterns": tuple(self.skip_patterns),
            "excluded_directories": tuple(self.crawl.exclude),
            "max_pagination_depth": self.crawl.max_pagination_depth,
            "max_depth": self.crawl.max_depth,
            "concurrency": self.crawl.concurrency,
        }
        for key, value in overrides.items():
            if value is not None:
                values[key] = tuple(value) if isinstance(value, list) else value
        return ExclusionConfig(**values)


# --------------------------------------------------------------------------- #
# Переменные окружения                                                        #
# --------------------------------------------------------------------------- #

ENV_PREFIX = "SITEMAP_"
_SOURCE_ENV_PREFIX = "SITEMAP_SOURCE__"

ENV_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "SITEMAP_SITE_URL": ("site_url",),
    "SITEMAP_ENVIRONMENT": ("environment",),
    "SITEMAP_COOLDOWN_HOURS": ("cooldown_hours",),
    "SITEMAP_CACHE_DIR": ("cache_dir",),
    "SITEMAP_SCHEDULE_ENABLED": ("schedule", "enabled"),
    "SITEMAP_DAILY_TIME": ("schedule", "daily_time"),
    "SITEMAP_STORAGE_ROOT": ("storage", "root"),
    "SITEMAP_STORAGE_DISK": ("storage", "disk"),
    "SITEMAP_STORAGE_PATH": ("storage", "path"),
    "SITEMAP_FILENAME": ("storage", "filename"),
    "SITEMAP_SKIP_PATTERNS": ("skip_patterns",),
    "SITEMAP_INDEX_ENABLED": ("index", "enabled"),
    "SITEMAP_MAX_URLS_PER_SITEMAP": ("index", "max_urls_per_sitemap"),
    "SITEMAP_FILENAME_PATTERN": ("index", "filename_pattern"),
    "SITEMAP_INDEX_FILENAME": ("index", "index_filename"),
    "SITEMAP_GENERATE_MODE": ("generate_mode",),
    "SITEMAP_CRAWL_DEPTH": ("crawl", "max_depth"),
    "SITEMAP_CONCURRENCY": ("crawl", "concurrency"),
    "SITEMAP_TIMEOUT": ("crawl", "timeout"),
    "SITEMAP_USER_AGENT": ("crawl", "user_agent"),
    "SITEMAP_EXCLUDE": ("crawl", "exclude"),
    "SITEMAP_MAX_PAGINATION_DEPTH": ("crawl", "max_pagination_depth"),
    "SITEMAP_MAX_PAGES": ("crawl", "max_pages"),
}


def _set_path(data: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    node = data
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Накладывает SITEMAP_* переменные на сырые данные конфига.
    Приведение типов выполняет Pydantic при валидации.
    """
    env = os.environ if environ is None else environ
    for name, path in ENV_OVERRIDES.items():
        if name in env:
            _set_path(data, path, env[name])

    sources = data.get("sources") or {}
    for name, value in env.items():
        if not name.startswith(_SOURCE_ENV_PREFIX):
            continue
        source_name, sep, field_name = name[len(_SOURCE_ENV_PREFIX):].partition("__")
        if not sep or not source_name or not field_name:
            continue
        # имена источников в файле могут быть в любом регистре
        key = next((k for k in sources if k.lower() == source_name.lower()), source_name.lower())
        _set_path(data, ("sources", key, field_name.lower()), value)
        sources = data["sources"]
    return data


# --------------------------------------------------------------------------- #
# Загрузка                                                                     #
# --------------------------------------------------------------------------- #

_DEFAULT_CFG = Path("configs/sitemap.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(
    path: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SitemapConfig:
    """
    Читает YAML или JSON, накладывает переменные окружения и возвращает
    проверенный объект SitemapConfig.
    Без path используется configs/sitemap.yaml, а если его нет — значения по умолчанию.
    Явно указанный, но отсутствующий файл — FileNotFoundError.
    """
    data: dict[str, Any] = {}
    if path is None:
        if _DEFAULT_CFG.is_file():
            data = _read_file(_DEFAULT_CFG)
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))
        data = _read_file(path_obj)

    data = apply_env_overrides(data, environ)
    try:
        return SitemapConfig(**data)
    except ValidationError:
        raise


def _read_file(path_obj: Path) -> dict[str, Any]:
    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _read_yaml(path_obj)
    if suffix == ".json":
        return _read_json(path_obj)
    raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")


__all__ = [
    "SitemapConfig",
    "CrawlConfig",
    "IndexConfig",
    "StorageConfig",
    "ScheduleConfig",
    "RecordSourceConfig",
    "GenerateMode",
    "DEFAULT_SKIP_PATTERNS",
    "ENV_OVERRIDES",
    "apply_env_overrides",
    "load_config",
]
