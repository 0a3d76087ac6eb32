#!/usr/bin/env python3
"""
Точка входа генератора sitemap через командную строку.

Команды:
  generate         Обойти сайт и/или собрать URL из источников, записать sitemap
  generate-models  Собрать sitemap только из источников записей
  regenerate       Принудительная перегенерация с обновлением кеша
  clear            Удалить файлы sitemap и записи кеша
  serve            HTTP-сервер /sitemap.xml (+ планировщик)
  show             Показать содержимое записанного sitemap
  config           Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (configs/sitemap.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования
  --version, -v       Показать версию

Пример:
  sitemap-builder generate https://example.com --depth 5 --exclude admin,tmp
"""
import asyncio
import sys
import traceback
from pathlib import Path

import click
from aiohttp import web

from sitemap_builder import __version__
from sitemap_builder.cache import FileCache
from sitemap_builder.config import load_config
from sitemap_builder.engine import GenerationJob, generate_sitemap
from sitemap_builder.errors import InvalidInput, NotFound
from sitemap_builder.logger import DEFAULT_FORMAT, init_logging
from sitemap_builder.scheduler import SitemapScheduler
from sitemap_builder.server import create_app
from sitemap_builder.service import SitemapService
from sitemap_builder.sitemap.parser import is_index, parse_index, parse_urlset

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str, with_traceback: bool = False):
    click.secho(message, fg='red', err=True)
    if with_traceback:
        click.echo(traceback.format_exc(), err=True)
    sys.exit(1)


def build_service(cfg) -> SitemapService:
    """Сервис с файловым кешем, переживающим перезапуск CLI."""
    job = GenerationJob(cfg)
    return SitemapService(cfg, job, job.storage, FileCache(cfg.cache_dir))


def _split_exclude(ctx, param, value):
    if value is None:
        return None
    return [part.strip() for part in value.split(',') if part.strip()]


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SitemapBuilder, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML или JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default=DEFAULT_FORMAT,
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд генератора sitemap."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


def _report(result) -> None:
    click.echo(f'Sitemap generated: {result.total_entries} URLs')
    for path in result.files:
        click.echo(f'  {path}')
    if result.mode == 'hybrid':
        click.echo(f'Crawled: {result.crawled_entries}, models: {result.model_entries}')
    if result.partial:
        click.secho('Обход был прерван: sitemap неполный', fg='yellow', err=True)


@cli.command('generate', context_settings=CONTEXT_SETTINGS)
@click.argument('base_url', required=False)
@click.option('--depth', 'max_depth', type=click.IntRange(min=0), default=None,
              help='Максимальная глубина обхода')
@click.option('--concurrency', type=click.IntRange(min=1), default=None,
              help='Число одновременных запросов')
@click.option('--output', 'filename', default=None, help='Имя выходного файла')
@click.option('--exclude', default=None, callback=_split_exclude,
              help='Исключённые директории через запятую (admin,tmp)')
@click.option('--mode', type=click.Choice(['crawl', 'models', 'hybrid']), default=None,
              help='Режим генерации (по умолчанию из конфига)')
@click.pass_context
def generate(ctx, base_url, max_depth, concurrency, filename, exclude, mode):
    """Сгенерировать sitemap обходом сайта и/или из источников."""
    cfg = ctx.obj['config']
    target = base_url or cfg.base_url
    click.echo(f'Starting sitemap generation for: {target}')
    try:
        result = asyncio.run(generate_sitemap(
            cfg,
            base_url,
            max_depth=max_depth,
            concurrency=concurrency,
            filename=filename,
            exclude=exclude,
            mode=mode,
        ))
    except InvalidInput as e:
        print_error(f'Error: {e}')
    except Exception as e:
        print_error(f'Error generating sitemap: {e}', with_traceback=True)
    _report(result)


@cli.command('generate-models', context_settings=CONTEXT_SETTINGS)
@click.option('--output', 'filename', default=None, help='Имя выходного файла')
@click.pass_context
def generate_models(ctx, filename):
    """Сгенерировать sitemap только из источников записей."""
    cfg = ctx.obj['config']
    try:
        result = asyncio.run(generate_sitemap(cfg, None, filename=filename, mode='models'))
    except Exception as e:
        print_error(f'Error generating sitemap: {e}', with_traceback=True)
    if result.total_entries == 0:
        click.secho('No URLs generated. Check the configured sources.', fg='yellow', err=True)
        sys.exit(1)
    _report(result)


@cli.command('regenerate', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def regenerate(ctx):
    """Перегенерировать sitemap и обновить кеш независимо от cooldown."""
    service = build_service(ctx.obj['config'])
    try:
        asyncio.run(service.force_regenerate())
    except Exception as e:
        print_error(f'Error generating sitemap: {e}', with_traceback=True)
    click.echo(f'Sitemap regenerated: {service.main_path}')


@cli.command('clear', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def clear(ctx):
    """Удалить файлы sitemap и сбросить кеш."""
    service = build_service(ctx.obj['config'])
    try:
        deleted = service.clear()
    except Exception as e:
        print_error(f'Ошибка при очистке: {e}')
    click.echo(f'Deleted {deleted} sitemap file(s), cache cleared')


@cli.command('serve', context_settings=CONTEXT_SETTINGS)
@click.option('--host', default='127.0.0.1', show_default=True, help='Адрес HTTP-сервера')
@click.option('--port', default=8080, show_default=True, type=int, help='Порт HTTP-сервера')
@click.pass_context
def serve(ctx, host, port):
    """Раздавать /sitemap.xml по HTTP; при schedule.enabled — с планировщиком."""
    cfg = ctx.obj['config']
    service = build_service(cfg)
    app = create_app(service, cfg)

    if cfg.schedule.enabled:
        async def scheduler_ctx(app):
            stop = asyncio.Event()
            task = asyncio.create_task(SitemapScheduler(service, cfg.schedule).run(stop))
            yield
            stop.set()
            await task

        app.cleanup_ctx.append(scheduler_ctx)

    run_app(app, host=host, port=port)


@cli.command('show', context_settings=CONTEXT_SETTINGS)
@click.argument('filename', required=False)
@click.pass_context
def show(ctx, filename):
    """Показать URL из записанного sitemap или индекса."""
    cfg = ctx.obj['config']
    service = build_service(cfg)
    path = service.main_path if filename is None else service.path_for(filename)
    try:
        content = service.storage.get(path)
        if is_index(content):
            locations = parse_index(content)
            click.echo(f'Sitemap index {path}: {len(locations)} file(s)')
            for loc in locations:
                click.echo(f'  {loc}')
            return
        entries = parse_urlset(content)
    except NotFound:
        print_error(f'Файл не найден: {path}')
    except Exception as e:
        print_error(f'Ошибка чтения sitemap: {e}')

    click.echo(f'Sitemap {path}: {len(entries)} URL(s)')
    for entry in entries:
        fields = [
            entry.url,
            entry.last_modified.isoformat() if entry.last_modified else '-',
            entry.change_frequency.value if entry.change_frequency else '-',
            f'{entry.priority:.1f}' if entry.priority is not None else '-',
        ]
        click.echo('  ' + '  '.join(fields))


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


def run_app(app, host, port):
    web.run_app(app, host=host, port=port)


# expose these names at module level for test monkey-patching
cli.generate_sitemap = generate_sitemap
cli.build_service = build_service

if __name__ == "__main__":
    cli()
