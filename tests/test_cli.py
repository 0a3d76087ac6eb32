# File: tests/test_cli.py
"""Тесты для CLI (`sitemap_builder/cli.py`) с использованием click.testing.CliRunner.
Проверяют команды `generate`, `generate-models`, `clear`, `show`, `config`,
`--version`, а также коды выхода при ошибках.
"""
import importlib
import json

import pytest
from click.testing import CliRunner

from sitemap_builder.cli import cli
from sitemap_builder.errors import InvalidInput
from sitemap_builder.models import GenerationResult, GenerationState, SitemapEntry
from sitemap_builder.sitemap.writer import build_urlset

# the package re-exports the click group as `cli`, so bind the module itself
cli_module = importlib.import_module("sitemap_builder.cli")


@pytest.fixture()
def calls(monkeypatch):
    """Патчим generate_sitemap: запоминаем аргументы, ничего не обходим."""
    recorded = []

    async def fake_generate(cfg, base_url=None, **options):
        recorded.append({"cfg": cfg, "base_url": base_url, **options})
        return GenerationResult(
            mode=options.get("mode") or cfg.generate_mode,
            state=GenerationState.PUBLISHED,
            files=["sitemaps/sitemap.xml"],
            crawled_entries=3,
        )

    monkeypatch.setattr(cli_module, "generate_sitemap", fake_generate)
    return recorded


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "sitemap.json"
    path.write_text(
        json.dumps(
            {
                "site_url": "https://example.com",
                "cache_dir": str(tmp_path / "cache"),
                "storage": {"root": str(tmp_path / "storage")},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "SitemapBuilder" in result.output


def test_show_config(config_file):
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(config_file), "config"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["site_url"] == "https://example.com/"
    assert data["storage"]["filename"] == "sitemap.xml"


def test_broken_config_exits_1(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("crawl: {concurrency: 0}\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["--config", str(bad), "config"])
    assert result.exit_code == 1
    assert "Ошибка загрузки конфигурации" in result.output


def test_generate_passes_options(config_file, calls):
    runner = CliRunner()
    result = runner.invoke(
        cli,
        [
            "--config", str(config_file),
            "generate", "https://example.org",
            "--depth", "4",
            "--concurrency", "8",
            "--output", "map.xml",
            "--exclude", "admin, tmp",
            "--mode", "hybrid",
        ],
    )
    assert result.exit_code == 0, result.output
    [call] = calls
    assert call["base_url"] == "https://example.org"
    assert call["max_depth"] == 4
    assert call["concurrency"] == 8
    assert call["filename"] == "map.xml"
    assert call["exclude"] == ["admin", "tmp"]
    assert call["mode"] == "hybrid"
    assert "Sitemap generated: 3 URLs" in result.output


def test_generate_defaults(config_file, calls):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate"])
    assert result.exit_code == 0
    [call] = calls
    assert call["base_url"] is None
    assert call["exclude"] is None
    assert call["max_depth"] is None
    assert "https://example.com" in result.output


def test_generate_invalid_url_exit_1(config_file, monkeypatch):
    async def reject(cfg, base_url=None, **options):
        raise InvalidInput(f"Invalid base URL: {base_url}")

    monkeypatch.setattr(cli_module, "generate_sitemap", reject)
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate", "nope"])
    assert result.exit_code == 1
    assert "Invalid base URL: nope" in result.output


def test_generate_failure_prints_traceback(config_file, monkeypatch):
    async def explode(cfg, base_url=None, **options):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(cli_module, "generate_sitemap", explode)
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate"])
    assert result.exit_code == 1
    assert "Error generating sitemap: kaboom" in result.output
    assert "Traceback" in result.output


def test_generate_rejects_negative_depth(config_file, calls):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate", "--depth", "-1"])
    assert result.exit_code == 2
    assert calls == []


def test_generate_partial_warning(config_file, monkeypatch):
    async def partial(cfg, base_url=None, **options):
        return GenerationResult(mode="crawl", crawled_entries=1, partial=True)

    monkeypatch.setattr(cli_module, "generate_sitemap", partial)
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate"])
    assert result.exit_code == 0
    assert "неполный" in result.output


def test_generate_models_empty_exit_1(config_file, monkeypatch):
    async def empty(cfg, base_url=None, **options):
        assert options["mode"] == "models"
        return GenerationResult(mode="models")

    monkeypatch.setattr(cli_module, "generate_sitemap", empty)
    result = CliRunner().invoke(cli, ["--config", str(config_file), "generate-models"])
    assert result.exit_code == 1
    assert "No URLs generated" in result.output


def test_clear_and_show(config_file, tmp_path):
    sitemaps = tmp_path / "storage" / "public" / "sitemaps"
    sitemaps.mkdir(parents=True)
    (sitemaps / "sitemap.xml").write_bytes(
        build_urlset([SitemapEntry("https://example.com/a", priority=0.5)])
    )
    runner = CliRunner()

    shown = runner.invoke(cli, ["--config", str(config_file), "show"])
    assert shown.exit_code == 0, shown.output
    assert "https://example.com/a" in shown.output
    assert "0.5" in shown.output

    cleared = runner.invoke(cli, ["--config", str(config_file), "clear"])
    assert cleared.exit_code == 0
    assert "Deleted 1" in cleared.output
    assert not (sitemaps / "sitemap.xml").exists()

    missing = runner.invoke(cli, ["--config", str(config_file), "show"])
    assert missing.exit_code == 1


def test_regenerate_uses_service(config_file, monkeypatch):
    class FakeService:
        main_path = "sitemaps/sitemap.xml"
        forced = False

        async def force_regenerate(self):
            FakeService.forced = True
            return True

    monkeypatch.setattr(cli_module, "build_service", lambda cfg: FakeService())
    result = CliRunner().invoke(cli, ["--config", str(config_file), "regenerate"])
    assert result.exit_code == 0
    assert FakeService.forced is True
    assert "Sitemap regenerated" in result.output
