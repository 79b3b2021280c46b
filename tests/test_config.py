from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from catalog_scrape import config, scrape
from catalog_scrape.config import Settings, get_settings
from catalog_scrape.errors import ConfigError
from catalog_scrape.scrape import apply_args, build_parser, cli

from conftest import FakeFetcher


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **k: False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    s = get_settings()

    assert s.concurrency == 4
    assert s.max_products == 0
    assert s.fresh_days == 7
    assert s.retries == 1
    assert s.entry_url == "https://www.shop.markaz.app/explore"
    assert s.resolved_checkpoint_path == Path("data/catalog.partial.json")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CRAWL_CONCURRENCY", "2")
    monkeypatch.setenv("CRAWL_MAX_PRODUCTS", "15")
    monkeypatch.setenv("CRAWL_FRESH_DAYS", "1.5")
    monkeypatch.setenv("CRAWL_OUTPUT", "out/snap.json")
    monkeypatch.setenv("CRAWL_HEADLESS", "false")

    s = get_settings()

    assert (s.concurrency, s.max_products, s.fresh_days) == (2, 15, 1.5)
    assert s.headless is False
    assert s.resolved_checkpoint_path == Path("out/snap.partial.json")


def test_invalid_environment_names_the_variable(monkeypatch):
    monkeypatch.setenv("CRAWL_CONCURRENCY", "0")

    with pytest.raises(ConfigError, match="CRAWL_CONCURRENCY"):
        get_settings()


def test_cli_flags_override_settings():
    args = build_parser().parse_args(["--concurrency", "6", "--fresh-days", "0", "--headed", "--checkpoint", "tmp/c.json"])

    s = apply_args(Settings(), args)

    assert s.concurrency == 6
    assert s.fresh_days == 0
    assert s.headless is False
    assert s.resolved_checkpoint_path == Path("tmp/c.json")
    assert s.max_products == 0


def test_cli_flags_are_validated():
    args = build_parser().parse_args(["--concurrency", "0"])

    with pytest.raises(ValueError):
        apply_args(Settings(), args)


def test_log_level_is_normalized_and_checked(monkeypatch):
    assert Settings(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValueError):
        Settings(log_level="FOO")

    monkeypatch.setenv("LOG_LEVEL", "loud")
    with pytest.raises(ConfigError, match="LOG_LEVEL"):
        get_settings()


def serve(monkeypatch, fetcher):
    @asynccontextmanager
    async def fake_open_fetcher(settings):
        yield fetcher

    monkeypatch.setattr(scrape, "open_fetcher", fake_open_fetcher)


def test_cli_exits_zero_after_promotion(monkeypatch, tmp_path):
    serve(monkeypatch, FakeFetcher({"Women": {"Stitched": ["lawn-1", "lawn-2"]}}))

    assert cli(["--output", str(tmp_path / "out" / "catalog.json")]) == 0
    assert (tmp_path / "out" / "catalog.json").exists()
    assert not (tmp_path / "out" / "catalog.partial.json").exists()


def test_cli_exits_one_when_crawl_aborts(monkeypatch, tmp_path):
    serve(monkeypatch, FakeFetcher({}))
    output = tmp_path / "catalog.json"
    output.write_text('{"scrapedAt": null, "categories": []}')

    assert cli(["--output", str(output)]) == 1
    assert output.read_text() == '{"scrapedAt": null, "categories": []}'


def test_cli_exits_one_on_unexpected_failure(monkeypatch):
    async def broken(settings):
        raise RuntimeError("browser crashed")

    monkeypatch.setattr(scrape, "main", broken)

    assert cli([]) == 1


@pytest.mark.parametrize("env, argv", [
    ({"CRAWL_CONCURRENCY": "0"}, []),
    ({"LOG_LEVEL": "FOO"}, []),
    ({}, ["--log-level", "FOO"]),
    ({}, ["--concurrency", "0"]),
])
def test_cli_exits_two_on_invalid_configuration(monkeypatch, env, argv):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    started = []

    async def never(settings):
        started.append(settings)

    monkeypatch.setattr(scrape, "main", never)

    assert cli(argv) == 2
    assert started == []
