"""Tests for settings resolution and credential-gated tool registration."""

from __future__ import annotations

import pytest

from config import Settings
from fastmcp import Client
from fastmcp.exceptions import ToolError
from server import create_server

CORE_TOOLS = {
    "screen_stocks_advanced_filters",
    "screen_stocks_by_pattern",
    "get_fundamental_stock_metrics",
    "compare_stock_valuations",
    "calculate_financial_health_score",
    "analyze_insider_activity",
    "get_put_call_ratio",
    "comprehensive_stock_analysis",
}

REDDIT_SETTINGS = {
    "reddit_client_id": "id",
    "reddit_client_secret": "secret",
    "reddit_username": "user",
    "reddit_password": "pass",
}


async def _tool_names(settings: Settings) -> set[str]:
    mcp = create_server(settings)
    async with Client(mcp) as c:
        tools = await c.list_tools()
    return {t.name for t in tools}


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", " sk-test ")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("REDDIT_CLIENT_ID", "id")
        monkeypatch.setenv("REDDIT_CLIENT_SECRET", "secret")
        monkeypatch.setenv("REDDIT_USERNAME", "user")
        monkeypatch.setenv("REDDIT_PASSWORD", "pass")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()
        assert settings.openai_api_key == "sk-test"
        assert settings.openai_model == "gpt-4o"
        assert settings.log_level == "DEBUG"
        assert settings.openai_configured
        assert settings.reddit_configured

    def test_defaults(self, monkeypatch):
        for name in (
            "OPENAI_API_KEY", "OPENAI_MODEL", "REDDIT_CLIENT_ID", "REDDIT_CLIENT_SECRET",
            "REDDIT_USERNAME", "REDDIT_PASSWORD", "LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.log_level == "WARNING"
        assert not settings.openai_configured
        assert not settings.reddit_configured

    def test_partial_reddit_credentials(self):
        settings = Settings(reddit_client_id="id", reddit_client_secret="secret", reddit_username="user")
        assert not settings.reddit_configured

    def test_blank_openai_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "   ")
        assert not Settings.from_env().openai_configured

    def test_unknown_log_level_falls_back(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")
        assert Settings.from_env().log_level == "WARNING"


class TestToolRegistration:
    @pytest.mark.asyncio
    async def test_core_tools_only(self):
        assert await _tool_names(Settings()) == CORE_TOOLS

    @pytest.mark.asyncio
    async def test_reddit_adds_trending(self):
        names = await _tool_names(Settings(**REDDIT_SETTINGS))
        assert names == CORE_TOOLS | {"discover_trending_stocks"}

    @pytest.mark.asyncio
    async def test_openai_adds_news(self):
        names = await _tool_names(Settings(openai_api_key="sk-test"))
        assert names == CORE_TOOLS | {"analyze_news_and_market_context"}

    @pytest.mark.asyncio
    async def test_all_credentials(self):
        names = await _tool_names(Settings(openai_api_key="sk-test", **REDDIT_SETTINGS))
        assert names == CORE_TOOLS | {
            "discover_trending_stocks",
            "analyze_news_and_market_context",
            "analyze_reddit_sentiment",
        }

    @pytest.mark.asyncio
    async def test_tools_are_read_only(self):
        mcp = create_server(Settings(openai_api_key="sk-test", **REDDIT_SETTINGS))
        async with Client(mcp) as c:
            tools = await c.list_tools()
        for tool in tools:
            assert tool.annotations.readOnlyHint is True, tool.name
            assert tool.annotations.destructiveHint is False, tool.name


class TestArgumentErrors:
    @pytest.mark.asyncio
    async def test_validation_error_names_ticker(self):
        mcp = create_server(Settings())
        async with Client(mcp) as c:
            with pytest.raises(ToolError, match="Error calling analyze_insider_activity for AAPL: "):
                await c.call_tool("analyze_insider_activity", {"ticker": "aapl", "limit": "ten"})

    @pytest.mark.asyncio
    async def test_validation_error_without_ticker(self):
        mcp = create_server(Settings())
        async with Client(mcp) as c:
            with pytest.raises(ToolError, match="Error calling analyze_insider_activity: "):
                await c.call_tool("analyze_insider_activity", {"limit": 5})
