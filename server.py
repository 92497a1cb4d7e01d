"""Trading MCP - stock screening, fundamentals, insider, options, social and news tools."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastmcp import FastMCP

from barchart_client import BarchartClient
from config import Settings
from finviz_client import FinvizClient
from openai_client import OpenAIClient
from reddit_client import RedditClient
from tools import comprehensive, fundamentals, insider, news, options, screening, social
from tools._helpers import ArgumentErrorMiddleware

logger = logging.getLogger(__name__)


def create_server(settings: Settings) -> FastMCP:
    """Build the app; optional tools are registered only when their credentials are set."""
    finviz_client = FinvizClient()
    barchart_client = BarchartClient()

    openai_client: OpenAIClient | None = None
    if settings.openai_configured:
        openai_client = OpenAIClient(api_key=settings.openai_api_key, model=settings.openai_model)

    reddit_client: RedditClient | None = None
    if settings.reddit_configured:
        reddit_client = RedditClient(
            client_id=settings.reddit_client_id,
            client_secret=settings.reddit_client_secret,
            username=settings.reddit_username,
            password=settings.reddit_password,
        )

    @asynccontextmanager
    async def lifespan(server):
        """Manage client lifecycles."""
        yield
        await finviz_client.close()
        await barchart_client.close()
        if openai_client is not None:
            await openai_client.close()
        if reddit_client is not None:
            await reddit_client.close()

    mcp = FastMCP(
        "Trading MCP",
        instructions=(
            "Stock research tools. Start with comprehensive_stock_analysis for a full "
            "picture of one ticker. Use screen_stocks_by_pattern or "
            "screen_stocks_advanced_filters to find candidates, and the atomic tools "
            "(fundamentals, valuation comparison, health score, insider activity, "
            "put/call ratio) for targeted questions. News and Reddit tools appear only "
            "when OpenAI and Reddit credentials are configured."
        ),
        lifespan=lifespan,
    )
    mcp.add_middleware(ArgumentErrorMiddleware())

    # Register tool modules
    screening.register(mcp, finviz_client)
    fundamentals.register(mcp, finviz_client)
    insider.register(mcp, finviz_client)
    options.register(mcp, barchart_client)
    comprehensive.register(mcp, finviz_client, barchart_client, openai=openai_client, reddit=reddit_client)

    # Credential-gated tools
    if reddit_client is not None:
        social.register_trending(mcp, reddit_client)
    if openai_client is not None:
        news.register(mcp, openai_client)
    if reddit_client is not None and openai_client is not None:
        social.register_sentiment(mcp, reddit_client, openai_client)

    logger.info(
        "Trading MCP configured (reddit=%s, openai=%s)",
        settings.reddit_configured,
        settings.openai_configured,
    )
    return mcp


load_dotenv()
settings = Settings.from_env()
mcp = create_server(settings)


def main() -> None:
    """Run over stdio; logs go to stderr so they never mix with protocol frames."""
    logging.basicConfig(
        stream=sys.stderr,
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run()


if __name__ == "__main__":
    main()
