"""Static catalog of market intelligence sources.

Grouped by category; each group carries its priority tier and cadence, which
individual sources may override. Sources without a built-in fetch client
(kind "custom") are declared disabled until a client is registered for them.
"""

FRED_OBSERVATIONS_URL = "https://api.stlouisfed.org/fred/series/observations"


def _fred(series: str) -> dict:
    return {
        "url": FRED_OBSERVATIONS_URL,
        "api_key_env": "FRED_API_KEY",
        "query": {"series_id": series, "file_type": "json", "sort_order": "desc", "limit": 5},
        "items_path": "observations",
        "title_template": series + " {value}",
        "timestamp_field": "date",
    }


DATA_SOURCES = {
    # Financial news & RSS
    "NEWS": {
        "tier": "HIGH",
        "cadence": "15 minutes",
        "sources": [
            {"id": "bloomberg-markets", "name": "Bloomberg", "kind": "rss",
             "params": {"url": "https://feeds.bloomberg.com/markets/news.rss"}},
            {"id": "reuters-markets", "name": "Reuters", "kind": "scrape",
             "params": {"url": "https://www.reuters.com/markets"}},
            {"id": "cnbc", "name": "CNBC", "kind": "rss",
             "params": {"url": "https://www.cnbc.com/id/100003114/device/rss/rss.html"}},
            {"id": "marketwatch", "name": "MarketWatch", "kind": "rss",
             "params": {"url": "https://feeds.marketwatch.com/marketwatch/topstories"}},
            {"id": "wsj-markets", "name": "WSJ Markets", "kind": "rss",
             "params": {"url": "https://feeds.a.dj.com/rss/RSSMarketsMain.xml"}},
            {"id": "yahoo-finance", "name": "Yahoo Finance", "kind": "rss",
             "params": {"url": "https://finance.yahoo.com/news/rssindex"}},
            {"id": "seeking-alpha", "name": "Seeking Alpha", "kind": "rss",
             "params": {"url": "https://seekingalpha.com/market_currents.xml"}},
            {"id": "financial-times", "name": "Financial Times", "kind": "scrape",
             "params": {"url": "https://www.ft.com"}},
        ],
    },
    # Cryptocurrency impact
    "CRYPTO": {
        "tier": "MEDIUM",
        "cadence": "30 minutes",
        "sources": [
            {"id": "coindesk", "name": "CoinDesk", "kind": "rss",
             "params": {"url": "https://www.coindesk.com/arc/outboundfeeds/rss/"}},
            {"id": "cryptocompare-news", "name": "CryptoCompare", "kind": "api",
             "params": {
                 "url": "https://min-api.cryptocompare.com/data/v2/news/",
                 "api_key_env": "CRYPTOCOMPARE_API_KEY",
                 "query": {"lang": "EN"},
                 "items_path": "Data",
                 "body_field": "body",
                 "url_field": "url",
                 "timestamp_field": "published_on",
             }},
            {"id": "bitcoin-correlation", "name": "Bitcoin correlation", "kind": "custom",
             "params": {"tickers": ["MSTR", "COIN", "RIOT", "MARA", "SQ", "PYPL"]},
             "enabled": False},
            {"id": "defi-pulse", "name": "DeFi Pulse", "kind": "scrape",
             "params": {"url": "https://defipulse.com"}},
            {"id": "glassnode", "name": "Glassnode", "kind": "custom", "enabled": False},
        ],
    },
    # Executive team changes
    "EXECUTIVES": {
        "tier": "HIGH",
        "cadence": "1 hour",
        "sources": [
            {"id": "edgar-8k-502", "name": "SEC Form 8-K Item 5.02", "kind": "edgar-filing",
             "params": {"form_type": "8-K", "item": "5.02"}},
            {"id": "pr-newswire", "name": "PR Newswire", "kind": "rss",
             "params": {"url": "https://www.prnewswire.com/rss/news-releases-list.rss"}},
            {"id": "business-wire", "name": "Business Wire", "kind": "scrape",
             "params": {"url": "https://www.businesswire.com"}},
            {"id": "linkedin-updates", "name": "LinkedIn Updates", "kind": "custom", "enabled": False},
            {"id": "executive-alerts", "name": "Executive Alerts", "kind": "custom", "enabled": False},
        ],
    },
    # SEC filings & public documents
    "FILINGS": {
        "tier": "CRITICAL",
        "cadence": "30 minutes",
        "sources": [
            {"id": "edgar-10k", "name": "10-K Annual", "kind": "edgar-filing", "params": {"form_type": "10-K"}},
            {"id": "edgar-10q", "name": "10-Q Quarterly", "kind": "edgar-filing", "params": {"form_type": "10-Q"}},
            {"id": "edgar-8k", "name": "8-K Events", "kind": "edgar-filing", "params": {"form_type": "8-K"}},
            {"id": "edgar-s1", "name": "S-1 Registration", "kind": "edgar-filing", "params": {"form_type": "S-1"}},
            {"id": "edgar-def14a", "name": "DEF 14A Proxy", "kind": "edgar-filing", "params": {"form_type": "DEF 14A"}},
            {"id": "edgar-13f", "name": "13F Holdings", "kind": "edgar-filing", "params": {"form_type": "13F-HR"}},
            {"id": "edgar-form4", "name": "Form 4 Insider", "kind": "edgar-filing", "params": {"form_type": "4"}},
            {"id": "edgar-13d", "name": "Schedule 13D/G", "kind": "edgar-filing", "params": {"form_type": "SC 13D"}},
        ],
    },
    # Mergers & acquisitions
    "MERGERS": {
        "tier": "HIGH",
        "cadence": "1 hour",
        "sources": [
            {"id": "edgar-defm14a", "name": "SEC DEFM14A", "kind": "edgar-filing", "params": {"form_type": "DEFM14A"}},
            {"id": "mergr", "name": "M&A Database", "kind": "custom", "enabled": False},
            {"id": "spac-tracker", "name": "SPAC Tracker", "kind": "scrape", "params": {"url": "https://spactrack.io"}},
            {"id": "merger-arbitrage", "name": "Merger Arbitrage", "kind": "custom", "enabled": False},
            {"id": "deal-pipeline", "name": "Deal Pipeline", "kind": "custom", "enabled": False},
        ],
    },
    # Interest rates & Fed data
    "RATES": {
        "tier": "CRITICAL",
        "cadence": "15 minutes",
        "sources": [
            {"id": "fred-dff", "name": "Fed Funds Rate", "kind": "api", "params": _fred("DFF")},
            {"id": "fred-dgs10", "name": "10Y Treasury", "kind": "api", "params": _fred("DGS10")},
            {"id": "fred-dgs2", "name": "2Y Treasury", "kind": "api", "params": _fred("DGS2")},
            {"id": "fed-press", "name": "Fed Press Releases", "kind": "rss",
             "params": {"url": "https://www.federalreserve.gov/feeds/press_all.xml"}},
            {"id": "cme-fedwatch", "name": "CME FedWatch", "kind": "scrape",
             "params": {"url": "https://www.cmegroup.com/tools/fedwatch"}},
        ],
    },
    # Major events (conferences, FOMC, earnings season)
    "EVENTS": {
        "tier": "LOW",
        "cadence": "daily",
        "sources": [
            {"id": "ces", "name": "CES", "kind": "scrape", "params": {"url": "https://www.ces.tech"}},
            {"id": "wwdc", "name": "WWDC", "kind": "scrape", "params": {"url": "https://developer.apple.com/wwdc"}},
            {"id": "fomc-calendar", "name": "FOMC Meetings", "kind": "scrape",
             "params": {"url": "https://www.federalreserve.gov/monetarypolicy/fomccalendars.htm"}},
            {"id": "earnings-season", "name": "Earnings Season", "kind": "custom", "enabled": False},
        ],
    },
    # Insider trading
    "INSIDER": {
        "tier": "HIGH",
        "cadence": "30 minutes",
        "sources": [
            {"id": "insider-form4", "name": "Form 4", "kind": "edgar-filing", "params": {"form_type": "4"}},
            {"id": "insider-form144", "name": "Form 144", "kind": "edgar-filing", "params": {"form_type": "144"}},
            {"id": "openinsider", "name": "OpenInsider", "kind": "scrape", "params": {"url": "http://openinsider.com"}},
            {"id": "whale-wisdom", "name": "Whale Wisdom", "kind": "scrape", "params": {"url": "https://whalewisdom.com"}},
        ],
    },
    # Social media & sentiment
    "SOCIAL": {
        "tier": "MEDIUM",
        "cadence": "10 minutes",
        "sources": [
            {"id": "wsb", "name": "Reddit WSB", "kind": "api",
             "params": {
                 "url": "https://www.reddit.com/r/wallstreetbets/new.json",
                 "query": {"limit": 100},
                 "items_path": "data.children",
                 "title_field": "data.title",
                 "body_field": "data.selftext",
                 "url_field": "data.url",
                 "timestamp_field": "data.created_utc",
             }},
            {"id": "stocktwits-trending", "name": "StockTwits", "kind": "api",
             "params": {
                 "url": "https://api.stocktwits.com/api/2/streams/trending.json",
                 "items_path": "messages",
                 "title_field": "body",
                 "ticker_field": "symbols.0.symbol",
                 "timestamp_field": "created_at",
             }},
            {"id": "twitter-finance", "name": "Twitter/X Finance", "kind": "custom", "enabled": False},
            {"id": "tiktok-fintok", "name": "TikTok FinTok", "kind": "custom", "enabled": False},
            {"id": "discord-servers", "name": "Discord Servers", "kind": "custom", "enabled": False},
        ],
    },
    # Market titans
    "TITANS": {
        "tier": "HIGH",
        "cadence": "30 minutes",
        "sources": [
            {"id": "berkshire-13f", "name": "Warren Buffett", "kind": "edgar-filing",
             "params": {"form_type": "13F-HR", "tickers": ["BRK.B"]}},
            {"id": "ark-invest", "name": "Cathie Wood", "kind": "scrape",
             "params": {"url": "https://ark-funds.com/news", "tickers": ["ARKK", "ARKQ", "ARKW"]}},
            {"id": "elon-musk", "name": "Elon Musk", "kind": "custom",
             "params": {"tickers": ["TSLA"]}, "enabled": False},
            {"id": "bill-ackman", "name": "Bill Ackman", "kind": "custom", "enabled": False},
        ],
    },
    # Geopolitical & wars
    "GEOPOLITICAL": {
        "tier": "MEDIUM",
        "cadence": "30 minutes",
        "sources": [
            {"id": "reuters-world", "name": "Reuters World", "kind": "scrape",
             "params": {"url": "https://www.reuters.com/world"}},
            {"id": "ap-international", "name": "AP International", "kind": "scrape",
             "params": {"url": "https://apnews.com/hub/international-news"}},
            {"id": "bbc-world", "name": "BBC World", "kind": "rss",
             "params": {"url": "https://feeds.bbci.co.uk/news/world/rss.xml"}},
            {"id": "acled", "name": "Conflict Tracker", "kind": "custom", "enabled": False},
        ],
    },
    # Economic indicators
    "ECONOMIC": {
        "tier": "HIGH",
        "cadence": "daily",
        "sources": [
            {"id": "fred-gdp", "name": "GDP", "kind": "api", "params": _fred("GDP")},
            {"id": "fred-cpi", "name": "CPI", "kind": "api", "params": _fred("CPIAUCSL")},
            {"id": "fred-unrate", "name": "Unemployment", "kind": "api", "params": _fred("UNRATE")},
            {"id": "fred-houst", "name": "Housing Starts", "kind": "api", "params": _fred("HOUST")},
            {"id": "fred-umcsent", "name": "Consumer Sentiment", "kind": "api", "params": _fred("UMCSENT")},
            {"id": "ism-pmi", "name": "PMI", "kind": "custom", "enabled": False},
        ],
    },
    # Options flow
    "OPTIONS": {
        "tier": "CRITICAL",
        "cadence": "5 minutes",
        "sources": [
            {"id": "unusual-whales", "name": "Unusual Options", "kind": "api",
             "params": {
                 "url": "https://api.unusualwhales.com/api/option-trades/flow-alerts",
                 "api_key_env": "UNUSUALWHALES_API_KEY",
                 "items_path": "data",
                 "title_field": "alert_rule",
                 "ticker_field": "ticker",
                 "timestamp_field": "created_at",
             }},
            {"id": "flow-algo", "name": "Flow Algo", "kind": "custom", "enabled": False},
            {"id": "dark-pool", "name": "Dark Pool", "kind": "custom", "enabled": False},
            {"id": "put-call-ratio", "name": "Put/Call Ratio", "kind": "scrape",
             "params": {"url": "https://www.cboe.com/us/options/market_statistics/daily/"}},
            {"id": "gamma-exposure", "name": "Gamma Exposure", "kind": "custom", "enabled": False},
        ],
    },
    # Political & regulatory
    "POLITICAL": {
        "tier": "MEDIUM",
        "cadence": "1 hour",
        "sources": [
            {"id": "white-house", "name": "White House", "kind": "rss",
             "params": {"url": "https://www.whitehouse.gov/briefing-room/feed/"}},
            {"id": "congress-bills", "name": "Congress Bills", "kind": "api",
             "params": {
                 "url": "https://api.congress.gov/v3/bill",
                 "api_key_env": "CONGRESS_API_KEY",
                 "query": {"format": "json", "sort": "updateDate+desc"},
                 "items_path": "bills",
                 "url_field": "url",
                 "timestamp_field": "updateDate",
             }},
            {"id": "sec-proposed-rules", "name": "SEC Proposals", "kind": "rss",
             "params": {"url": "https://www.sec.gov/rss/rules/proposed.xml"}},
            {"id": "policy-changes", "name": "Policy Changes", "kind": "custom", "enabled": False},
        ],
    },
}
