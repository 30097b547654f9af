"""Static market listing served when CoinGecko and the cache both fail.

Prices are indicative only. Anything built from this list is reported with
``source="fallback"`` and ``is_fallback=True`` so clients can show it as
placeholder data.
"""

_IMAGE_BASE = "https://assets.coingecko.com/coins/images"

# (id, symbol, name, image path, price, market cap, 24h change %, 24h volume)
_FALLBACK_ROWS = [
    ("bitcoin", "btc", "Bitcoin", "1/large/bitcoin.png",
     "95420", "1890000000000", "1.8", "45000000000"),
    ("ethereum", "eth", "Ethereum", "279/large/ethereum.png",
     "3485", "420000000000", "2.1", "18000000000"),
    ("binancecoin", "bnb", "BNB", "825/large/bnb-icon2_2x.png",
     "685", "98000000000", "0.5", "2100000000"),
    ("solana", "sol", "Solana", "4128/large/solana.png",
     "245", "118000000000", "-1.2", "4500000000"),
    ("ripple", "xrp", "XRP", "44/large/xrp-symbol-white-128.png",
     "2.32", "133000000000", "3.8", "8500000000"),
    ("cardano", "ada", "Cardano", "975/large/cardano.png",
     "1.15", "40000000000", "2.5", "1800000000"),
    ("dogecoin", "doge", "Dogecoin", "5/large/dogecoin.png",
     "0.42", "62000000000", "4.2", "3200000000"),
    ("avalanche-2", "avax", "Avalanche", "12559/large/Avalanche_Circle_RedWhite_Trans.png",
     "45.8", "18000000000", "-0.8", "850000000"),
    ("chainlink", "link", "Chainlink", "877/large/chainlink-new-logo.png",
     "25.4", "15000000000", "1.9", "420000000"),
    ("polygon", "matic", "Polygon", "4713/large/matic-token-icon.png",
     "0.58", "5800000000", "3.1", "280000000"),
    ("polkadot", "dot", "Polkadot", "12171/large/polkadot.png",
     "8.95", "12000000000", "1.2", "320000000"),
    ("litecoin", "ltc", "Litecoin", "2/large/litecoin.png",
     "108.5", "8100000000", "0.9", "650000000"),
    ("uniswap", "uni", "Uniswap", "12504/large/uniswap-uni.png",
     "15.8", "9500000000", "2.4", "180000000"),
    ("stellar", "xlm", "Stellar", "100/large/Stellar_symbol_black_RGB.png",
     "0.465", "14000000000", "1.8", "420000000"),
    ("cosmos", "atom", "Cosmos", "1481/large/cosmos_hub.png",
     "7.25", "2800000000", "-0.5", "95000000"),
]  # fmt: skip


def get_fallback_assets() -> list[dict]:
    """Return the fallback listing as CoinGecko-shaped dictionaries.

    Ranked by position in the list. ``last_updated`` is left empty because
    these figures have no meaningful timestamp.
    """
    return [
        {
            "id": asset_id,
            "symbol": symbol,
            "name": name,
            "image": f"{_IMAGE_BASE}/{image}",
            "current_price": price,
            "market_cap": market_cap,
            "market_cap_rank": rank,
            "price_change_percentage_24h": change,
            "total_volume": volume,
            "last_updated": None,
        }
        for rank, (asset_id, symbol, name, image, price, market_cap, change, volume) in enumerate(
            _FALLBACK_ROWS, start=1
        )
    ]
