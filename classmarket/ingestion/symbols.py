"""Display-name to external-symbol mapping for real-data instruments."""

from typing import Optional

from ..models.instrument import ProductType

DOMESTIC_SUFFIXES = (".KS", ".KQ")

REAL_STOCK_SYMBOLS = {
    # Korean stocks (KOSPI .KS, KOSDAQ .KQ)
    "삼성전자": "005930.KS",
    "삼성전자우": "005935.KS",
    "SK하이닉스": "000660.KS",
    "LG에너지솔루션": "373220.KS",
    "삼성바이오로직스": "207940.KS",
    "현대차": "005380.KS",
    "기아": "000270.KS",
    "NAVER": "035420.KS",
    "네이버": "035420.KS",
    "카카오": "035720.KS",
    "LG화학": "051910.KS",
    "POSCO홀딩스": "005490.KS",
    "삼성SDI": "006400.KS",
    "셀트리온": "068270.KS",
    "현대모비스": "012330.KS",
    "KB금융": "105560.KS",
    "신한지주": "055550.KS",
    "하나금융지주": "086790.KS",
    "SK이노베이션": "096770.KS",
    "SK": "034730.KS",
    "LG전자": "066570.KS",
    "카카오뱅크": "323410.KS",
    "크래프톤": "259960.KS",
    "두산에너빌리티": "034020.KS",
    "HMM": "011200.KS",

    # US stocks
    "Apple": "AAPL",
    "애플": "AAPL",
    "Microsoft": "MSFT",
    "마이크로소프트": "MSFT",
    "Google": "GOOGL",
    "구글": "GOOGL",
    "Amazon": "AMZN",
    "아마존": "AMZN",
    "Tesla": "TSLA",
    "테슬라": "TSLA",
    "NVIDIA": "NVDA",
    "엔비디아": "NVDA",
    "Meta": "META",
    "메타": "META",
    "Netflix": "NFLX",
    "넷플릭스": "NFLX",

    # Korean ETFs
    "KODEX 200": "069500.KS",
    "KODEX 코스닥150": "229200.KS",
    "KODEX 레버리지": "122630.KS",
    "KODEX 인버스": "114800.KS",
    "TIGER 200": "102110.KS",
    "TIGER 미국S&P500": "360750.KS",
    "TIGER 미국나스닥100": "133690.KS",
    "KOSEF 국고채10년": "148070.KS",
    "KODEX 미국채10년선물": "308620.KS",

    # US ETFs
    "SPY": "SPY",
    "QQQ": "QQQ",
    "DIA": "DIA",
    "IWM": "IWM",
    "VTI": "VTI",

    # US bond ETFs
    "TLT": "TLT",
    "IEF": "IEF",
    "SHY": "SHY",
    "LQD": "LQD",
    "HYG": "HYG",
    "BND": "BND",

    # Commodity ETFs
    "GLD": "GLD",
    "SLV": "SLV",
    "USO": "USO",
}

US_INDEX_ETFS = ("SPY", "QQQ", "DIA", "IWM", "VTI")
BOND_ETFS = ("TLT", "IEF", "SHY", "LQD", "HYG", "BND")
COMMODITY_ETFS = ("GLD", "SLV", "USO")
US_ETFS = US_INDEX_ETFS + BOND_ETFS + COMMODITY_ETFS

DOMESTIC_ETF_BRANDS = ("KODEX", "TIGER", "KOSEF")
BOND_NAME_MARKERS = ("국고채", "채권", "미국채")

DEFAULT_REAL_INSTRUMENTS = [
    {"name": "삼성전자", "sector": "TECH", "product_type": "stock"},
    {"name": "SK하이닉스", "sector": "TECH", "product_type": "stock"},
    {"name": "NAVER", "sector": "TECH", "product_type": "stock"},
    {"name": "카카오", "sector": "TECH", "product_type": "stock"},
    {"name": "현대차", "sector": "INDUSTRIAL", "product_type": "stock"},
    {"name": "KB금융", "sector": "FINANCE", "product_type": "stock"},
    {"name": "Apple", "sector": "TECH", "product_type": "stock"},
    {"name": "Tesla", "sector": "INDUSTRIAL", "product_type": "stock"},
    {"name": "KODEX 200", "sector": "INDEX", "product_type": "etf"},
    {"name": "SPY", "sector": "INDEX", "product_type": "etf"},
    {"name": "TLT", "sector": "BOND", "product_type": "bond"},
    {"name": "KOSEF 국고채10년", "sector": "BOND", "product_type": "bond"},
]


def resolve_symbol(name: Optional[str], stored_symbol: Optional[str] = None) -> Optional[str]:
    """Stored symbol wins; otherwise look the display name up in the table."""
    if stored_symbol:
        return stored_symbol
    if not name:
        return None
    return REAL_STOCK_SYMBOLS.get(name)


def is_domestic_symbol(symbol: str) -> bool:
    return symbol.upper().endswith(DOMESTIC_SUFFIXES)


def detect_product_type(name: str, symbol: str,
                        declared: Optional[str] = None) -> ProductType:
    """
    Infer the product type of a real-data instrument.

    Bond funds are classified as bonds so sales are taxed at the bond rate;
    other funds are ETFs. Anything not recognised keeps the declared type.
    """
    symbol_upper = symbol.upper()
    if symbol_upper in BOND_ETFS or any(marker in name for marker in BOND_NAME_MARKERS):
        return ProductType.BOND
    if symbol_upper in US_ETFS or any(brand in name for brand in DOMESTIC_ETF_BRANDS):
        return ProductType.ETF
    return ProductType.parse(declared)


def available_symbols() -> dict[str, list[dict[str, str]]]:
    """Known symbols grouped for the admin picker."""
    def entries(predicate) -> list[dict[str, str]]:
        return [{"name": name, "symbol": symbol}
                for name, symbol in REAL_STOCK_SYMBOLS.items() if predicate(name, symbol)]

    def is_domestic_fund(name: str) -> bool:
        return any(brand in name for brand in DOMESTIC_ETF_BRANDS)

    return {
        "korean_stocks": entries(
            lambda name, symbol: is_domestic_symbol(symbol) and not is_domestic_fund(name)),
        "us_stocks": entries(
            lambda name, symbol: "." not in symbol and symbol not in US_ETFS),
        "korean_etf": entries(lambda name, symbol: is_domestic_fund(name)),
        "us_etf": [{"name": s, "symbol": s} for s in US_INDEX_ETFS],
        "bond_etf": [{"name": s, "symbol": s} for s in BOND_ETFS],
        "commodity_etf": [{"name": s, "symbol": s} for s in COMMODITY_ETFS],
    }
