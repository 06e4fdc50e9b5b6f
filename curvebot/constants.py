from decimal import Decimal

WEI_DECIMALS   = 18
WEI            = Decimal(10) ** WEI_DECIMALS
ZERO           = Decimal(0)
ZERO_ADDRESS   = "0x" + "0" * 40

# eth_call read methods; selectors are derived from these signatures
CURVE_FIELDS = (
    "graduated()",
    "pool()",
    "currentPrice()",
    "progress()",
    "realQuaiReserves()",
    "realTokenReserves()",
    "virtualQuaiReserves()",
    "virtualTokenReserves()",
)
POOL_FIELDS = ("reserveQuai()", "reserveToken()")
