"""Protocol constants for the replicating market maker.

All token amounts are integers scaled by 10^18 (wad).
"""

# Fixed-point base unit
ONE = 10**18

# Sigma is stored as a fixed-point percentage: 10_000 == 100% volatility
PERCENTAGE = 10_000
MAX_SIGMA = 10_000_000

SECONDS_PER_YEAR = 31_536_000

# Liquidity locked forever when a pool is created
MIN_LIQUIDITY = 1_000

# Invariant magnitudes below 1e-4 (in reserve units) are rounding noise
INVARIANT_EPSILON = 10**14

# Basis points denominator for fee rates
BPS = 10_000
DEFAULT_BORROW_FEE_BPS = 15
# Swaps are fee-free unless configured
DEFAULT_SWAP_FEE_BPS = 0

# Cumulative and fee-growth accumulators wrap at this width
ACCUMULATOR_BITS = 256

UINT128_MAX = 2**128 - 1
UINT32_MAX = 2**32 - 1

# Identity hashed into every pool id when no engine address is configured
DEFAULT_ENGINE_ADDRESS = "0x0000000000000000000000000000000000000001"
