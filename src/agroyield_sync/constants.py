"""Constants and mappings for the AgroYield sync layer."""

# Stable token (USDC) precision used by every on-chain amount
TOKEN_DECIMALS = 6

# Polygon Amoy testnet (80002)
EXPECTED_CHAIN_ID = "0x13882"
NETWORK_PARAMS = {
    "chainId": EXPECTED_CHAIN_ID,
    "chainName": "Polygon Amoy Testnet",
    "nativeCurrency": {"name": "MATIC", "symbol": "MATIC", "decimals": 18},
    "rpcUrls": ["https://rpc-amoy.polygon.technology"],
    "blockExplorerUrls": ["https://amoy.polygonscan.com/"],
}

# EIP-1193 provider error codes
# https://eips.ethereum.org/EIPS/eip-1193#provider-errors
USER_REJECTED = 4001
UNRECOGNIZED_CHAIN = 4902
REQUEST_PENDING = -32002

# Gateways for JSON documents, in order of preference
JSON_GATEWAYS = (
    "https://gateway.pinata.cloud/ipfs/",
    "https://ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
)

# Gateways for images, most to least reliable
IMAGE_GATEWAYS = (
    "https://ipfs.io/ipfs/",
    "https://gateway.ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
    "https://cf-ipfs.com/ipfs/",
    "https://ipfs.infura.io/ipfs/",
)

_UNSPLASH_PARAMS = "?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&q=80&cs=tinysrgb"

DEFAULT_CATEGORY = "Rice Cultivation"
DEFAULT_FALLBACK_IMAGE = (
    "https://images.unsplash.com/photo-1596422846543-75c6fc197f06" + _UNSPLASH_PARAMS
)
FALLBACK_IMAGES = {
    "Rice Cultivation": DEFAULT_FALLBACK_IMAGE,
    "Fruit Cultivation": "https://images.unsplash.com/photo-1550258987-190a2d41a8ba"
    + _UNSPLASH_PARAMS,
    "Vegetable Cultivation": "https://images.unsplash.com/photo-1596124579925-2beb6db8621b"
    + _UNSPLASH_PARAMS,
    "Livestock": "https://images.unsplash.com/photo-1534337621606-e3dcc5fdc4b4"
    + _UNSPLASH_PARAMS,
    "Fisheries": "https://images.unsplash.com/photo-1544943910-4c1dc44aab44" + _UNSPLASH_PARAMS,
    "Agroforestry": "https://images.unsplash.com/photo-1441974231531-c6227db76b6e"
    + _UNSPLASH_PARAMS,
    "Poultry": "https://images.unsplash.com/photo-1548550023-2bdb3c5beed7" + _UNSPLASH_PARAMS,
    "Dairy Farming": "https://images.unsplash.com/photo-1560493676-04071c5f467b"
    + _UNSPLASH_PARAMS,
}

# Content address shapes: (prefix, minimum length)
CONTENT_REF_SHAPES = (
    ("Qm", 46),  # CIDv0
    ("b", 50),  # CIDv1 base32
    ("f", 50),  # CIDv1 base16
)

PINATA_FILE_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"
PINATA_JSON_URL = "https://api.pinata.cloud/pinning/pinJSONToIPFS"

IMAGE_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
DOCUMENT_CONTENT_TYPES = ("application/pdf", "application/msword", "text/plain")
MAX_IMAGE_SIZE = 10 * 1024 * 1024
MAX_DOCUMENT_SIZE = 5 * 1024 * 1024
MIN_FILE_SIZE = 1024


def fallback_image(category: str | None) -> str:
    """Return the placeholder image for a project category."""
    if category is None:
        return DEFAULT_FALLBACK_IMAGE
    return FALLBACK_IMAGES.get(category, DEFAULT_FALLBACK_IMAGE)
