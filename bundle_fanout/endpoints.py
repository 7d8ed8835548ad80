from dataclasses import dataclass
from urllib.parse import urlparse

@dataclass(frozen=True)
class Endpoint:
    code: str   # "mainnet", "amsterdam", "ny", ...
    url: str    # Block engine bundle submission URL

DEFAULT_ENDPOINTS: list[Endpoint] = [
    Endpoint(
        code="mainnet",
        url="https://mainnet.block-engine.jito.wtf/api/v1/bundles",
    ),
    Endpoint(
        code="amsterdam",
        url="https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
    ),
    Endpoint(
        code="frankfurt",
        url="https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
    ),
    Endpoint(
        code="ny",
        url="https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
    ),
    Endpoint(
        code="tokyo",
        url="https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
    ),
]

def _code_from_url(url: str) -> str:
    # "ny.mainnet.block-engine.jito.wtf" -> "ny"
    host = urlparse(url).hostname
    if not host:
        raise ValueError(f"Invalid endpoint URL: {url}")
    return host.split(".")[0]

def parse_endpoints(text: str) -> list[Endpoint]:
    """
    Parse a comma-separated endpoint list.

    Entries are either bare URLs or ``code=url`` pairs. Bare URLs take their
    code from the first label of the host name.
    """
    endpoints = []
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry and not entry.startswith("http"):
            code, url = (part.strip() for part in entry.split("=", 1))
        else:
            code, url = _code_from_url(entry), entry
        if not urlparse(url).scheme.startswith("http"):
            raise ValueError(f"Invalid endpoint URL: {url}")
        endpoints.append(Endpoint(code=code, url=url))

    if not endpoints:
        raise ValueError("Endpoint list is empty")
    return endpoints
