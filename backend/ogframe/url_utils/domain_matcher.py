"""
Domain Matching

Allow-list patterns supported:
- exact:              example.com
- subdomain wildcard: *.example.com  (also matches example.com itself)
- port wildcard:      localhost:*    (localhost, localhost:8080, ...)
"""

# Two-label public suffixes treated as a single TLD
SPECIAL_TLDS = {"co.uk", "com.au", "co.jp", "com.br", "co.nz"}


def match_domain(actual: str, pattern: str) -> bool:
    """
    Match a hostname against an allow-list pattern.

    Examples:
        match_domain("example.com", "example.com")        -> True
        match_domain("sub.example.com", "*.example.com")  -> True
        match_domain("example.com", "*.example.com")      -> True
        match_domain("notexample.com", "*.example.com")   -> False
        match_domain("localhost:8080", "localhost:*")     -> True
    """
    if actual == pattern:
        return True

    if pattern.startswith("*."):
        base = pattern[2:]
        return actual == base or actual.endswith("." + base)

    if ":*" in pattern:
        base = pattern.split(":", 1)[0]
        return actual == base or actual.startswith(base + ":")

    return False


def matches_any(actual: str, patterns) -> bool:
    return any(match_domain(actual, pattern) for pattern in patterns)


def get_base_domain(hostname: str) -> str:
    """
    Collapse a hostname to its registrable domain.

    a.b.example.com -> example.com, sub.example.co.uk -> example.co.uk
    """
    parts = hostname.split(".")
    if len(parts) <= 2:
        return hostname

    last_two = ".".join(parts[-2:])
    if last_two in SPECIAL_TLDS:
        return ".".join(parts[-3:])

    return last_two
