"""Public link construction for articles."""

from __future__ import annotations

from .types import DEFAULT_GATEWAY, Article, PublicGateway, Source, SourceKind


def resolve_link(
    article: Article,
    source: Source,
    gateway: PublicGateway = DEFAULT_GATEWAY,
) -> str:
    """Return a publicly resolvable URL for an article.

    Args:
        article: The article to link to
        source: The article's owning source
        gateway: Public gateway host; ignored for DNS sources

    Returns:
        ``https://{gateway}/ipfs/{cid}{link}`` for an ENS source with a
        resolved content address, the link verbatim for a DNS source, and
        ``https://{gateway}/ipns/{name}{link}`` for everything else.

    Examples:
        >>> resolve_link(article, ens_source, PublicGateway.CLOUDFLARE)
        'https://www.cloudflare-ipfs.com/ipfs/bafy123/2024-01-01/'
    """
    host = PublicGateway(gateway).value
    if source.kind is SourceKind.DNS:
        return article.link
    if source.kind is SourceKind.ENS and source.ipfs:
        return f"https://{host}/ipfs/{source.ipfs}{article.link}"
    return f"https://{host}/ipns/{source.ipns or source.ens or ''}{article.link}"


def source_root_link(source: Source, gateway: PublicGateway = DEFAULT_GATEWAY) -> str:
    """Return the public URL of a source's content root."""
    if source.kind is SourceKind.DNS:
        return source.feed_address or ""
    host = PublicGateway(gateway).value
    if source.kind is SourceKind.ENS and source.ipfs:
        return f"https://{host}/ipfs/{source.ipfs}/"
    return f"https://{host}/ipns/{source.ipns or source.ens or ''}/"
