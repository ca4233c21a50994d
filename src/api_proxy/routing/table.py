"""Prefix routing table.

Maps an inbound request path to the upstream base URL registered for the
longest matching prefix. The table is built once at startup and never
mutated; request handlers share it read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, NamedTuple
from urllib.parse import urlsplit


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """A single prefix -> upstream mapping.

    Args:
        prefix: Literal path prefix, starting with ``/``.
        target_base: Absolute ``http``/``https`` base URL of the upstream.
    """

    prefix: str
    target_base: str


class RouteMatch(NamedTuple):
    """Result of resolving a request path against the table."""

    prefix: str
    remainder: str
    target_base: str


# ------------------------------------------------------------------
# Default upstreams. Insertion order is the display order of the
# landing page; it has no effect on resolution.
# ------------------------------------------------------------------
DEFAULT_ROUTES: Mapping[str, str] = MappingProxyType({
    '/anthropic': 'https://api.anthropic.com',
    '/claude': 'https://api.anthropic.com',
    '/cerebras': 'https://api.cerebras.ai',
    '/cohere': 'https://api.cohere.ai',
    '/discord': 'https://discord.com/api',
    '/fireworks': 'https://api.fireworks.ai',
    '/gemini': 'https://generativelanguage.googleapis.com',
    '/groq': 'https://api.groq.com/openai',
    '/huggingface': 'https://api-inference.huggingface.co',
    '/meta': 'https://www.meta.ai/api',
    '/novita': 'https://api.novita.ai',
    '/nvidia': 'https://integrate.api.nvidia.com',
    '/oaipro': 'https://api.oaipro.com',
    '/openai': 'https://api.openai.com',
    '/openrouter': 'https://openrouter.ai/api',
    '/portkey': 'https://api.portkey.ai',
    '/reka': 'https://api.reka.ai',
    '/telegram': 'https://api.telegram.org',
    '/together': 'https://api.together.xyz',
    '/xai': 'https://api.x.ai',
    '/github': 'https://api.github.com',
})


def _validate_entry(entry: RouteEntry) -> None:
    if not entry.prefix or not entry.prefix.startswith('/'):
        raise ValueError(f'Route prefix must start with "/": {entry.prefix!r}')
    try:
        parts = urlsplit(entry.target_base)
    except ValueError as exc:
        raise ValueError(f'Unparsable target base for {entry.prefix!r}: {exc}') from exc
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        raise ValueError(
            f'Target base for {entry.prefix!r} must be an absolute http(s) URL, '
            f'got {entry.target_base!r}'
        )


class RouteTable:
    """Immutable longest-prefix routing table.

    Candidates are ranked once at construction: longest prefix first,
    equal lengths ordered lexicographically. ``resolve`` walks that
    ranking and returns the first literal prefix match.
    """

    __slots__ = ('_entries', '_ranked', '_by_prefix')

    def __init__(self, entries: Iterable[RouteEntry]) -> None:
        entries = tuple(entries)
        seen: set[str] = set()
        for entry in entries:
            _validate_entry(entry)
            if entry.prefix in seen:
                raise ValueError(f'Duplicate route prefix: {entry.prefix!r}')
            seen.add(entry.prefix)

        self._entries: tuple[RouteEntry, ...] = entries
        self._ranked: tuple[RouteEntry, ...] = tuple(
            sorted(entries, key=lambda e: (-len(e.prefix), e.prefix))
        )
        self._by_prefix: Mapping[str, str] = MappingProxyType(
            {e.prefix: e.target_base for e in entries}
        )

    @classmethod
    def from_mapping(cls, routes: Mapping[str, str]) -> RouteTable:
        return cls(RouteEntry(prefix, base) for prefix, base in routes.items())

    @property
    def entries(self) -> tuple[RouteEntry, ...]:
        """Entries in configuration order."""
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self._entries)

    def target_for(self, prefix: str) -> str | None:
        return self._by_prefix.get(prefix)

    def resolve(self, path: str) -> RouteMatch | None:
        """Resolve ``path`` to its longest matching prefix.

        Returns:
            ``RouteMatch`` with the prefix, the path remainder after it
            (possibly empty) and the upstream base, or ``None`` when no
            prefix matches.
        """
        for entry in self._ranked:
            if path.startswith(entry.prefix):
                return RouteMatch(
                    prefix=entry.prefix,
                    remainder=path[len(entry.prefix):],
                    target_base=entry.target_base,
                )
        return None
