"""
VOD Archive Emote Catalog — name → emote id lookup tables.

Tables are fetched from the origin at startup and on every reconciliation and
published as one immutable EmoteTable; a refresh swaps the whole table, and a
table that fails to load keeps its previous contents.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import InvalidRequest, UpstreamError
from vodarchive.services.proxy.container_proxy import validate_relative_path
from vodarchive.services.upstream.upstream_client import UpstreamClient, quote_path, quote_segment

logger = logging.getLogger(__name__)

FIRST_PARTY = "first-party"
THIRD_PARTY = "third-party"
CHEERS = "cheers"

# table name → asset kind used in upstream asset paths
ASSET_KIND = {FIRST_PARTY: "firstParty", THIRD_PARTY: "thirdParty"}


def _frozen(mapping: Dict) -> Mapping:
    return MappingProxyType(mapping)


@dataclass(frozen=True)
class EmoteTable:
    first_party: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    third_party: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    cheers: Mapping[str, Tuple[int, ...]] = field(default_factory=lambda: _frozen({}))

    def table(self, name: str) -> Optional[Mapping[str, Any]]:
        return {FIRST_PARTY: self.first_party, THIRD_PARTY: self.third_party, CHEERS: self.cheers}.get(name)

    def resolve(self, name: str) -> Optional[Tuple[str, str]]:
        """``(asset_kind, emote_id)`` for a display name; third-party names shadow first-party."""
        if name in self.third_party:
            return ASSET_KIND[THIRD_PARTY], self.third_party[name]
        if name in self.first_party:
            return ASSET_KIND[FIRST_PARTY], self.first_party[name]
        return None

    def sizes(self) -> Dict[str, int]:
        return {
            FIRST_PARTY: len(self.first_party),
            THIRD_PARTY: len(self.third_party),
            CHEERS: len(self.cheers),
        }


def parse_name_table(document: Any) -> Dict[str, str]:
    if not isinstance(document, dict):
        return {}
    return {
        str(name): str(emote_id)
        for name, emote_id in document.items()
        if emote_id is not None and not isinstance(emote_id, (dict, list))
    }


def parse_cheer_table(document: Any) -> Dict[str, Tuple[int, ...]]:
    if not isinstance(document, dict):
        return {}
    cheers = {}
    for provider, amounts in document.items():
        if not isinstance(amounts, list):
            continue
        cheers[str(provider)] = tuple(
            sorted(a for a in amounts if isinstance(a, int) and not isinstance(a, bool))
        )
    return cheers


class EmoteCatalog:
    def __init__(self, upstream: UpstreamClient, settings: Optional[Settings] = None):
        self.upstream = upstream
        self.settings = settings or get_settings()
        self._table = EmoteTable()

    def snapshot(self) -> EmoteTable:
        return self._table

    def asset_path(self, kind: str, asset: str) -> str:
        if kind not in self.settings.emote_asset_kinds:
            raise InvalidRequest(f"Unknown emote kind: {kind}")
        return self.settings.emote_asset_path_template.format(
            kind=quote_segment(kind), asset=quote_path(validate_relative_path(asset)),
        )

    async def _fetch_table(self, name: str) -> Optional[Any]:
        path = self.settings.emote_table_paths.get(name)
        if not path:
            return None
        try:
            return await self.upstream.fetch_json(path, resource="emote_table")
        except UpstreamError as e:
            logger.warning(f"Emote table {name} unavailable, keeping previous: {e.message}")
            return None

    async def refresh(self) -> EmoteTable:
        current = self._table
        first, third, cheers = await asyncio.gather(
            self._fetch_table(FIRST_PARTY),
            self._fetch_table(THIRD_PARTY),
            self._fetch_table(CHEERS),
        )
        table = EmoteTable(
            first_party=_frozen(parse_name_table(first)) if first is not None else current.first_party,
            third_party=_frozen(parse_name_table(third)) if third is not None else current.third_party,
            cheers=_frozen(parse_cheer_table(cheers)) if cheers is not None else current.cheers,
        )
        self._table = table
        logger.info(f"Emote catalog refreshed: {table.sizes()}")
        return table
