"""
VOD Archive Manifest Rewriter — purely textual M3U8 transform.

Every line of the playlist is classified into exactly one kind:

  BLANK      empty or whitespace only                 → untouched
  COMMENT    starts with '#' but is not an '#EXT' tag  → untouched
  DIRECTIVE  '#EXT…' tag                              → only URI="…" attribute
                                                        values naming a container
                                                        are rewritten
  REFERENCE  anything else (a media URI)               → segment refs become
                                                        absolute upstream URLs,
                                                        container refs become
                                                        local proxy paths

A reference that is already absolute (http/https) or already routed through
the container proxy is left alone, so rewriting is idempotent. Line endings
are carried through verbatim, so the output has exactly the input's lines.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

ABSOLUTE_SCHEMES = ("http://", "https://")

_URI_ATTRIBUTE = re.compile(r'URI="([^"]*)"')


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    DIRECTIVE = "directive"
    REFERENCE = "reference"


@dataclass(frozen=True)
class ManifestLine:
    kind: LineKind
    text: str
    ending: str = ""  # "\n", "\r\n", … or "" for a final unterminated line

    def with_text(self, text: str) -> "ManifestLine":
        return ManifestLine(kind=self.kind, text=text, ending=self.ending)


def classify(text: str) -> LineKind:
    stripped = text.strip()
    if not stripped:
        return LineKind.BLANK
    if stripped.startswith("#EXT"):
        return LineKind.DIRECTIVE
    if stripped.startswith("#"):
        return LineKind.COMMENT
    return LineKind.REFERENCE


def _split_ending(raw: str) -> Tuple[str, str]:
    body = raw.rstrip("\r\n")
    return body, raw[len(body):]


@dataclass
class ManifestDocument:
    lines: List[ManifestLine]

    @classmethod
    def parse(cls, text: str) -> "ManifestDocument":
        lines = []
        for raw in text.splitlines(keepends=True):
            body, ending = _split_ending(raw)
            lines.append(ManifestLine(kind=classify(body), text=body, ending=ending))
        return cls(lines=lines)

    def render(self) -> str:
        return "".join(line.text + line.ending for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)


def strip_query(reference: str) -> str:
    """Path part of a reference, used for extension matching only."""
    return reference.split("?", 1)[0].split("#", 1)[0]


def is_absolute(reference: str) -> bool:
    return reference.lower().startswith(ABSOLUTE_SCHEMES)


class ManifestRewriter:
    """Rewrites relative media references of an upstream playlist."""

    def __init__(
        self,
        segment_extension: str = ".ts",
        container_extension: str = ".mp4",
        container_prefix: str = "/proxy/container",
    ):
        self.segment_extension = segment_extension.lower()
        self.container_extension = container_extension.lower()
        self.container_prefix = "/" + container_prefix.strip("/")

    def _is_proxied(self, reference: str) -> bool:
        return reference.startswith(self.container_prefix + "/")

    def _is_container(self, reference: str) -> bool:
        return strip_query(reference).lower().endswith(self.container_extension)

    def _is_segment(self, reference: str) -> bool:
        return strip_query(reference).lower().endswith(self.segment_extension)

    def proxy_path(self, reference: str) -> str:
        return f"{self.container_prefix}/{reference.lstrip('/')}"

    # ── Per-kind transforms ──────────────────────────────────────────────

    def rewrite_reference(self, reference: str, base_segment_url: str) -> str:
        if is_absolute(reference) or self._is_proxied(reference):
            return reference
        if self._is_container(reference):
            return self.proxy_path(reference)
        if self._is_segment(reference):
            return f"{base_segment_url.rstrip('/')}/{reference.lstrip('/')}"
        return reference

    def rewrite_directive(self, text: str) -> str:
        def _swap(match: re.Match) -> str:
            value = match.group(1)
            if is_absolute(value) or self._is_proxied(value) or not self._is_container(value):
                return match.group(0)
            return f'URI="{self.proxy_path(value)}"'

        return _URI_ATTRIBUTE.sub(_swap, text)

    def rewrite_line(self, line: ManifestLine, base_segment_url: str) -> ManifestLine:
        if line.kind == LineKind.DIRECTIVE:
            return line.with_text(self.rewrite_directive(line.text))
        if line.kind == LineKind.REFERENCE:
            stripped = line.text.strip()
            lead = line.text[: len(line.text) - len(line.text.lstrip())]
            trail = line.text[len(line.text.rstrip()):]
            return line.with_text(lead + self.rewrite_reference(stripped, base_segment_url) + trail)
        return line

    # ── Public API ───────────────────────────────────────────────────────

    def rewrite_document(self, document: ManifestDocument, base_segment_url: str) -> ManifestDocument:
        return ManifestDocument(
            lines=[self.rewrite_line(line, base_segment_url) for line in document.lines]
        )

    def rewrite(self, manifest_text: str, base_segment_url: str) -> str:
        document = ManifestDocument.parse(manifest_text)
        return self.rewrite_document(document, base_segment_url).render()


def rewrite(
    manifest_text: str,
    base_segment_url: str,
    segment_extension: str = ".ts",
    container_extension: str = ".mp4",
    container_prefix: str = "/proxy/container",
) -> str:
    """Module-level convenience wrapper around ``ManifestRewriter.rewrite``."""
    rewriter = ManifestRewriter(segment_extension, container_extension, container_prefix)
    return rewriter.rewrite(manifest_text, base_segment_url)
