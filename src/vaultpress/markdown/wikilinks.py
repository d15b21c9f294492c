"""markdown-it-py plugins: Obsidian wikilinks/embeds and heading anchors.

Rendering of `[[Target#Section|Alias]]` and `![[image.png]]` is resolved
through callables placed in the render `env`:

* ``env["resolve_wikilink"](target, anchor) -> str | None`` returns an href;
* ``env["resolve_media"](target) -> str | None`` returns a public media URL.

Unresolved wikilinks render as `<span class="wikilink broken">`.
"""
from __future__ import annotations

from pathlib import PurePosixPath

from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml
from markdown_it.rules_core import StateCore
from markdown_it.rules_inline import StateInline

from .extract import HeadingSlugger, inline_text

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".bmp", ".tif", ".tiff", ".svg"}


def _wikilink_rule(state: StateInline, silent: bool) -> bool:
    src = state.src
    pos = state.pos
    embed = src.startswith("![[", pos)
    if not embed and not src.startswith("[[", pos):
        return False
    start = pos + (3 if embed else 2)
    end = src.find("]]", start)
    if end < 0 or end + 2 > state.posMax:
        return False
    inner = src[start:end]
    if not inner.strip() or "\n" in inner or "[" in inner:
        return False

    if not silent:
        target, _, alias = inner.partition("|")
        target, _, anchor = target.partition("#")
        target, anchor, alias = target.strip(), anchor.strip(), alias.strip()
        token = state.push("wikilink_embed" if embed else "wikilink", "", 0)
        token.meta = {"target": target, "anchor": anchor, "alias": alias}
        token.content = alias or target or anchor
        token.markup = inner
    state.pos = end + 2
    return True


def _render_wikilink(self, tokens, idx, options, env) -> str:
    token = tokens[idx]
    meta = token.meta
    resolve = (env or {}).get("resolve_wikilink")
    href = resolve(meta["target"], meta["anchor"]) if resolve else None
    text = escapeHtml(token.content)
    if href is None:
        return f'<span class="wikilink broken">{text}</span>'
    return f'<a href="{escapeHtml(href)}" class="wikilink">{text}</a>'


def _render_wikilink_embed(self, tokens, idx, options, env) -> str:
    token = tokens[idx]
    target = token.meta["target"]
    if PurePosixPath(target).suffix.lower() not in IMAGE_EXTENSIONS:
        return _render_wikilink(self, tokens, idx, options, env)
    resolve = (env or {}).get("resolve_media")
    src = (resolve(target) if resolve else None) or target
    alias = token.meta["alias"]
    attrs = f'src="{escapeHtml(src)}" alt="{escapeHtml(PurePosixPath(target).stem)}"'
    if alias.isdigit():
        attrs += f' width="{alias}"'
    return f"<img {attrs}>"


def wikilinks_plugin(md: MarkdownIt) -> None:
    md.inline.ruler.before("link", "wikilink", _wikilink_rule)
    md.add_render_rule("wikilink", _render_wikilink)
    md.add_render_rule("wikilink_embed", _render_wikilink_embed)


def _heading_ids(state: StateCore) -> None:
    slugger = HeadingSlugger()
    tokens = state.tokens
    for i, tok in enumerate(tokens):
        if tok.type == "heading_open" and i + 1 < len(tokens):
            tok.attrSet("id", slugger.slug(" ".join(inline_text(tokens[i + 1]).split())))


def heading_ids_plugin(md: MarkdownIt) -> None:
    md.core.ruler.push("heading_ids", _heading_ids)
