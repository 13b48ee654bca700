from __future__ import annotations

from urllib.parse import quote


def build_favicon_svg(
    label: str = "[e]",
    *,
    background: str = "#2e1065",
    text_color: str = "#e9d5ff",
    border_color: str | None = "#a855f766",
) -> str:
    """Return a square SVG badge showing a short bracketed label."""
    normalized = (label or "[e]").strip() or "[e]"
    normalized = normalized[:3]
    font_size = {1: "34", 2: "28"}.get(len(normalized), "22")
    border_markup = (
        f'<rect x="1.5" y="1.5" width="61" height="61" rx="12" ry="12" fill="none" '
        f'stroke="{border_color}" stroke-width="1.5" />'
        if border_color
        else ""
    )
    return f"""<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 64 64" role="img" aria-label="{normalized} icon">
  <rect width="64" height="64" rx="14" ry="14" fill="{background}" />
  {border_markup}
  <text x="32" y="41" text-anchor="middle" font-family="ui-monospace, 'SFMono-Regular', Menlo, monospace"
        font-size="{font_size}" font-weight="700" fill="{text_color}">{normalized}</text>
</svg>"""


def favicon_data_url(label: str = "[e]", **colors: str | None) -> str:
    return "data:image/svg+xml," + quote(build_favicon_svg(label, **colors))


EDITOR_FAVICON_URL = favicon_data_url()


__all__ = ["build_favicon_svg", "favicon_data_url", "EDITOR_FAVICON_URL"]
