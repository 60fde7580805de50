"""Console styling for the solrpc CLI."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.theme import Theme

SOLRPC_THEME = Theme(
    {
        "solrpc.header": "bold #9945FF",
        "solrpc.topic": "bold #14F195",
        "solrpc.text.secondary": "#94A3B8",
        "solrpc.log.info": "#38BDF8",
        "solrpc.log.warn": "#FBBF24",
        "solrpc.log.error": "#FB7185",
    }
)

SEVERITY_STYLES = {
    "info": "solrpc.log.info",
    "warning": "solrpc.log.warn",
    "error": "solrpc.log.error",
}


def themed_console(**kwargs: Any) -> Console:
    """Return a Console configured with the solrpc theme."""
    return Console(theme=SOLRPC_THEME, **kwargs)


def render_notification(console: Console, topic: str, index: int, payload: Any) -> None:
    console.print(f"[solrpc.header]#{index}[/] [solrpc.topic]{topic}Notification[/]")
    console.print_json(data=payload)


__all__ = ["SOLRPC_THEME", "SEVERITY_STYLES", "themed_console", "render_notification"]
