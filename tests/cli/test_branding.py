from __future__ import annotations

from io import StringIO

from rich.console import Console

from solrpc.cli.branding import SOLRPC_THEME, render_notification


def test_render_notification_prints_header_and_payload() -> None:
    stream = StringIO()
    console = Console(file=stream, theme=SOLRPC_THEME, force_terminal=False, color_system=None)

    render_notification(console, "slot", 3, {"parent": 74, "root": 42, "slot": 75})

    output = stream.getvalue()
    assert "#3 slotNotification" in output
    assert '"slot": 75' in output
