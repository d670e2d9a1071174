from soboss.core.logging import _render


def test_render_puts_known_keys_first() -> None:
    line = _render(None, "info", {"event": "device_available", "level": "info", "zeta": 1, "device": "tv", "app": "soboss"})
    assert line == "[bold cyan]📶 device_available[/bold cyan]  app='soboss' device='tv' zeta=1"


def test_render_styles_by_level() -> None:
    assert _render(None, "warning", {"event": "odd", "level": "warning"}) == "[bold yellow]⚠️ odd[/bold yellow]"
    assert _render(None, "error", {"event": "job_failed", "level": "error"}) == "[bold red]❌ job_failed[/bold red]"
