import json
import time
from datetime import datetime
from pathlib import Path

from rich.live import Live
from rich.table import Table
from rich.layout import Layout
from rich.panel import Panel
from rich import box

DEFAULT_SNAPSHOT_PATH = Path("logs/positions.json")


def get_positions_table(data: dict) -> Table:
    table = Table(box=box.ROUNDED, expand=True)
    table.add_column("Token", style="cyan", no_wrap=True)
    table.add_column("Buy Price", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Buy Time", justify="right")
    table.add_column("Status", style="magenta")

    positions = data.get("positions", [])
    if not positions:
        table.add_row("-", "-", "-", "-", "-", "-")
        return table

    for p in positions:
        token = f"{p.get('name', '???')} ({p.get('symbol', '???')})"
        entry = p.get("entry_price") or 0.0
        curr = p.get("current_price") or 0.0
        change_pct = ((curr / entry) - 1.0) * 100 if entry else 0.0

        if change_pct > 0:
            change_str = f"[green]+{change_pct:.1f}%[/green]"
        elif change_pct < -10:
            change_str = f"[bold red]{change_pct:.1f}%[/bold red]"
        else:
            change_str = f"[red]{change_pct:.1f}%[/red]"

        bought_at = datetime.fromtimestamp(p.get("created_at", 0)).strftime("%H:%M:%S")
        table.add_row(
            token,
            f"{entry:.10f}",
            f"{curr:.10f}",
            change_str,
            bought_at,
            p.get("status_label") or p.get("status", "?"),
        )
    return table


def make_layout() -> Layout:
    layout = Layout()
    layout.split(
        Layout(name="header", size=3),
        Layout(name="main"),
        Layout(name="footer", size=3)
    )
    return layout


def run_dashboard(snapshot_path: Path = DEFAULT_SNAPSHOT_PATH, refresh_sec: float = 1.0):
    """Render the positions snapshot written by the bot until Ctrl+C."""
    snapshot_path = Path(snapshot_path)
    layout = make_layout()
    layout["header"].update(Panel("🚀 PUMP.FUN SNIPER - ACTIVE TOKENS 🚀", style="bold white on blue"))
    layout["footer"].update(Panel("Press Ctrl+C to exit", style="dim"))

    with Live(layout, refresh_per_second=1, screen=True):
        while True:
            try:
                if snapshot_path.exists():
                    text = snapshot_path.read_text(encoding="utf-8")
                    if text.strip():
                        try:
                            data = json.loads(text)
                        except json.JSONDecodeError:
                            # bot is mid-write
                            data = None
                        if data is not None:
                            ts = data.get("ts", 0)
                            lag = time.time() - ts
                            status = f"Last Update: {datetime.fromtimestamp(ts).strftime('%H:%M:%S')} (Lag: {lag:.1f}s)"
                            if lag > 30:
                                status += " [bold red]⚠️  STALE[/bold red]"
                            layout["header"].update(Panel(f"🚀 PUMP.FUN SNIPER | {status}", style="bold white on blue"))
                            layout["main"].update(Panel(get_positions_table(data), title="Active Tokens", border_style="green"))
                else:
                    layout["main"].update(Panel("Waiting for bot data...", title="Status", border_style="yellow"))

                time.sleep(refresh_sec)
            except KeyboardInterrupt:
                break
