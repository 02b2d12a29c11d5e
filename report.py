"""
Terminal reporting: tool-server catalog, per-agent tool status, agent
descriptions and filtered-market tables.
"""
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from agents.tool_servers import CATEGORIES
from models.types import FilteredMarket, RiskLevel, TradeAction

console = Console()

RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
}

ACTION_LABELS = {
    TradeAction.BUY_YES: "[bold green]YES↑[/bold green]",
    TradeAction.BUY_NO: "[bold red]NO↓[/bold red]",
    TradeAction.AVOID: "[dim]AVOID[/dim]",
}


def print_tool_server_catalog(registry):
    """Catalog grouped by category, with availability and missing env vars."""
    available = {s.name for s in registry.available_servers()}
    table = Table(
        title=f"[bold cyan]Tool Servers[/bold cyan] [dim]({len(available)}/{len(registry.all_servers())} available)[/dim]",
        box=box.ROUNDED,
        border_style="cyan",
    )
    table.add_column("Category", style="cyan", width=8)
    table.add_column("Server", style="white")
    table.add_column("Pri", justify="right", width=4)
    table.add_column("Free", width=4)
    table.add_column("Status")

    for category in CATEGORIES:
        servers = registry.servers_by_category(category)
        for i, server in enumerate(servers):
            if server.name in available:
                status = "[green]ready[/green]"
            else:
                status = f"[red]missing {', '.join(registry.missing_env_vars(server.name))}[/red]"
            table.add_row(
                category if i == 0 else "",
                server.name,
                str(server.priority),
                "✓" if server.is_free else "",
                status,
            )
        if servers:
            table.add_section()

    console.print(table)


def print_agent_tool_status(agent_registry, tool_registry):
    table = Table(title="[bold cyan]Agent Tool Status[/bold cyan]", box=box.ROUNDED, border_style="cyan")
    table.add_column("Agent", style="white")
    table.add_column("Connected", style="green")
    table.add_column("Preferred")
    table.add_column("Unavailable", style="dim red")

    for agent in agent_registry.agents:
        preferred = agent.preferred_tool_servers()
        unavailable = [n for n in preferred if not tool_registry.is_server_available(n)]
        table.add_row(
            f"{agent.config.name} [dim]({agent.category})[/dim]",
            ", ".join(agent.tools.connected) or "[dim]none[/dim]",
            ", ".join(preferred),
            ", ".join(unavailable),
        )
    console.print(table)


def print_agent_panel(agent):
    color = "green" if agent.is_enabled else "dim"
    console.print(Panel(agent.describe(), border_style=color, title=agent.category))


def print_filtered_markets(results: list[FilteredMarket]):
    if not results:
        console.print("[dim]No markets passed the filter.[/dim]\n")
        return

    table = Table(
        title=f"[bold green]{len(results)} Market{'s' if len(results) != 1 else ''} Selected[/bold green]",
        box=box.ROUNDED,
        show_lines=True,
        border_style="green",
    )
    table.add_column("#", style="dim", width=3, justify="right")
    table.add_column("Market", style="white", min_width=25, no_wrap=False)
    table.add_column("Mkt", justify="right", width=5)
    table.add_column("Est", justify="right", width=5)
    table.add_column("Edge", justify="right", width=7)
    table.add_column("Attr", justify="right", width=5)
    table.add_column("Risk", width=6)
    table.add_column("Action", width=8)

    for i, r in enumerate(results[:20], 1):
        a = r.analysis
        price = r.market.yes_price()
        if price is not None and a.estimated_probability is not None:
            edge = (a.estimated_probability - price) * 100
            edge_color = "green" if abs(edge) >= 10 else "yellow"
            edge_str = f"[{edge_color}]{edge:+.1f}%[/{edge_color}]"
        else:
            edge_str = "[dim]-[/dim]"

        risk_color = RISK_COLORS.get(a.risk_level, "white")
        q = r.market.question
        q = q[:52] + "..." if len(q) > 55 else q

        table.add_row(
            str(i), q,
            f"{price:.3f}" if price is not None else "-",
            f"{a.estimated_probability:.3f}" if a.estimated_probability is not None else "-",
            edge_str,
            f"{a.attractiveness:.0%}",
            f"[{risk_color}]{a.risk_level.value}[/{risk_color}]",
            ACTION_LABELS.get(a.recommended_action, str(a.recommended_action)),
        )

    console.print(table)

    for i, r in enumerate(results[:3], 1):
        a = r.analysis
        if a.reasoning:
            console.print(
                f"[dim]{i}. {r.market.question[:60]}[/dim]\n"
                f"   {a.reasoning[:300]}"
                + (f"\n   [dim]Sources: {', '.join(a.sources[:3])}[/dim]" if a.sources else "")
            )
    console.print()
