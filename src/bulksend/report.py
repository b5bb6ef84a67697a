"""Terminal rendering of the run plan, per-attempt progress and the final report."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from xrpl.utils import drops_to_xrp

from bulksend.constants import DestinationMode, Outcome
from bulksend.models import RunConfig, RunReport, TransferAttempt

OUTCOME_STYLE = {
    Outcome.SUCCESS: "green",
    Outcome.CHAIN_REJECTED: "red",
    Outcome.SUBMIT_ERROR: "yellow",
}


def format_amount(drops: int) -> str:
    return f"{drops_to_xrp(str(drops)):.6f}"


def render_plan(console: Console, config: RunConfig, *, rpc_url: str | None = None) -> None:
    mode = "Random addresses" if config.destination_mode is DestinationMode.RANDOM else "Self address"
    plan = Table.grid(padding=(0, 2))
    if rpc_url:
        plan.add_row("RPC Endpoint", rpc_url)
    plan.add_row("Number of TXs", str(config.tx_count))
    plan.add_row("Amount Range", f"{format_amount(config.min_amount)} - {format_amount(config.max_amount)} {config.denom}")
    plan.add_row("Delay Range", f"{config.min_delay_ms / 1000:g} - {config.max_delay_ms / 1000:g} seconds")
    plan.add_row("Fee per TX", f"{format_amount(config.fee.amount)} {config.denom}")
    plan.add_row("Destination Mode", mode)
    plan.add_row("Worst case cost", f"{format_amount(config.estimated_cost)} {config.denom}")
    console.print(Panel(plan, title="Transaction Plan", expand=False))


def render_attempt(console: Console, config: RunConfig, attempt: TransferAttempt) -> None:
    style = OUTCOME_STYLE[attempt.outcome]
    head = f"TX {attempt.index}/{config.tx_count}: {format_amount(attempt.amount)} {config.denom} -> {attempt.destination}"
    if attempt.destination_fallback:
        head += " [yellow](random address failed, sent to self)[/]"
    console.print(head)
    match attempt.outcome:
        case Outcome.SUCCESS:
            console.print(f"   [{style}]successful[/] Tx Hash: {attempt.tx_hash}")
        case Outcome.CHAIN_REJECTED:
            console.print(f"   [{style}]failed with code {attempt.code}[/]: {attempt.raw_log}")
        case Outcome.SUBMIT_ERROR:
            console.print(f"   [{style}]failed with error[/]: {attempt.error}")
            if attempt.error_payload:
                console.print(f"   Response data: {attempt.error_payload}")


def render_summary(console: Console, report: RunReport, config: RunConfig) -> None:
    table = Table(title="[bold]Transaction Summary[/]", show_header=True, header_style="bold", expand=False)
    table.add_column("#", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Destination", no_wrap=True)
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")

    for a in report.attempts:
        detail = a.tx_hash if a.succeeded else (a.raw_log or a.error or "")
        table.add_row(str(a.index), format_amount(a.amount), a.destination, a.outcome.value, detail, style=OUTCOME_STYLE[a.outcome])
    console.print(table)

    console.print(f"Successful: {report.success_count}/{config.tx_count} ({report.success_rate:.1f}%)")
    console.print(f"Total sent: {format_amount(report.total_sent)} {config.denom}")
    if report.fallback_count:
        console.print(f"[yellow]Random address fallbacks: {report.fallback_count}[/]")
    if report.cancelled:
        console.print(f"[yellow]Run stopped early after {len(report.attempts)} attempts[/]")
    if report.final_balance is not None:
        console.print(f"Final balance: {format_amount(report.final_balance)} {config.denom}")
