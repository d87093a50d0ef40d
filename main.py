from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import click
import schedule
from rich.console import Console
from rich.table import Table

from services.auth_service import AuthService
from services.auto_reply_worker import AutoReplyWorker, CycleReport, MessageOutcome, ReplyTemplate
from services.errors import AuthError, FetchError
from services.gmail_service import GmailService
from services.label_resolver import LabelResolver
from services.persistence_service import ReplyLedger
from services.statistics_service import StatisticsService
from utils.config import AccountConfig, AppConfig, load_config
from utils.logger import configure_logging


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    account: AccountConfig
    auth: AuthService
    stats: StatisticsService
    ledger: ReplyLedger
    console: Console
    _gmail: Optional[GmailService] = None

    @property
    def gmail(self) -> GmailService:
        if self._gmail is None:
            self._gmail = GmailService.from_auth(self.auth, user_id=self.account.user_id)
        return self._gmail

    def build_worker(self, max_results: int | None, dry_run: bool) -> AutoReplyWorker:
        reply = self.config.reply
        return AutoReplyWorker(
            self.gmail,
            labels=LabelResolver(self.gmail),
            template=ReplyTemplate(subject=reply.subject, body=reply.body),
            sentinel_label=reply.label,
            account=self.account.name,
            ledger=self.ledger,
            query=reply.inbox_query,
            max_results=max_results or self.config.fetch_batch_size,
            dry_run=dry_run,
        )


def build_context(env_file: str, account_name: str | None, interactive: bool = True) -> AppContext:
    config = load_config(env_file)
    account = config.get_account(account_name)
    configure_logging(config.log_dir, config.log_level, account=account.name)

    return AppContext(
        config=config,
        account=account,
        auth=AuthService(account, interactive=interactive),
        stats=StatisticsService(config.stats_file),
        ledger=ReplyLedger(config.db_path),
        console=Console(),
    )


@click.group()
@click.option("--env-file", default=".env", show_default=True, help="Path to the .env file")
@click.option("--account", help="Account name defined in accounts.json")
@click.option(
    "--interactive/--no-interactive",
    default=True,
    help="Allow opening a browser for OAuth consent when no valid token is cached",
)
@click.pass_context
def cli(ctx: click.Context, env_file: str, account: Optional[str], interactive: bool) -> None:
    """Gmail out-of-office auto-responder."""

    try:
        ctx.obj = build_context(env_file, account, interactive=interactive)
    except KeyError as exc:  # invalid account
        raise click.BadParameter(str(exc), param_hint="--account") from exc


@cli.command("auth")
@click.pass_obj
def authorize(app: AppContext) -> None:
    """Run the OAuth consent flow and store the token."""

    try:
        app.auth.authenticate()
    except AuthError as exc:
        raise click.ClickException(str(exc)) from exc
    app.console.print(f"[bold green]Token stored at {app.account.token_file}.[/bold green]")


@cli.command("labels")
@click.pass_obj
def list_labels(app: AppContext) -> None:
    """List the labels on the account."""

    try:
        labels = app.gmail.list_labels()
    except (AuthError, FetchError) as exc:
        raise click.ClickException(str(exc)) from exc
    if not labels:
        app.console.print("No labels found.")
        return

    table = Table(title=f"Labels for {app.account.name}")
    table.add_column("Name")
    table.add_column("ID", overflow="fold")
    table.add_column("Type")
    for label in sorted(labels, key=lambda item: item.name.lower()):
        table.add_row(label.name, label.id, label.type)
    app.console.print(table)


@cli.command("poll")
@click.option("--max-results", type=int, default=None, help="Maximum number of messages to inspect")
@click.option("--dry-run/--apply", default=False, help="Preview replies without sending anything")
@click.pass_obj
def poll(app: AppContext, max_results: int | None, dry_run: bool) -> None:
    """Run a single auto-reply cycle over unread inbox messages."""

    try:
        report = _run_cycle(app, max_results, dry_run)
    except (AuthError, FetchError) as exc:
        raise click.ClickException(str(exc)) from exc
    app.console.print(_build_report_table(app, report, dry_run))


@cli.command("run")
@click.option("--interval", type=int, default=None, help="Interval in minutes (defaults to POLL_INTERVAL_MINUTES)")
@click.option("--max-results", type=int, default=None, help="Limit messages per cycle")
@click.option("--dry-run/--apply", default=False, help="Preview replies without sending anything")
@click.pass_obj
def run(app: AppContext, interval: int | None, max_results: int | None, dry_run: bool) -> None:
    """Poll the inbox on an interval using the schedule library."""

    minutes = interval or app.config.poll_interval_minutes

    def job() -> None:
        _scheduled_cycle(app, max_results, dry_run, minutes)

    schedule.every(minutes).minutes.do(job)

    app.console.print(
        f"Polling every {minutes} minute(s) for account {app.account.name}. Press Ctrl+C to stop."
    )
    try:
        job()
        while True:
            schedule.run_pending()
            time.sleep(1)
    except AuthError as exc:
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        app.console.print("Scheduler stopped.")
    finally:
        schedule.clear()


@cli.command("stats")
@click.pass_obj
def stats(app: AppContext) -> None:
    """Display local activity statistics."""

    snapshot = app.stats.snapshot()
    if not snapshot:
        app.console.print("No stats recorded yet.")
        return

    table = Table(title="Global stats")
    table.add_column("Metric")
    table.add_column("Value")
    for key in ("cycles", "messages_seen", "replies_sent", "recovered", "skipped", "failures"):
        table.add_row(key.replace("_", " ").capitalize(), str(snapshot.get(key, 0)))
    app.console.print(table)

    accounts = snapshot.get("accounts", {})
    if accounts:
        acct_table = Table(title="Per-account stats")
        for column in ("Account", "Cycles", "Seen", "Replied", "Recovered", "Skipped", "Failures"):
            acct_table.add_column(column)
        for name, data in accounts.items():
            acct_table.add_row(
                name,
                str(data.get("cycles", 0)),
                str(data.get("messages_seen", 0)),
                str(data.get("replies_sent", 0)),
                str(data.get("recovered", 0)),
                str(data.get("skipped", 0)),
                str(data.get("failures", 0)),
            )
        app.console.print(acct_table)


@cli.command("history")
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_obj
def history(app: AppContext, limit: int) -> None:
    """Show the most recent auto-replies recorded locally."""

    entries = app.ledger.recent_entries(limit, account=app.account.name)
    if not entries:
        app.console.print("No auto-replies recorded yet.")
        return

    table = Table(title=f"Recent auto-replies for {app.account.name}")
    table.add_column("Message", overflow="fold")
    table.add_column("State")
    table.add_column("Reply", overflow="fold")
    table.add_column("Updated")
    for entry in entries:
        table.add_row(entry.message_id, entry.state.value, entry.reply_id or "-", entry.updated_at.isoformat())
    app.console.print(table)


def _run_cycle(app: AppContext, max_results: int | None, dry_run: bool) -> CycleReport:
    report = app.build_worker(max_results, dry_run).poll_inbox()
    if not dry_run:
        app.stats.record_cycle(app.account.name, report)
    return report


def _scheduled_cycle(app: AppContext, max_results: int | None, dry_run: bool, minutes: int) -> Optional[CycleReport]:
    try:
        report = _run_cycle(app, max_results, dry_run)
    except FetchError as exc:
        LOGGER.error("Cycle aborted, will retry in %s minute(s): %s", minutes, exc)
        return None
    app.console.print(
        f"[scheduler] {report.seen} seen, {report.replied} replied, {report.recovered} recovered, "
        f"{report.skipped} skipped, {report.failed} failed."
    )
    return report


def _build_report_table(app: AppContext, report: CycleReport, dry_run: bool) -> Table:
    title = f"{'Dry-run' if dry_run else 'Auto-reply'} cycle for {app.account.name}"
    table = Table(title=title)
    table.add_column("Outcome")
    table.add_column("Count")
    for outcome in MessageOutcome:
        count = report.outcomes[outcome]
        if count:
            table.add_row(outcome.value.replace("_", " "), str(count))
    if not report.seen:
        table.add_row("no unread messages", "0")
    if report.failed_ids:
        table.caption = "Failed: " + ", ".join(report.failed_ids)
    return table


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
