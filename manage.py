#!/usr/bin/env python3
"""
Pick'em Management CLI

This script provides command-line management functionality for the pick'em engine.
"""

import os

import click
from flask.cli import with_appcontext
from flask_migrate import downgrade, migrate, upgrade
from sqlalchemy.exc import SQLAlchemyError

# Background jobs stay off for one-shot commands unless asked for explicitly
os.environ.setdefault("SCHEDULER_ENABLED", "False")

from pickem import create_app, db  # noqa: E402
from pickem.errors import PickemError, UpstreamDataError  # noqa: E402
from pickem.models import Game, Pick, User  # noqa: E402
from pickem.services.leaderboard import LeaderboardAggregator  # noqa: E402
from pickem.services.outcome_resolver import OutcomeResolver  # noqa: E402
from pickem.services.pick_store import PickStore  # noqa: E402
from pickem.services.scheduler_service import scheduler_service  # noqa: E402
from pickem.utils.data_sync import DataSync  # noqa: E402
from pickem.utils.scoring import ScoringEngine  # noqa: E402
from pickem.utils.timezone_utils import get_current_season  # noqa: E402

app = create_app()

season_option = click.option(
    "--season", type=int, default=None, help="Season year (default: current season)"
)


@click.group()
def cli():
    """Pick'em Management CLI"""
    pass


# Database Commands
@cli.group(name="db")
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command(name="init")
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    if os.path.exists("migrations"):
        click.echo("❌ Migrations directory already exists!")
        return

    from flask_migrate import init as flask_migrate_init

    flask_migrate_init()
    click.echo("✅ Migrations repository initialized!")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    downgrade(revision=revision)
    click.echo(f"✅ Rolled back to {revision}")


# Data Sync Commands
@cli.group()
def sync():
    """Result feed synchronization commands"""
    pass


@sync.command(name="week")
@click.argument("week", type=int)
@season_option
@with_appcontext
def sync_week(week, season):
    """Sync one week of games from the result feed"""
    try:
        result = DataSync().sync_week(week, season or get_current_season())
        click.echo(
            f"✅ Week {week}: {result['created']} created, {result['updated']} updated, "
            f"{result['skipped']} skipped"
        )
    except UpstreamDataError as e:
        click.echo(f"❌ Feed error: {e}")


@sync.command(name="season")
@season_option
@with_appcontext
def sync_season(season):
    """Sync every regular season week"""
    success, message = DataSync().sync_season_data(season or get_current_season())
    click.echo(f"{'✅' if success else '⚠️ '} {message}")


# Resolution and Scoring Commands
@cli.command()
@click.argument("week", type=int)
@season_option
@with_appcontext
def resolve(week, season):
    """Resolve pick outcomes for a week"""
    summary = OutcomeResolver().resolve_week(week, season or get_current_season())
    click.echo(
        f"✅ Week {week}: {summary.games_resolved} games decided, "
        f"{summary.games_pending} pending, {summary.picks_updated} picks updated"
    )
    if summary.games_unresolved:
        click.echo(f"⚠️  Unresolved games: {', '.join(summary.games_unresolved)}")


@cli.command()
@click.argument("week", type=int)
@season_option
@with_appcontext
def score(week, season):
    """Score a week's resolved picks"""
    records = ScoringEngine().score_week(week, season or get_current_season())
    click.echo(f"✅ Week {week}: {len(records)} scoring records")


@cli.command()
@click.option("--week", type=int, default=None, help="Show weekly standings instead")
@season_option
@with_appcontext
def leaderboard(week, season):
    """Print season (or weekly) standings"""
    aggregator = LeaderboardAggregator()
    season = season or get_current_season()
    rows = (
        aggregator.weekly_standings(week, season)
        if week
        else aggregator.season_standings(season)
    )

    if not rows:
        click.echo("No scores yet.")
        return

    title = f"Week {week}" if week else f"Season {season}"
    click.echo(f"🏆 {title} standings:")
    for rank, row in enumerate(rows, 1):
        click.echo(
            f"  {rank:>2}. {row['display_name']:<24} {row['total_points']:>4} pts  "
            f"{row['wins']}-{row['losses']}  fantasy {row['fantasy_points']:.2f}"
        )


# Prop Bet Commands
@cli.group()
def propbet():
    """Prop bet moderation"""
    pass


def _moderate(pick_id, status):
    try:
        pick = PickStore().set_prop_bet_status(pick_id, status)
    except PickemError as e:
        click.echo(f"❌ {e}")
        return
    if pick is None:
        click.echo(f"❌ No prop bet on pick {pick_id}")
        return
    ScoringEngine().score_week(pick.week, pick.season)
    click.echo(f"✅ Prop bet on pick {pick_id} {status}: {pick.prop_bet}")


@propbet.command()
@click.argument("pick_id", type=int)
@with_appcontext
def approve(pick_id):
    """Approve a prop bet"""
    _moderate(pick_id, "approved")


@propbet.command()
@click.argument("pick_id", type=int)
@with_appcontext
def reject(pick_id):
    """Reject a prop bet"""
    _moderate(pick_id, "rejected")


# Scheduler Commands
@cli.group()
def scheduler():
    """Background scheduler commands"""
    pass


@scheduler.command(name="status")
@with_appcontext
def scheduler_status():
    """Show background job status"""
    status = scheduler_service.get_status()
    click.echo(f"Scheduler running: {'🟢 yes' if status['is_running'] else '⚪ no'}")
    for job in status["jobs"]:
        click.echo(f"  {job['id']}: next run {job['next_run']} ({job['trigger']})")
    stats = status["stats"]
    click.echo(
        f"Syncs: {stats['successful_syncs']}/{stats['total_syncs']} successful, "
        f"last error: {stats['last_error'] or 'none'}"
    )


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show system status"""
    season = get_current_season()
    current_week = Game.current_week(season)
    click.echo(f"✅ Current Season: {season} (Week {current_week or '-'})")

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    game_count = Game.query.filter_by(season=season).count()
    click.echo(f"🏈 Games: {game_count}")

    finalized = Pick.query.filter_by(season=season, is_finalized=True).count()
    click.echo(f"📝 Submitted picks: {finalized}")


if __name__ == "__main__":
    with app.app_context():
        cli()
