import logging
import time
from datetime import datetime, timezone
from functools import wraps

import requests
from flask import current_app, has_app_context

from pickem import db
from pickem.errors import UpstreamDataError
from pickem.models import Game
from pickem.utils.timezone_utils import get_current_season, parse_date_token

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "http://localhost:8080/feed"
DEFAULT_TIMEOUT = 10
REGULAR_SEASON_WEEKS = 18

REQUIRED_FIELDS = ("gameID", "week", "homeTeam", "awayTeam", "scheduledDate")


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            retries = getattr(self, "max_retries", None) or max_retries
            for attempt in range(retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status = e.response.status_code if e.response is not None else None
                    if status != 429 and (status is None or status < 500):
                        # Client errors will not fix themselves
                        raise UpstreamDataError(f"Feed request rejected ({status}): {e}")
                    if status == 429:
                        delay = float(
                            e.response.headers.get(
                                "Retry-After", base_delay * (backoff_factor**attempt)
                            )
                        )
                        logger.warning(
                            f"Rate limited. Waiting {delay}s before retry {attempt + 1}/{retries}"
                        )
                    else:
                        delay = base_delay * (backoff_factor**attempt)
                        logger.warning(
                            f"Server error {status}. Waiting {delay}s before retry {attempt + 1}/{retries}"
                        )
                    if attempt < retries - 1:
                        time.sleep(delay)

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{retries}"
                    )
                    if attempt < retries - 1:
                        time.sleep(delay)

            raise UpstreamDataError(f"Max retries ({retries}) exceeded")

        return wrapper

    return decorator


def _optional_int(value):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DataSync:
    """
    Pulls schedules and results from the result feed into the games table
    """

    def __init__(self, feed_url=None, timeout=None, max_retries=None):
        config = current_app.config if has_app_context() else {}
        self.feed_url = (feed_url or config.get("RESULT_FEED_URL") or DEFAULT_FEED_URL).rstrip("/")
        self.timeout = timeout or config.get("RESULT_FEED_TIMEOUT", DEFAULT_TIMEOUT)
        self.max_retries = max_retries or config.get("RESULT_FEED_MAX_RETRIES", 3)

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "Pickem-Engine/1.0"})

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = 60
        self.request_timestamps = []

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, url, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout:
            logger.warning(f"Request timeout for {url}")
            raise
        except requests.exceptions.ConnectionError:
            logger.warning(f"Connection error for {url}")
            raise

    def get_rate_limit_status(self):
        """Get current rate limit status"""
        current_time = time.time()
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        return {
            "total_requests": self.request_count,
            "requests_last_minute": len(self.request_timestamps),
            "max_requests_per_minute": self.max_requests_per_minute,
            "time_since_last_request": (
                current_time - self.last_request_time if self.last_request_time else 0
            ),
            "min_request_interval": self.min_request_interval,
        }

    def fetch_week(self, week, season):
        """Raw feed rows for one week"""
        response = self._make_api_request(
            f"{self.feed_url}/games", params={"season": season, "week": week}
        )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamDataError(f"Feed returned invalid JSON for week {week}: {e}")

        if isinstance(data, dict):
            data = data.get("games", data.get("body", []))
        if not isinstance(data, list):
            raise UpstreamDataError(f"Unexpected feed payload for week {week}")
        return data

    def apply_game(self, row, season):
        """
        Create or update one game from a feed row.

        Result fields are only written when present, so a partial row never
        wipes a known score. Returns (game, created).
        """
        missing = [name for name in REQUIRED_FIELDS if not row.get(name)]
        if missing:
            raise UpstreamDataError(
                f"Feed row missing {', '.join(missing)}", game_id=row.get("gameID")
            )

        game_id = str(row["gameID"])
        week = _optional_int(row["week"])
        if week is None:
            raise UpstreamDataError(f"Feed row has invalid week {row['week']!r}", game_id=game_id)
        # Validate the date now so bad rows never reach the schedule
        parse_date_token(row["scheduledDate"])

        game = db.session.get(Game, game_id)
        created = game is None
        if created:
            game = Game(game_id=game_id)
            db.session.add(game)

        game.season = _optional_int(row.get("season")) or season
        game.week = week
        game.home_team = str(row["homeTeam"]).upper()
        game.away_team = str(row["awayTeam"]).upper()
        game.scheduled_date = str(row["scheduledDate"])
        game.scheduled_time_text = row.get("scheduledTime")

        if "status" in row:
            game.raw_status = row.get("status")
        if row.get("homeScore") not in (None, ""):
            game.home_score = _optional_int(row["homeScore"])
        if row.get("awayScore") not in (None, ""):
            game.away_score = _optional_int(row["awayScore"])
        if row.get("spreadCoverageWinner"):
            game.spread_coverage_winner = str(row["spreadCoverageWinner"]).upper()
        if row.get("scoringPlays") is not None:
            game.scoring_plays = list(row["scoringPlays"])
        if row.get("playerStats") is not None:
            game.player_stats = list(row["playerStats"])

        game.last_synced_at = datetime.now(timezone.utc)
        return game, created

    def sync_week(self, week, season=None):
        """Sync one week; returns a summary dict, raises UpstreamDataError when the feed fails"""
        season = season or get_current_season()
        rows = self.fetch_week(week, season)

        created = updated = skipped = 0
        for row in rows:
            try:
                _, was_created = self.apply_game(row, season)
                if was_created:
                    created += 1
                else:
                    updated += 1
            except UpstreamDataError as e:
                skipped += 1
                logger.warning(f"Skipping feed row for week {week}: {e}")

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            f"Synced week {week} ({season}): {created} created, {updated} updated, {skipped} skipped"
        )
        return {"week": week, "created": created, "updated": updated, "skipped": skipped}

    def sync_season_data(self, season=None):
        """Sync all regular season weeks; a failing week does not stop the rest"""
        season = season or get_current_season()
        logger.info(f"Starting sync for {season} season")

        results = []
        failures = []
        for week in range(1, REGULAR_SEASON_WEEKS + 1):
            try:
                results.append(self.sync_week(week, season))
            except UpstreamDataError as e:
                failures.append(week)
                logger.error(f"Error syncing week {week} of {season}: {e}")

        games = sum(r["created"] + r["updated"] for r in results)
        if failures:
            return False, f"Synced {games} games; weeks {failures} failed"
        return True, f"Synced {games} games"
