# clubpoints/processor.py
"""
Tournament result processing.

Each tournament moves UNSEEN -> IN_FLIGHT -> RECORDED, or UNSEEN -> IN_FLIGHT
-> FAILED. Only RECORDED is persisted (as the processed marker); a failed
tournament has no marker and is picked up again by the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from clubpoints.api_client import Tournament
from clubpoints.database import (
    ClubAward,
    Database,
    MemberAward,
    PlayerResult,
    TournamentBatch,
)
from clubpoints.eligibility import evaluate
from clubpoints.teams import (
    ParticipantRow,
    RosterEntry,
    Team,
    group_by_team,
    order_by_placement,
    team_composition,
    top_four,
)
from clubpoints.tiers import Tier, classify, placement_suffix, points_at, stat_field_for_placement

LOGGER = logging.getLogger(__name__)


class TournamentFeed(Protocol):
    def list_tournaments(self, since: datetime, until: datetime) -> List[Tournament]: ...

    def list_participants(self, tournament_id: str) -> List[ParticipantRow]: ...


class TournamentStatus(str, Enum):
    UNSEEN = "unseen"
    IN_FLIGHT = "in_flight"
    RECORDED = "recorded"
    FAILED = "failed"


@dataclass(frozen=True)
class RunContext:
    """Season and roster snapshot shared by every step of one run."""

    season: int
    roster: Mapping[str, RosterEntry]

    @classmethod
    def load(cls, db: Database) -> "RunContext":
        season = db.get_current_season()
        roster = db.get_roster()
        LOGGER.info("Current season loaded: %s", season)
        LOGGER.info("Loaded %s rostered players", len(roster))
        return cls(season=season, roster=roster)

    def with_roster(self, roster: Mapping[str, RosterEntry]) -> "RunContext":
        return replace(self, roster=roster)


@dataclass
class ClubAwardSummary:
    club_name: str
    points: Decimal
    placement: int


@dataclass
class TournamentOutcome:
    tournament_id: str
    name: Optional[str]
    tier: Tier
    status: TournamentStatus
    skipped: bool = False
    teams: int = 0
    individual_results: int = 0
    club_awards: List[ClubAwardSummary] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunReport:
    season: int
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    outcomes: List[TournamentOutcome] = field(default_factory=list)
    profile_sync: Optional[Dict[str, int]] = None

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == TournamentStatus.RECORDED and not o.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == TournamentStatus.FAILED)

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("TOURNAMENT RUN - SUMMARY")
        print("=" * 60)
        print(f"Season:      {self.season}")
        if self.since and self.until:
            print(f"Window:      {self.since.date()} -> {self.until.date()}")
        print(f"Tournaments: {len(self.outcomes)}")
        print(f"  Processed: {self.processed}")
        print(f"  Skipped:   {self.skipped}")
        print(f"  Failed:    {self.failed}")
        for outcome in self.outcomes:
            if outcome.skipped:
                continue
            print(f"  [{outcome.status.value}] {outcome.name} ({outcome.tier.value})")
            for award in outcome.club_awards:
                print(
                    f"      {award.club_name}: +{award.points} "
                    f"({award.placement}{placement_suffix(award.placement)} place)"
                )
            if outcome.error:
                print(f"      error: {outcome.error}")
        if self.profile_sync is not None:
            print()
            print("--- Profile sync ---")
            print(f"  Players updated: {self.profile_sync.get('updated', 0)}/{self.profile_sync.get('total', 0)}")
            print(f"  Failed:          {self.profile_sync.get('failed', 0)}")
            print(f"  Clubs updated:   {self.profile_sync.get('clubs_updated', 0)}")
        print("=" * 60)


class ResultProcessor:
    """Turns fetched tournaments into individual and club results."""

    def __init__(self, db: Database, feed: TournamentFeed):
        self.db = db
        self.feed = feed

    def status_of(self, tournament_id: str) -> TournamentStatus:
        if self.db.is_tournament_processed(tournament_id):
            return TournamentStatus.RECORDED
        return TournamentStatus.UNSEEN

    def run(
        self,
        context: RunContext,
        days: int = 1,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> RunReport:
        """
        Process every tournament in the lookback window, in feed order.

        A malformed or unreachable tournament list raises and aborts the run;
        failures inside one tournament only fail that tournament.
        """
        until = until or datetime.now(timezone.utc)
        since = since or until - timedelta(days=days)
        report = RunReport(season=context.season, since=since, until=until)

        LOGGER.info("Fetching tournaments from %s to %s...", since.date(), until.date())
        tournaments = self.feed.list_tournaments(since, until)
        LOGGER.info("Found %s tournaments to check", len(tournaments))

        for tournament in tournaments:
            try:
                if self.status_of(tournament.id) == TournamentStatus.RECORDED:
                    report.outcomes.append(self._skipped(tournament))
                    continue
                context = context.with_roster(self.db.get_roster())
            except Exception as e:
                LOGGER.exception("Failed to prepare %s (%s)", tournament.name, tournament.id)
                report.outcomes.append(self._failed(tournament, e))
                continue
            report.outcomes.append(self.process_tournament(tournament, context))

        LOGGER.info(
            "Finished! Processed: %s, Skipped: %s, Failed: %s",
            report.processed,
            report.skipped,
            report.failed,
        )
        return report

    @staticmethod
    def _skipped(tournament: Tournament) -> TournamentOutcome:
        return TournamentOutcome(
            tournament_id=tournament.id,
            name=tournament.name,
            tier=classify(tournament.name),
            status=TournamentStatus.RECORDED,
            skipped=True,
        )

    @staticmethod
    def _failed(tournament: Tournament, error: Exception) -> TournamentOutcome:
        return TournamentOutcome(
            tournament_id=tournament.id,
            name=tournament.name,
            tier=classify(tournament.name),
            status=TournamentStatus.FAILED,
            error=str(error),
        )

    def process_tournament(self, tournament: Tournament, context: RunContext) -> TournamentOutcome:
        tier = classify(tournament.name)
        outcome = TournamentOutcome(
            tournament_id=tournament.id,
            name=tournament.name,
            tier=tier,
            status=TournamentStatus.IN_FLIGHT,
        )

        try:
            if self.status_of(tournament.id) == TournamentStatus.RECORDED:
                LOGGER.debug("Tournament %s already processed", tournament.id)
                return self._skipped(tournament)

            LOGGER.info("Processing: %s (Tier: %s)", tournament.name, tier.value)
            rows = self.feed.list_participants(tournament.id)
            teams = order_by_placement(group_by_team(rows, context.roster))
            outcome.teams = len(teams)
            LOGGER.info("Processing %s teams for %s", len(teams), tournament.name)
            self.log_top_four(teams, tournament.name)

            batch, awards = self.build_batch(tournament, tier, teams, context)
            self.db.apply_tournament(batch)
        except Exception as e:
            LOGGER.exception("Failed to process %s (%s)", tournament.name, tournament.id)
            outcome.status = TournamentStatus.FAILED
            outcome.error = str(e)
            return outcome

        outcome.status = TournamentStatus.RECORDED
        outcome.individual_results = len(batch.player_results)
        outcome.club_awards = awards
        for award in awards:
            LOGGER.info(
                "%s: %s points (%s%s place)",
                award.club_name,
                award.points,
                award.placement,
                placement_suffix(award.placement),
            )
        LOGGER.info(
            "Recorded %s club awards and %s individual results for %s",
            len(awards),
            outcome.individual_results,
            tournament.name,
        )
        return outcome

    def build_batch(
        self,
        tournament: Tournament,
        tier: Tier,
        teams: List[Team],
        context: RunContext,
    ) -> Tuple[TournamentBatch, List[ClubAwardSummary]]:
        """
        Collect the writes for one tournament without touching the store.

        Teams must already be ordered by placement: the first qualifying team
        of a club is the one that gets credited.
        """
        batch = TournamentBatch(
            tournament_id=tournament.id,
            tournament_name=tournament.name,
            tier=tier.value,
            season=context.season,
        )
        awards: List[ClubAwardSummary] = []

        if not tier.is_tracked:
            LOGGER.info("%s is not a tracked tier; marking processed without scoring", tournament.name)
            return batch, awards

        credited_clubs = set()
        for team in teams:
            self._add_individual_results(batch, team, tier, context)

            eligibility = evaluate(team)
            if not eligibility.eligible:
                LOGGER.debug("Team %s gets no club award: %s", team.party_id, eligibility.reason)
                continue
            if eligibility.club_id in credited_clubs:
                LOGGER.info("%s already awarded in %s; skipping team %s",
                            eligibility.club_name, tournament.name, team.party_id)
                continue

            club = self.db.get_club(eligibility.club_id)
            if club is None:
                LOGGER.warning('Club "%s" not found for points update', eligibility.club_name)
                continue

            placement = team.placement
            team_points = points_at(tier, placement)
            batch.club_awards.append(
                ClubAward(
                    club_id=eligibility.club_id,
                    stat_field=stat_field_for_placement(placement),
                    points=team_points,
                )
            )
            self._add_member_awards(batch, team, tier, context)
            credited_clubs.add(eligibility.club_id)
            awards.append(ClubAwardSummary(eligibility.club_name, team_points, placement))

        return batch, awards

    @staticmethod
    def _add_individual_results(batch: TournamentBatch, team: Team, tier: Tier, context: RunContext) -> None:
        for competitor_id, placement, _ in team.members():
            entry = context.roster.get(competitor_id)
            batch.player_results.append(
                PlayerResult(
                    player_id=competitor_id,
                    name=entry.name if entry else None,
                    is_registered=entry is not None,
                    stat_field=stat_field_for_placement(placement),
                    points=points_at(tier, placement),
                )
            )

    def _add_member_awards(self, batch: TournamentBatch, team: Team, tier: Tier, context: RunContext) -> None:
        for competitor_id, placement, club_id in team.members():
            entry = context.roster.get(competitor_id)
            if entry is None or entry.member_key is None:
                LOGGER.warning("Player %s not found for club stats update", competitor_id)
                continue
            if self.db.get_member(club_id, entry.member_key) is None:
                LOGGER.warning("Player %s not found for club stats update", competitor_id)
                continue
            batch.member_awards.append(
                MemberAward(
                    club_id=club_id,
                    member_key=entry.member_key,
                    stat_field=stat_field_for_placement(placement),
                    points=points_at(tier, placement),
                )
            )

    @staticmethod
    def log_top_four(teams: List[Team], tournament_name: str) -> None:
        LOGGER.info("Top 4 Teams in %s:", tournament_name)
        for team in top_four(teams):
            placement = team.placement
            LOGGER.info(
                "  %s%s Place (Team %s) - %s:",
                placement,
                placement_suffix(placement),
                team.party_id,
                team_composition(team),
            )
            for index, (competitor_id, member_placement, club_id) in enumerate(team.members(), 1):
                registered = club_id is not None
                LOGGER.info(
                    "    Player %s: %s (%s) - %s - %s%s place [%s]",
                    index,
                    competitor_id,
                    team.competitor_names[index - 1],
                    team.club_names[index - 1],
                    member_placement,
                    placement_suffix(member_placement),
                    "Registered" if registered else "Unregistered",
                )
