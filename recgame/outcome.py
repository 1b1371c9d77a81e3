"""Work out teams, winners and the match fingerprint."""
import hashlib
import logging
from dataclasses import replace

from recgame.model import Outcome, Team

LOGGER = logging.getLogger(__name__)
SYNTHETIC_TEAM_OFFSET = 5
LOSER_FLOOR = 0.2
MELEE = 'melee'
POSTGAME_NO_TEAM = 1
AGES = ('feudal', 'castle', 'imperial')


def merge_players(header, body=None):
    """Copy the roster with resign and age times from the body.

    Broken UserPatch 1.5 builds zero out civilizations in the header; the
    post-game summary has the real values, so those win when available.
    """
    summary = body.postgame if body is not None else None
    merged = []
    for player in header.players:
        changes = {}
        if body is not None:
            changes['resign_time'] = body.resignations.get(player.number, 0)
            ages = body.ages.get(player.number, {})
            for age in AGES:
                changes[f'{age}_time'] = ages.get(age, 0)
        if summary is not None and header.failed_userpatch and player.number in summary.players:
            entry = summary.players[player.number]
            changes.update(
                civilization_id=entry.civilization_id,
                color_id=entry.color_id - 1,
                feudal_time=entry.feudal_time,
                castle_time=entry.castle_time,
                imperial_time=entry.imperial_time,
                resign_time=0
            )
        merged.append(replace(player, **changes))
    return merged


def _team_key(player):
    if player.team:
        return player.team
    return player.index + SYNTHETIC_TEAM_OFFSET


def summary_teams(players, summary):
    """Teams and winners straight from the post-game summary."""
    groups = {}
    victories = {}
    for player in players:
        entry = summary.players.get(player.number)
        if entry is None or entry.team == POSTGAME_NO_TEAM:
            key = player.index + SYNTHETIC_TEAM_OFFSET
        else:
            key = entry.team
        player.team = key
        groups.setdefault(key, []).append(player.index)
        if entry is not None:
            victories.setdefault(key, []).append(entry.victory)
    teams = []
    for key in sorted(groups):
        winner = any(victories[key]) if key in victories else None
        teams.append(Team(key, groups[key], winner))
    return teams


def heuristic_teams(players, owner=None):
    """Guess winners from resignations.

    A team where everybody resigned lost. If there is no such team, the
    team with the largest resigned share above LOSER_FLOOR lost. If the
    recording owner did not resign but a teammate did, the owner counts as
    resigned too; when that lifts the owner's team above the largest share,
    it is the only loser. Everyone else won.
    """
    groups = {}
    for player in players:
        key = _team_key(player)
        player.team = key
        groups.setdefault(key, []).append(player)
    resigned = {
        key: sum(1 for p in members if p.resign_time > 0)
        for key, members in groups.items()
    }
    fractions = {key: resigned[key] / len(groups[key]) for key in groups}
    losers = {key for key, fraction in fractions.items() if fraction == 1.0}
    if not losers:
        candidates = {key: fraction for key, fraction in fractions.items() if fraction > LOSER_FLOOR}
        top = LOSER_FLOOR
        if candidates:
            top = max(candidates.values())
            losers = {key for key, fraction in candidates.items() if fraction == top}
        if owner is not None and owner.resign_time == 0 and owner.team in groups:
            key = owner.team
            if resigned[key] > 0 and (resigned[key] + 1) / len(groups[key]) > top:
                LOGGER.debug("[heuristic_teams] owner team %d counted as resigned", key)
                losers = {key}
    LOGGER.debug("[heuristic_teams] fractions=%s losers=%s", fractions, sorted(losers))
    return [
        Team(key, [p.index for p in groups[key]], key not in losers)
        for key in sorted(groups)
    ]


def battle_mode(teams, players):
    """Describe team sizes, e.g. '1v1', '2v2', '1v2' or 'melee'."""
    numbers = {p.index: p.number for p in players}
    sizes = sorted(len({numbers[i] for i in team.players}) for team in teams)
    if len(sizes) > 2 and all(size == 1 for size in sizes):
        return MELEE
    return 'v'.join(str(size) for size in sizes)


def fingerprint(label, mode, map_id, players):
    """Hash that is the same for every recording of one match."""
    salt = ''.join(sorted(
        f'{p.index}{p.name}{p.civilization_id}' for p in players if not p.spectator
    ))
    return hashlib.md5(f'{label}{mode}{map_id}{salt}'.encode('utf-8')).hexdigest()


def resolve(header, body=None):
    """Resolve teams and winners for a decoded game."""
    players = merge_players(header, body)
    gameplay = [p for p in players if not p.spectator]
    summary = body.postgame if body is not None else None
    if summary is not None:
        teams = summary_teams(gameplay, summary)
    else:
        owner = next((p for p in gameplay if p.owner), None)
        teams = heuristic_teams(gameplay, owner)
    mode = battle_mode(teams, gameplay)
    return Outcome(
        teams=teams,
        players=players,
        battle_mode=mode,
        fingerprint=fingerprint(header.version.label, mode, header.settings.map_id, gameplay)
    )
