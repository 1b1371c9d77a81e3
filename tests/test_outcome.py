"""Tests for team, winner and fingerprint resolution."""

import io
import random

from recgame import outcome
from recgame.fast import header as fast_header
from recgame.fast import version as fast_version
from recgame.model import Body, Player, PostGamePlayer, PostGameSummary

from recbuilder import AOC, SPECTATOR, UP15, build_header, player


def decode(players, version=AOC, **options):
    data = io.BytesIO(build_header(players, version=version, **options))
    return fast_header.parse(data, fast_version.detect(data))


def resigned(*numbers):
    return Body(resignations={number: 1000 * number for number in numbers})


def winners(result):
    return {team.index: team.winner for team in result.teams}


class TestHeuristic:
    """Tests for resolving winners from resignations."""

    def test_free_for_all(self):
        header = decode([player('A'), player('B'), player('C')])
        result = outcome.resolve(header, resigned(1, 2))
        assert winners(result) == {5: False, 6: False, 7: True}
        assert result.battle_mode == outcome.MELEE

    def test_whole_team_resigned(self):
        header = decode([player('A', team=1), player('B', team=1), player('C', team=2), player('D', team=2)])
        result = outcome.resolve(header, resigned(1, 2))
        assert winners(result) == {1: False, 2: True}
        assert result.battle_mode == '2v2'

    def test_largest_resigned_share_loses(self):
        header = decode(
            [player('A', team=1), player('B', team=1)]
            + [player(name, team=2) for name in 'CDE']
            + [player('F', team=3), player('G', team=3), player('H', team=3)]
        )
        # team 1: 1 of 2 resigned, team 2: 1 of 3, team 3: none
        result = outcome.resolve(header, resigned(1, 3))
        assert winners(result) == {1: False, 2: True, 3: True}

    def test_share_at_floor_is_not_a_loser(self):
        header = decode([player(name, team=1) for name in 'ABCDE'] + [player(name, team=2) for name in 'FGH'])
        result = outcome.resolve(header, resigned(1))
        assert winners(result) == {1: True, 2: True}

    def test_tied_shares_all_lose(self):
        header = decode([player('A', team=1), player('B', team=1), player('C', team=2), player('D', team=2)])
        result = outcome.resolve(header, resigned(1, 3))
        assert winners(result) == {1: False, 2: False}

    def test_owner_counts_with_resigned_teammate(self):
        header = decode([player(name, team=1) for name in 'ABC'] + [player(name, team=2) for name in 'DE'], owner_id=1)
        # team 1: 1 of 3 resigned, raised to 2 of 3 by the owner; team 2: 1 of 2
        result = outcome.resolve(header, resigned(2, 4))
        assert winners(result) == {1: False, 2: True}

    def test_owner_rule_needs_an_owner_who_stayed(self):
        teams = [player(name, team=1) for name in 'ABC'] + [player(name, team=2) for name in 'DE']
        assert winners(outcome.resolve(decode(teams, owner_id=0), resigned(2, 4))) == {1: True, 2: False}
        assert winners(outcome.resolve(decode(teams, owner_id=4), resigned(2, 4))) == {1: True, 2: False}
        assert winners(outcome.resolve(decode(teams, owner_id=1), resigned(1, 2, 4))) == {1: False, 2: True}

    def test_owner_alone_is_not_counted(self):
        header = decode([player(name, team=1) for name in 'ABC'] + [player(name, team=2) for name in 'DE'], owner_id=1)
        result = outcome.resolve(header, resigned(4))
        assert winners(result) == {1: True, 2: False}

    def test_half_beats_three_tenths(self):
        def roster(team, size, resigned_count, first):
            return [
                Player(first + i, first + i + 1, f'P{first + i}', 1, 1, 2, team=team,
                       resign_time=1000 if i < resigned_count else 0)
                for i in range(size)
            ]
        players = roster(1, 10, 3, 0) + roster(2, 2, 1, 10)
        teams = outcome.heuristic_teams(players)
        assert {team.index: team.winner for team in teams} == {1: True, 2: False}

    def test_no_body(self):
        header = decode([player('A'), player('B')])
        result = outcome.resolve(header)
        assert winners(result) == {5: True, 6: True}
        assert result.battle_mode == '1v1'

    def test_spectators_are_left_out(self):
        header = decode([player('A'), player('B'), player('S', type_id=SPECTATOR)])
        result = outcome.resolve(header, resigned(1))
        assert winners(result) == {5: False, 6: True}
        assert [p.name for p in result.players] == ['A', 'B', 'S']

    def test_as_dict(self):
        header = decode([player('A', team=1), player('B', team=1), player('C')])
        result = outcome.resolve(header, resigned(3))
        assert result.as_dict() == {
            1: dict(is_winner=True, players=[[0, 1], [1, 2]]),
            7: dict(is_winner=False, players=[[2, 3]]),
        }
        assert result.battle_mode == '1v2'


class TestSummary:
    """Tests for resolving winners from the post-game summary."""

    def body(self, entries, **extra):
        players = {
            number: PostGamePlayer(number, name, 100, victory, civ, color, team, 0, 0, 0)
            for number, (name, victory, civ, color, team) in entries.items()
        }
        return Body(postgame=PostGameSummary('', 0, players), **extra)

    def test_summary_teams(self):
        header = decode([player('A'), player('B'), player('C')], version=UP15)
        body = self.body({
            1: ('A', True, 1, 1, 2),
            2: ('B', True, 1, 2, 2),
            3: ('C', False, 1, 3, 1),
        }, resignations={1: 500})
        result = outcome.resolve(header, body)
        assert winners(result) == {2: True, 7: False}
        assert [p.team for p in result.players] == [2, 2, 7]
        assert result.battle_mode == '1v2'

    def test_missing_entries(self):
        header = decode([player('A'), player('B')], version=UP15)
        body = self.body({1: ('A', True, 1, 1, 3)})
        result = outcome.resolve(header, body)
        assert winners(result) == {3: True, 6: None}

    def test_missing_entry_never_takes_header_team(self):
        header = decode([player('A', team=1), player('B', team=1)], version=UP15)
        body = self.body({2: ('B', True, 1, 2, 2)})
        result = outcome.resolve(header, body)
        assert winners(result) == {2: True, 5: None}
        assert [p.team for p in result.players] == [5, 2]

    def test_failed_userpatch_takes_civs_from_summary(self):
        header = decode([player('A', civ=0), player('B', civ=0)], version=UP15)
        assert header.failed_userpatch
        body = self.body({1: ('A', True, 4, 2, 1), 2: ('B', False, 9, 3, 1)}, resignations={2: 700})
        body.postgame.players[1].feudal_time = 500000
        result = outcome.resolve(header, body)
        a, b = result.players
        assert (a.civilization_id, a.color_id, a.feudal_time) == (4, 1, 500000)
        assert (b.civilization_id, b.color_id) == (9, 2)
        assert b.resign_time == 0
        assert header.players[0].civilization_id == 0


class TestMergePlayers:
    """Tests for merging body data into the roster."""

    def test_resign_and_ages(self):
        header = decode([player('A'), player('B')])
        body = Body(resignations={2: 9000}, ages={1: {'feudal': 131000, 'castle': 400000}})
        a, b = outcome.merge_players(header, body)
        assert (a.feudal_time, a.castle_time, a.imperial_time) == (131000, 400000, 0)
        assert b.resign_time == 9000
        assert a.resign_time == 0

    def test_roster_is_not_modified(self):
        header = decode([player('A'), player('B')])
        outcome.resolve(header, resigned(1))
        assert header.players[0].resign_time == 0
        assert header.players[0].team == 0


class TestBattleMode:
    """Tests for battle_mode."""

    def test_co_op_partners_count_once(self):
        header = decode([player('A', team=1), player('A2', team=1), player('B', team=2)])
        teams = outcome.heuristic_teams(outcome.merge_players(header))
        players = outcome.merge_players(header)
        players[1].number = players[0].number
        assert outcome.battle_mode(teams, players) == '1v1'

    def test_uneven(self):
        header = decode([player('A', team=1), player('B', team=2), player('C', team=2), player('D', team=2)])
        result = outcome.resolve(header)
        assert result.battle_mode == '1v3'


class TestFingerprint:
    """Tests for the match fingerprint."""

    def test_independent_of_roster_order(self):
        header = decode([player('A', civ=1), player('B', civ=2), player('C', civ=3)])
        players = outcome.merge_players(header)
        expected = outcome.fingerprint('AOC', 'melee', 9, players)
        shuffled = list(players)
        random.Random(4).shuffle(shuffled)
        assert outcome.fingerprint('AOC', 'melee', 9, shuffled) == expected
        assert outcome.fingerprint('AOC', 'melee', 9, list(reversed(players))) == expected

    def test_stable_across_decodes(self):
        players = [player('A', civ=1), player('B', civ=2)]
        first = outcome.resolve(decode(players)).fingerprint
        second = outcome.resolve(decode(players)).fingerprint
        assert first == second
        assert len(first) == 32

    def test_depends_on_content(self):
        base = outcome.resolve(decode([player('A', civ=1), player('B', civ=2)])).fingerprint
        other_civ = outcome.resolve(decode([player('A', civ=1), player('B', civ=3)])).fingerprint
        other_map = outcome.resolve(decode([player('A', civ=1), player('B', civ=2)],
                                           settings=dict(map_id=10))).fingerprint
        assert len({base, other_civ, other_map}) == 3

    def test_ignores_spectators(self):
        header = decode([player('A'), player('B'), player('S', type_id=SPECTATOR)])
        players = outcome.merge_players(header)
        assert outcome.fingerprint('AOC', '1v1', 9, players) == outcome.fingerprint('AOC', '1v1', 9, players[:2])
