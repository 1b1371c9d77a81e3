"""Decoded recorded game structures."""
import re
from collections import namedtuple
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

from recgame.util import format_time

PLAYER_TAG = re.compile(r'^@#(\d)')
RATING_PREFIX = '<Rating> '
REAL_WORLD_MAPS = range(34, 44)
CUSTOM_MAP = 44


class PlayerType(IntEnum):
    """Player slot type."""
    ABSENT = 0
    CLOSED = 1
    HUMAN = 2
    ELIMINATED = 3
    COMPUTER = 4
    CYBORG = 5
    SPECTATOR = 6


class Stance(IntEnum):
    """Diplomatic stance of one player towards another."""
    ALLY = 0
    NEUTRAL = 1
    ENEMY = 3


class GameType(IntEnum):
    """Game type."""
    RANDOM_MAP = 0
    REGICIDE = 1
    DEATH_MATCH = 2
    SCENARIO = 3
    CAMPAIGN = 4
    KING_OF_THE_HILL = 5
    WONDER_RACE = 6
    DEFEND_THE_WONDER = 7
    TURBO_RANDOM_MAP = 8


class VictoryType(IntEnum):
    """Victory condition."""
    STANDARD = 0
    CONQUEST = 1
    TIME_LIMIT = 7
    SCORE = 8
    CUSTOM = 9


class MapStyle(Enum):
    """Kind of map."""
    STANDARD = 'standard'
    REAL_WORLD = 'real_world'
    CUSTOM = 'custom'


class Resource(IntEnum):
    """Tributable resource."""
    FOOD = 0
    WOOD = 1
    STONE = 2
    GOLD = 3


Tile = namedtuple('Tile', ['terrain_id', 'elevation'])


def _enum_or_none(enum, value):
    try:
        return enum(value)
    except ValueError:
        return None


@dataclass
class MapObject:
    """An object placed on the map when the game starts."""
    class_id: int
    owner: int
    unit_type_id: int
    instance_id: int
    x: float
    y: float


@dataclass
class MapData:
    """Terrain grid and initial object placements."""
    dimension: int
    height: int
    all_visible: bool
    restore_time: int
    tiles: List[List[Tile]]
    objects: List[MapObject] = field(default_factory=list)


@dataclass
class GameSettings:
    """Lobby settings."""
    map_id: int
    map_size: int
    population: int
    difficulty_id: int
    speed: float
    reveal_map_id: int
    lock_teams: bool
    game_type_id: int
    cheats: bool

    @property
    def game_type(self):
        return _enum_or_none(GameType, self.game_type_id)

    @property
    def map_style(self):
        if self.map_id == CUSTOM_MAP:
            return MapStyle.CUSTOM
        if self.map_id in REAL_WORLD_MAPS:
            return MapStyle.REAL_WORLD
        return MapStyle.STANDARD


@dataclass
class VictorySettings:
    """Victory condition and its limits."""
    mode: int
    score_limit: int
    time_limit: int

    @property
    def type(self):
        return _enum_or_none(VictoryType, self.mode)

    @property
    def threshold(self):
        """The limit that applies to the victory mode, if any."""
        if self.mode == VictoryType.SCORE:
            return self.score_limit
        if self.mode == VictoryType.TIME_LIMIT:
            return self.time_limit
        return None


@dataclass
class Scenario:
    """Scenario metadata."""
    filename: str
    instructions: str


def strip_player_tag(line):
    """Split the '@#N' sender tag off a raw chat line.

    Returns (player number or None, rest of the line).
    """
    match = PLAYER_TAG.match(line)
    if not match:
        return None, line
    return int(match.group(1)), line[match.end():]


@dataclass
class ChatMessage:
    """A chat line sent before or during the game."""
    time: int
    name: str
    msg: str
    group: str = ''
    number: Optional[int] = None

    @classmethod
    def create(cls, time, line, number=None):
        """Build a message from a line with the sender embedded in it.

        Lines look like `<All>Name: text`, `<Rating> Name: text` (Voobly puts
        a space before the name) or plain `Name: text`. Senders are not
        checked against the roster: lobby-only players show up here too.
        """
        group = ''
        if line.startswith('<'):
            if line.startswith(RATING_PREFIX):
                group = RATING_PREFIX.rstrip()
                line = line[len(RATING_PREFIX):]
            else:
                end = line.find('>')
                group = line[:end + 1]
                line = line[end + 1:]
        name, sep, msg = line.partition(':')
        if not sep:
            return cls(time, '', line.strip(), group, number)
        return cls(time, name.lstrip(), msg.lstrip(), group, number)

    def to_list(self):
        return [format_time(self.time), self.name, self.msg, self.group]


@dataclass
class Player:
    """A roster entry."""
    index: int
    number: int
    name: str
    civilization_id: int
    color_id: int
    type_id: int
    human: bool = False
    owner: bool = False
    spectator: bool = False
    team: int = 0
    position: Tuple[float, float] = (0.0, 0.0)
    feudal_time: int = 0
    castle_time: int = 0
    imperial_time: int = 0
    resign_time: int = 0

    @property
    def type(self):
        return _enum_or_none(PlayerType, self.type_id)


@dataclass
class Team:
    """Players that share an alliance. Index 0 means "no team"."""
    index: int
    players: List[int] = field(default_factory=list)
    winner: Optional[bool] = None


@dataclass
class Header:
    """Everything decoded from the header region."""
    version: object
    settings: GameSettings
    victory: VictorySettings
    map: MapData
    players: List[Player]
    teams: List[Team]
    diplomacy: List[List[int]]
    chat: List[ChatMessage]
    owner_id: int
    include_ai: bool
    scenario: Optional[Scenario] = None
    seed: Optional[int] = None
    lobby: Optional[dict] = None
    failed_userpatch: bool = False
    position: int = 0


@dataclass
class Research:
    """A technology research started by a player."""
    player: int
    tech_id: int
    time: int


@dataclass
class Tribute:
    """Resources sent from one player to another."""
    player_from: int
    player_to: int
    resource: int
    amount: float
    fee: float
    time: int

    @property
    def resource_type(self):
        return _enum_or_none(Resource, self.resource)


@dataclass
class Building:
    """A build command."""
    player: int
    building_id: int
    time: int
    x: float
    y: float


@dataclass
class Unit:
    """A train command."""
    player: int
    unit_type_id: int
    amount: int
    time: int


@dataclass
class PostGamePlayer:
    """Per-player entry of the post-game summary."""
    number: int
    name: str
    score: int
    victory: bool
    civilization_id: int
    color_id: int
    team: int
    feudal_time: int
    castle_time: int
    imperial_time: int


@dataclass
class PostGameSummary:
    """Trailing summary block written by UserPatch 1.5."""
    scenario_filename: str
    duration: int
    players: Dict[int, PostGamePlayer] = field(default_factory=dict)


@dataclass
class Body:
    """Everything decoded from the body region."""
    log_version: Optional[int] = None
    multiplayer: Optional[bool] = None
    duration: int = 0
    chat: List[ChatMessage] = field(default_factory=list)
    research: List[Research] = field(default_factory=list)
    tributes: List[Tribute] = field(default_factory=list)
    buildings: Dict[int, List[Building]] = field(default_factory=dict)
    units: Dict[int, List[Unit]] = field(default_factory=dict)
    resignations: Dict[int, int] = field(default_factory=dict)
    ages: Dict[int, Dict[str, int]] = field(default_factory=dict)
    postgame: Optional[PostGameSummary] = None
    error: Optional[Exception] = None
    position: int = 0


@dataclass
class Outcome:
    """Resolved winners and fingerprint."""
    teams: List[Team]
    players: List[Player]
    battle_mode: str
    fingerprint: str

    def as_dict(self):
        players = {p.index: p for p in self.players}
        return {
            team.index: dict(
                is_winner=team.winner,
                players=[[i, players[i].number] for i in team.players]
            )
            for team in self.teams
        }
