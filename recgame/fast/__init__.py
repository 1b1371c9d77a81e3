"""Fast(er) parsing for recorded game bodies.

The body is a flat stream of operations. Each starts with a 32-bit op id;
what follows depends on the op. Only the actions that feed derived data
(research, tributes, buildings, units, resignations) are looked into;
everything else is skipped by its declared length.
"""
import io
import logging
import struct
from enum import Enum, IntEnum

from recgame.errors import PartialBodyError
from recgame.model import (
    Body, Building, ChatMessage, PostGamePlayer, PostGameSummary, Research,
    Tribute, Unit, strip_player_tag
)
from recgame.util import DEFAULT_ENCODING, Version, as_hex, family_encoding, transcode

LOGGER = logging.getLogger(__name__)

OP_ACTION = 1
OP_SYNC = 2
OP_VIEWLOCK = 3
OP_MESSAGE = 4
OP_SAVE = 6
MESSAGE_START = 500
MESSAGE_CHAT = -1

META_FORMAT = '<7I'
META_SIZE = struct.calcsize(META_FORMAT)
SYNC_CHECKSUM_SIZE = 28
SYNC_TAIL_SIZE = 12
VIEWLOCK_SIZE = 12
START_SIZE = 20

AGE_RESEARCH = {
    101: ('feudal', 130000),
    102: ('castle', 160000),
    103: ('imperial', 190000),
}

POSTGAME_FAMILIES = (Version.USERPATCH15, Version.MCP)
POSTGAME_HEADER = '<32sI4x'
POSTGAME_PLAYER = '<16sHbBBB2xiii'
POSTGAME_SLOTS = 8
POSTGAME_SIZE = struct.calcsize(POSTGAME_HEADER) + POSTGAME_SLOTS * struct.calcsize(POSTGAME_PLAYER)


class Operation(Enum):
    """Body record kinds."""
    ACTION = 'action'
    SYNC = 'sync'
    VIEWLOCK = 'viewlock'
    CHAT = 'chat'
    START = 'start'
    SAVE = 'save'


class Action(IntEnum):
    """Action types worth interpreting."""
    RESIGN = 0x0b
    RESEARCH = 0x65
    BUILD = 0x66
    TRIBUTE = 0x6c
    TRAIN = 0x77


def _end(data):
    cur = data.tell()
    end = data.seek(0, io.SEEK_END)
    data.seek(cur)
    return end


def _take(data, end, length, what):
    """Read `length` bytes, refusing to cross `end`."""
    left = end - data.tell()
    if length < 0 or length > left:
        raise PartialBodyError(data.tell(), f"{what} declares {length} bytes, {left} left")
    return data.read(length)


def _read(data, end, fmt, what):
    output = struct.unpack(fmt, _take(data, end, struct.calcsize(fmt), what))
    if len(output) == 1:
        return output[0]
    return output


def parse_resign(payload):
    player_id, player_number, disconnected = struct.unpack_from('<bbb', payload)
    return dict(player_id=player_id, player_number=player_number, disconnected=disconnected == 1)


def parse_research(payload):
    object_id, player_id, technology_id = struct.unpack_from('<3xIhh', payload)
    return dict(object_id=object_id, player_id=player_id, technology_id=technology_id)


def parse_build(payload):
    player_id, x, y, building_id = struct.unpack_from('<bxxffI', payload)
    return dict(player_id=player_id, x=x, y=y, building_id=building_id)


def parse_tribute(payload):
    player_id, player_id_to, resource_id, amount, fee = struct.unpack_from('<bbbff', payload)
    return dict(player_id=player_id, player_id_to=player_id_to, resource_id=resource_id, amount=amount, fee=fee)


def parse_train(payload):
    player_id, object_id, unit_type_id, amount = struct.unpack_from('<bxxIhh', payload)
    return dict(player_id=player_id, object_id=object_id, unit_type_id=unit_type_id, amount=amount)


ACTION_PARSERS = {
    Action.RESIGN: parse_resign,
    Action.RESEARCH: parse_research,
    Action.BUILD: parse_build,
    Action.TRIBUTE: parse_tribute,
    Action.TRAIN: parse_train,
}


def meta(data):
    """Read body metadata."""
    raw = data.read(META_SIZE)
    if len(raw) < META_SIZE:
        raise ValueError(f"body meta needs {META_SIZE} bytes, got {len(raw)}")
    log_version, checksum_interval, multiplayer, rec_owner, reveal_map, sequence_numbers, chapters = \
        struct.unpack(META_FORMAT, raw)
    return dict(
        log_version=log_version,
        checksum_interval=checksum_interval,
        multiplayer=multiplayer == 1,
        rec_owner=rec_owner,
        reveal_map=reveal_map,
        use_sequence_numbers=sequence_numbers == 1,
        chapters=chapters
    )


def action(data, end):
    """Read an action; returns (action type, fields).

    Actions we do not interpret come back as (raw id, None).
    """
    length = _read(data, end, '<I', 'action length')
    payload = _take(data, end, length, 'action')
    _take(data, end, 4, 'action world time')
    if not payload:
        return None, None
    try:
        action_type = Action(payload[0])
    except ValueError:
        return payload[0], None
    try:
        return action_type, ACTION_PARSERS[action_type](payload[1:])
    except struct.error:
        LOGGER.debug("[action] %s too short to interpret: %s", action_type.name, as_hex(payload))
        return action_type, None


def sync(data, end):
    """Read a sync; returns the time increment in ms."""
    increment, marker = _read(data, end, '<II', 'sync')
    if marker == 0:
        _take(data, end, SYNC_CHECKSUM_SIZE, 'sync checksum')
    _take(data, end, SYNC_TAIL_SIZE, 'sync')
    return increment


def message(data, end):
    """Read a message op: game start or chat."""
    subtype = _read(data, end, '<i', 'message type')
    if subtype == MESSAGE_START:
        _take(data, end, START_SIZE, 'game start')
        return Operation.START, None
    if subtype == MESSAGE_CHAT:
        length = _read(data, end, '<I', 'chat length')
        return Operation.CHAT, _take(data, end, length, 'chat')
    raise PartialBodyError(data.tell() - 4, f"unknown message type {subtype}")


def operation(data, end=None):
    """Read one operation; returns (Operation, payload).

    Raises EOFError at the end of the stream and PartialBodyError when the
    stream stops making sense.
    """
    if end is None:
        end = _end(data)
    pos = data.tell()
    left = end - pos
    if left <= 0:
        raise EOFError
    if left < 4:
        raise PartialBodyError(pos, f"{left} trailing bytes")
    op_id = _read(data, end, '<I', 'operation')
    if op_id == OP_ACTION:
        return Operation.ACTION, action(data, end)
    if op_id == OP_SYNC:
        return Operation.SYNC, sync(data, end)
    if op_id == OP_VIEWLOCK:
        _take(data, end, VIEWLOCK_SIZE, 'viewlock')
        return Operation.VIEWLOCK, None
    if op_id == OP_MESSAGE:
        return message(data, end)
    if op_id == OP_SAVE:
        length = _read(data, end, '<I', 'savepoint length')
        _take(data, end, length, 'savepoint')
        return Operation.SAVE, None
    raise PartialBodyError(pos, f"unknown operation {op_id}")


def postgame(data, size, encoding):
    """Parse the fixed post-game block at the end of the body."""
    data.seek(size - POSTGAME_SIZE)
    raw = data.read(POSTGAME_SIZE)
    scenario_filename, duration = struct.unpack_from(POSTGAME_HEADER, raw)
    offset = struct.calcsize(POSTGAME_HEADER)
    players = {}
    for number in range(1, POSTGAME_SLOTS + 1):
        name, score, victory, civilization_id, color_id, team, feudal, castle, imperial = \
            struct.unpack_from(POSTGAME_PLAYER, raw, offset)
        offset += struct.calcsize(POSTGAME_PLAYER)
        name = transcode(name, encoding)
        if not name:
            continue
        players[number] = PostGamePlayer(
            number=number,
            name=name,
            score=score,
            victory=victory == 1,
            civilization_id=civilization_id,
            color_id=color_id,
            team=team,
            feudal_time=feudal * 1000,
            castle_time=castle * 1000,
            imperial_time=imperial * 1000
        )
    LOGGER.debug("[postgame] duration=%d players=%d", duration, len(players))
    return PostGameSummary(transcode(scenario_filename, encoding), duration, players)


def _apply_action(body, action_type, fields, clock):
    if fields is None:
        return
    if action_type is Action.RESEARCH:
        player = fields['player_id']
        tech_id = fields['technology_id']
        body.research.append(Research(player, tech_id, clock))
        if tech_id in AGE_RESEARCH:
            age, research_time = AGE_RESEARCH[tech_id]
            body.ages.setdefault(player, {})[age] = clock + research_time
    elif action_type is Action.RESIGN:
        body.resignations.setdefault(fields['player_id'], clock)
    elif action_type is Action.TRIBUTE:
        body.tributes.append(Tribute(
            fields['player_id'], fields['player_id_to'], fields['resource_id'],
            fields['amount'], fields['fee'], clock
        ))
    elif action_type is Action.BUILD:
        player = fields['player_id']
        body.buildings.setdefault(player, []).append(Building(
            player, fields['building_id'], clock, fields['x'], fields['y']
        ))
    elif action_type is Action.TRAIN:
        player = fields['player_id']
        body.units.setdefault(player, []).append(Unit(
            player, fields['unit_type_id'], fields['amount'], clock
        ))


def parse(data, version, start=0, encoding=DEFAULT_ENCODING):
    """Parse recorded game body.

    Decoding stops at the first inconsistency; what was read up to that
    point is returned with `error` set.
    """
    encoding = family_encoding(version.family, encoding)
    size = _end(data)
    end = size
    body = Body()
    if version.family in POSTGAME_FAMILIES:
        if size - start >= POSTGAME_SIZE:
            body.postgame = postgame(data, size, encoding)
            end = size - POSTGAME_SIZE
        else:
            LOGGER.warning("body too short for a post-game summary (%d bytes)", size - start)
    data.seek(start)
    clock = 0
    try:
        if start == 0:
            try:
                info = meta(data)
            except ValueError as e:
                raise PartialBodyError(0, str(e)) from e
            body.log_version = info['log_version']
            body.multiplayer = info['multiplayer']
        while True:
            try:
                op_type, payload = operation(data, end)
            except EOFError:
                break
            if op_type is Operation.SYNC:
                clock += payload
            elif op_type is Operation.CHAT:
                text = transcode(payload.strip(b'\x00'), encoding)
                number, line = strip_player_tag(text)
                if line:
                    body.chat.append(ChatMessage.create(clock, line, number))
            elif op_type is Operation.ACTION:
                _apply_action(body, *payload, clock)
            elif op_type is Operation.VIEWLOCK:
                pass
            elif op_type is Operation.START:
                pass
            elif op_type is Operation.SAVE:
                pass
            else:
                raise AssertionError(f"unhandled operation {op_type}")
    except PartialBodyError as e:
        LOGGER.warning("%s; keeping what was decoded", e)
        body.error = e
    body.duration = clock
    body.position = data.tell()
    LOGGER.debug("[parse] duration=%d chat=%d research=%d pos=%d",
                 clock, len(body.chat), len(body.research), body.position)
    return body
