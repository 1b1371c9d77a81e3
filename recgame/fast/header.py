"""Fast(er) parsing for recorded game headers."""
import io
import logging
import struct
import uuid

from recgame.errors import HeaderDecodeError
from recgame.model import (
    ChatMessage, GameSettings, GameType, Header, MapData, MapObject, Player,
    PlayerType, Scenario, Stance, Team, Tile, VictorySettings, strip_player_tag
)
from recgame.util import (
    DEFAULT_ENCODING, Version, family_encoding, hexdump, remaining, transcode, unpack
)

LOGGER = logging.getLogger(__name__)
HEXDUMP_CONTEXT = 500
AI_END = b'\x00' * 4096
OBJECT_FORMAT = '<bBH14xIxff'
OBJECT_SIZE = struct.calcsize(OBJECT_FORMAT)
POPULATION_MULTIPLIER = 25
SCENARIO_GAME_TYPES = (GameType.SCENARIO, GameType.CAMPAIGN)
NEWER = (Version.DE, Version.HD)


def check_length(data, field, length):
    """Refuse a count or length that would run past the end of the header."""
    left = remaining(data)
    if length < 0 or length > left:
        raise HeaderDecodeError(field, data.tell(), f"needs {length} bytes, {left} left")
    return length


def aoc_string(data, field='string'):
    """Read AOC string."""
    length = unpack('<h', data)
    return data.read(check_length(data, field, length))


def de_string(data):
    """Read DE string."""
    pos = data.tell()
    got = data.read(2)
    if got != b'\x60\x0a':
        raise ValueError(f"de_string magic mismatch at pos {pos}: expected 60 0a, got {got.hex()!r}")
    length = unpack('<h', data)
    return unpack(f'<{length}s', data)


def hd_string(data):
    """Read HD string."""
    length = unpack('<h', data)
    pos = data.tell()
    got = data.read(2)
    if got != b'\x60\x0a':
        raise ValueError(f"hd_string magic mismatch at pos {pos}: expected 60 0a, got {got.hex()!r}")
    return unpack(f'<{length}s', data)


def parse_metadata(header, version):
    """Parse AI flag, speed, owner and player slot count."""
    save = version.save_version
    LOGGER.debug("[parse_metadata] start pos=%d save=%.2f", header.tell(), save)
    ai = unpack('<I', header)
    if ai > 0:
        # The AI block is not worth parsing; jump past its zero terminator.
        offset = header.tell()
        data = header.read()
        ai_end = data.find(AI_END)
        if ai_end < 0:
            raise HeaderDecodeError('ai', offset, "could not find ai end")
        header.seek(offset + ai_end + len(AI_END))
        LOGGER.debug("[parse_metadata] AI end found, pos=%d", header.tell())

    game_speed, owner_id, num_players, cheats = unpack('<24xf17xhbxb', header)
    LOGGER.debug("[parse_metadata] game_speed=%.2f owner_id=%d num_players=%d cheats=%d pos=%d",
                 game_speed, owner_id, num_players, cheats, header.tell())
    if save < 61.5:
        header.read(60)
    else:
        header.read(24 + (num_players * 4))
    return dict(
        speed=game_speed,
        owner_id=owner_id,
        cheats=cheats == 1,
        include_ai=ai > 0
    ), num_players


def parse_settings(header, version, metadata):
    """Parse game, map and victory settings."""
    save = version.save_version
    map_id, difficulty_id = unpack('<II', header)
    reveal_map_id, map_size, population, game_type_id, lock_teams = unpack('<I4xIIbb', header)
    if version.family in NEWER:
        header.read(5)
        if save >= 13.13:
            header.read(4)
        if save >= 25.22:
            header.read(1)
    else:
        # Older versions store the limit in steps of 25.
        population *= POPULATION_MULTIPLIER
    mode, score_limit, time_limit = unpack('<III', header)
    LOGGER.debug("[parse_settings] map_id=%d map_size=%d pop=%d game_type=%d victory=%d pos=%d",
                 map_id, map_size, population, game_type_id, mode, header.tell())
    settings = GameSettings(
        map_id=map_id,
        map_size=map_size,
        population=population,
        difficulty_id=difficulty_id,
        speed=metadata['speed'],
        reveal_map_id=reveal_map_id,
        lock_teams=lock_teams == 1,
        game_type_id=game_type_id,
        cheats=metadata['cheats']
    )
    return settings, VictorySettings(mode, score_limit, time_limit)


def parse_map(header, version):
    """Parse map."""
    save = version.save_version
    LOGGER.debug("[parse_map] start pos=%d family=%s save=%.2f", header.tell(), version.family, save)
    tile_format = '<xbbx'
    if version.family is Version.DE:
        if save >= 62.0:
            tile_format = '<bxxb6x'
        else:
            tile_format = '<bxb6x'
        header.read(8)
    size_x, size_y, zone_num = unpack('<III', header)
    tile_num = size_x * size_y
    LOGGER.debug("[parse_map] size=%dx%d zone_num=%d pos=%d", size_x, size_y, zone_num, header.tell())
    check_length(header, 'map_size', tile_num * struct.calcsize(tile_format))
    for _ in range(zone_num):
        if version.family in NEWER:
            header.read(check_length(header, 'zone', 2048 + (tile_num * 2)))
        else:
            header.read(check_length(header, 'zone', 1275 + tile_num))
        num_floats = unpack('<I', header)
        header.read(check_length(header, 'zone_floats', num_floats * 4))
        header.read(4)
    all_visible = unpack('<bx', header)
    raw = header.read(check_length(header, 'tiles', tile_num * struct.calcsize(tile_format)))
    tiles = [Tile(*tile) for tile in struct.iter_unpack(tile_format, raw)]
    LOGGER.debug("[parse_map] after tiles pos=%d", header.tell())
    num_data = unpack('<I4x', header)
    header.read(check_length(header, 'obstructions', num_data * 4))
    for _ in range(num_data):
        num_obs = unpack('<I', header)
        header.read(check_length(header, 'obstruction', num_obs * 8))
    x2, y2 = unpack('<II', header)
    visibility = x2 * y2 * 4
    if save >= 61.5:
        visibility *= 2
    header.read(check_length(header, 'visibility', visibility))
    restore_time = unpack('<I', header)
    object_count = unpack('<I', header)
    raw = header.read(check_length(header, 'object_count', object_count * OBJECT_SIZE))
    objects = [
        MapObject(class_id, owner, unit_type_id, instance_id, x, y)
        for class_id, owner, unit_type_id, instance_id, x, y in struct.iter_unpack(OBJECT_FORMAT, raw)
    ]
    LOGGER.debug("[parse_map] restore_time=%d objects=%d pos=%d", restore_time, len(objects), header.tell())
    return MapData(
        dimension=size_x,
        height=size_y,
        all_visible=all_visible == 1,
        restore_time=restore_time,
        tiles=[tiles[row * size_x:(row + 1) * size_x] for row in range(size_y)],
        objects=objects
    )


def parse_player(header, number, count, rep, version):
    """Parse one player record."""
    save = version.save_version
    type_, *diplomacy, name_length = unpack(f'<bx{count}x{rep}i5xh', header)
    name = header.read(check_length(header, 'name_length', name_length))
    resources = unpack('<xIx', header)
    resources_len = 8 if save >= 63 else 4
    header.read(check_length(header, 'resources', resources * resources_len))
    start_x, start_y, civilization_id, color_id = unpack('<xff9xB3xBx', header)
    LOGGER.debug("[parse_player] player=%d type=%d name=%r civ=%d color=%d pos=%d",
                 number, type_, name, civilization_id, color_id, header.tell())
    return dict(
        number=number,
        type=type_,
        name=name,
        diplomacy=diplomacy,
        civilization_id=civilization_id,
        color_id=color_id,
        position=(start_x, start_y)
    )


def parse_players(header, version, num_players, owner_id, encoding):
    """Parse all players.

    Slot 0 is Gaia and does not make it into the roster. Returns the
    roster and the stance matrix between roster players.
    """
    LOGGER.debug("[parse_players] start pos=%d num_players=%d", header.tell(), num_players)
    count = unpack('<I', header)
    check_length(header, 'player_count', count)
    if count != num_players:
        LOGGER.warning("player record count %d does not match slot count %d", count, num_players)
    rep = 9 if version.save_version < 61.5 else count
    records = [parse_player(header, number, count, rep, version) for number in range(count)]

    players = []
    has_owner = False
    for record in records[1:]:
        type_id = record['type']
        owner = not has_owner and record['number'] == owner_id
        has_owner = has_owner or owner
        players.append(Player(
            index=len(players),
            number=record['number'],
            name=transcode(record['name'], encoding),
            civilization_id=record['civilization_id'],
            color_id=record['color_id'],
            type_id=type_id,
            human=type_id == PlayerType.HUMAN,
            owner=owner,
            spectator=type_id == PlayerType.SPECTATOR,
            position=record['position']
        ))

    diplomacy = []
    for record in records[1:]:
        stances = record['diplomacy']
        diplomacy.append([
            stances[other.number] if other.number < len(stances) else None
            for other in players
        ])
    LOGGER.debug("[parse_players] done players=%d pos=%d", len(players), header.tell())
    return players, diplomacy


def _component(start, allies):
    group = {start}
    pending = [start]
    while pending:
        for other in allies[pending.pop()]:
            if other not in group:
                group.add(other)
                pending.append(other)
    return group


def parse_teams(players, diplomacy):
    """Reduce the stance matrix to teams.

    A pair is allied only when both sides say so. Allied groups become
    teams 1, 2, ... in roster order; everyone else goes to team 0.
    """
    allies = {p.index: set() for p in players if not p.spectator}
    for a in allies:
        for b in allies:
            if a < b and diplomacy[a][b] == Stance.ALLY and diplomacy[b][a] == Stance.ALLY:
                allies[a].add(b)
                allies[b].add(a)
    teams = []
    unassigned = []
    seen = set()
    for player in players:
        if player.spectator or not allies[player.index]:
            unassigned.append(player.index)
            continue
        if player.index in seen:
            continue
        group = _component(player.index, allies)
        seen |= group
        teams.append(Team(len(teams) + 1, sorted(group)))
    for team in teams:
        for index in team.players:
            players[index].team = team.index
    if unassigned:
        teams.insert(0, Team(0, unassigned))
    return teams


def parse_lobby(header, version, encoding):
    """Parse pre-game chat and the DE random seed."""
    LOGGER.debug("[parse_lobby] start pos=%d", header.tell())
    chat_count = unpack('<I', header)
    check_length(header, 'chat_count', chat_count * 4)
    chat = []
    for _ in range(chat_count):
        length = unpack('<I', header)
        message = header.read(check_length(header, 'chat_length', length)).strip(b'\x00')
        if message:
            number, line = strip_player_tag(transcode(message, encoding))
            chat.append(ChatMessage.create(0, line, number))
    seed = None
    if version.family is Version.DE:
        seed = unpack('<i', header)
    LOGGER.debug("[parse_lobby] chat=%d seed=%s pos=%d", len(chat), seed, header.tell())
    return chat, seed


def parse_scenario(header, version, encoding):
    """Parse scenario section."""
    scenario_version = unpack('<f', header)
    header.read(4)
    filename = aoc_string(header, 'scenario_filename')
    header.read(24)
    instructions = aoc_string(header, 'instructions')
    LOGGER.debug("[parse_scenario] version=%.2f filename=%r pos=%d", scenario_version, filename, header.tell())
    return Scenario(transcode(filename, encoding), transcode(instructions, encoding))


def parse_lobby_metadata(header, version):
    """Parse the HD/DE lobby block located by version detection."""
    if version.metadata_offset is None:
        return None
    header.seek(version.metadata_offset)
    block = io.BytesIO(header.read(version.metadata_length))
    read_string = de_string if version.family is Version.DE else hd_string
    try:
        guid = str(uuid.UUID(bytes=block.read(16)))
        lobby = read_string(block)
        mod = read_string(block)
    except (struct.error, ValueError) as e:
        LOGGER.warning("could not read lobby metadata: %s", e)
        return None
    return dict(
        guid=guid,
        lobby=lobby.decode('utf-8', errors='replace'),
        mod=mod.decode('utf-8', errors='replace')
    )


def _log_failure(header, fail_pos):
    start = max(0, fail_pos - HEXDUMP_CONTEXT)
    header.seek(start)
    context_bytes = header.read(HEXDUMP_CONTEXT * 2)
    LOGGER.debug(
        "[parse] FAILURE at header pos=%d\n%s",
        fail_pos,
        hexdump(context_bytes, base_offset=start, mark=fail_pos),
    )


def parse(header, version, start=None, encoding=DEFAULT_ENCODING):
    """Parse recorded game header."""
    encoding = family_encoding(version.family, encoding)
    header.seek(version.start if start is None else start)
    LOGGER.debug("[parse] start pos=%d family=%s", header.tell(), version.family)
    stage = 'metadata'
    try:
        metadata, num_players = parse_metadata(header, version)
        stage = 'settings'
        settings, victory = parse_settings(header, version, metadata)
        stage = 'map'
        map_ = parse_map(header, version)
        stage = 'players'
        players, diplomacy = parse_players(header, version, num_players, metadata['owner_id'], encoding)
        teams = parse_teams(players, diplomacy)
        stage = 'lobby'
        chat, seed = parse_lobby(header, version, encoding)
        scenario = None
        if settings.game_type in SCENARIO_GAME_TYPES:
            stage = 'scenario'
            scenario = parse_scenario(header, version, encoding)
        position = header.tell()
    except HeaderDecodeError as e:
        _log_failure(header, e.offset)
        raise
    except (struct.error, ValueError, MemoryError) as e:
        offset = header.tell()
        _log_failure(header, offset)
        raise HeaderDecodeError(stage, offset, str(e)) from e
    lobby = parse_lobby_metadata(header, version)
    gameplay = [p for p in players if not p.spectator]
    failed_userpatch = (
        version.family is Version.USERPATCH15 and bool(gameplay)
        and all(p.civilization_id == 0 for p in gameplay)
    )
    if failed_userpatch:
        LOGGER.warning("civilizations are zeroed, this file comes from a broken UserPatch 1.5 build")
    LOGGER.debug("[parse] done pos=%d", position)
    return Header(
        version=version,
        settings=settings,
        victory=victory,
        map=map_,
        players=players,
        teams=teams,
        diplomacy=diplomacy,
        chat=chat,
        owner_id=metadata['owner_id'],
        include_ai=metadata['include_ai'],
        scenario=scenario,
        seed=seed,
        lobby=lobby,
        failed_userpatch=failed_userpatch,
        position=position
    )
